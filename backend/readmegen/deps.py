from collections.abc import Generator

from fastapi import Depends
from fastapi.security import APIKeyCookie
from sqlalchemy.orm import Session

from readmegen.db.session import SessionLocal
from readmegen.services.sessions import SESSION_COOKIE_NAME, verify_session
from readmegen.services.users import UserView, load_provider_token


def get_db_session() -> Generator[Session, None, None]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


session_cookie = APIKeyCookie(name=SESSION_COOKIE_NAME, auto_error=False)


def get_current_user(
    session_token: str | None = Depends(session_cookie),
    db: Session = Depends(get_db_session),
) -> UserView:
    return verify_session(db, session_token)


def get_provider_token(
    current_user: UserView = Depends(get_current_user),
    db: Session = Depends(get_db_session),
) -> str:
    return load_provider_token(db, current_user.id)
