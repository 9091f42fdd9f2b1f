from datetime import datetime
import logging
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql import func

from readmegen.db.models import User
from readmegen.errors import PersistenceError, UserNotFoundError
from readmegen.services.github_oauth import GitHubIdentity


logger = logging.getLogger("readmegen.users")

_INSERT_BY_DIALECT = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class UserView(BaseModel):
    """Client-facing projection of a user record. Has no provider token field."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    github_id: str
    username: str
    avatar_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


def upsert_github_user(db: Session, identity: GitHubIdentity, access_token: str) -> User:
    """Create or refresh the user keyed by GitHub id in one statement.

    ``INSERT ... ON CONFLICT DO UPDATE`` keeps concurrent first logins of the
    same identity from producing two rows.
    """
    dialect = db.get_bind().dialect.name
    insert = _INSERT_BY_DIALECT.get(dialect)
    if insert is None:
        raise PersistenceError(f"Unsupported database dialect: {dialect}")

    stmt = insert(User).values(
        id=uuid4(),
        github_id=identity.provider_id,
        username=identity.username,
        avatar_url=identity.avatar_url,
        access_token=access_token,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["github_id"],
        set_={
            "username": stmt.excluded.username,
            "avatar_url": stmt.excluded.avatar_url,
            "access_token": stmt.excluded.access_token,
            "updated_at": func.now(),
        },
    ).returning(User.id)

    try:
        user_id = db.execute(stmt).scalar_one()
        db.commit()
        user = db.get(User, user_id, populate_existing=True)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("user upsert failed github_id=%s error=%s", identity.provider_id, type(exc).__name__)
        raise PersistenceError() from exc

    logger.info("user saved username=%s github_id=%s", user.username, user.github_id)
    return user


def get_user_view(db: Session, user_id: UUID) -> UserView:
    user = db.execute(select(User).where(User.id == user_id)).scalar_one_or_none()
    if user is None:
        raise UserNotFoundError()
    return UserView.model_validate(user)


def load_provider_token(db: Session, user_id: UUID) -> str:
    token = db.execute(select(User.access_token).where(User.id == user_id)).scalar_one_or_none()
    if not token:
        raise UserNotFoundError()
    return token
