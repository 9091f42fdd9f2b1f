from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta
import threading
from uuid import UUID, uuid4

import jwt
import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker
from starlette.responses import Response

from readmegen.config import settings
from readmegen.db import Base, User
from readmegen.errors import InvalidSessionError, UnauthenticatedError, UpstreamAuthError, UserNotFoundError
from readmegen.services import sessions
from readmegen.services.github_oauth import GitHubIdentity
from readmegen.services.users import upsert_github_user


def _seed_user(db_session: Session, github_id: str = "900000010") -> User:
    user = User(
        id=uuid4(),
        github_id=github_id,
        username="session-user",
        avatar_url=None,
        access_token="gho_secret",
    )
    db_session.add(user)
    db_session.commit()
    return user


def test_session_token_round_trip() -> None:
    user_id = uuid4()
    token = sessions.create_session_token(user_id)
    payload = sessions.decode_session_token(token)
    assert payload["sub"] == str(user_id)
    assert payload["typ"] == "session"
    assert payload["exp"] - payload["iat"] == 24 * 60 * 60


def test_verify_session_returns_view_without_provider_token(db_session: Session) -> None:
    user = _seed_user(db_session)
    view = sessions.verify_session(db_session, sessions.create_session_token(user.id))

    assert view.id == user.id
    assert view.username == "session-user"
    dumped = view.model_dump()
    assert "access_token" not in dumped
    assert "gho_secret" not in view.model_dump_json()


def test_verify_session_requires_token(db_session: Session) -> None:
    with pytest.raises(UnauthenticatedError) as exc:
        sessions.verify_session(db_session, None)
    assert exc.value.status_code == 401


def test_verify_session_rejects_tampered_token(db_session: Session) -> None:
    user = _seed_user(db_session)
    forged = jwt.encode(
        {"sub": str(user.id), "aud": sessions.SESSION_TOKEN_AUDIENCE, "exp": int(datetime.now(UTC).timestamp()) + 60, "typ": "session"},
        "some-other-secret",
        algorithm="HS256",
    )
    with pytest.raises(InvalidSessionError):
        sessions.verify_session(db_session, forged)
    with pytest.raises(InvalidSessionError):
        sessions.verify_session(db_session, "not-a-token")


def test_verify_session_rejects_expired_token(db_session: Session) -> None:
    user = _seed_user(db_session)
    expired = sessions.create_session_token(user.id, now=datetime.now(UTC) - timedelta(hours=25))
    with pytest.raises(InvalidSessionError) as exc:
        sessions.verify_session(db_session, expired)
    assert exc.value.message == "Session expired"


def test_verify_session_rejects_foreign_token_type(db_session: Session) -> None:
    user = _seed_user(db_session)
    token = jwt.encode(
        {"sub": str(user.id), "aud": sessions.SESSION_TOKEN_AUDIENCE, "exp": int(datetime.now(UTC).timestamp()) + 60, "typ": "share"},
        settings.jwt_secret,
        algorithm="HS256",
    )
    with pytest.raises(InvalidSessionError):
        sessions.verify_session(db_session, token)


def test_verify_session_user_deleted_after_issuance(db_session: Session) -> None:
    token = sessions.create_session_token(uuid4())
    with pytest.raises(UserNotFoundError):
        sessions.verify_session(db_session, token)


def test_upsert_creates_then_updates_single_record(db_session: Session) -> None:
    first = upsert_github_user(db_session, GitHubIdentity("42", "octo", "https://example.com/1.png"), "gho_first")
    second = upsert_github_user(db_session, GitHubIdentity("42", "octo-renamed", None), "gho_second")

    assert first.id == second.id
    count = db_session.execute(select(func.count()).select_from(User).where(User.github_id == "42")).scalar_one()
    assert count == 1

    row = db_session.execute(select(User).where(User.github_id == "42")).scalar_one()
    db_session.refresh(row)
    assert row.username == "octo-renamed"
    assert row.avatar_url is None
    assert row.access_token == "gho_second"


def test_upsert_keeps_identities_apart(db_session: Session) -> None:
    upsert_github_user(db_session, GitHubIdentity("1", "one", None), "gho_1")
    upsert_github_user(db_session, GitHubIdentity("2", "two", None), "gho_2")
    count = db_session.execute(select(func.count()).select_from(User)).scalar_one()
    assert count == 2


def test_set_session_cookie_attributes() -> None:
    response = Response()
    sessions.set_session_cookie(response, "token-value")
    header = response.headers["set-cookie"]
    assert header.startswith(f"{sessions.SESSION_COOKIE_NAME}=token-value")
    assert "HttpOnly" in header
    assert "Max-Age=86400" in header
    assert "SameSite=lax" in header
    assert "Secure" in header


def test_end_session_swallows_revocation_failure(monkeypatch) -> None:
    def failing_revoke(_token: str) -> None:
        raise UpstreamAuthError("Failed to revoke GitHub grant")

    monkeypatch.setattr(sessions, "revoke_github_grant", failing_revoke)
    response = Response()
    sessions.end_session(response, "gho_secret")
    header = response.headers["set-cookie"]
    assert f"{sessions.SESSION_COOKIE_NAME}=" in header
    assert "Max-Age=0" in header


def test_end_session_skips_revocation_without_token(monkeypatch) -> None:
    calls: list[str] = []
    monkeypatch.setattr(sessions, "revoke_github_grant", calls.append)
    sessions.end_session(Response(), None)
    assert calls == []


def test_concurrent_first_logins_share_one_record(tmp_path) -> None:
    file_engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'users.db'}", connect_args={"timeout": 30})
    Base.metadata.create_all(file_engine)
    make_session = sessionmaker(bind=file_engine, autoflush=False)
    identity = GitHubIdentity("5150", "racer", None)
    workers = 8
    barrier = threading.Barrier(workers)

    def login(index: int) -> UUID:
        with make_session() as session:
            barrier.wait()
            return upsert_github_user(session, identity, f"gho_{index}").id

    try:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            ids = list(pool.map(login, range(workers)))

        with make_session() as session:
            rows = session.execute(select(User).where(User.github_id == "5150")).scalars().all()
    finally:
        file_engine.dispose()

    assert len(rows) == 1
    assert set(ids) == {rows[0].id}
    assert rows[0].access_token in {f"gho_{index}" for index in range(workers)}
