import os
from uuid import uuid4

from fastapi.testclient import TestClient
import pytest
from sqlalchemy import delete
from sqlalchemy.orm import Session

# Ensure tests can run without a .env file or external services.
ENV_DEFAULTS = {
    "APP_NAME": "readmegen",
    "ENV": "test",
    "DATABASE_URL": "sqlite+pysqlite:///:memory:",
    "REDIS_URL": "redis://localhost:6399/0",
    "GITHUB_CLIENT_ID": "test-client-id",
    "GITHUB_CLIENT_SECRET": "test-client-secret",
    "GITHUB_OAUTH_REDIRECT_URI": "http://localhost:8000/api/auth/github/callback",
    "FRONTEND_URL": "http://localhost:5173",
    "GROQ_API_KEY": "test-groq",
    "JWT_SECRET": "test-secret",
    "RATE_LIMIT_ENABLED": "false",
}

for key, value in ENV_DEFAULTS.items():
    os.environ.setdefault(key, value)

from readmegen.db import Base, User
from readmegen.db.session import SessionLocal, engine
from readmegen.main import app
from readmegen.services.sessions import SESSION_COOKIE_NAME, create_session_token

Base.metadata.create_all(engine)


@pytest.fixture()
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture()
def db_session() -> Session:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def cleanup_users(db_session: Session):
    db_session.execute(delete(User))
    db_session.commit()

    yield

    db_session.rollback()
    db_session.execute(delete(User))
    db_session.commit()


@pytest.fixture()
def signed_in_user(client: TestClient, db_session: Session) -> User:
    user = User(
        id=uuid4(),
        github_id="900000001",
        username="seed-user",
        avatar_url="https://example.com/avatar.png",
        access_token="gho_seed_token",
    )
    db_session.add(user)
    db_session.commit()
    client.cookies.set(SESSION_COOKIE_NAME, create_session_token(user.id))
    return user
