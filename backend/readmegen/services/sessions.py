from datetime import UTC, datetime, timedelta
import logging
from uuid import UUID

import jwt
from sqlalchemy.orm import Session
from starlette.responses import Response

from readmegen.config import settings
from readmegen.errors import InvalidSessionError, UnauthenticatedError, UpstreamAuthError
from readmegen.services.github_oauth import revoke_github_grant
from readmegen.services.users import UserView, get_user_view


logger = logging.getLogger("readmegen.sessions")

SESSION_TOKEN_AUDIENCE = "readmegen-api"
SESSION_COOKIE_NAME = "readmegen_session"
SESSION_TOKEN_TYPE = "session"


def session_ttl() -> timedelta:
    return timedelta(hours=settings.session_ttl_hours)


def create_session_token(user_id: UUID, now: datetime | None = None) -> str:
    issued_at = now or datetime.now(UTC)
    payload = {
        "sub": str(user_id),
        "aud": SESSION_TOKEN_AUDIENCE,
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + session_ttl()).timestamp()),
        "typ": SESSION_TOKEN_TYPE,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")


def decode_session_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=["HS256"], audience=SESSION_TOKEN_AUDIENCE)
    except jwt.ExpiredSignatureError as exc:
        raise InvalidSessionError("Session expired") from exc
    except jwt.PyJWTError as exc:
        raise InvalidSessionError() from exc

    if payload.get("typ") != SESSION_TOKEN_TYPE:
        raise InvalidSessionError()
    return payload


def verify_session(db: Session, token: str | None) -> UserView:
    if not token:
        raise UnauthenticatedError()

    payload = decode_session_token(token)
    try:
        user_id = UUID(str(payload.get("sub")))
    except ValueError as exc:
        raise InvalidSessionError("Invalid session subject") from exc

    return get_user_view(db, user_id)


def session_cookie_secure() -> bool:
    return settings.env.lower() != "development"


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=session_cookie_secure(),
        samesite="lax",
        max_age=int(session_ttl().total_seconds()),
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        secure=session_cookie_secure(),
        samesite="lax",
    )


def end_session(response: Response, access_token: str | None) -> None:
    """Clear the session cookie, then try to revoke the GitHub grant.

    The JWT itself stays valid until it expires; only the browser copy goes away.
    """
    clear_session_cookie(response)
    if not access_token:
        return

    try:
        revoke_github_grant(access_token)
    except UpstreamAuthError as exc:
        logger.warning("github grant revocation failed: %s details=%s", exc.message, exc.details)
        return
    logger.info("github grant revoked")
