import logging
from urllib.parse import quote, urlencode

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from readmegen.config import settings
from readmegen.deps import get_db_session, session_cookie
from readmegen.errors import OAuthStateError, PersistenceError, ServiceError, UpstreamAuthError
from readmegen.services.github_oauth import (
    DEFAULT_NEXT_PATH,
    build_github_auth_url,
    exchange_code_for_access_token,
    fetch_github_identity,
    generate_oauth_state,
    validate_oauth_state,
)
from readmegen.services.sessions import create_session_token, end_session, set_session_cookie, verify_session
from readmegen.services.users import load_provider_token, upsert_github_user

logger = logging.getLogger("readmegen.auth")

router = APIRouter(prefix="/auth", tags=["auth"])


class LogoutResponse(BaseModel):
    message: str


def _frontend_url(path: str = "", error: str | None = None) -> str:
    base = str(settings.frontend_url).rstrip("/")
    url = f"{base}{quote(path, safe='/:?=&')}"
    if error:
        url = f"{url}?{urlencode({'error': error})}"
    return url


def _safe_next_path(next_path: str | None) -> str:
    if not next_path or not str(next_path).startswith("/") or str(next_path).startswith("//"):
        return DEFAULT_NEXT_PATH
    return str(next_path)


@router.get(
    "/github",
    summary="Start GitHub OAuth flow",
    description="Redirects the user to the GitHub authorization page. Supports an optional frontend-relative `next` path.",
    responses={
        302: {"description": "Redirect to GitHub OAuth authorize endpoint"},
    },
)
def auth_github(next_path: str = Query(default=DEFAULT_NEXT_PATH, alias="next")) -> RedirectResponse:
    state = generate_oauth_state(next_path=_safe_next_path(next_path))
    return RedirectResponse(url=build_github_auth_url(state), status_code=status.HTTP_302_FOUND)


@router.get(
    "/github/callback",
    summary="Handle GitHub OAuth callback",
    description=(
        "Exchanges the OAuth code, upserts the user, sets the session cookie and redirects to the frontend. "
        "Failures redirect to the frontend with an `error` query parameter."
    ),
    responses={
        302: {"description": "Redirect to the frontend"},
    },
)
def auth_github_callback(
    code: str | None = None,
    state: str | None = None,
    db: Session = Depends(get_db_session),
) -> RedirectResponse:
    if not code:
        logger.warning("github callback without code")
        return RedirectResponse(url=_frontend_url(error="auth_failed"), status_code=status.HTTP_302_FOUND)

    try:
        state_data = validate_oauth_state(state)
    except OAuthStateError as exc:
        logger.warning("github callback rejected: %s", exc.message)
        return RedirectResponse(url=_frontend_url(error="auth_failed"), status_code=status.HTTP_302_FOUND)

    try:
        access_token = exchange_code_for_access_token(code)
        identity = fetch_github_identity(access_token)
        user = upsert_github_user(db, identity, access_token)
    except UpstreamAuthError as exc:
        logger.warning("github login failed: %s", exc.message)
        return RedirectResponse(url=_frontend_url(error="auth_failed"), status_code=status.HTTP_302_FOUND)
    except PersistenceError:
        return RedirectResponse(url=_frontend_url(error="internal_error"), status_code=status.HTTP_302_FOUND)

    response = RedirectResponse(
        url=_frontend_url(_safe_next_path(state_data.get("next"))),
        status_code=status.HTTP_302_FOUND,
    )
    set_session_cookie(response, create_session_token(user.id))
    return response


@router.post(
    "/logout",
    response_model=LogoutResponse,
    summary="Logout and revoke the GitHub grant",
    description=(
        "Always clears the session cookie. When the session is valid the GitHub grant is revoked on a best-effort basis."
    ),
)
def logout(
    session_token: str | None = Depends(session_cookie),
    db: Session = Depends(get_db_session),
) -> JSONResponse:
    access_token = None
    if session_token:
        try:
            current_user = verify_session(db, session_token)
            access_token = load_provider_token(db, current_user.id)
        except ServiceError as exc:
            logger.info("logout without a valid session: %s", exc.message)
        except SQLAlchemyError as exc:
            logger.error("logout user lookup failed error=%s", type(exc).__name__)
            access_token = None

    response = JSONResponse({"message": "Logged out successfully"})
    end_session(response, access_token)
    return response
