import base64
from dataclasses import dataclass
import hashlib
import hmac
import json
import logging
import time
from urllib.parse import urlencode

import httpx

from readmegen.config import settings
from readmegen.errors import OAuthStateError, UpstreamAuthError


logger = logging.getLogger("readmegen.github_oauth")

GITHUB_AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
GITHUB_ACCESS_TOKEN_URL = "https://github.com/login/oauth/access_token"
GITHUB_USER_URL = "https://api.github.com/user"
GITHUB_GRANT_URL = "https://api.github.com/applications/{client_id}/grant"
GITHUB_OAUTH_SCOPE = "repo read:user"
STATE_TTL_SECONDS = 600
DEFAULT_NEXT_PATH = "/dashboard"


@dataclass(frozen=True)
class GitHubIdentity:
    provider_id: str
    username: str
    avatar_url: str | None


def _sign_payload(payload: str) -> str:
    return hmac.new(settings.jwt_secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


def _is_success(response) -> bool:
    return 200 <= response.status_code < 300


def _api_headers(access_token: str) -> dict:
    return {
        "Accept": "application/vnd.github+json",
        "Authorization": f"Bearer {access_token}",
        "X-GitHub-Api-Version": "2022-11-28",
    }


def generate_oauth_state(next_path: str | None = None) -> str:
    body = {
        "iat": int(time.time()),
        "next": next_path or DEFAULT_NEXT_PATH,
    }
    payload = base64.urlsafe_b64encode(json.dumps(body, separators=(",", ":")).encode("utf-8")).decode("utf-8").rstrip("=")
    signature = _sign_payload(payload)
    return f"{payload}.{signature}"


def validate_oauth_state(state: str | None) -> dict:
    if not state:
        raise OAuthStateError("Missing OAuth state")

    try:
        payload, signature = state.split(".", 1)
    except ValueError as exc:
        raise OAuthStateError() from exc

    expected = _sign_payload(payload)
    if not hmac.compare_digest(signature, expected):
        raise OAuthStateError("Invalid OAuth state signature")

    try:
        padded = payload + ("=" * (-len(payload) % 4))
        data = json.loads(base64.urlsafe_b64decode(padded.encode("utf-8")).decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as exc:
        raise OAuthStateError("Invalid OAuth state payload") from exc

    issued_at = int(data.get("iat", 0))
    if int(time.time()) - issued_at > STATE_TTL_SECONDS:
        raise OAuthStateError("OAuth state expired")

    return data


def build_github_auth_url(state: str) -> str:
    query = urlencode(
        {
            "client_id": settings.github_client_id,
            "redirect_uri": str(settings.github_oauth_redirect_uri),
            "scope": GITHUB_OAUTH_SCOPE,
            "state": state,
        }
    )
    return f"{GITHUB_AUTHORIZE_URL}?{query}"


def exchange_code_for_access_token(code: str) -> str:
    """Trade a one-time authorization code for a GitHub access token.

    Codes are single-use, so a failure is surfaced immediately and the user
    has to restart the authorization flow.
    """
    payload = {
        "client_id": settings.github_client_id,
        "client_secret": settings.github_client_secret,
        "code": code,
        "redirect_uri": str(settings.github_oauth_redirect_uri),
    }

    headers = {"Accept": "application/json"}
    try:
        with httpx.Client(timeout=settings.github_timeout_seconds) as client:
            response = client.post(GITHUB_ACCESS_TOKEN_URL, data=payload, headers=headers)
    except httpx.HTTPError as exc:
        logger.warning("oauth code exchange transport error: %s", type(exc).__name__)
        raise UpstreamAuthError("Failed to exchange OAuth code") from exc

    if not _is_success(response):
        logger.warning("oauth code exchange rejected status=%s", response.status_code)
        raise UpstreamAuthError("Failed to exchange OAuth code")

    try:
        data = response.json()
    except ValueError as exc:
        raise UpstreamAuthError("Invalid OAuth token response") from exc

    token = data.get("access_token") if isinstance(data, dict) else None
    if not token:
        # GitHub answers 200 with an "error" field for bad or reused codes.
        logger.warning("oauth code exchange returned no token error=%s", data.get("error") if isinstance(data, dict) else None)
        raise UpstreamAuthError("GitHub access token missing")

    return token


def fetch_github_identity(access_token: str) -> GitHubIdentity:
    try:
        with httpx.Client(timeout=settings.github_timeout_seconds) as client:
            response = client.get(GITHUB_USER_URL, headers=_api_headers(access_token))
    except httpx.HTTPError as exc:
        logger.warning("github profile transport error: %s", type(exc).__name__)
        raise UpstreamAuthError("Failed to fetch GitHub profile") from exc

    if not _is_success(response):
        logger.warning("github profile request failed status=%s", response.status_code)
        raise UpstreamAuthError("Failed to fetch GitHub profile")

    try:
        user = response.json()
    except ValueError as exc:
        raise UpstreamAuthError("Invalid GitHub profile payload") from exc

    github_id = user.get("id") if isinstance(user, dict) else None
    login = user.get("login") if isinstance(user, dict) else None
    if github_id is None or not login:
        raise UpstreamAuthError("Invalid GitHub profile payload")

    return GitHubIdentity(
        provider_id=str(github_id),
        username=login,
        avatar_url=user.get("avatar_url"),
    )


def revoke_github_grant(access_token: str) -> None:
    url = GITHUB_GRANT_URL.format(client_id=settings.github_client_id)
    try:
        with httpx.Client(timeout=settings.github_timeout_seconds) as client:
            response = client.request(
                "DELETE",
                url,
                auth=(settings.github_client_id, settings.github_client_secret),
                headers={"Accept": "application/vnd.github+json", "X-GitHub-Api-Version": "2022-11-28"},
                json={"access_token": access_token},
            )
    except httpx.HTTPError as exc:
        raise UpstreamAuthError("Failed to revoke GitHub grant") from exc

    if not _is_success(response):
        raise UpstreamAuthError("Failed to revoke GitHub grant", details={"status": response.status_code})
