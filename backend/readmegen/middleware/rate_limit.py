from datetime import UTC, datetime
import logging

from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from redis.exceptions import RedisError

from readmegen.config import settings
from readmegen.errors import ServiceError
from readmegen.services.sessions import SESSION_COOKIE_NAME, decode_session_token


logger = logging.getLogger("readmegen.rate_limit")

LUA_RATE_LIMIT = """
local current = redis.call("INCR", KEYS[1])
if current == 1 then
  redis.call("EXPIRE", KEYS[1], ARGV[1])
end
local ttl = redis.call("TTL", KEYS[1])
return {current, ttl}
"""

LIMITED_ROUTES = {
    ("POST", "/api/github/analyze"): "analyze",
    ("POST", "/api/ai/refine"): "refine",
}


class RateLimitMiddleware:
    """Fixed-window limit on the routes that call the completion backend."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http" or not settings.rate_limit_enabled:
            await self.app(scope, receive, send)
            return

        limit_key_prefix = self._limited_prefix(scope)
        if not limit_key_prefix:
            await self.app(scope, receive, send)
            return

        identity_type, identity_value = self._identity(scope)
        limit = settings.rate_limit_auth_per_window if identity_type == "auth" else settings.rate_limit_guest_per_window
        window_seconds = settings.rate_limit_window_seconds
        bucket_key = f"ratelimit:{limit_key_prefix}:{identity_type}:{identity_value}"

        redis_client = Redis.from_url(settings.redis_url, decode_responses=True)
        try:
            count, ttl = await redis_client.eval(LUA_RATE_LIMIT, 1, bucket_key, window_seconds)
            current = int(count)
            ttl_value = int(ttl) if int(ttl) > 0 else window_seconds
        except (RedisError, OSError) as exc:
            # Fail open while redis is unavailable.
            logger.warning("rate limit check skipped: %s", type(exc).__name__)
            await self.app(scope, receive, send)
            return
        finally:
            await redis_client.aclose()

        remaining = max(limit - current, 0)
        reset_epoch = int(datetime.now(UTC).timestamp()) + ttl_value
        raw_headers = [
            (b"x-ratelimit-limit", str(limit).encode("ascii")),
            (b"x-ratelimit-remaining", str(remaining).encode("ascii")),
            (b"x-ratelimit-reset", str(reset_epoch).encode("ascii")),
        ]

        if current > limit:
            response = JSONResponse(
                status_code=429,
                content={
                    "error": {
                        "code": "RATE_LIMITED",
                        "message": "Rate limit exceeded. Please try again in a few minutes.",
                        "details": {"scope": limit_key_prefix, "identity_type": identity_type},
                    }
                },
                headers={
                    "X-RateLimit-Limit": str(limit),
                    "X-RateLimit-Remaining": str(remaining),
                    "X-RateLimit-Reset": str(reset_epoch),
                    "Retry-After": str(ttl_value),
                },
            )
            await response(scope, receive, send)
            return

        async def send_with_rate_headers(message):
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                headers.extend(raw_headers)
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_with_rate_headers)

    @staticmethod
    def _limited_prefix(scope) -> str | None:
        method = str(scope.get("method", "")).upper()
        return LIMITED_ROUTES.get((method, scope.get("path", "")))

    @staticmethod
    def _identity(scope) -> tuple[str, str]:
        header_map: dict[str, str] = {}
        for key, value in scope.get("headers", []):
            header_map[key.decode("latin1").lower()] = value.decode("latin1")

        session_token = _cookie_value(header_map.get("cookie", ""), SESSION_COOKIE_NAME)
        if session_token:
            try:
                subject = str(decode_session_token(session_token).get("sub") or "")
            except ServiceError:
                subject = ""
            if subject:
                return "auth", subject

        forwarded_for = header_map.get("x-forwarded-for") if settings.rate_limit_trust_forwarded_for else None
        if forwarded_for:
            return "guest", forwarded_for.split(",")[0].strip()
        client = scope.get("client")
        if client and client[0]:
            return "guest", str(client[0])
        return "guest", "unknown"


def _cookie_value(cookie_header: str, name: str) -> str | None:
    for part in cookie_header.split(";"):
        key, _, value = part.strip().partition("=")
        if key == name and value:
            return value
    return None
