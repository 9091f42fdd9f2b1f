from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

import readmegen.api.ai as ai_module
import readmegen.middleware.rate_limit as rate_limit_module
from readmegen.config import settings
from readmegen.middleware.rate_limit import RateLimitMiddleware
from readmegen.services.sessions import create_session_token


class FakeRedis:
    """In-process stand-in for the fixed-window counter script."""

    counters: dict[str, int] = {}

    @classmethod
    def from_url(cls, *_args, **_kwargs) -> "FakeRedis":
        return cls()

    async def eval(self, _script, _numkeys, key, window_seconds):
        FakeRedis.counters[key] = FakeRedis.counters.get(key, 0) + 1
        return [FakeRedis.counters[key], int(window_seconds)]

    async def aclose(self) -> None:
        return None


class UnavailableRedis(FakeRedis):
    async def eval(self, *_args):
        raise ConnectionError("redis down")


def test_limited_prefix_rules() -> None:
    assert RateLimitMiddleware._limited_prefix({"method": "POST", "path": "/api/github/analyze"}) == "analyze"
    assert RateLimitMiddleware._limited_prefix({"method": "POST", "path": "/api/ai/refine"}) == "refine"
    assert RateLimitMiddleware._limited_prefix({"method": "GET", "path": "/api/github/repos"}) is None


def test_identity_uses_forwarded_for_behind_trusted_proxy(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "rate_limit_trust_forwarded_for", True)
    identity_type, identity_value = RateLimitMiddleware._identity(
        {"headers": [(b"x-forwarded-for", b"203.0.113.10, 203.0.113.11")], "client": ("127.0.0.1", 1234)}
    )
    assert identity_type == "guest"
    assert identity_value == "203.0.113.10"


def test_identity_ignores_forwarded_for_by_default() -> None:
    identity_type, identity_value = RateLimitMiddleware._identity(
        {"headers": [(b"x-forwarded-for", b"203.0.113.99")], "client": ("192.0.2.44", 1234)}
    )
    assert (identity_type, identity_value) == ("guest", "192.0.2.44")


def test_spoofed_forwarded_for_does_not_reset_guest_limit(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    FakeRedis.counters = {}
    monkeypatch.setattr(rate_limit_module, "Redis", FakeRedis)
    monkeypatch.setattr(settings, "rate_limit_enabled", True)
    monkeypatch.setattr(settings, "rate_limit_guest_per_window", 1)

    body = {"currentReadme": "# demo", "userRequest": "x"}
    first = client.post("/api/ai/refine", json=body, headers={"X-Forwarded-For": "198.51.100.1"})
    second = client.post("/api/ai/refine", json=body, headers={"X-Forwarded-For": "198.51.100.2"})

    assert first.status_code == 401
    assert second.status_code == 429


def test_identity_uses_session_subject() -> None:
    user_id = uuid4()
    cookie = f"other=1; readmegen_session={create_session_token(user_id)}".encode("latin1")
    identity_type, identity_value = RateLimitMiddleware._identity({"headers": [(b"cookie", cookie)], "client": ("127.0.0.1", 1)})
    assert identity_type == "auth"
    assert identity_value == str(user_id)


def test_identity_falls_back_to_client_for_bad_session() -> None:
    identity_type, identity_value = RateLimitMiddleware._identity(
        {"headers": [(b"cookie", b"readmegen_session=garbage")], "client": ("192.0.2.7", 1)}
    )
    assert (identity_type, identity_value) == ("guest", "192.0.2.7")


def test_refine_is_limited_per_guest(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    FakeRedis.counters = {}
    monkeypatch.setattr(rate_limit_module, "Redis", FakeRedis)
    monkeypatch.setattr(settings, "rate_limit_enabled", True)
    monkeypatch.setattr(settings, "rate_limit_guest_per_window", 1)
    monkeypatch.setattr(ai_module, "refine_readme", lambda current, _request: current)

    headers = {"X-Forwarded-For": "198.51.100.10"}
    body = {"currentReadme": "# demo", "userRequest": "x"}
    first = client.post("/api/ai/refine", json=body, headers=headers)
    second = client.post("/api/ai/refine", json=body, headers=headers)

    # No session: the first call passes the limiter and fails authentication.
    assert first.status_code == 401
    assert first.headers["x-ratelimit-remaining"] == "0"
    assert second.status_code == 429
    assert second.json()["error"]["code"] == "RATE_LIMITED"
    assert second.headers["retry-after"] == str(settings.rate_limit_window_seconds)


def test_rate_limit_fails_open_without_redis(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(rate_limit_module, "Redis", UnavailableRedis)
    monkeypatch.setattr(settings, "rate_limit_enabled", True)

    response = client.post("/api/ai/refine", json={"currentReadme": "# demo", "userRequest": "x"})

    assert response.status_code == 401
    assert "x-ratelimit-limit" not in response.headers
