from urllib.parse import urlparse
import socket
import time

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.requests import Request

from readmegen.api import api_router
from readmegen.config import settings
from readmegen.errors import install_exception_handlers
from readmegen.middleware.rate_limit import RateLimitMiddleware
from readmegen.observability import begin_trace, http_request_duration_seconds, metrics_response, trace_span

app = FastAPI(title=settings.app_name)
app.add_middleware(RateLimitMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins or [str(settings.frontend_url).rstrip("/")],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)
app.include_router(api_router, prefix="/api")
install_exception_handlers(app)


@app.middleware("http")
async def observability_middleware(request: Request, call_next):
    start = time.perf_counter()
    trace_id = begin_trace(request)
    path = request.url.path
    method = request.method.upper()

    with trace_span("http.request", method=method, path=path):
        response = await call_next(request)

    duration = time.perf_counter() - start
    http_request_duration_seconds.labels(method=method, path=path, status=str(response.status_code)).observe(duration)
    response.headers["X-Trace-Id"] = trace_id
    return response


def _tcp_check(url: str, default_port: int) -> bool:
    parsed = urlparse(url)
    host = parsed.hostname
    port = parsed.port or default_port
    if not host:
        return False
    try:
        with socket.create_connection((host, port), timeout=2):
            return True
    except OSError:
        return False


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "service": "backend", "env": settings.env}


@app.get("/health/deps")
def health_deps() -> dict:
    redis_ok = _tcp_check(settings.redis_url, 6379)
    if settings.database_url.startswith("sqlite"):
        database_ok = True
    else:
        database_ok = _tcp_check(settings.database_url, 5432)

    return {
        "redis": redis_ok,
        "database": database_ok,
        "all_healthy": redis_ok and database_ok,
    }


@app.get("/metrics")
def metrics() -> object:
    return metrics_response()
