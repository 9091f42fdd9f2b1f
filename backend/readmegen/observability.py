from contextlib import contextmanager
from contextvars import ContextVar
import logging
import time
from uuid import uuid4

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request
from starlette.responses import Response


logger = logging.getLogger("readmegen.observability")

trace_id_var: ContextVar[str] = ContextVar("trace_id", default="")

http_request_duration_seconds = Histogram(
    "readmegen_http_request_duration_seconds",
    "Duration of HTTP requests.",
    ["method", "path", "status"],
)
llm_completions_total = Counter(
    "readmegen_llm_completions_total",
    "Completion backend calls by operation and outcome.",
    ["operation", "outcome"],
)


def record_completion(operation: str, outcome: str) -> None:
    llm_completions_total.labels(
        operation=(operation or "unknown").lower(),
        outcome=(outcome or "unknown").lower(),
    ).inc()


def metrics_response() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


def current_trace_id() -> str:
    return trace_id_var.get() or ""


def begin_trace(request: Request) -> str:
    incoming = request.headers.get("x-trace-id", "").strip()
    trace_id = incoming or uuid4().hex
    trace_id_var.set(trace_id)
    return trace_id


@contextmanager
def trace_span(name: str, **attributes):
    started = time.perf_counter()
    trace_id = current_trace_id() or uuid4().hex
    logger.info("span.start name=%s trace_id=%s attrs=%s", name, trace_id, attributes)
    try:
        yield
    finally:
        duration = time.perf_counter() - started
        logger.info("span.end name=%s trace_id=%s duration_s=%.6f", name, trace_id, duration)
