from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.responses import Response

HTTP_REQUESTS = Counter(
    "wiki_http_requests_total",
    "HTTP requests handled by the API.",
    labelnames=("method", "route", "status_code"),
)
HTTP_REQUEST_SECONDS = Histogram(
    "wiki_http_request_duration_seconds",
    "HTTP request latency.",
    labelnames=("method", "route"),
)
HTTP_RATE_LIMITED = Counter(
    "wiki_http_rate_limited_total",
    "HTTP requests rejected by the per-IP rate limiter.",
    labelnames=("method", "route"),
)
DISCORD_LOGINS = Counter(
    "wiki_discord_logins_total",
    "Discord login attempts by outcome.",
    labelnames=("outcome",),
)
DISCORD_API_SECONDS = Histogram(
    "wiki_discord_api_request_duration_seconds",
    "Latency of calls to the Discord API.",
    labelnames=("operation", "status"),
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)


def observe_http_request(
    *,
    method: str,
    path: str,
    status_code: int,
    duration_ms: int,
    rate_limited: bool,
) -> None:
    method = method or "UNKNOWN"
    route = path or "unknown"
    HTTP_REQUESTS.labels(method=method, route=route, status_code=str(status_code)).inc()
    HTTP_REQUEST_SECONDS.labels(method=method, route=route).observe(max(0.0, duration_ms / 1000))
    if rate_limited:
        HTTP_RATE_LIMITED.labels(method=method, route=route).inc()


def observe_discord_login(*, outcome: str) -> None:
    # existing | pending | completed | <error class name>
    DISCORD_LOGINS.labels(outcome=outcome or "unknown").inc()


def observe_discord_call(*, operation: str, status: int | None, seconds: float) -> None:
    DISCORD_API_SECONDS.labels(
        operation=operation, status=str(status) if status is not None else "error"
    ).observe(max(0.0, seconds))


def metrics_response() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
