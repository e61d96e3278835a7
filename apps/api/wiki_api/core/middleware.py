from __future__ import annotations

import json
import logging
import threading
import time
from collections import deque
from contextvars import ContextVar
from dataclasses import dataclass, field

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.responses import Response

from wiki_api.core.config import Settings
from wiki_api.core.metrics import observe_http_request
from wiki_api.core.security import new_random_token

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
logger = logging.getLogger("wiki.api")

AUTH_PATH_PREFIX = "/auth"


@dataclass
class SlidingWindowLimiter:
    max_requests: int
    window_seconds: int = 60
    _lock: threading.Lock = field(default_factory=threading.Lock)
    _hits: dict[str, deque[float]] = field(default_factory=dict)
    _last_sweep: float = 0.0

    def allow(self, key: str, *, now_ts: float) -> bool:
        cutoff = now_ts - self.window_seconds
        with self._lock:
            if now_ts - self._last_sweep >= self.window_seconds:
                self._sweep(cutoff)
                self._last_sweep = now_ts
            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if len(hits) >= self.max_requests:
                return False
            hits.append(now_ts)
            return True

    def _sweep(self, cutoff: float) -> None:
        # Drop clients whose newest hit has left the window.
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in stale:
            del self._hits[key]


@dataclass
class RateLimitPolicy:
    """Per-IP budgets; `/auth/*` draws from its own, tighter bucket."""

    api: SlidingWindowLimiter | None
    auth: SlidingWindowLimiter | None
    trust_forwarded_for: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> RateLimitPolicy:
        def _limiter(per_minute: int) -> SlidingWindowLimiter | None:
            return SlidingWindowLimiter(max_requests=per_minute) if per_minute > 0 else None

        return cls(
            api=_limiter(settings.RATE_LIMIT_REQUESTS_PER_MINUTE),
            auth=_limiter(settings.AUTH_RATE_LIMIT_REQUESTS_PER_MINUTE),
            trust_forwarded_for=settings.TRUST_FORWARDED_FOR,
        )

    def allow(self, request: Request, *, now_ts: float) -> bool:
        limiter = self.auth if request.url.path.startswith(AUTH_PATH_PREFIX) else self.api
        if limiter is None:
            return True
        key = client_ip(request, trust_forwarded_for=self.trust_forwarded_for)
        return limiter.allow(key, now_ts=now_ts)


def client_ip(request: Request, *, trust_forwarded_for: bool = False) -> str:
    if trust_forwarded_for:
        forwarded_for = (request.headers.get("x-forwarded-for") or "").strip()
        if forwarded_for:
            return forwarded_for.split(",", 1)[0].strip()
    return request.client.host if request.client else "unknown"


def build_request_id(request: Request, *, header_name: str) -> str:
    incoming = (request.headers.get(header_name) or "").strip()
    if incoming:
        return incoming[:128]
    return new_random_token(nbytes=18)


def apply_security_headers(response: Response, *, settings: Settings, path: str) -> None:
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "same-origin")
    response.headers.setdefault("Content-Security-Policy", settings.CONTENT_SECURITY_POLICY)
    if path.startswith(AUTH_PATH_PREFIX):
        # Redirects and bodies here carry one-time tokens.
        response.headers.setdefault("Cache-Control", "no-store")


def route_template(request: Request) -> str:
    # Metric labels use the route pattern so ids in paths do not explode cardinality.
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


def log_request_completion(
    *,
    request_id: str,
    method: str,
    path: str,
    status_code: int,
    duration_ms: int,
    rate_limited: bool,
) -> None:
    # Only the path is logged: OAuth query strings hold codes and state.
    logger.info(
        json.dumps(
            {
                "event": "http.request.completed",
                "request_id": request_id,
                "method": method,
                "path": path,
                "status_code": status_code,
                "duration_ms": duration_ms,
                "rate_limited": rate_limited,
            },
            separators=(",", ":"),
            sort_keys=True,
        )
    )


def install_request_middleware(app: FastAPI, settings: Settings) -> None:
    policy = RateLimitPolicy.from_settings(settings)

    @app.middleware("http")
    async def request_context(request: Request, call_next):  # type: ignore[no-untyped-def]
        request_id = build_request_id(request, header_name=settings.REQUEST_ID_HEADER)
        token = request_id_ctx.set(request_id)
        started = time.perf_counter()
        rate_limited = False
        status_code = 500
        try:
            if policy.allow(request, now_ts=time.monotonic()):
                response = await call_next(request)
            else:
                rate_limited = True
                response = JSONResponse(status_code=429, content={"detail": "Rate limit exceeded"})
            status_code = response.status_code
            response.headers[settings.REQUEST_ID_HEADER] = request_id
            apply_security_headers(response, settings=settings, path=request.url.path)
            return response
        finally:
            duration_ms = int((time.perf_counter() - started) * 1000)
            log_request_completion(
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                status_code=status_code,
                duration_ms=duration_ms,
                rate_limited=rate_limited,
            )
            observe_http_request(
                method=request.method,
                path=route_template(request),
                status_code=status_code,
                duration_ms=duration_ms,
                rate_limited=rate_limited,
            )
            request_id_ctx.reset(token)
