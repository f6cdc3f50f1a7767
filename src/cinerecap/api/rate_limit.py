from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from threading import Lock

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from cinerecap.core.config import env


@dataclass
class _Window:
    hits: deque[float]


class SlidingWindowRateLimiter:
    """Very small in-process rate limiter.

    Keys are derived from client IP + a logical bucket. Login attempts and
    recap generations (each one a paid upstream call) get their own buckets.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._windows: dict[str, _Window] = {}

    def allow(self, *, key: str, limit: int, window_s: float) -> tuple[bool, int]:
        now = time.time()
        cutoff = now - window_s
        with self._lock:
            w = self._windows.get(key)
            if w is None:
                w = _Window(hits=deque())
                self._windows[key] = w

            while w.hits and w.hits[0] < cutoff:
                w.hits.popleft()

            if len(w.hits) >= limit:
                return False, 0

            w.hits.append(now)
            return True, max(0, limit - len(w.hits))


@dataclass(frozen=True)
class _Bucket:
    name: str
    limit: int
    window_s: float


def _bucket(name: str, default_limit: str, default_window_s: str = "60") -> _Bucket:
    upper = name.upper()
    return _Bucket(
        name=name,
        limit=int(env(f"RL_{upper}", default_limit)),
        window_s=float(env(f"RL_{upper}_WINDOW_S", default_window_s)),
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, *, limiter: SlidingWindowRateLimiter | None = None) -> None:
        super().__init__(app)
        self._limiter = limiter or SlidingWindowRateLimiter()

        # Defaults can be tuned via env vars (useful for tests/deploy).
        self._global = _bucket("global", "60")
        self._login = _bucket("login", "10")
        self._recap = _bucket("recap", "5")

    def _buckets_for(self, request: Request) -> list[_Bucket]:
        buckets = [self._global]
        if request.method == "POST":
            if request.url.path == "/api/login":
                buckets.append(self._login)
            elif request.url.path == "/api/recap":
                buckets.append(self._recap)
        return buckets

    async def dispatch(self, request: Request, call_next) -> Response:
        client_ip = request.client.host if request.client else "unknown"

        for bucket in self._buckets_for(request):
            ok, _remaining = self._limiter.allow(
                key=f"{client_ip}:{bucket.name}", limit=bucket.limit, window_s=bucket.window_s
            )
            if not ok:
                return JSONResponse(
                    status_code=429,
                    content={"detail": "Rate limit exceeded"},
                )

        return await call_next(request)
