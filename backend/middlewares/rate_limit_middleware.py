"""
Rate-limiting middleware for the public lookup endpoints.

Protects /api/check-email and /api/check-phone against bulk enumeration by
limiting how many requests a single client address can send within a rolling
time window.

Default: 30 requests per 60 seconds per client.
Clients who exceed the limit get 429 for the remainder of the window.
"""
from __future__ import annotations

import time
from collections import defaultdict, deque
from typing import Deque, Dict, Iterable

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Sliding-window rate limiter.

    Parameters
    ----------
    paths  : request paths the limit applies to (others pass straight through)
    rate   : maximum number of requests allowed per client per window
    period : window size in seconds
    """

    def __init__(
        self,
        app: ASGIApp,
        paths: Iterable[str],
        rate: int = 30,
        period: float = 60.0,
    ) -> None:
        super().__init__(app)
        self._paths  = frozenset(paths)
        self._rate   = rate
        self._period = period
        # client address → deque of timestamps (most recent first)
        self._history: Dict[str, Deque[float]] = defaultdict(deque)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path not in self._paths:
            return await call_next(request)

        client = request.client.host if request.client else "unknown"
        now = time.monotonic()
        window = self._history[client]

        # Evict timestamps outside the current window
        while window and now - window[-1] > self._period:
            window.pop()

        if len(window) >= self._rate:
            return JSONResponse(
                status_code=429,
                content={"error": "Too many requests, please try again later"},
            )

        window.appendleft(now)
        return await call_next(request)
