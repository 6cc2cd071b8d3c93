"""Per-client request throttling for the spreadsheet API."""
from __future__ import annotations

import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware


@dataclass
class RateLimitConfig:
    """Configuration for rate limiting."""
    requests_per_minute: int = 120
    requests_per_hour: int = 2000
    heavy_requests_per_minute: int = 20  # Uploads, exports and saves encode whole workbooks
    burst_limit: int = 20  # Max requests in 1 second
    idle_sweep_seconds: int = 300  # How often to forget clients idle for an hour


@dataclass
class _Window:
    """Timestamps of requests seen inside a sliding window."""
    seconds: float
    stamps: Deque[float] = field(default_factory=deque)

    def prune(self, now: float) -> None:
        while self.stamps and self.stamps[0] <= now - self.seconds:
            self.stamps.popleft()

    def retry_after(self, now: float) -> int:
        if not self.stamps:
            return 1
        return max(1, int(self.seconds - (now - self.stamps[0])))


@dataclass
class ClientState:
    """Track request counts for a client."""
    second: _Window = field(default_factory=lambda: _Window(1))
    minute: _Window = field(default_factory=lambda: _Window(60))
    hour: _Window = field(default_factory=lambda: _Window(3600))
    heavy_minute: _Window = field(default_factory=lambda: _Window(60))

    def prune(self, now: float) -> None:
        for window in (self.second, self.minute, self.hour, self.heavy_minute):
            window.prune(now)


def _too_many(detail: str, retry_after: int) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"detail": detail, "retry_after": retry_after},
        headers={"Retry-After": str(retry_after)},
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding-window rate limiting keyed by client address."""

    def __init__(self, app, config: Optional[RateLimitConfig] = None, clock: Callable[[], float] = time.monotonic):
        super().__init__(app)
        self.config = config or RateLimitConfig()
        self.clock = clock
        self.clients: Dict[str, ClientState] = defaultdict(ClientState)
        self._last_sweep = clock()

    def _sweep_idle(self, now: float) -> None:
        if now - self._last_sweep < self.config.idle_sweep_seconds:
            return
        self._last_sweep = now
        idle = [
            client_id for client_id, state in self.clients.items()
            if not state.hour.stamps or state.hour.stamps[-1] <= now - state.hour.seconds
        ]
        for client_id in idle:
            del self.clients[client_id]

    def _get_client_id(self, request: Request) -> str:
        # Behind a proxy the first X-Forwarded-For hop is the real client
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    def _is_heavy(self, request: Request) -> bool:
        path = request.url.path.rstrip("/")
        if request.method == "POST" and path == "/spreadsheets":
            return True
        return "/export/" in path or path.endswith("/save")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        now = self.clock()
        self._sweep_idle(now)
        state = self.clients[self._get_client_id(request)]
        state.prune(now)
        heavy = self._is_heavy(request)
        config = self.config

        if len(state.second.stamps) >= config.burst_limit:
            return _too_many("Rate limit exceeded: too many requests per second", 1)
        if heavy and len(state.heavy_minute.stamps) >= config.heavy_requests_per_minute:
            return _too_many(
                f"Rate limit exceeded: {config.heavy_requests_per_minute} uploads/exports per minute",
                state.heavy_minute.retry_after(now),
            )
        if len(state.minute.stamps) >= config.requests_per_minute:
            return _too_many(
                f"Rate limit exceeded: {config.requests_per_minute} requests per minute",
                state.minute.retry_after(now),
            )
        if len(state.hour.stamps) >= config.requests_per_hour:
            return _too_many(
                f"Rate limit exceeded: {config.requests_per_hour} requests per hour",
                state.hour.retry_after(now),
            )

        for window in (state.second, state.minute, state.hour):
            window.stamps.append(now)
        if heavy:
            state.heavy_minute.stamps.append(now)

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(config.requests_per_minute)
        response.headers["X-RateLimit-Remaining"] = str(config.requests_per_minute - len(state.minute.stamps))
        return response
