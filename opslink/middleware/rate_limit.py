"""
OpsLink Hosting - Rate Limit Middleware
Sliding-window request limit per client IP
"""
import time
from collections import defaultdict
from threading import Lock
from typing import Callable, Dict, List

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

# Stripe redelivers on 429, so the webhook is never throttled
EXEMPT_PATHS = {"/health", "/docs", "/redoc", "/openapi.json", "/webhook"}


class RateLimitMiddleware(BaseHTTPMiddleware):

    def __init__(self, app, requests_per_minute: int = 100, clock: Callable[[], float] = time.time):
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.window_size = 60  # seconds
        self.clock = clock
        self.request_counts: Dict[str, List[float]] = defaultdict(list)
        self._lock = Lock()
        self._last_sweep = clock()

    def _get_client_ip(self, request: Request) -> str:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    def _sweep(self, cutoff: float):
        """Drop clients with no requests inside the window. Caller holds the lock."""
        for ip in [ip for ip, times in self.request_counts.items() if not times or times[-1] <= cutoff]:
            del self.request_counts[ip]

    def _allow(self, ip: str) -> bool:
        now = self.clock()
        cutoff = now - self.window_size
        with self._lock:
            if now - self._last_sweep >= self.window_size:
                self._sweep(cutoff)
                self._last_sweep = now
            recent = [t for t in self.request_counts[ip] if t > cutoff]
            if len(recent) >= self.requests_per_minute:
                self.request_counts[ip] = recent
                return False
            recent.append(now)
            self.request_counts[ip] = recent
            return True

    async def dispatch(self, request: Request, call_next):
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        if not self._allow(self._get_client_ip(request)):
            return JSONResponse(
                status_code=429,
                content={"success": False, "message": "Rate limit exceeded", "retry_after": self.window_size},
            )
        return await call_next(request)
