"""
HTTP hardening for the portal: per-client rate limits, response headers, CORS and trusted hosts.

The assistant routes proxy a paid AI gateway, so they get their own, tighter
per-minute budget on top of the general API limits.
"""
import time
from collections import defaultdict, deque
from typing import Deque, Dict, Iterable, List, Optional, Tuple

from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from core.logger import logger

MINUTE = 60
HOUR = 3600
ASSISTANT_PREFIX = "/api/assistant"
UNLIMITED_PATHS = ("/health",)
NO_STORE_PREFIXES = ("/api/auth", "/api/profile")


class SlidingWindow:
    """Request timestamps per key, limited to `limit` hits within `seconds`."""

    def __init__(self, limit: int, seconds: int):
        self.limit = limit
        self.seconds = seconds
        self.hits: Dict[str, Deque[float]] = defaultdict(deque)

    def _trim(self, key: str, now: float) -> Deque[float]:
        hits = self.hits[key]
        while hits and now - hits[0] >= self.seconds:
            hits.popleft()
        return hits

    def retry_after(self, key: str, now: float) -> Optional[int]:
        """Seconds until the key may send again, or None when under the limit."""
        hits = self._trim(key, now)
        if len(hits) < self.limit:
            return None
        return max(1, int(hits[0] + self.seconds - now))

    def record(self, key: str, now: float):
        self.hits[key].append(now)

    def prune(self, now: float):
        for key in list(self.hits):
            if not self._trim(key, now):
                del self.hits[key]


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP limits; answers 429 with a Retry-After header."""

    def __init__(
        self,
        app,
        requests_per_minute: int = 60,
        requests_per_hour: int = 1000,
        assistant_per_minute: int = 20,
        prune_interval: int = 300
    ):
        super().__init__(app)
        self.api_windows = [SlidingWindow(requests_per_minute, MINUTE), SlidingWindow(requests_per_hour, HOUR)]
        self.assistant_windows = [SlidingWindow(assistant_per_minute, MINUTE)]
        self.prune_interval = prune_interval
        self.last_prune = time.monotonic()

    def windows_for(self, path: str) -> List[SlidingWindow]:
        if path in UNLIMITED_PATHS:
            return []
        if path.startswith(ASSISTANT_PREFIX):
            return self.api_windows + self.assistant_windows
        return self.api_windows

    def check(self, key: str, windows: Iterable[SlidingWindow], now: float) -> Optional[int]:
        """Record the hit in every window, unless one of them is full."""
        windows = list(windows)
        waits = [w for w in (window.retry_after(key, now) for window in windows) if w is not None]
        if waits:
            return max(waits)
        for window in windows:
            window.record(key, now)
        return None

    def _prune(self, now: float):
        for window in self.api_windows + self.assistant_windows:
            window.prune(now)
        self.last_prune = now

    async def dispatch(self, request: Request, call_next):
        now = time.monotonic()
        if now - self.last_prune > self.prune_interval:
            self._prune(now)

        client_ip = request.client.host if request.client else "unknown"
        wait = self.check(client_ip, self.windows_for(request.url.path), now)
        if wait is not None:
            logger.warning(f"Rate limit exceeded for {client_ip} on {request.url.path}")
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"error": "Rate limit exceeded. Please try again later."},
                headers={"Retry-After": str(wait)}
            )
        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Standard hardening headers; token and profile responses are never cached."""

    HEADERS: Tuple[Tuple[str, str], ...] = (
        ("X-Content-Type-Options", "nosniff"),
        ("X-Frame-Options", "DENY"),
        ("Referrer-Policy", "strict-origin-when-cross-origin"),
    )

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for name, value in self.HEADERS:
            response.headers.setdefault(name, value)
        if request.url.path.startswith(NO_STORE_PREFIXES):
            response.headers["Cache-Control"] = "no-store"
        return response


def setup_cors(app, allowed_origins: List[str]):
    """Allow the dashboard origins; X-Accel-Buffering is exposed for the chat stream."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
        expose_headers=["Retry-After", "X-Accel-Buffering"],
    )


def setup_trusted_hosts(app, allowed_hosts: List[str]):
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=allowed_hosts)
