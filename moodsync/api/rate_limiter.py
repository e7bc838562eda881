"""
Unified Rate Limiter

Client-side quota for outgoing Spotify and Gemini calls. Each limiter keeps
a sliding log of request timestamps and checks it against per-minute and
per-hour ceilings before letting a request through.
"""

import asyncio
import time
from collections import deque
from typing import Deque, Dict, List, Optional, Tuple

import structlog

logger = structlog.get_logger(__name__)

MINUTE = 60
HOUR = 3600


class UnifiedRateLimiter:
    """
    Sliding-window rate limiter shared by every client of one service.

    Waiting happens under a lock, so concurrent callers queue up instead of
    all waking at the same instant when a window frees up.
    """

    def __init__(
        self,
        calls_per_minute: Optional[int] = None,
        calls_per_hour: Optional[int] = None,
        service_name: str = "api"
    ):
        """
        Args:
            calls_per_minute: Ceiling for any rolling 60s window
            calls_per_hour: Ceiling for any rolling 3600s window
            service_name: Service name for logging
        """
        self.calls_per_minute = calls_per_minute
        self.calls_per_hour = calls_per_hour
        self.service_name = service_name

        self.request_times: Deque[float] = deque()
        self.lock = asyncio.Lock()
        self.logger = logger.bind(service=f"RateLimiter-{service_name}")

    @classmethod
    def for_spotify(cls, calls_per_hour: int = 1000) -> "UnifiedRateLimiter":
        return cls(calls_per_hour=calls_per_hour, service_name="Spotify")

    @classmethod
    def for_gemini(cls, calls_per_minute: int = 15) -> "UnifiedRateLimiter":
        # free tier allows 15 requests per minute
        return cls(calls_per_minute=calls_per_minute, service_name="Gemini")

    def _windows(self) -> List[Tuple[int, int]]:
        windows = []
        if self.calls_per_minute:
            windows.append((MINUTE, self.calls_per_minute))
        if self.calls_per_hour:
            windows.append((HOUR, self.calls_per_hour))
        return windows

    async def wait_if_needed(self) -> None:
        """Block until a request fits every window, then record it."""
        async with self.lock:
            now = time.time()
            self._cleanup_old_requests(now)

            wait_time = max(
                (self._check_window_limit(now, window, limit) for window, limit in self._windows()),
                default=0.0
            )
            if wait_time > 0:
                self.logger.debug(
                    "Rate limit wait required",
                    wait_time=wait_time,
                    current_requests=len(self.request_times)
                )
                await asyncio.sleep(wait_time)
                now = time.time()

            self.request_times.append(now)

    acquire = wait_if_needed

    def _check_window_limit(self, current_time: float, window: int, limit: int) -> float:
        """Seconds until the oldest request in ``window`` ages out, or 0."""
        in_window = [t for t in self.request_times if t > current_time - window]
        if len(in_window) < limit:
            return 0.0
        return max(0.0, in_window[0] + window - current_time)

    def _cleanup_old_requests(self, current_time: float) -> None:
        horizon = max((window for window, _ in self._windows()), default=0)
        if not horizon:
            self.request_times.clear()
            return

        while self.request_times and self.request_times[0] <= current_time - horizon:
            self.request_times.popleft()

    def get_current_usage(self) -> Dict:
        """Request counts per window, plus percent of quota where a ceiling is set."""
        now = time.time()
        usage = {
            "service": self.service_name,
            "requests_last_minute": sum(1 for t in self.request_times if t > now - MINUTE),
            "requests_last_hour": sum(1 for t in self.request_times if t > now - HOUR),
        }
        if self.calls_per_minute:
            usage["minute_usage_percent"] = usage["requests_last_minute"] / self.calls_per_minute * 100
        if self.calls_per_hour:
            usage["hour_usage_percent"] = usage["requests_last_hour"] / self.calls_per_hour * 100
        return usage

    def reset(self) -> None:
        self.request_times.clear()
        self.logger.debug("Rate limiter reset")
