"""Fixed-window rate limiting for the public API.

``FixedWindowRateLimiter`` keeps one counter per client key in process
memory. A window starts with the first request of a key and lasts
``window_seconds``; once ``max_requests`` have been admitted inside the
window every further request is refused until the window resets.

Limiter instances are built once per process by ``GatewayConfig.ready()``
(one per scope configured in ``settings.RATE_LIMITS``) and looked up by the
DRF throttle classes below, so views never construct their own counters.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Tuple

from django.apps import apps
from rest_framework.throttling import BaseThrottle


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a single admission check.

    Attributes:
        allowed: Whether the request may proceed.
        remaining: Requests still available in the current window.
        reset_at: Monotonic timestamp at which the window resets.
    """

    allowed: bool
    remaining: int
    reset_at: float


class FixedWindowRateLimiter:
    """Thread-safe fixed-window counter keyed by client identity."""

    def __init__(self, max_requests: int, window_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: Dict[str, Tuple[int, float]] = {}
        self._next_sweep = 0.0

    def _sweep(self, now: float) -> None:
        # caller holds the lock
        if now < self._next_sweep:
            return
        self._windows = {k: w for k, w in self._windows.items() if w[1] > now}
        self._next_sweep = now + self.window_seconds

    def check(self, key: str) -> RateLimitDecision:
        """Atomically check the key's window and count this request.

        Expired windows are dropped at most once per ``window_seconds`` so
        memory stays proportional to the clients seen in one window.

        Args:
            key: Client identity (IP address, user id, ...).

        Returns:
            RateLimitDecision: ``allowed`` is False once the window is full.
        """
        with self._lock:
            now = self._clock()
            self._sweep(now)
            count, reset_at = self._windows.get(key, (0, 0.0))
            if now >= reset_at:
                reset_at = now + self.window_seconds
                self._windows[key] = (1, reset_at)
                return RateLimitDecision(True, self.max_requests - 1, reset_at)

            if count >= self.max_requests:
                return RateLimitDecision(False, 0, reset_at)

            count += 1
            self._windows[key] = (count, reset_at)
            return RateLimitDecision(True, self.max_requests - count, reset_at)

    def reset(self, key: str) -> None:
        with self._lock:
            self._windows.pop(key, None)

    def clear(self) -> None:
        """Drop every window (used on shutdown and between tests)."""
        with self._lock:
            self._windows.clear()

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._windows)


def build_rate_limiters(config: Dict[str, Tuple[int, float]]) -> Dict[str, FixedWindowRateLimiter]:
    return {scope: FixedWindowRateLimiter(limit, window) for scope, (limit, window) in config.items()}


class FixedWindowThrottle(BaseThrottle):
    """DRF throttle backed by the process-wide limiter of ``scope``."""

    scope = "general"

    def __init__(self):
        self._decision = None

    def _limiter(self) -> FixedWindowRateLimiter:
        return apps.get_app_config("gateway").rate_limiters[self.scope]

    def allow_request(self, request, view) -> bool:
        limiter = self._limiter()
        self._decision = limiter.check(self.get_ident(request))
        return self._decision.allowed

    def wait(self):
        if self._decision is None:
            return None
        return max(0.0, self._decision.reset_at - time.monotonic())


class GeneralThrottle(FixedWindowThrottle):
    scope = "general"


class OtpThrottle(FixedWindowThrottle):
    scope = "otp"


class UploadThrottle(FixedWindowThrottle):
    scope = "upload"
