"""HTTP adapter for the blob storage service with retries and a circuit breaker.

This module implements ``BlobStorePort`` against the storage microservice
(``services/storage``) using ``httpx``. It adds:

- Request correlation: propagates ``X-Request-ID`` from the ContextVar set by
    the gateway middleware.
- A circuit breaker so an unhealthy storage service is not called on every
    upload, with a single trial call once the cool-down has passed.
- A simple retry policy with exponential backoff for transport errors and 5xx.
"""

import logging
import threading
import time
from contextlib import contextmanager
from enum import Enum
from typing import Callable, Optional

import httpx
from django.conf import settings

from gateway.middleware import REQUEST_ID_CTX

from .adapters import sanitize_filename
from .domain import BlobStorePort

logger = logging.getLogger(__name__)


# ---------------- Circuit Breaker ---------------- #

class BreakerState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitOpenError(RuntimeError):
    """The guarded service is considered down; no request was sent."""


class CircuitBreaker:
    """Consecutive-failure breaker for one upstream service.

    The breaker opens after ``fail_threshold`` failed calls in a row and
    refuses calls for ``reset_timeout`` seconds. After that it is HALF_OPEN
    and admits one trial call at a time: a success closes it, a failure
    opens it for another ``reset_timeout``.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float,
                 clock: Callable[[], float] = time.monotonic):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._consecutive_failures = 0
        self._opened_at: Optional[float] = None
        self._trial_running = False

    def _current(self) -> BreakerState:
        if self._opened_at is None:
            return BreakerState.CLOSED
        if self._clock() - self._opened_at < self.reset_timeout:
            return BreakerState.OPEN
        return BreakerState.HALF_OPEN

    @property
    def state(self) -> BreakerState:
        with self._lock:
            return self._current()

    @contextmanager
    def attempt(self):
        """Admit one call and yield the state it was admitted in.

        Raises:
            CircuitOpenError: While OPEN, or while another HALF_OPEN trial runs.
        """
        with self._lock:
            state = self._current()
            if state is BreakerState.OPEN:
                raise CircuitOpenError("CIRCUIT_OPEN")
            if state is BreakerState.HALF_OPEN:
                if self._trial_running:
                    raise CircuitOpenError("CIRCUIT_HALF_OPEN_BUSY")
                self._trial_running = True
        try:
            yield state
        finally:
            if state is BreakerState.HALF_OPEN:
                with self._lock:
                    self._trial_running = False

    def record_success(self) -> None:
        with self._lock:
            self._consecutive_failures = 0
            self._opened_at = None

    def record_failure(self) -> None:
        with self._lock:
            self._consecutive_failures += 1
            trial_failed = self._current() is BreakerState.HALF_OPEN
            if trial_failed or (self._opened_at is None and self._consecutive_failures >= self.fail_threshold):
                self._opened_at = self._clock()
                logger.warning("circuit opened", extra={"service": self.name, "failures": self._consecutive_failures})


def build_storage_breaker() -> CircuitBreaker:
    return CircuitBreaker(
        "storage",
        getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
        getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
    )


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Build base headers including X-Request-ID and any extras."""
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy():
    """Return retry configuration as (max_retries, backoff_base_seconds)."""
    return (
        getattr(settings, "HTTP_RETRY_MAX", 3),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
    )


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    """Retry only on transport errors or HTTP 5xx."""
    if exc is not None:
        return True
    if resp is not None and 500 <= resp.status_code < 600:
        return True
    return False


def _backoff_sleep(base: float, attempt: int) -> None:
    delay = min(base * (2 ** attempt), getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5))
    if delay > 0:
        time.sleep(delay)


# ---------------- Storage Adapter ---------------- #

class HttpBlobStoreClient(BlobStorePort):
    """HTTP client for the storage service with retry and circuit breaker.

    Args:
        base_url: Storage service root URL; ``settings.STORAGE_BASE_URL``
            by default.
        timeout: Per-request timeout in seconds.
        breaker: Circuit breaker guarding the storage service; the
            process-wide one from ``OrdersConfig`` in production.
    """

    def __init__(self, base_url: str | None = None, timeout: float | None = None,
                 breaker: CircuitBreaker | None = None):
        self.base_url = (base_url or settings.STORAGE_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS
        self.breaker = breaker or build_storage_breaker()

    def store(self, data: bytes, filename: str, category: str, owner_id: str) -> str:
        """Upload ``data`` and return the URL the storage service serves it at.

        Business mappings:
        - 201 → returns the ``url`` from the response body
        - 4xx → raised immediately (not retried, not counted as circuit failure)

        Raises:
            httpx.RequestError: For network/transport errors after retries.
            httpx.HTTPStatusError: For non-2xx responses.
            CircuitOpenError: When the breaker refuses the call.
        """
        max_retries, backoff = _retry_policy()
        attempts = max(1, max_retries)

        with self.breaker.attempt() as state:
            headers = _request_headers({
                "Content-Type": "application/octet-stream",
                "X-Filename": sanitize_filename(filename),
                "X-Category": category,
                "X-Owner-Id": owner_id,
                "X-Circuit-State": state.value,
            })
            resp, error = None, None
            with httpx.Client(timeout=self.timeout) as client:
                for attempt in range(attempts):
                    headers["X-Retry-Count"] = str(attempt)
                    try:
                        resp, error = client.post(f"{self.base_url}/objects", content=data, headers=headers), None
                    except httpx.RequestError as e:
                        resp, error = None, e
                    if resp is not None and resp.status_code in (200, 201):
                        self.breaker.record_success()
                        return resp.json()["url"]
                    if not _should_retry(resp, error):
                        # storage answered and refused this object; it is healthy
                        self.breaker.record_success()
                        resp.raise_for_status()
                        raise httpx.HTTPStatusError(
                            f"unexpected status {resp.status_code}", request=None, response=resp
                        )
                    if attempt + 1 < attempts:
                        _backoff_sleep(backoff, attempt)

            self.breaker.record_failure()
            logger.error("storage upload failed", extra={"tries": attempts, "category": category})
            if error is not None:
                raise error
            resp.raise_for_status()
            raise httpx.HTTPStatusError(f"unexpected status {resp.status_code}", request=None, response=resp)
