"""Bounded retry with reconnect for storage reads.

``ResilientExecutor`` runs a zero-argument callable up to ``attempts`` times,
sleeping ``backoff(attempt)`` seconds between tries. When the failure looks
like the server dropped the connection, the ``reconnect`` hook is invoked
before the next try so the following attempt opens a fresh connection.

If every attempt fails with a connectivity signature the executor raises
``StorageUnavailable`` (wrapping the last error); any other last error is
re-raised unchanged so callers can tell outages apart from logic bugs.
"""

import logging
import time
from typing import Callable, Iterable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DISCONNECT_SIGNATURES = (
    "server closed the connection",
    "connection already closed",
    "terminating connection",
    "connection was closed",
    "ssl connection has been closed",
)

CONNECTIVITY_SIGNATURES = DISCONNECT_SIGNATURES + (
    "can't reach database server",
    "could not connect to server",
    "connection refused",
    "connection timed out",
    "connection failed",
    "name or service not known",
)


class StorageUnavailable(Exception):
    """The backing store could not be reached after all retries."""

    def __init__(self, last_error: BaseException):
        super().__init__(str(last_error))
        self.last_error = last_error


def _message(exc: BaseException) -> str:
    return str(exc).lower()


def is_disconnect_error(exc: BaseException) -> bool:
    msg = _message(exc)
    return any(sig in msg for sig in DISCONNECT_SIGNATURES)


def is_connectivity_error(exc: BaseException, error_types: Tuple[Type[BaseException], ...] = ()) -> bool:
    """Whether ``exc`` indicates the store itself is unreachable.

    Args:
        exc: The exception raised by the storage call.
        error_types: Driver exception classes that always count as
            connectivity failures (e.g. ``django.db.OperationalError``).
    """
    if error_types and isinstance(exc, error_types):
        return True
    msg = _message(exc)
    return any(sig in msg for sig in CONNECTIVITY_SIGNATURES)


def exponential_backoff(base: float) -> Callable[[int], float]:
    """Return ``attempt -> base * 2 ** attempt`` (attempts count from 1)."""
    return lambda attempt: base * (2 ** attempt)


class ResilientExecutor:
    """Retry combinator applied to every storage read.

    Args:
        attempts: Maximum number of tries (at least 1).
        backoff: Maps the 1-based number of the failed attempt to the delay
            in seconds before the next one.
        reconnect: Called after a dropped-connection error, before retrying.
        connectivity_errors: Exception classes treated as outages.
        sleep: Sleep function; ``time.sleep`` when None.
    """

    def __init__(
        self,
        attempts: int = 3,
        backoff: Callable[[int], float] = exponential_backoff(1.0),
        reconnect: Optional[Callable[[], None]] = None,
        connectivity_errors: Iterable[Type[BaseException]] = (),
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.attempts = max(1, attempts)
        self.backoff = backoff
        self.reconnect = reconnect
        self.connectivity_errors = tuple(connectivity_errors)
        self.sleep = sleep

    def __call__(self, fn: Callable[[], T]) -> T:
        last_exc: BaseException | None = None
        for attempt in range(1, self.attempts + 1):
            try:
                return fn()
            except Exception as exc:
                last_exc = exc
                logger.warning(
                    "storage call failed",
                    extra={"attempt": attempt, "max_attempts": self.attempts, "error": str(exc)},
                )
                if attempt >= self.attempts:
                    break
                if self.reconnect is not None and is_disconnect_error(exc):
                    logger.info("reconnecting to storage", extra={"attempt": attempt})
                    try:
                        self.reconnect()
                    except Exception:
                        logger.exception("reconnect failed")
                delay = self.backoff(attempt)
                if delay > 0:
                    (self.sleep or time.sleep)(delay)

        if is_connectivity_error(last_exc, self.connectivity_errors):
            raise StorageUnavailable(last_exc) from last_exc
        raise last_exc
