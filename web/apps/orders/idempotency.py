"""Idempotency keys for checkout order creation.

A client that retries ``POST /api/checkout/create`` with the same
``Idempotency-Key`` header gets the stored response back instead of a
second order (and a second OTP email). Reusing a key with a different
payload is a conflict.

A record is created with ``response_status=0`` before the order is
processed and holds the final response once ``finalize`` runs. A retry
that finds such a placeholder is told the first request is still in
progress; a placeholder older than ``IDEMPOTENCY_LOCK_SECONDS`` is treated
as abandoned and taken over. When processing fails with an exception the
view calls ``release`` so the key can be used again.
"""

import hashlib
import json
import logging
from datetime import timedelta

from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from .models import IdempotencyKey

logger = logging.getLogger(__name__)

PENDING_STATUS = 0
DEFAULT_LOCK_SECONDS = 60


class IdempotencyConflict(Exception):
    """The key was already used with a different request payload."""


class IdempotencyInProgress(Exception):
    """The first request with this key has not finished yet."""


def _hash(payload: dict) -> str:
    """Stable SHA-256 of a JSON-serializable payload (sorted keys, compact)."""
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


def _lock_expired(rec: IdempotencyKey) -> bool:
    lock_seconds = getattr(settings, "IDEMPOTENCY_LOCK_SECONDS", DEFAULT_LOCK_SECONDS)
    return rec.created_at <= timezone.now() - timedelta(seconds=lock_seconds)


@transaction.atomic
def get_or_create_idempotent(key: str, payload: dict):
    """Get-or-create an idempotency record for ``key``.

    Returns:
        tuple[bool, IdempotencyKey]: ``(existing, rec)``; ``existing`` is
        True only when ``rec`` holds a finished response to replay.

    Raises:
        IdempotencyConflict: The key exists with a different payload hash.
        IdempotencyInProgress: The key's first request is still running.
    """
    h = _hash(payload)

    try:
        # Savepoint: an IntegrityError only rolls back this block.
        with transaction.atomic():
            rec = IdempotencyKey.objects.create(key=key, request_hash=h, response_status=PENDING_STATUS, response_body={})
            return False, rec
    except IntegrityError:
        rec = IdempotencyKey.objects.select_for_update().get(key=key)
        if rec.request_hash != h:
            raise IdempotencyConflict(key)
        if rec.response_status != PENDING_STATUS:
            return True, rec
        if not _lock_expired(rec):
            raise IdempotencyInProgress(key)

        logger.warning("taking over abandoned idempotency key", extra={"key": key})
        rec.created_at = timezone.now()
        rec.save(update_fields=["created_at"])
        return False, rec


def finalize(rec: IdempotencyKey, status_code: int, body: dict, order_id=None):
    """Store the final response so later retries can replay it."""
    rec.response_status = status_code
    rec.response_body = body
    if order_id is not None:
        rec.order_id = order_id
    rec.save(update_fields=["response_status", "response_body", "order"])


def release(rec: IdempotencyKey) -> None:
    """Forget an unfinished record so a retry processes the request again.

    A database that is down cannot delete the row either; the placeholder
    then expires after ``IDEMPOTENCY_LOCK_SECONDS``.
    """
    try:
        IdempotencyKey.objects.filter(pk=rec.pk, response_status=PENDING_STATUS).delete()
    except DatabaseError:
        logger.warning("could not release idempotency key", extra={"key": rec.key}, exc_info=True)
