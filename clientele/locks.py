"""Locking helpers.

advisory_lock
    Process-wide lock for full-population operations, held in the Django
    cache. cache.add() only succeeds when the key is absent, so a second
    run started while the first is still going sees acquired=False.

retry_on_contention
    Bounded retry for transactions that lost a row-lock or unique-key race.
"""

import logging
import uuid
from contextlib import contextmanager
from typing import Callable, TypeVar

from django.core.cache import cache
from django.db import IntegrityError, OperationalError

from clientele.conf import clientele_settings
from clientele.exceptions import ClienteleError

logger = logging.getLogger(__name__)

T = TypeVar("T")

LOCK_PREFIX = "clientele:lock:"


@contextmanager
def advisory_lock(name: str, timeout: int | None = None):
    """
    Try to take the named lock. Yields True when acquired.

    The lock expires after ``timeout`` seconds so a crashed worker cannot
    block later runs forever.

    Usage:
        with advisory_lock("rebuild-tags") as acquired:
            if not acquired:
                return
            ...
    """
    key = f"{LOCK_PREFIX}{name}"
    token = uuid.uuid4().hex
    if timeout is None:
        timeout = clientele_settings.REBUILD_LOCK_TIMEOUT

    acquired = cache.add(key, token, timeout)
    if acquired:
        logger.debug("Clientele: acquired lock %s", name)
    try:
        yield acquired
    finally:
        if acquired and cache.get(key) == token:
            cache.delete(key)
            logger.debug("Clientele: released lock %s", name)


def retry_on_contention(func: Callable[[], T], attempts: int | None = None, label: str = "") -> T:
    """
    Call ``func`` until it stops failing with a lock/unique conflict.

    ``func`` must open its own transaction, so every attempt starts clean.

    Raises:
        ClienteleError: LOCK_CONTENTION once attempts are exhausted
    """
    attempts = max(1, attempts or clientele_settings.LOCK_RETRY_ATTEMPTS)

    last_error = None
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except (IntegrityError, OperationalError) as exc:
            last_error = exc
            logger.warning(
                "Clientele: contention on %s (attempt %d/%d): %s",
                label or "identity",
                attempt,
                attempts,
                exc,
            )

    raise ClienteleError("LOCK_CONTENTION", key=label, attempts=attempts) from last_error
