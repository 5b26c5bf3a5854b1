"""
core.domain.transactions — Helpers for safe state transitions.

Provides utilities that wrap ``transaction.atomic`` and
``select_for_update`` into reusable patterns so that every store
implementation follows the same concurrency-safe approach.

Design goals
------------
* Eliminate boilerplate around ``with transaction.atomic(): ...``.
* Ensure that state-transition reads always lock the row first
  (``select_for_update``) to prevent race conditions.
* Re-run a whole read-modify-write body when a concurrent writer wins
  the race (``retry_on_conflict``), with exponential backoff.

Usage::

    from core.domain.transactions import retry_on_conflict, run_in_atomic

    result = retry_on_conflict(
        lambda: run_in_atomic(my_body, arg1, kwarg=val),
        max_attempts=5,
        base_delay=0.05,
    )
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, TypeVar

from django.db import OperationalError, models, transaction

from core.domain.exceptions import NotFound, TransactionConflict

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=models.Model)

#: Exceptions that mean "someone else got there first; run the body again".
#: ``OperationalError`` covers SQLite's "database is locked" and Postgres
#: serialization failures surfaced through the driver.
RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    TransactionConflict,
    OperationalError,
)


def run_in_atomic(fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """
    Execute ``fn(*args, **kwargs)`` inside ``transaction.atomic()``.

    Args:
        fn:      Callable to run.
        *args:   Positional arguments forwarded to ``fn``.
        **kwargs: Keyword arguments forwarded to ``fn``.

    Returns:
        Whatever ``fn`` returns.

    Raises:
        Any exception raised by ``fn`` — the transaction is rolled back.
    """
    with transaction.atomic():
        return fn(*args, **kwargs)


def lock_for_update(model_class: type[M], pk: Any) -> M:
    """
    Acquire a row-level lock on the given model instance.

    Convenience wrapper around ``select_for_update().get(pk=pk)``
    that must be called inside an ``atomic()`` block.

    Raises:
        NotFound: If no row with that PK exists.
    """
    try:
        return model_class.objects.select_for_update().get(pk=pk)
    except model_class.DoesNotExist:
        raise NotFound(f"{model_class.__name__} with pk={pk} does not exist.")


def retry_on_conflict(
    fn: Callable[[], T],
    *,
    max_attempts: int,
    base_delay: float = 0.0,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call ``fn`` until it succeeds or ``max_attempts`` is exhausted.

    Only ``RETRYABLE_ERRORS`` trigger another attempt; every other
    exception propagates immediately.  Between attempts the helper sleeps
    ``base_delay * 2 ** attempt`` seconds.

    Args:
        fn:           Zero-argument callable, normally an atomic
                      read-modify-write body.
        max_attempts: Total number of calls allowed (>= 1).
        base_delay:   Backoff base in seconds.  ``0`` disables sleeping.
        sleep:        Injected for tests.

    Returns:
        Whatever ``fn`` returns on its first successful call.

    Raises:
        The last retryable exception once attempts run out.
    """
    attempts = max(1, max_attempts)
    for attempt in range(attempts):
        try:
            return fn()
        except RETRYABLE_ERRORS as exc:
            if attempt == attempts - 1:
                logger.warning(
                    "Giving up after %d attempt(s): %s", attempts, exc,
                )
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(
                "Transaction conflict on attempt %d/%d (%s); retrying in %.3fs",
                attempt + 1,
                attempts,
                exc,
                delay,
            )
            if delay > 0:
                sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover
