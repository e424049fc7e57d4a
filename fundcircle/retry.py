"""Bounded retries for writes that hit transient storage failures."""
import functools
import logging
import time

from fundcircle.config import PERSISTENCE_MAX_ATTEMPTS, PERSISTENCE_RETRY_DELAY
from fundcircle.exceptions import TransientPersistenceError

logger = logging.getLogger(__name__)


def _in_open_transaction(args) -> bool:
    db = getattr(args[0], 'db', None) if args else None
    return bool(getattr(db, 'in_transaction', False))


def with_retries(max_attempts=None, delay=None):
    """Retry the decorated call on TransientPersistenceError.

    The whole call is repeated, so a method that reads, validates and
    writes re-reads fresh state after a version conflict. After the last
    attempt the error propagates to the caller. Calls made while the
    owner's database (`self.db`) is inside an open transaction are not
    retried; the error propagates so the outer transaction rolls back.

    Usage:
        @with_retries()
        def pay_installment(self, loan_id, installment_id): ...
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            attempts = PERSISTENCE_MAX_ATTEMPTS if max_attempts is None else max_attempts
            wait = PERSISTENCE_RETRY_DELAY if delay is None else delay
            for attempt in range(1, attempts + 1):
                try:
                    return func(*args, **kwargs)
                except TransientPersistenceError as e:
                    if attempt >= attempts or _in_open_transaction(args):
                        logger.error(f"{func.__qualname__} failed after {attempt} attempt(s): {e}")
                        raise
                    logger.warning(f"{func.__qualname__} attempt {attempt} failed ({e}); retrying")
                    if wait:
                        time.sleep(wait)
        return wrapper
    return decorator
