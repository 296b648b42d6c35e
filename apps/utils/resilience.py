import time
import logging
import functools

from django.conf import settings
from django.db import DEFAULT_DB_ALIAS, OperationalError, connections, transaction

from apps.utils.exceptions import ContentionError

logger = logging.getLogger(__name__)

# PostgreSQL: lock_not_available, serialization_failure, deadlock_detected
PG_CONTENTION_CODES = {"55P03", "40001", "40P01"}
CONTENTION_MESSAGES = (
    "database is locked",
    "database table is locked",
    "deadlock detected",
    "could not serialize access",
    "lock timeout",
    "canceling statement due to lock timeout",
)


def _pgcode_from(exc):
    cause = getattr(exc, "__cause__", None)
    return (
        getattr(exc, "pgcode", None)
        or getattr(exc, "sqlstate", None)
        or getattr(cause, "pgcode", None)
        or getattr(cause, "sqlstate", None)
    )


def is_contention(exc):
    code = _pgcode_from(exc)
    if code and code in PG_CONTENTION_CODES:
        return True
    msg = str(exc).lower()
    return any(k in msg for k in CONTENTION_MESSAGES)


def apply_lock_timeout(using=DEFAULT_DB_ALIAS):
    """
    Bound how long the current transaction waits on row locks.
    SQLite gets the same bound from its connection ``timeout`` option.
    """
    connection = connections[using]
    if connection.vendor != "postgresql" or not connection.in_atomic_block:
        return
    with connection.cursor() as cursor:
        cursor.execute(
            "SELECT set_config('lock_timeout', %s, true)",
            [f"{settings.STOCK_LOCK_TIMEOUT_MS}ms"],
        )


def retry_on_contention(func=None, *, attempts=None, backoff=None, using=DEFAULT_DB_ALIAS):
    """
    Re-run a whole atomic unit when the database reports lock contention.
    Must wrap *outside* ``transaction.atomic``. Inside an outer transaction
    the unit cannot be replayed, so contention is raised straight away.
    """
    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            max_attempts = attempts or settings.CONTENTION_RETRY_ATTEMPTS
            delay = settings.CONTENTION_RETRY_BACKOFF if backoff is None else backoff
            attempt = 0
            while True:
                attempt += 1
                try:
                    return fn(*args, **kwargs)
                except OperationalError as exc:
                    if not is_contention(exc):
                        raise
                    nested = transaction.get_connection(using).in_atomic_block
                    if nested or attempt >= max_attempts:
                        logger.warning(f"{fn.__qualname__} gave up after {attempt} attempt(s): {exc}")
                        raise ContentionError(
                            "The resource is busy, please retry.",
                            attempts=attempt,
                        ) from exc
                    logger.info(f"{fn.__qualname__} hit contention (attempt {attempt}), retrying")
                    time.sleep(delay * attempt)
        return wrapper

    if func is not None:
        return decorator(func)
    return decorator
