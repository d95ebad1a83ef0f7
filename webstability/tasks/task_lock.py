"""
Keeps scheduled Celery jobs from overlapping, using Valkey locks.

The monthly quota reset must not run twice for the same month when beat
fires on more than one scheduler or a run is retried while the first is
still going.
"""

import logging
from contextlib import contextmanager
from functools import wraps
from typing import Any
from collections.abc import Callable
from valkey import Valkey

from webstability.config import settings

logger = logging.getLogger(__name__)

# Upper bound on how long a crashed worker can keep a job blocked
LOCK_SAFETY_TIMEOUT = 6 * 60 * 60


def get_valkey_client() -> Valkey:
    return Valkey(
        host=settings.valkey_host,
        port=settings.valkey_port,
        db=settings.valkey_db,
        password=settings.valkey_auth_token if settings.valkey_auth_token else None,
        ssl=True if settings.valkey_auth_token else False,
        decode_responses=False,
    )


@contextmanager
def acquire_task_lock(lock_name: str, blocking: bool = False):
    """
    Hold ``celery:lock:<lock_name>`` for the duration of the block.

    Yields True when the lock was acquired, False when another run holds it.

    Example:
        with acquire_task_lock("quota_reset") as acquired:
            if not acquired:
                return
            ...
    """
    valkey_client = get_valkey_client()

    lock = valkey_client.lock(
        f"celery:lock:{lock_name}",
        timeout=LOCK_SAFETY_TIMEOUT,
        blocking_timeout=0,
    )

    acquired = False
    try:
        acquired = lock.acquire(blocking=blocking)
        if acquired:
            logger.info(f"Acquired lock for task: {lock_name}")
        else:
            logger.info(
                f"Could not acquire lock for task: {lock_name} (task already running)"
            )
        yield acquired
    finally:
        if acquired:
            try:
                lock.release()
                logger.info(f"Released lock for task: {lock_name}")
            except Exception as e:
                logger.warning(f"Error releasing lock for task {lock_name}: {e}")


def with_task_lock(lock_name: str | None = None, blocking: bool = False):
    """
    Decorator that skips a task run while a previous run still holds its lock.

    The lock name defaults to the function name. A skipped run returns a
    ``{"status": "skipped", ...}`` dict instead of calling the task body.
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            task_lock_name = lock_name or func.__name__

            with acquire_task_lock(task_lock_name, blocking=blocking) as acquired:
                if not acquired:
                    return {
                        "status": "skipped",
                        "reason": "previous_task_still_running",
                        "message": f"Task {task_lock_name} is already running, skipped this execution",
                    }

                return func(*args, **kwargs)

        return wrapper

    return decorator
