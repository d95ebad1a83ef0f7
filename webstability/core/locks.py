"""
Per-project mutual exclusion for lifecycle mutations.

Every mutation runs ``lock(project_id) → read → decide → commit``. Two
backends are available:

- ``LocalProjectLocks``: one ``asyncio.Lock`` per project id, enough for a
  single API process (and for tests).
- ``ValkeyProjectLocks``: a distributed Valkey lock, needed as soon as more
  than one API process or worker writes to the same database.

The optimistic ``version`` column on ``projects`` still catches anything that
slips past the lock (e.g. the monthly reset job).
"""

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Protocol

from valkey.asyncio import Valkey
from valkey.exceptions import LockError, ValkeyError

from webstability.config import settings
from webstability.core.errors import InfrastructureError

logger = logging.getLogger(__name__)


class ProjectLockManager(Protocol):
    def hold(self, project_id: str) -> AsyncIterator[None]:
        """Async context manager holding the lock for ``project_id``."""
        ...


class LocalProjectLocks:
    def __init__(self, blocking_timeout: float | None = None):
        self.blocking_timeout = (
            blocking_timeout
            if blocking_timeout is not None
            else settings.project_lock_blocking_timeout
        )
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, project_id: str) -> asyncio.Lock:
        lock = self._locks.get(project_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[project_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, project_id: str):
        lock = self._lock_for(project_id)
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.blocking_timeout)
        except asyncio.TimeoutError:
            raise InfrastructureError(
                f"Timed out waiting for the lock on project {project_id}"
            )
        try:
            yield
        finally:
            lock.release()


def get_async_valkey_client() -> Valkey:
    return Valkey(
        host=settings.valkey_host,
        port=settings.valkey_port,
        db=settings.valkey_db,
        password=settings.valkey_auth_token if settings.valkey_auth_token else None,
        ssl=True if settings.valkey_auth_token else False,
        decode_responses=False,
    )


class ValkeyProjectLocks:
    def __init__(
        self,
        client: Valkey | None = None,
        timeout: float | None = None,
        blocking_timeout: float | None = None,
    ):
        self.client = client or get_async_valkey_client()
        self.timeout = timeout if timeout is not None else settings.project_lock_timeout
        self.blocking_timeout = (
            blocking_timeout
            if blocking_timeout is not None
            else settings.project_lock_blocking_timeout
        )

    @staticmethod
    def key(project_id: str) -> str:
        return f"project:lock:{project_id}"

    @asynccontextmanager
    async def hold(self, project_id: str):
        lock = self.client.lock(
            self.key(project_id),
            timeout=self.timeout,
            blocking_timeout=self.blocking_timeout,
        )
        try:
            acquired = await lock.acquire()
        except ValkeyError as exc:
            raise InfrastructureError(f"Lock backend unavailable: {exc}") from exc
        if not acquired:
            raise InfrastructureError(
                f"Timed out waiting for the lock on project {project_id}"
            )
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError as e:
                # Expired under us; the version check guards the write
                logger.warning(f"Error releasing lock for project {project_id}: {e}")

    async def close(self) -> None:
        await self.client.aclose()


def build_lock_manager(backend: str | None = None):
    backend = backend or settings.project_lock_backend
    if backend == "valkey":
        return ValkeyProjectLocks()
    if backend == "local":
        return LocalProjectLocks()
    raise ValueError(f"Unknown project lock backend '{backend}'")
