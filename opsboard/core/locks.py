"""
Advisory lock service.

Locks reduce, but do not prevent, concurrent re-processing of the same
resource (for example two complaint uploads rebuilding the stored sales
dataset at once). They do not serialize the underlying blob writes.

Callers receive a typed result instead of None:

    result = await locks.acquire("pnl-complaints", ttl_seconds=300)
    if isinstance(result, LockAcquired):
        try:
            ...
        finally:
            await locks.release(result.token)

Acquisition polls with bounded exponential backoff until the wait budget is
spent. Two implementations share that loop:

- MemoryLockService: process-local dict keyed by resource id.
- BlobLockService: lock documents stored under ``locks/<resource>.json``.
"""

import asyncio
import json
import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional, Protocol, Union

from opsboard.core.storage import SnapshotStore, StorageError


logger = logging.getLogger(__name__)

LOCK_PREFIX = 'locks/'


@dataclass(frozen=True)
class LockToken:
    resource_id: str
    lock_id: str
    expires_at: float


@dataclass(frozen=True)
class LockAcquired:
    token: LockToken


@dataclass(frozen=True)
class LockTimedOut:
    resource_id: str
    waited_seconds: float


@dataclass(frozen=True)
class LockStorageUnavailable:
    resource_id: str
    error: str


LockResult = Union[LockAcquired, LockTimedOut, LockStorageUnavailable]


class LockService(Protocol):
    """Advisory lock contract injected into request handlers."""

    async def acquire(self, resource_id: str, ttl_seconds: float = 300.0) -> LockResult:
        ...

    async def release(self, token: LockToken) -> None:
        ...


@dataclass(frozen=True)
class BackoffPolicy:
    """Bounded exponential backoff for lock polling."""
    max_wait_seconds: float = 30.0
    initial_delay_seconds: float = 0.25
    max_delay_seconds: float = 2.0

    def delay(self, attempt: int) -> float:
        return min(self.initial_delay_seconds * (2 ** attempt), self.max_delay_seconds)


class _PollingLockService:
    """Shared acquisition loop; subclasses implement a single attempt."""

    def __init__(
        self,
        policy: Optional[BackoffPolicy] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        holder: Optional[str] = None,
    ) -> None:
        self.policy = policy or BackoffPolicy()
        self._clock = clock
        self._sleep = sleep
        self.holder = holder or f"process-{uuid.uuid4().hex[:8]}"

    async def _try_acquire(self, token: LockToken) -> bool:
        raise NotImplementedError

    async def _release(self, token: LockToken) -> None:
        raise NotImplementedError

    async def acquire(self, resource_id: str, ttl_seconds: float = 300.0) -> LockResult:
        started = self._clock()
        attempt = 0
        last_error: Optional[str] = None
        storage_failures = 0

        while True:
            now = self._clock()
            token = LockToken(
                resource_id=resource_id,
                lock_id=f"{self.holder}-{uuid.uuid4().hex}",
                expires_at=now + ttl_seconds,
            )
            try:
                if await self._try_acquire(token):
                    logger.info(f"Acquired lock {resource_id} ({token.lock_id})")
                    return LockAcquired(token=token)
            except StorageError as e:
                storage_failures += 1
                last_error = str(e)
                logger.warning(f"Lock storage error for {resource_id}: {e}")

            waited = self._clock() - started
            delay = self.policy.delay(attempt)
            if waited + delay > self.policy.max_wait_seconds:
                break
            await self._sleep(delay)
            attempt += 1

        waited = self._clock() - started
        if last_error is not None and storage_failures == attempt + 1:
            logger.error(f"Lock storage unavailable for {resource_id}: {last_error}")
            return LockStorageUnavailable(resource_id=resource_id, error=last_error)
        logger.error(f"Timed out waiting {waited:.1f}s for lock {resource_id}")
        return LockTimedOut(resource_id=resource_id, waited_seconds=waited)

    async def release(self, token: LockToken) -> None:
        try:
            await self._release(token)
        except StorageError:
            # The lock expires on its own after its TTL
            logger.exception(f"Failed to release lock {token.resource_id}")


class MemoryLockService(_PollingLockService):
    """Process-local advisory locks."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._locks: Dict[str, LockToken] = {}

    async def _try_acquire(self, token: LockToken) -> bool:
        existing = self._locks.get(token.resource_id)
        if existing is not None and existing.expires_at > self._clock():
            return False
        self._locks[token.resource_id] = token
        return True

    async def _release(self, token: LockToken) -> None:
        existing = self._locks.get(token.resource_id)
        if existing is not None and existing.lock_id == token.lock_id:
            del self._locks[token.resource_id]


class BlobLockService(_PollingLockService):
    """
    Advisory locks persisted as JSON documents in the blob store.

    The check-then-put sequence is not atomic; two processes can both observe
    a free lock and both write. Last writer wins.
    """

    def __init__(self, snapshots: SnapshotStore, **kwargs) -> None:
        super().__init__(**kwargs)
        self._snapshots = snapshots

    @staticmethod
    def _path(resource_id: str) -> str:
        return f"{LOCK_PREFIX}{resource_id}.json"

    async def _read(self, resource_id: str) -> Optional[dict]:
        path = self._path(resource_id)
        for blob in await self._snapshots.blobs.list(path):
            if blob.pathname == path:
                try:
                    return json.loads(await self._snapshots.blobs.fetch(blob.url))
                except ValueError:
                    logger.warning(f"Discarding unreadable lock document {path}")
                    return None
        return None

    async def _try_acquire(self, token: LockToken) -> bool:
        existing = await self._read(token.resource_id)
        if existing is not None and float(existing.get('expiresAt', 0)) > self._clock():
            return False
        await self._snapshots.write_json(self._path(token.resource_id), {
            'lockId': token.lock_id,
            'holder': self.holder,
            'acquiredAt': datetime.now(timezone.utc).isoformat(),
            'expiresAt': token.expires_at,
        })
        return True

    async def _release(self, token: LockToken) -> None:
        existing = await self._read(token.resource_id)
        if existing is not None and existing.get('lockId') == token.lock_id:
            await self._snapshots.delete(self._path(token.resource_id))


@asynccontextmanager
async def hold_lock(
    service: LockService,
    resource_id: str,
    ttl_seconds: float = 300.0,
) -> AsyncIterator[LockResult]:
    """
    Acquire ``resource_id`` for the duration of the block.

    The result is yielded either way; callers must check for LockAcquired
    before touching the resource. The lock is released on exit only when it
    was acquired.
    """
    result = await service.acquire(resource_id, ttl_seconds)
    try:
        yield result
    finally:
        if isinstance(result, LockAcquired):
            await service.release(result.token)
