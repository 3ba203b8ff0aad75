"""
Core infrastructure package for the opsboard service.

Provides:
- Configuration management via pydantic-settings
- Blob storage and JSON snapshot helpers
- Advisory lock service

FastAPI dependencies live in ``opsboard.core.dependencies`` and are imported
from there directly.
"""

from opsboard.core.config import Settings, get_settings
from opsboard.core.locks import (
    BlobLockService,
    LockAcquired,
    LockService,
    LockStorageUnavailable,
    LockTimedOut,
    MemoryLockService,
    hold_lock,
)
from opsboard.core.storage import (
    HttpBlobStore,
    MemoryBlobStore,
    SnapshotStore,
    StorageError,
)


__all__ = [
    # Configuration
    "Settings",
    "get_settings",
    # Storage
    "HttpBlobStore",
    "MemoryBlobStore",
    "SnapshotStore",
    "StorageError",
    # Locks
    "BlobLockService",
    "LockAcquired",
    "LockService",
    "LockStorageUnavailable",
    "LockTimedOut",
    "MemoryLockService",
    "hold_lock",
]
