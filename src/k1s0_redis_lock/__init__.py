"""k1s0 redis lock and priority queue library."""

from .config import LockSection, LogSection, QueueSection, RedisSection, Settings, load_settings
from .exceptions import LockError, LockErrorCodes
from .lock import LockManager
from .logger import new_logger
from .memory import InMemoryLockStore
from .models import EnqueueResult, HeldLock, OperationResult, QueueEntry, Status
from .queue import PriorityQueue
from .redis_store import RedisLockStore
from .store import TTL_MISSING, TTL_NO_EXPIRY, LockStore

__all__ = [
    "EnqueueResult",
    "HeldLock",
    "InMemoryLockStore",
    "LockError",
    "LockErrorCodes",
    "LockManager",
    "LockSection",
    "LockStore",
    "LogSection",
    "OperationResult",
    "PriorityQueue",
    "QueueEntry",
    "QueueSection",
    "RedisLockStore",
    "RedisSection",
    "Settings",
    "Status",
    "TTL_MISSING",
    "TTL_NO_EXPIRY",
    "load_settings",
    "new_logger",
]
