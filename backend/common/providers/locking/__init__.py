from .interface import DistributedLockInterface, LockNotAcquiredError
from .factory import get_lock_provider
from .memory_lock import MemoryLock
from .redis_lock import RedisLock

__all__ = [
    "DistributedLockInterface",
    "LockNotAcquiredError",
    "get_lock_provider",
    "MemoryLock",
    "RedisLock",
]
