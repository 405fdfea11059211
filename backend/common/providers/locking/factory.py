from typing import Optional

from common.core.config import settings
from common.core.constants import LockProvider
from common.core.otel_axiom_exporter import get_logger

from .interface import DistributedLockInterface
from .memory_lock import MemoryLock
from .redis_lock import RedisLock

logger = get_logger(__name__)

# Global instance
_lock_provider: Optional[DistributedLockInterface] = None


def get_lock_provider() -> DistributedLockInterface:
    """
    Get the configured lock provider.

    Returns:
        DistributedLockInterface: The lock provider instance
    """
    global _lock_provider

    if _lock_provider is None:
        if settings.lock_provider == LockProvider.REDIS:
            _lock_provider = RedisLock()
            logger.info("Initialized Redis lock provider")
        else:
            _lock_provider = MemoryLock()
            logger.info("Initialized memory lock provider")

    return _lock_provider
