import time
import uuid
from typing import Dict, Optional, Tuple

from .interface import DistributedLockInterface
from common.core.otel_axiom_exporter import get_logger

logger = get_logger(__name__)


class MemoryLock(DistributedLockInterface):
    """Process-local lock provider with the same expiry semantics as RedisLock.

    Every method body runs without awaiting, so on a single event loop each
    check-and-set is atomic.
    """

    def __init__(self):
        # resource_key -> (token, expires_at)
        self._locks: Dict[str, Tuple[str, float]] = {}

    def _current(self, resource_key: str) -> Optional[Tuple[str, float]]:
        held = self._locks.get(resource_key)
        if held and held[1] <= time.monotonic():
            del self._locks[resource_key]
            return None
        return held

    async def acquire_lock(
        self, resource_key: str, timeout_seconds: int = 30
    ) -> Optional[str]:
        if self._current(resource_key):
            logger.debug(f"Failed to acquire lock for {resource_key} - already locked")
            return None

        lock_token = str(uuid.uuid4())
        self._locks[resource_key] = (lock_token, time.monotonic() + timeout_seconds)
        logger.debug(f"Acquired lock for {resource_key}")
        return lock_token

    async def release_lock(self, resource_key: str, lock_token: str) -> bool:
        held = self._current(resource_key)
        if not held or held[0] != lock_token:
            logger.warning(
                f"Cannot release lock for {resource_key} - token mismatch or lock expired"
            )
            return False
        del self._locks[resource_key]
        return True

    async def extend_lock(
        self, resource_key: str, lock_token: str, additional_seconds: int
    ) -> bool:
        held = self._current(resource_key)
        if not held or held[0] != lock_token:
            return False
        self._locks[resource_key] = (lock_token, time.monotonic() + additional_seconds)
        return True

    async def is_locked(self, resource_key: str) -> bool:
        return self._current(resource_key) is not None
