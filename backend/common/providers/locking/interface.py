import asyncio
import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

# Upper bound for the pause between two acquire attempts
MAX_RETRY_INTERVAL_MS = 200


class LockNotAcquiredError(Exception):
    """Raised when a lock could not be acquired before the acquire timeout."""

    def __init__(self, resource_key: str):
        super().__init__(f"Could not acquire lock for {resource_key}")
        self.resource_key = resource_key


class DistributedLockInterface(ABC):
    """Expiring, token-owned mutual exclusion over named resources.

    A lock expires after its TTL even if never released, so a crashed holder
    cannot block a document forever. Only the token returned on acquire can
    release or extend it.
    """

    @abstractmethod
    async def acquire_lock(
        self, resource_key: str, timeout_seconds: int = 30
    ) -> Optional[str]:
        """
        Try once to take the lock on resource_key for timeout_seconds.

        Returns:
            The owner token, or None when someone else holds the lock
        """
        pass

    @abstractmethod
    async def release_lock(self, resource_key: str, lock_token: str) -> bool:
        """Release the lock if lock_token still owns it."""
        pass

    @abstractmethod
    async def extend_lock(
        self, resource_key: str, lock_token: str, additional_seconds: int
    ) -> bool:
        """Push the expiry of an owned lock out by additional_seconds."""
        pass

    @abstractmethod
    async def is_locked(self, resource_key: str) -> bool:
        pass

    async def connect(self) -> bool:
        return True

    async def disconnect(self) -> None:
        return None

    async def acquire_lock_with_retry(
        self,
        resource_key: str,
        lock_ttl_seconds: int = 30,
        acquire_timeout_seconds: float = 5.0,
        retry_interval_ms: int = 20,
    ) -> Optional[str]:
        """
        Keep trying to take the lock until acquire_timeout_seconds has elapsed.

        The pause between attempts doubles from retry_interval_ms up to
        MAX_RETRY_INTERVAL_MS.

        Returns:
            The owner token, or None if the timeout was reached
        """
        deadline = time.monotonic() + acquire_timeout_seconds
        interval_ms = retry_interval_ms
        while True:
            token = await self.acquire_lock(resource_key, lock_ttl_seconds)
            if token:
                return token
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            await asyncio.sleep(min(interval_ms / 1000, remaining))
            interval_ms = min(interval_ms * 2, MAX_RETRY_INTERVAL_MS)

    @asynccontextmanager
    async def hold(
        self,
        resource_key: str,
        lock_ttl_seconds: int = 30,
        acquire_timeout_seconds: float = 5.0,
    ) -> AsyncGenerator[str, None]:
        """
        Hold a lock for the duration of the block.

        Raises:
            LockNotAcquiredError: if the lock is still held elsewhere at timeout
        """
        token = await self.acquire_lock_with_retry(
            resource_key,
            lock_ttl_seconds=lock_ttl_seconds,
            acquire_timeout_seconds=acquire_timeout_seconds,
        )
        if token is None:
            raise LockNotAcquiredError(resource_key)
        try:
            yield token
        finally:
            await self.release_lock(resource_key, token)
