import uuid
from typing import Optional
import redis.asyncio as redis
from redis.exceptions import RedisError

from common.core.config import settings
from common.core.exceptions import StorageError
from .interface import DistributedLockInterface
from common.core.otel_axiom_exporter import get_logger

logger = get_logger(__name__)

# Both scripts act only while the caller still owns the lock
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""

_EXTEND_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("expire", KEYS[1], ARGV[2])
end
return 0
"""


class RedisLock(DistributedLockInterface):
    """Token-owned locks in Redis, shared by every API and worker process.

    A lock that cannot be taken because Redis is unreachable raises
    StorageError; only a lock held by someone else yields None.
    """

    KEY_PREFIX = "lock:"

    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.redis_connection_url
        self._client: Optional[redis.Redis] = None
        self._connected = False

    def _key(self, resource_key: str) -> str:
        return f"{self.KEY_PREFIX}{resource_key}"

    async def connect(self) -> bool:
        try:
            self._client = redis.Redis.from_url(self.url, decode_responses=True)
            await self._client.ping()
        except RedisError as e:
            logger.error(f"Redis lock provider could not connect: {e}")
            self._connected = False
            return False
        self._connected = True
        logger.info("Redis lock provider connected")
        return True

    async def disconnect(self) -> None:
        if self._client:
            await self._client.aclose()
            self._connected = False
            logger.info("Redis lock provider disconnected")

    async def _ensure_connected(self) -> None:
        if not self._connected and not await self.connect():
            raise StorageError("Lock store is unavailable")

    async def acquire_lock(
        self, resource_key: str, timeout_seconds: int = 30
    ) -> Optional[str]:
        await self._ensure_connected()

        lock_token = str(uuid.uuid4())
        try:
            acquired = await self._client.set(
                self._key(resource_key), lock_token, nx=True, ex=timeout_seconds
            )
        except RedisError as e:
            logger.error(f"Error acquiring lock for {resource_key}: {e}")
            raise StorageError(f"Could not reach lock store: {e}") from e

        if not acquired:
            logger.debug(f"Lock for {resource_key} is held elsewhere")
            return None
        return lock_token

    async def _run_owned(self, script: str, resource_key: str, lock_token: str, *args) -> bool:
        await self._ensure_connected()
        try:
            result = await self._client.eval(
                script, 1, self._key(resource_key), lock_token, *args
            )
        except RedisError as e:
            # The lock expires on its own when it cannot be released
            logger.error(f"Lock script failed for {resource_key}: {e}")
            return False
        return bool(result)

    async def release_lock(self, resource_key: str, lock_token: str) -> bool:
        released = await self._run_owned(_RELEASE_SCRIPT, resource_key, lock_token)
        if not released:
            logger.warning(
                f"Lock for {resource_key} was not released: expired or taken over"
            )
        return released

    async def extend_lock(
        self, resource_key: str, lock_token: str, additional_seconds: int
    ) -> bool:
        return await self._run_owned(
            _EXTEND_SCRIPT, resource_key, lock_token, additional_seconds
        )

    async def is_locked(self, resource_key: str) -> bool:
        await self._ensure_connected()
        try:
            return bool(await self._client.exists(self._key(resource_key)))
        except RedisError as e:
            logger.error(f"Error checking lock for {resource_key}: {e}")
            return False
