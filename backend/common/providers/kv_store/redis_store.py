import json
from typing import Any, Dict, Optional, Set
import redis.asyncio as redis
from redis.exceptions import RedisError

from common.core.config import settings
from common.core.exceptions import StorageError
from .interface import KeyValueStoreInterface, VersionedValue
from common.core.otel_axiom_exporter import get_logger, trace_span

logger = get_logger(__name__)


# Records are stored as {"version": n, "value": {...}} so the revision travels with the value.
_COMPARE_AND_SET_SCRIPT = """
local current = redis.call("get", KEYS[1])
if not current then
    return 0
end
local record = cjson.decode(current)
if tonumber(record["version"]) ~= tonumber(ARGV[2]) then
    return 0
end
redis.call("set", KEYS[1], ARGV[1])
return 1
"""

_PUT_SCRIPT = """
local current = redis.call("get", KEYS[1])
local version = 1
if current then
    version = tonumber(cjson.decode(current)["version"]) + 1
end
redis.call("set", KEYS[1], '{"version":' .. version .. ',"value":' .. ARGV[1] .. '}')
return version
"""


class RedisKeyValueStore(KeyValueStoreInterface):
    """Redis-based store implementation."""

    def __init__(self):
        self.host = settings.redis_host
        self.port = settings.redis_port
        self.password = settings.redis_password
        self.db = settings.redis_db
        self._client: Optional[redis.Redis] = None
        self._connected = False
        self._record_prefix = "kv:"
        self._counter_prefix = "counter:"
        self._set_prefix = "set:"

    @trace_span
    async def connect(self) -> bool:
        """Connect to Redis."""
        try:
            self._client = redis.Redis(
                host=self.host,
                port=self.port,
                password=self.password,
                db=self.db,
                decode_responses=True,
            )
            # Test connection
            await self._client.ping()
            self._connected = True
            logger.info("Redis key-value store connected")
            return True
        except RedisError as e:
            logger.error(f"Failed to connect to Redis store: {e}")
            self._connected = False
            return False

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._client:
            await self._client.aclose()
            self._connected = False
            logger.info("Redis key-value store disconnected")

    async def _ensure_connected(self) -> None:
        if self._connected:
            return
        if not await self.connect():
            raise StorageError("Redis store is unavailable")

    @staticmethod
    def _encode(value: Dict[str, Any], version: int) -> str:
        return json.dumps({"version": version, "value": value})

    @trace_span
    async def get(self, key: str) -> Optional[VersionedValue]:
        await self._ensure_connected()
        try:
            raw = await self._client.get(f"{self._record_prefix}{key}")
        except RedisError as e:
            logger.error(f"Error reading key {key}: {e}")
            raise StorageError(f"Failed to read {key}") from e

        if raw is None:
            return None
        record = json.loads(raw)
        return VersionedValue(value=record["value"], version=int(record["version"]))

    @trace_span
    async def create(self, key: str, value: Dict[str, Any]) -> bool:
        await self._ensure_connected()
        try:
            created = await self._client.set(
                f"{self._record_prefix}{key}", self._encode(value, 1), nx=True
            )
            return bool(created)
        except RedisError as e:
            logger.error(f"Error creating key {key}: {e}")
            raise StorageError(f"Failed to create {key}") from e

    @trace_span
    async def compare_and_set(
        self, key: str, value: Dict[str, Any], expected_version: int
    ) -> bool:
        await self._ensure_connected()
        try:
            result = await self._client.eval(
                _COMPARE_AND_SET_SCRIPT,
                1,
                f"{self._record_prefix}{key}",
                self._encode(value, expected_version + 1),
                expected_version,
            )
        except RedisError as e:
            logger.error(f"Error in compare-and-set for {key}: {e}")
            raise StorageError(f"Failed to update {key}") from e

        if not result:
            logger.debug(
                f"Compare-and-set rejected for {key} at version {expected_version}"
            )
        return bool(result)

    @trace_span
    async def put(self, key: str, value: Dict[str, Any]) -> int:
        await self._ensure_connected()
        try:
            version = await self._client.eval(
                _PUT_SCRIPT, 1, f"{self._record_prefix}{key}", json.dumps(value)
            )
            return int(version)
        except RedisError as e:
            logger.error(f"Error writing key {key}: {e}")
            raise StorageError(f"Failed to write {key}") from e

    @trace_span
    async def delete(self, key: str) -> bool:
        await self._ensure_connected()
        try:
            deleted = await self._client.delete(f"{self._record_prefix}{key}")
            return deleted > 0
        except RedisError as e:
            logger.error(f"Error deleting key {key}: {e}")
            raise StorageError(f"Failed to delete {key}") from e

    @trace_span
    async def increment(self, key: str) -> int:
        await self._ensure_connected()
        try:
            return int(await self._client.incr(f"{self._counter_prefix}{key}"))
        except RedisError as e:
            logger.error(f"Error incrementing counter {key}: {e}")
            raise StorageError(f"Failed to increment {key}") from e

    async def add_to_set(self, key: str, member: str) -> None:
        await self._ensure_connected()
        try:
            await self._client.sadd(f"{self._set_prefix}{key}", member)
        except RedisError as e:
            logger.error(f"Error adding {member} to set {key}: {e}")
            raise StorageError(f"Failed to update set {key}") from e

    async def remove_from_set(self, key: str, member: str) -> None:
        await self._ensure_connected()
        try:
            await self._client.srem(f"{self._set_prefix}{key}", member)
        except RedisError as e:
            logger.error(f"Error removing {member} from set {key}: {e}")
            raise StorageError(f"Failed to update set {key}") from e

    async def get_set_members(self, key: str) -> Set[str]:
        await self._ensure_connected()
        try:
            return set(await self._client.smembers(f"{self._set_prefix}{key}"))
        except RedisError as e:
            logger.error(f"Error reading set {key}: {e}")
            raise StorageError(f"Failed to read set {key}") from e
