from .interface import KeyValueStoreInterface, VersionedValue
from .factory import get_kv_store
from .memory_store import MemoryKeyValueStore
from .redis_store import RedisKeyValueStore

__all__ = [
    "KeyValueStoreInterface",
    "VersionedValue",
    "get_kv_store",
    "MemoryKeyValueStore",
    "RedisKeyValueStore",
]
