from typing import Optional

from common.core.config import settings
from common.core.constants import StoreProvider
from common.core.otel_axiom_exporter import get_logger

from .interface import KeyValueStoreInterface
from .memory_store import MemoryKeyValueStore
from .redis_store import RedisKeyValueStore

logger = get_logger(__name__)

# Global instance
_store: Optional[KeyValueStoreInterface] = None


def get_kv_store() -> KeyValueStoreInterface:
    """
    Get the configured key-value store.

    Returns:
        KeyValueStoreInterface: The store instance shared by all repositories
    """
    global _store

    if _store is None:
        if settings.store_provider == StoreProvider.REDIS:
            _store = RedisKeyValueStore()
            logger.info("Initialized Redis key-value store")
        else:
            _store = MemoryKeyValueStore()
            logger.info("Initialized memory key-value store")

    return _store
