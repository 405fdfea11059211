import asyncio
import copy
from typing import Any, Dict, Optional, Set

from .interface import KeyValueStoreInterface, VersionedValue
from common.core.otel_axiom_exporter import get_logger

logger = get_logger(__name__)


class MemoryKeyValueStore(KeyValueStoreInterface):
    """In-memory store implementation.

    All operations run under one asyncio lock, so each call is atomic with
    respect to other coroutines in the process. Values are deep-copied on the
    way in and out so callers never share mutable state with the store.
    """

    def __init__(self):
        self._records: Dict[str, VersionedValue] = {}
        self._counters: Dict[str, int] = {}
        self._sets: Dict[str, Set[str]] = {}
        self._lock = asyncio.Lock()
        logger.info("Memory key-value store initialized")

    async def get(self, key: str) -> Optional[VersionedValue]:
        async with self._lock:
            record = self._records.get(key)
            if record is None:
                return None
            return VersionedValue(copy.deepcopy(record.value), record.version)

    async def create(self, key: str, value: Dict[str, Any]) -> bool:
        async with self._lock:
            if key in self._records:
                return False
            self._records[key] = VersionedValue(copy.deepcopy(value), 1)
            return True

    async def compare_and_set(
        self, key: str, value: Dict[str, Any], expected_version: int
    ) -> bool:
        async with self._lock:
            record = self._records.get(key)
            if record is None or record.version != expected_version:
                logger.debug(
                    f"Compare-and-set rejected for {key}: expected {expected_version}, "
                    f"found {record.version if record else None}"
                )
                return False
            self._records[key] = VersionedValue(
                copy.deepcopy(value), expected_version + 1
            )
            return True

    async def put(self, key: str, value: Dict[str, Any]) -> int:
        async with self._lock:
            record = self._records.get(key)
            version = record.version + 1 if record else 1
            self._records[key] = VersionedValue(copy.deepcopy(value), version)
            return version

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._records.pop(key, None) is not None

    async def increment(self, key: str) -> int:
        async with self._lock:
            value = self._counters.get(key, 0) + 1
            self._counters[key] = value
            return value

    async def add_to_set(self, key: str, member: str) -> None:
        async with self._lock:
            self._sets.setdefault(key, set()).add(member)

    async def remove_from_set(self, key: str, member: str) -> None:
        async with self._lock:
            members = self._sets.get(key)
            if members is not None:
                members.discard(member)

    async def get_set_members(self, key: str) -> Set[str]:
        async with self._lock:
            return set(self._sets.get(key, set()))
