from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Set


@dataclass(frozen=True)
class VersionedValue:
    """A stored JSON document together with its store revision."""

    value: Dict[str, Any]
    version: int


class KeyValueStoreInterface(ABC):
    """Interface for the document key-value store."""

    async def connect(self) -> bool:
        return True

    async def disconnect(self) -> None:
        return None

    @abstractmethod
    async def get(self, key: str) -> Optional[VersionedValue]:
        """
        Get a value and its revision.

        Args:
            key: The record key

        Returns:
            The versioned value if the key exists, None otherwise
        """
        pass

    @abstractmethod
    async def create(self, key: str, value: Dict[str, Any]) -> bool:
        """
        Store a value only if the key does not exist yet. New records start at version 1.

        Returns:
            True if created, False if the key already existed
        """
        pass

    @abstractmethod
    async def compare_and_set(
        self, key: str, value: Dict[str, Any], expected_version: int
    ) -> bool:
        """
        Replace a value only if its current revision equals expected_version.

        The revision is incremented on success.

        Returns:
            True if replaced, False on a revision mismatch or missing key
        """
        pass

    @abstractmethod
    async def put(self, key: str, value: Dict[str, Any]) -> int:
        """
        Store a value unconditionally (last writer wins).

        Returns:
            The new revision
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """
        Delete a key.

        Returns:
            True if deleted, False if key didn't exist
        """
        pass

    @abstractmethod
    async def increment(self, key: str) -> int:
        """
        Atomically increment an integer counter, starting from zero.

        Returns:
            The counter value after the increment
        """
        pass

    @abstractmethod
    async def add_to_set(self, key: str, member: str) -> None:
        """Add a member to a set."""
        pass

    @abstractmethod
    async def remove_from_set(self, key: str, member: str) -> None:
        """Remove a member from a set (no-op if absent)."""
        pass

    @abstractmethod
    async def get_set_members(self, key: str) -> Set[str]:
        """Get all members of a set (empty if the set does not exist)."""
        pass
