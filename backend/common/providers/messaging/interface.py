from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict


class MessageQueueInterface(ABC):
    """Durable JSON work queues with dead-lettering."""

    @abstractmethod
    async def connect(self) -> bool:
        """Open the broker connection. Returns False instead of raising."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        pass

    @abstractmethod
    async def publish(self, queue: str, message: Dict[str, Any]) -> bool:
        """Publish one persistent JSON message. Returns False if it could not be published."""
        pass

    @abstractmethod
    async def consume(
        self,
        queue: str,
        callback: Callable[[Dict[str, Any]], Awaitable[None]],
        auto_ack: bool = True,
        prefetch_count: int = 1,
    ) -> None:
        """Feed messages to callback until cancelled.

        With auto_ack=False a message whose callback raises is delivered again
        until its attempts are used up, then moved to the dead letter queue.
        """
        pass

    @abstractmethod
    async def declare_queue(
        self, queue: str, durable: bool = True, dlq_enabled: bool = True
    ) -> bool:
        pass
