import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, TypeVar, Generic, Type
from pydantic import BaseModel
from uuid import uuid4

from common.providers.messaging.factory import get_message_queue
from common.providers.messaging.interface import MessageQueueInterface
from common.core.otel_axiom_exporter import get_logger

logger = get_logger(__name__)


T = TypeVar("T", bound=BaseModel)


class BaseWorker(ABC, Generic[T]):
    """Consumes one queue and hands each message to process_message.

    Messages are acknowledged only after process_message returns; an exception
    leaves redelivery or dead-lettering to the queue client.
    """

    def __init__(
        self,
        queue_name: str,
        worker_id: Optional[str] = None,
        message_class: Optional[Type[T]] = None,
        max_concurrent_messages: int = 1,
    ):
        self.queue_name = queue_name
        self.worker_id = worker_id or f"{queue_name}_worker_{uuid4()}"
        self.message_class = message_class
        self.max_concurrent_messages = max_concurrent_messages
        self.message_queue: Optional[MessageQueueInterface] = None
        self.running = False
        self._consumer: Optional[asyncio.Task] = None

    def connected_providers(self) -> List[Any]:
        """Providers (with connect/disconnect) that live as long as the worker."""
        return []

    async def setup(self):
        """Connect the queue and every provider the worker depends on."""
        self.message_queue = get_message_queue()
        if not await self.message_queue.connect():
            raise ConnectionError(f"Worker {self.worker_id} could not reach the broker")
        if not await self.message_queue.declare_queue(
            self.queue_name, durable=True, dlq_enabled=True
        ):
            raise ConnectionError(f"Worker {self.worker_id} could not declare {self.queue_name}")

        for provider in self.connected_providers():
            await provider.connect()

        logger.info(f"Worker {self.worker_id} setup completed")

    async def cleanup(self):
        """Disconnect everything setup connected. Errors are logged, not raised."""
        resources = [self.message_queue, *self.connected_providers()]
        for resource in resources:
            if resource is None:
                continue
            try:
                await resource.disconnect()
            except Exception as e:
                logger.error(
                    f"Worker {self.worker_id} failed to disconnect {type(resource).__name__}: {e}"
                )
        logger.info(f"Worker {self.worker_id} cleanup completed")

    async def start(self):
        """Consume until stop() is called or the consumer fails."""
        if self.running:
            logger.warning(f"Worker {self.worker_id} is already running")
            return

        self.running = True
        logger.info(f"Starting worker {self.worker_id} on queue {self.queue_name}")

        try:
            await self.setup()
            self._consumer = asyncio.create_task(
                self.message_queue.consume(
                    self.queue_name,
                    self._message_handler,
                    auto_ack=False,
                    prefetch_count=self.max_concurrent_messages,
                )
            )
            await self._consumer
        except asyncio.CancelledError:
            if self.running:
                raise
            logger.info(f"Worker {self.worker_id} stopped consuming")
        except Exception as e:
            logger.error(f"Error in worker {self.worker_id}: {e}", exc_info=True)
            raise
        finally:
            self.running = False
            self._consumer = None
            await self.cleanup()

    async def stop(self):
        """Stop consuming; in-flight messages finish before start() returns."""
        logger.info(f"Stopping worker {self.worker_id}")
        self.running = False
        if self._consumer and not self._consumer.done():
            self._consumer.cancel()

    async def _message_handler(self, message: Dict[str, Any]):
        """Parse the raw message and hand it to process_message.

        Exceptions propagate so the queue client can redeliver or dead-letter.
        """
        try:
            if self.message_class:
                await self.process_message(self.message_class.model_validate(message))
            else:
                await self.process_message(message)
        except Exception as e:
            logger.error(
                f"Worker {self.worker_id} failed to process message: {e}", exc_info=True
            )
            raise

    @abstractmethod
    async def process_message(self, message: T):
        """Process a message from the queue. Must be implemented by subclasses."""
        pass
