"""Hands committed workflow events over to notification dispatch.

Publishing never raises and never waits for delivery: the transition that
produced the event is already persisted.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional, Set

from common.core.config import settings
from common.core.constants import DispatchMode
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.providers.messaging.constants import QueueName
from common.providers.messaging.factory import get_message_queue
from common.providers.messaging.interface import MessageQueueInterface
from common.providers.messaging.messages import NotificationDispatchMessage
from packages.approvals.models.domain.workflow_event import WorkflowEvent
from packages.notifications.services.dispatch_service import (
    NotificationDispatcher,
    get_notification_dispatcher,
)

logger = get_logger(__name__)


class EventPublisherInterface(ABC):
    @abstractmethod
    async def publish(self, event: WorkflowEvent) -> None:
        """Schedule dispatch of an event. Must return without waiting for delivery."""
        pass

    async def drain(self) -> None:
        """Wait for dispatches started by this process (no-op when dispatch is remote)."""
        return None


class InlineEventPublisher(EventPublisherInterface):
    """Dispatches in a background task of the current event loop."""

    def __init__(self, dispatcher: Optional[NotificationDispatcher] = None):
        self._dispatcher = dispatcher
        # Strong references so pending tasks are not garbage collected
        self._tasks: Set[asyncio.Task] = set()

    @property
    def dispatcher(self) -> NotificationDispatcher:
        if self._dispatcher is None:
            self._dispatcher = get_notification_dispatcher()
        return self._dispatcher

    @trace_span
    async def publish(self, event: WorkflowEvent) -> None:
        try:
            task = asyncio.create_task(self._dispatch(event))
        except Exception as e:
            logger.error(f"Could not schedule dispatch for document {event.document.id}: {e}")
            return
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _dispatch(self, event: WorkflowEvent) -> None:
        try:
            await self.dispatcher.dispatch(event)
        except Exception as e:
            logger.error(
                f"Background dispatch for document {event.document.id} failed: {e}",
                exc_info=True,
            )

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class QueueEventPublisher(EventPublisherInterface):
    """Publishes events to the notification dispatch queue for the worker."""

    def __init__(self, message_queue: Optional[MessageQueueInterface] = None):
        self.message_queue = message_queue or get_message_queue()

    @trace_span
    async def publish(self, event: WorkflowEvent) -> None:
        message = NotificationDispatchMessage(event=event.model_dump(mode="json"))
        try:
            published = await self.message_queue.publish(
                QueueName.NOTIFICATION_DISPATCH, message.model_dump()
            )
        except Exception as e:
            logger.error(
                f"Failed to queue notification for document {event.document.id}: {e}"
            )
            return
        if not published:
            logger.error(
                f"Notification for document {event.document.id} was not queued"
            )


# Global instance
_event_publisher: Optional[EventPublisherInterface] = None


def get_event_publisher() -> EventPublisherInterface:
    """Get the publisher for the configured dispatch mode."""
    global _event_publisher

    if _event_publisher is None:
        if settings.dispatch_mode == DispatchMode.QUEUE:
            _event_publisher = QueueEventPublisher()
            logger.info("Workflow events are dispatched through the queue")
        else:
            _event_publisher = InlineEventPublisher()
            logger.info("Workflow events are dispatched in-process")

    return _event_publisher
