from typing import Any, List, Optional

from common.core.config import settings
from common.core.exceptions import ChannelDeliveryError
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.providers.kv_store.factory import get_kv_store
from common.providers.messaging.constants import QueueName
from common.providers.messaging.messages import NotificationDispatchMessage
from common.workers.base_worker import BaseWorker
from packages.approvals.models.domain.workflow_event import WorkflowEvent
from packages.notifications.models.domain.dispatch_report import (
    DeliveryOutcome,
    DispatchReport,
)
from packages.notifications.services.dispatch_service import (
    NotificationDispatcher,
    get_notification_dispatcher,
)

logger = get_logger(__name__)


class NotificationDispatchWorker(BaseWorker[NotificationDispatchMessage]):
    """Runs notification dispatch for queued workflow events.

    A report with transient failures fails the message, so the broker delivers
    it once more and then dead-letters it. Endpoints that already received the
    first attempt get a duplicate, which is acceptable; a lost notification is not.
    """

    def __init__(self, dispatcher: Optional[NotificationDispatcher] = None):
        super().__init__(
            QueueName.NOTIFICATION_DISPATCH,
            None,
            NotificationDispatchMessage,
            max_concurrent_messages=settings.dispatch_worker_prefetch_count,
        )
        self.dispatcher = dispatcher or get_notification_dispatcher()

    def connected_providers(self) -> List[Any]:
        return [get_kv_store()]

    @trace_span
    async def process_message(self, message: NotificationDispatchMessage) -> DispatchReport:
        event = WorkflowEvent.model_validate(message.event)
        report = await self.dispatcher.dispatch(event)

        if report.has_transient_failures:
            failed = [
                f"{a.owner_id}/{a.channel.value}: {a.error}"
                for a in report.attempts
                if a.outcome in (DeliveryOutcome.FAILED, DeliveryOutcome.TIMED_OUT)
            ]
            raise ChannelDeliveryError(
                f"Dispatch for document {event.document.id} incomplete: "
                f"{report.error or '; '.join(failed)}"
            )
        return report
