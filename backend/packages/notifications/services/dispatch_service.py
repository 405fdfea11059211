import asyncio
from typing import Dict, Optional, Set

from common.core.config import BroadcastGroup, settings
from common.core.exceptions import ChannelDeliveryError, EndpointInvalidError
from common.core.otel_axiom_exporter import trace_span, get_logger, log_span_event
from common.providers.notification_channels.factory import get_notification_channels
from common.providers.notification_channels.interface import (
    NotificationChannelInterface,
)
from common.providers.notification_channels.models import ChannelMessage, ChannelType
from common.providers.rendering.factory import get_artifact_renderer
from common.providers.rendering.interface import (
    ArtifactRendererInterface,
    RenderedArtifact,
)
from packages.approvals.models.domain.workflow_event import WorkflowEvent
from packages.notifications.models.domain.dispatch_report import (
    DeliveryAttempt,
    DeliveryOutcome,
    DispatchReport,
)
from packages.notifications.models.domain.subscription import Subscription
from packages.notifications.services.caption_service import compose_channel_message
from packages.notifications.services.recipient_directory import (
    BroadcastDirectory,
    RecipientDirectoryInterface,
    SubscriptionRecipientDirectory,
)
from packages.notifications.services.subscription_service import SubscriptionRegistry

logger = get_logger(__name__)


class NotificationDispatcher:
    """Fans a workflow event out to everyone who should hear about it.

    That is every endpoint of every user holding a target role, of any user
    named on the event, and every broadcast group following the stage reached.
    Deliveries are independent of each other: a failing, slow or dead endpoint
    only affects its own entry in the report. dispatch never raises.
    """

    def __init__(
        self,
        registry: Optional[SubscriptionRegistry] = None,
        directory: Optional[RecipientDirectoryInterface] = None,
        channels: Optional[Dict[ChannelType, NotificationChannelInterface]] = None,
        renderer: Optional[ArtifactRendererInterface] = None,
        delivery_timeout_seconds: Optional[float] = None,
        render_timeout_seconds: Optional[float] = None,
        broadcasts: Optional[BroadcastDirectory] = None,
    ):
        self.registry = registry or SubscriptionRegistry()
        self.directory = directory or SubscriptionRecipientDirectory(self.registry)
        self.channels = channels if channels is not None else get_notification_channels()
        self.renderer = renderer
        self.broadcasts = broadcasts or BroadcastDirectory()
        self.delivery_timeout_seconds = (
            delivery_timeout_seconds or settings.channel_delivery_timeout_seconds
        )
        self.render_timeout_seconds = (
            render_timeout_seconds or settings.artifact_render_timeout_seconds
        )

    @trace_span
    async def dispatch(self, event: WorkflowEvent) -> DispatchReport:
        document = event.document
        report = DispatchReport(
            document_id=document.id,
            sequence_number=document.sequence_number,
            transition=event.transition,
            target_roles=event.target_roles,
        )

        try:
            owner_ids: Set[str] = set(event.notify_owner_ids)
            for role in event.target_roles:
                owner_ids |= await self.directory.users_with_role(role)
            report.recipients = sorted(owner_ids)
            subscriptions = (
                await self.registry.list_by_owners(owner_ids) if owner_ids else []
            )
            groups = self.broadcasts.groups_for(event)
            if not subscriptions and not groups:
                logger.info(
                    f"No one to notify for {event.transition.value} of document {document.id}"
                )
                return report

            artifact = await self._render_artifact(event, report)
            message = compose_channel_message(event, artifact)

            report.attempts = list(
                await asyncio.gather(
                    *(self._deliver(subscription, message) for subscription in subscriptions),
                    *(self._broadcast(group, message) for group in groups),
                )
            )
        except Exception as e:
            # Resolution failures (e.g. store unavailable) end up in the log, not the caller
            logger.error(
                f"Dispatch of {event.transition.value} for document {document.id} failed: {e}",
                exc_info=True,
            )
            report.error = str(e) or type(e).__name__
            return report

        self._log_report(report)
        return report

    async def _render_artifact(
        self, event: WorkflowEvent, report: DispatchReport
    ) -> Optional[RenderedArtifact]:
        """Render once per event; on failure every channel falls back to the caption."""
        if self.renderer is None:
            return None
        try:
            artifact = await asyncio.wait_for(
                self.renderer.render(event.document.snapshot()),
                timeout=self.render_timeout_seconds,
            )
        except asyncio.TimeoutError:
            report.artifact_error = (
                f"Rendering timed out after {self.render_timeout_seconds}s"
            )
            logger.warning(f"{report.artifact_error} for document {event.document.id}")
            return None
        except Exception as e:
            report.artifact_error = str(e) or type(e).__name__
            logger.warning(
                f"Rendering document {event.document.id} failed: {report.artifact_error}"
            )
            return None

        report.artifact_rendered = True
        return artifact

    async def _deliver(
        self, subscription: Subscription, message: ChannelMessage
    ) -> DeliveryAttempt:
        attempt = await self._send(
            subscription.owner_id, subscription.channel, subscription.endpoint, message
        )
        if attempt.outcome == DeliveryOutcome.ENDPOINT_INVALID:
            await self._remove_dead_endpoint(subscription)
        return attempt

    async def _broadcast(
        self, group: BroadcastGroup, message: ChannelMessage
    ) -> DeliveryAttempt:
        attempt = await self._send(
            group.name, ChannelType(group.channel), group.endpoint, message
        )
        attempt.broadcast = True
        if attempt.outcome == DeliveryOutcome.ENDPOINT_INVALID:
            # Configured groups are never removed
            logger.error(
                f"Broadcast group {group.name} rejected its {group.channel} endpoint: "
                f"{attempt.error}"
            )
        return attempt

    async def _send(
        self,
        owner_id: str,
        channel_type: ChannelType,
        endpoint: str,
        message: ChannelMessage,
    ) -> DeliveryAttempt:
        attempt = DeliveryAttempt(
            owner_id=owner_id, channel=channel_type, outcome=DeliveryOutcome.DELIVERED
        )

        channel = self.channels.get(channel_type)
        if channel is None:
            attempt.outcome = DeliveryOutcome.FAILED
            attempt.error = f"Channel {channel_type.value} is not configured"
            logger.warning(f"{attempt.error}; skipping {owner_id}")
            return attempt

        try:
            await asyncio.wait_for(
                channel.send(endpoint, message),
                timeout=self.delivery_timeout_seconds,
            )
        except asyncio.TimeoutError:
            attempt.outcome = DeliveryOutcome.TIMED_OUT
            attempt.error = f"No response within {self.delivery_timeout_seconds}s"
            logger.warning(f"{channel_type.value} delivery to {owner_id} timed out")
        except EndpointInvalidError as e:
            attempt.outcome = DeliveryOutcome.ENDPOINT_INVALID
            attempt.error = str(e)
        except ChannelDeliveryError as e:
            attempt.outcome = DeliveryOutcome.FAILED
            attempt.error = str(e)
            logger.warning(f"{channel_type.value} delivery to {owner_id} failed: {e}")
        except Exception as e:
            attempt.outcome = DeliveryOutcome.FAILED
            attempt.error = str(e) or type(e).__name__
            logger.error(
                f"Unexpected error delivering {channel_type.value} to {owner_id}: {e}",
                exc_info=True,
            )
        return attempt

    async def _remove_dead_endpoint(self, subscription: Subscription) -> None:
        try:
            removed = await self.registry.remove_endpoint(
                subscription.owner_id, subscription.channel, subscription.endpoint
            )
        except Exception as e:
            logger.error(
                f"Could not remove dead {subscription.channel.value} endpoint "
                f"of {subscription.owner_id}: {e}"
            )
            return
        if removed:
            logger.info(
                f"Removed invalid {subscription.channel.value} endpoint of {subscription.owner_id}"
            )

    def _log_report(self, report: DispatchReport) -> None:
        log_span_event(
            f"Dispatched {report.transition.value} of document {report.document_id}: "
            f"{report.delivered_count} delivered, {report.failed_count} failed",
            {
                "document_id": report.document_id,
                "sequence_number": report.sequence_number,
                "target_roles": ",".join(role.value for role in report.target_roles),
                "recipients": len(report.recipients),
                "attempts": len(report.attempts),
                "broadcasts": sum(1 for a in report.attempts if a.broadcast),
                "delivered": report.delivered_count,
                "failed": report.failed_count,
                "artifact_rendered": report.artifact_rendered,
            },
        )


def get_notification_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(renderer=get_artifact_renderer())
