from abc import ABC, abstractmethod
from typing import List, Optional, Set

from common.core.config import BroadcastGroup, settings
from common.core.otel_axiom_exporter import get_logger
from common.providers.notification_channels.models import ChannelType
from packages.approvals.models.domain.enums import Role, TransitionKind
from packages.approvals.models.domain.workflow_event import WorkflowEvent
from packages.notifications.services.subscription_service import SubscriptionRegistry

logger = get_logger(__name__)


class RecipientDirectoryInterface(ABC):
    """Resolves which users hold a role."""

    @abstractmethod
    async def users_with_role(self, role: Role) -> Set[str]:
        """
        Get the ids of every user holding a role.

        Returns:
            Zero, one or many owner ids
        """
        pass


class SubscriptionRecipientDirectory(RecipientDirectoryInterface):
    """Role membership as declared by users when they registered their endpoints."""

    def __init__(self, registry: Optional[SubscriptionRegistry] = None):
        self.registry = registry or SubscriptionRegistry()

    async def users_with_role(self, role: Role) -> Set[str]:
        return {s.owner_id for s in await self.registry.list_by_role(role)}


def broadcast_key(event: WorkflowEvent) -> str:
    """Stage the document reached, or "deleted" for a cancellation."""
    if event.transition == TransitionKind.DELETED:
        return TransitionKind.DELETED.value
    return event.document.stage.value


class BroadcastDirectory:
    """Group chats that follow documents through configured stages."""

    def __init__(self, groups: Optional[List[BroadcastGroup]] = None):
        configured = (
            settings.notification_broadcast_groups if groups is None else groups
        )
        self.groups: List[BroadcastGroup] = []
        for group in configured:
            try:
                ChannelType(group.channel)
            except ValueError:
                logger.error(
                    f"Broadcast group {group.name} uses unknown channel {group.channel}; ignored"
                )
                continue
            self.groups.append(group)

    def groups_for(self, event: WorkflowEvent) -> List[BroadcastGroup]:
        key = broadcast_key(event)
        document_type = event.document.document_type.value
        return [
            group
            for group in self.groups
            if key in group.stages
            and (not group.document_types or document_type in group.document_types)
        ]
