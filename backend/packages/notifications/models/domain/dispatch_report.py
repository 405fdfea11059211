from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from common.providers.notification_channels.models import ChannelType
from packages.approvals.models.domain.enums import Role, TransitionKind


class DeliveryOutcome(str, Enum):
    DELIVERED = "delivered"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    ENDPOINT_INVALID = "endpoint_invalid"


class DeliveryAttempt(BaseModel):
    # User id, or the group name for broadcasts
    owner_id: str
    channel: ChannelType
    outcome: DeliveryOutcome
    error: Optional[str] = None
    broadcast: bool = False


class DispatchReport(BaseModel):
    """Per-channel outcome of dispatching one workflow event."""

    document_id: str
    sequence_number: int
    transition: TransitionKind
    target_roles: List[Role] = Field(default_factory=list)
    recipients: List[str] = Field(default_factory=list)
    attempts: List[DeliveryAttempt] = Field(default_factory=list)
    artifact_rendered: bool = False
    artifact_error: Optional[str] = None
    # Set when recipients could not be resolved at all
    error: Optional[str] = None

    @property
    def delivered_count(self) -> int:
        return sum(1 for a in self.attempts if a.outcome == DeliveryOutcome.DELIVERED)

    @property
    def failed_count(self) -> int:
        return len(self.attempts) - self.delivered_count

    @property
    def has_transient_failures(self) -> bool:
        """Failures worth redelivering; dead endpoints are already removed."""
        return self.error is not None or any(
            a.outcome in (DeliveryOutcome.FAILED, DeliveryOutcome.TIMED_OUT)
            for a in self.attempts
        )
