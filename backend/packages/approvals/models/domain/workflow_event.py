from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field

from packages.approvals.models.domain.document import Document
from packages.approvals.models.domain.enums import ApprovalStage, Role, TransitionKind


class WorkflowEvent(BaseModel):
    """A committed transition, handed to notification dispatch.

    Not persisted; serialised to JSON only when it travels through the queue.
    """

    document: Document
    transition: TransitionKind
    actor_name: str
    # Roles to notify next; empty once nobody has to act
    target_roles: List[Role] = Field(default_factory=list)
    # Individual users told regardless of role, e.g. the requester of a rejection
    notify_owner_ids: List[str] = Field(default_factory=list)
    previous_stage: Optional[ApprovalStage] = None
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
