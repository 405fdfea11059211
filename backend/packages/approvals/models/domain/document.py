from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from packages.approvals.models.domain.enums import ApprovalStage, DocumentType, Role


class LineItem(BaseModel):
    """One line of goods (or one payment line) on a document.

    requested_* figures are the original ask and never change once submitted;
    delivered_* figures are recorded at reconciliation.
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    name: str
    requested_quantity: float = 0
    requested_weight: float = 0
    delivered_quantity: Optional[float] = None
    delivered_weight: Optional[float] = None

    @property
    def quantity(self) -> float:
        """Current quantity used downstream."""
        if self.delivered_quantity is not None:
            return self.delivered_quantity
        return self.requested_quantity

    @property
    def weight(self) -> float:
        if self.delivered_weight is not None:
            return self.delivered_weight
        return self.requested_weight

    @property
    def is_reconciled(self) -> bool:
        return self.delivered_quantity is not None and self.delivered_weight is not None


class LineItemCreateModel(BaseModel):
    """Line item as supplied on submit/edit; id is kept when editing an existing line."""

    id: Optional[str] = None
    name: str
    requested_quantity: float = 0
    requested_weight: float = 0

    def to_line_item(self) -> LineItem:
        data = self.model_dump(exclude_none=True)
        return LineItem(**data)


class Destination(BaseModel):
    recipient_name: str
    address: Optional[str] = None
    phone: Optional[str] = None


class ApprovalEntry(BaseModel):
    approver_name: str
    approver_role: Role
    timestamp: datetime


class Rejection(BaseModel):
    reason: str
    rejected_by: str
    stage: ApprovalStage
    timestamp: datetime


class Document(BaseModel):
    id: str
    document_type: DocumentType
    company: str
    sequence_number: int
    stage: ApprovalStage
    requester: str
    # User id of the requester, when submitted by an authenticated user
    requester_id: Optional[str] = None
    recipient: str
    line_items: List[LineItem]
    destinations: List[Destination] = Field(default_factory=list)
    # Driver, plate number, payment method and similar free-form details
    details: Dict[str, Any] = Field(default_factory=dict)
    approvals: Dict[ApprovalStage, ApprovalEntry] = Field(default_factory=dict)
    rejection: Optional[Rejection] = None
    created_at: datetime
    updated_at: datetime
    # Store revision; compared on every save
    version: int = 0

    def reset_approvals(self, first_stage: ApprovalStage, now: datetime) -> Document:
        """Return this document back at the start of its chain.

        Stage, approvals, rejection and delivered figures are reset together in
        a single copy; there is no partially reset intermediate state.
        """
        return self.model_copy(
            update={
                "stage": first_stage,
                "approvals": {},
                "rejection": None,
                "line_items": [
                    item.model_copy(
                        update={"delivered_quantity": None, "delivered_weight": None}
                    )
                    for item in self.line_items
                ],
                "updated_at": now,
            }
        )

    def snapshot(self) -> Dict[str, Any]:
        """JSON-compatible copy for events and rendering."""
        return self.model_dump(mode="json")


class DocumentSubmission(BaseModel):
    """Input of submit."""

    document_type: DocumentType
    company: str
    requester: str
    requester_id: Optional[str] = None
    recipient: str
    line_items: List[LineItemCreateModel] = Field(default_factory=list)
    destinations: List[Destination] = Field(default_factory=list)
    details: Dict[str, Any] = Field(default_factory=dict)


class DocumentPatch(BaseModel):
    """Input of edit. Fields left as None are not changed."""

    requester: Optional[str] = None
    recipient: Optional[str] = None
    line_items: Optional[List[LineItemCreateModel]] = None
    destinations: Optional[List[Destination]] = None
    details: Optional[Dict[str, Any]] = None
