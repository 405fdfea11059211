from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from packages.approvals.models.domain.enums import (
    ApprovalStage,
    DocumentType,
    Role,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,  # Allows population by both original name and alias
        from_attributes=True,
    )


# Request schemas
class LineItemInput(CamelModel):
    id: Optional[str] = None
    name: str
    requested_quantity: float = 0
    requested_weight: float = 0


class DestinationSchema(CamelModel):
    recipient_name: str
    address: Optional[str] = None
    phone: Optional[str] = None


class DocumentSubmitRequest(CamelModel):
    document_type: DocumentType
    company: str
    # Defaults to the caller's name
    requester: Optional[str] = None
    recipient: str = ""
    line_items: List[LineItemInput] = Field(default_factory=list)
    destinations: List[DestinationSchema] = Field(default_factory=list)
    details: Dict[str, Any] = Field(default_factory=dict)


class DocumentEditRequest(CamelModel):
    requester: Optional[str] = None
    recipient: Optional[str] = None
    line_items: Optional[List[LineItemInput]] = None
    destinations: Optional[List[DestinationSchema]] = None
    details: Optional[Dict[str, Any]] = None


class AdvanceRequest(CamelModel):
    acting_role: Role


class RejectRequest(CamelModel):
    acting_role: Role
    reason: str


class DeliveredItemInput(CamelModel):
    item_id: str
    delivered_quantity: float
    delivered_weight: float


class FinalizeRequest(CamelModel):
    acting_role: Role
    delivered_items: List[DeliveredItemInput] = Field(default_factory=list)


# Response schemas
class LineItemResponse(CamelModel):
    id: str
    name: str
    requested_quantity: float
    requested_weight: float
    delivered_quantity: Optional[float] = None
    delivered_weight: Optional[float] = None
    quantity: float
    weight: float


class ApprovalEntryResponse(CamelModel):
    approver_name: str
    approver_role: Role
    timestamp: datetime


class RejectionResponse(CamelModel):
    reason: str
    rejected_by: str
    stage: ApprovalStage
    timestamp: datetime


class DocumentResponse(CamelModel):
    id: str
    document_type: DocumentType
    company: str
    sequence_number: int
    stage: ApprovalStage
    requester: str
    requester_id: Optional[str] = None
    recipient: str
    line_items: List[LineItemResponse]
    destinations: List[DestinationSchema]
    details: Dict[str, Any]
    approvals: Dict[ApprovalStage, ApprovalEntryResponse]
    rejection: Optional[RejectionResponse] = None
    created_at: datetime
    updated_at: datetime
    version: int


class ReconciliationLineResponse(CamelModel):
    item_id: str
    name: str
    requested_quantity: float
    delivered_quantity: float
    quantity_variance: float
    requested_weight: float
    delivered_weight: float
    weight_variance: float


class ReconciliationResponse(CamelModel):
    lines: List[ReconciliationLineResponse]
    total_requested_quantity: float
    total_delivered_quantity: float
    total_requested_weight: float
    total_delivered_weight: float
    total_quantity_variance: float
    total_weight_variance: float


class FinalizeResponse(CamelModel):
    document: DocumentResponse
    reconciliation: ReconciliationResponse
