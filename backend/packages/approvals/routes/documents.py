from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query

from common.core.http_errors import http_errors
from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.approvals.models.domain.document import (
    Destination,
    DocumentPatch,
    DocumentSubmission,
    LineItemCreateModel,
)
from packages.approvals.models.domain.enums import DocumentType, Role
from packages.approvals.models.domain.reconciliation import DeliveredItem
from packages.approvals.models.schemas.document import (
    AdvanceRequest,
    DocumentEditRequest,
    DocumentResponse,
    DocumentSubmitRequest,
    FinalizeRequest,
    FinalizeResponse,
    ReconciliationResponse,
    RejectRequest,
)
from packages.approvals.services.reconciliation_service import ReconciliationService
from packages.approvals.services.workflow_service import (
    ApprovalWorkflowService,
    get_workflow_service,
)
from packages.auth.dependencies import get_current_user, require_role
from packages.auth.models.domain.authenticated_user import AuthenticatedUser

router = APIRouter()
logger = get_logger(__name__)


@router.post("/documents", response_model=DocumentResponse, status_code=201)
@trace_span
async def submit_document(
    request: DocumentSubmitRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    workflow: ApprovalWorkflowService = Depends(get_workflow_service),
):
    submission = DocumentSubmission(
        document_type=request.document_type,
        company=request.company,
        requester=request.requester or current_user.full_name,
        requester_id=current_user.user_id,
        recipient=request.recipient,
        line_items=[
            LineItemCreateModel(**item.model_dump()) for item in request.line_items
        ],
        destinations=[Destination(**d.model_dump()) for d in request.destinations],
        details=request.details,
    )
    with http_errors():
        document = await workflow.submit(submission)
    return DocumentResponse.model_validate(document)


@router.get("/documents", response_model=List[DocumentResponse])
async def list_documents(
    document_type: Optional[DocumentType] = Query(None, alias="documentType"),
    current_user: AuthenticatedUser = Depends(get_current_user),
    workflow: ApprovalWorkflowService = Depends(get_workflow_service),
):
    documents = await workflow.list_documents(document_type)
    return [DocumentResponse.model_validate(d) for d in documents]


@router.get("/documents/{documentId}", response_model=DocumentResponse)
async def get_document(
    document_id: str = Path(alias="documentId"),
    current_user: AuthenticatedUser = Depends(get_current_user),
    workflow: ApprovalWorkflowService = Depends(get_workflow_service),
):
    with http_errors():
        document = await workflow.get_document(document_id)
    return DocumentResponse.model_validate(document)


@router.post("/documents/{documentId}/advance", response_model=DocumentResponse)
@trace_span
async def advance_document(
    request: AdvanceRequest,
    document_id: str = Path(alias="documentId"),
    current_user: AuthenticatedUser = Depends(get_current_user),
    workflow: ApprovalWorkflowService = Depends(get_workflow_service),
):
    require_role(current_user, request.acting_role)
    with http_errors():
        document = await workflow.advance(
            document_id, request.acting_role, current_user.full_name
        )
    return DocumentResponse.model_validate(document)


@router.post("/documents/{documentId}/reject", response_model=DocumentResponse)
@trace_span
async def reject_document(
    request: RejectRequest,
    document_id: str = Path(alias="documentId"),
    current_user: AuthenticatedUser = Depends(get_current_user),
    workflow: ApprovalWorkflowService = Depends(get_workflow_service),
):
    require_role(current_user, request.acting_role)
    with http_errors():
        document = await workflow.reject(
            document_id, request.acting_role, current_user.full_name, request.reason
        )
    return DocumentResponse.model_validate(document)


@router.put("/documents/{documentId}", response_model=DocumentResponse)
@trace_span
async def edit_document(
    request: DocumentEditRequest,
    document_id: str = Path(alias="documentId"),
    current_user: AuthenticatedUser = Depends(get_current_user),
    workflow: ApprovalWorkflowService = Depends(get_workflow_service),
):
    patch = DocumentPatch(
        requester=request.requester,
        recipient=request.recipient,
        line_items=(
            [LineItemCreateModel(**item.model_dump()) for item in request.line_items]
            if request.line_items is not None
            else None
        ),
        destinations=(
            [Destination(**d.model_dump()) for d in request.destinations]
            if request.destinations is not None
            else None
        ),
        details=request.details,
    )
    with http_errors():
        document = await workflow.edit(document_id, patch, current_user.full_name)
    return DocumentResponse.model_validate(document)


@router.post("/documents/{documentId}/finalize", response_model=FinalizeResponse)
@trace_span
async def finalize_document(
    request: FinalizeRequest,
    document_id: str = Path(alias="documentId"),
    current_user: AuthenticatedUser = Depends(get_current_user),
    workflow: ApprovalWorkflowService = Depends(get_workflow_service),
):
    """Record delivered quantities and weights at the warehouse, then move on."""
    require_role(current_user, request.acting_role)
    delivered_items = [
        DeliveredItem(**item.model_dump()) for item in request.delivered_items
    ]
    with http_errors():
        document = await workflow.finalize(
            document_id, request.acting_role, current_user.full_name, delivered_items
        )
    reconciliation = ReconciliationService().summarize(document.line_items)
    return FinalizeResponse(
        document=DocumentResponse.model_validate(document),
        reconciliation=ReconciliationResponse.model_validate(reconciliation),
    )


@router.delete("/documents/{documentId}", status_code=204)
@trace_span
async def delete_document(
    document_id: str = Path(alias="documentId"),
    acting_role: Role = Query(alias="actingRole"),
    current_user: AuthenticatedUser = Depends(get_current_user),
    workflow: ApprovalWorkflowService = Depends(get_workflow_service),
):
    """Delete a document and broadcast the cancellation."""
    require_role(current_user, acting_role)
    with http_errors():
        await workflow.delete(document_id, acting_role, current_user.full_name)
