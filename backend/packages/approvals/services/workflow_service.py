from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Callable, Iterable, List, Optional
from uuid import uuid4

from common.core.exceptions import NotFoundError, StageMismatchError, ValidationError
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.providers.locking.factory import get_lock_provider
from common.providers.locking.interface import (
    DistributedLockInterface,
    LockNotAcquiredError,
)
from packages.approvals.lock_keys import (
    DOCUMENT_LOCK_ACQUIRE_TIMEOUT,
    DOCUMENT_LOCK_TTL,
    document_lock_key,
)
from packages.approvals.models.domain.document import (
    ApprovalEntry,
    Document,
    DocumentPatch,
    DocumentSubmission,
    LineItem,
    Rejection,
)
from packages.approvals.models.domain.enums import (
    ApprovalStage,
    DocumentType,
    Role,
    TransitionKind,
)
from packages.approvals.models.domain.reconciliation import DeliveredItem
from packages.approvals.models.domain.stage_chain import (
    DELETE_ROLES,
    StageChain,
    StageDefinition,
    get_stage_chain,
)
from packages.approvals.models.domain.workflow_event import WorkflowEvent
from packages.approvals.repositories.document_repository import DocumentRepository
from packages.approvals.repositories.sequence_repository import SequenceRepository
from packages.approvals.services.reconciliation_service import ReconciliationService
from packages.notifications.services.event_publisher import (
    EventPublisherInterface,
    get_event_publisher,
)

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ApprovalWorkflowService:
    """State machine moving documents through their approval chain.

    Every mutating transition runs read-validate-write under a per-document
    lock and saves with a version check. The workflow event is published only
    after the save succeeded, and publishing cannot fail the transition.
    """

    def __init__(
        self,
        document_repo: Optional[DocumentRepository] = None,
        sequence_repo: Optional[SequenceRepository] = None,
        lock_provider: Optional[DistributedLockInterface] = None,
        event_publisher: Optional[EventPublisherInterface] = None,
        reconciliation_service: Optional[ReconciliationService] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.document_repo = document_repo or DocumentRepository()
        self.sequence_repo = sequence_repo or SequenceRepository()
        self.lock_provider = lock_provider or get_lock_provider()
        self.event_publisher = event_publisher or get_event_publisher()
        self.reconciliation_service = reconciliation_service or ReconciliationService()
        self.clock = clock

    # Read paths

    @trace_span
    async def get_document(self, document_id: str) -> Document:
        document = await self.document_repo.get(document_id)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found")
        return document

    @trace_span
    async def list_documents(
        self, document_type: Optional[DocumentType] = None
    ) -> List[Document]:
        return await self.document_repo.list(document_type)

    # Transitions

    @trace_span
    async def submit(self, submission: DocumentSubmission) -> Document:
        """
        Create a document at the first stage of its chain.

        Raises:
            ValidationError: missing recipient, no line items, or an unnamed item
        """
        line_items = [item.to_line_item() for item in submission.line_items]
        self._validate_content(submission.recipient, line_items)
        if not submission.company or not submission.company.strip():
            raise ValidationError("Company is required")

        chain = get_stage_chain(submission.document_type)
        sequence_number = await self.sequence_repo.next_sequence_number(
            submission.document_type, submission.company
        )
        now = self.clock()
        document = Document(
            id=str(uuid4()),
            document_type=submission.document_type,
            company=submission.company,
            sequence_number=sequence_number,
            stage=chain.first_stage,
            requester=submission.requester,
            requester_id=submission.requester_id,
            recipient=submission.recipient,
            line_items=line_items,
            destinations=submission.destinations,
            details=submission.details,
            created_at=now,
            updated_at=now,
        )
        document = await self.document_repo.create(document)

        logger.info(
            f"Submitted {document.document_type.value} #{document.sequence_number} "
            f"({document.id}) for {document.company}"
        )
        await self._publish(
            document,
            TransitionKind.SUBMITTED,
            actor_name=submission.requester,
            target_roles=chain.notify_roles_for(chain.first_stage),
        )
        return document

    @trace_span
    async def advance(
        self, document_id: str, acting_role: Role, approver_name: str
    ) -> Document:
        """
        Approve the current stage and move to the next one.

        At the reconciliation stage the full requested figures are recorded as
        delivered; use finalize to record actual figures.

        Raises:
            NotFoundError: unknown document
            StageMismatchError: acting_role may not act at the current stage,
                the document is terminal or rejected, or a concurrent
                transition won
        """
        async with self._document_lock(document_id):
            document = await self.get_document(document_id)
            chain = get_stage_chain(document.document_type)
            self._require_actor(chain, document, acting_role)

            line_items = document.line_items
            if document.stage == chain.reconciliation_stage:
                line_items = self.reconciliation_service.reconcile(line_items).line_items

            updated = self._approve(
                chain, document, acting_role, approver_name, line_items
            )
            saved = await self._save(updated, document)

        logger.info(
            f"Document {document_id} advanced {document.stage.value} -> {saved.stage.value} "
            f"by {approver_name} ({acting_role.value})"
        )
        await self._publish(
            saved,
            TransitionKind.ADVANCED,
            actor_name=approver_name,
            target_roles=chain.notify_roles_for(saved.stage),
            previous_stage=document.stage,
        )
        return saved

    @trace_span
    async def finalize(
        self,
        document_id: str,
        acting_role: Role,
        approver_name: str,
        delivered_items: List[DeliveredItem],
    ) -> Document:
        """
        Record delivered figures at the reconciliation stage, then advance.

        Raises:
            NotFoundError: unknown document
            StageMismatchError: the document is not at its chain's reconciliation
                stage, or acting_role may not act there
            ValidationError: unknown item ids or negative figures
        """
        async with self._document_lock(document_id):
            document = await self.get_document(document_id)
            chain = get_stage_chain(document.document_type)
            if chain.reconciliation_stage is None:
                raise StageMismatchError(
                    f"{document.document_type.value} documents have no reconciliation stage"
                )
            if document.stage != chain.reconciliation_stage:
                logger.warning(
                    f"Finalize rejected for document {document_id} at {document.stage.value}"
                )
                raise StageMismatchError(
                    f"Document {document_id} is at {document.stage.value}, "
                    f"not {chain.reconciliation_stage.value}"
                )
            self._require_actor(chain, document, acting_role)

            result = self.reconciliation_service.reconcile(
                document.line_items, delivered_items
            )
            updated = self._approve(
                chain, document, acting_role, approver_name, result.line_items
            )
            saved = await self._save(updated, document)

        logger.info(
            f"Document {document_id} finalized by {approver_name}: delivered "
            f"{result.total_delivered_quantity} of {result.total_requested_quantity} requested"
        )
        await self._publish(
            saved,
            TransitionKind.FINALIZED,
            actor_name=approver_name,
            target_roles=chain.notify_roles_for(saved.stage),
            previous_stage=document.stage,
        )
        return saved

    @trace_span
    async def reject(
        self, document_id: str, acting_role: Role, rejected_by: str, reason: str
    ) -> Document:
        """
        Move a pending document to rejected. Earlier approvals are kept; only
        edit brings a rejected document back into the chain.

        Raises:
            NotFoundError: unknown document
            StageMismatchError: terminal or already rejected, or acting_role may
                not act at the current stage
            ValidationError: empty reason
        """
        if not reason or not reason.strip():
            raise ValidationError("A rejection reason is required")

        async with self._document_lock(document_id):
            document = await self.get_document(document_id)
            chain = get_stage_chain(document.document_type)
            self._require_actor(chain, document, acting_role)

            now = self.clock()
            updated = document.model_copy(
                update={
                    "stage": ApprovalStage.REJECTED,
                    "rejection": Rejection(
                        reason=reason.strip(),
                        rejected_by=rejected_by,
                        stage=document.stage,
                        timestamp=now,
                    ),
                    "updated_at": now,
                }
            )
            saved = await self._save(updated, document)

        logger.info(
            f"Document {document_id} rejected at {document.stage.value} by {rejected_by}"
        )
        await self._publish(
            saved,
            TransitionKind.REJECTED,
            actor_name=rejected_by,
            notify_owner_ids=[saved.requester_id] if saved.requester_id else [],
            previous_stage=document.stage,
        )
        return saved

    @trace_span
    async def edit(
        self, document_id: str, patch: DocumentPatch, editor_name: str
    ) -> Document:
        """
        Apply a patch and send the document back to the first stage.

        Any edit, from any stage, clears every approval: approvers signed off on
        the content that just changed.

        Raises:
            NotFoundError: unknown document
            ValidationError: the patched content fails submission rules
            StageMismatchError: a concurrent transition won
        """
        async with self._document_lock(document_id):
            document = await self.get_document(document_id)
            chain = get_stage_chain(document.document_type)

            changes = patch.model_dump(
                exclude_none=True, exclude={"line_items", "destinations"}
            )
            if patch.line_items is not None:
                changes["line_items"] = [
                    item.to_line_item() for item in patch.line_items
                ]
            if patch.destinations is not None:
                changes["destinations"] = patch.destinations
            patched = document.model_copy(update=changes)
            self._validate_content(patched.recipient, patched.line_items)

            updated = patched.reset_approvals(chain.first_stage, self.clock())
            saved = await self._save(updated, document)

        logger.info(
            f"Document {document_id} edited by {editor_name} at {document.stage.value}; "
            f"approvals reset to {saved.stage.value}"
        )
        await self._publish(
            saved,
            TransitionKind.EDITED,
            actor_name=editor_name,
            target_roles=chain.notify_roles_for(chain.first_stage),
            previous_stage=document.stage,
        )
        return saved

    @trace_span
    async def delete(
        self, document_id: str, acting_role: Role, deleted_by: str
    ) -> Document:
        """
        Remove a document from every stage, terminal ones included.

        The cancellation is broadcast with the document as it was; its sequence
        number is not reused.

        Raises:
            NotFoundError: unknown document
            StageMismatchError: acting_role may not delete documents
        """
        if acting_role not in DELETE_ROLES:
            logger.warning(f"Role {acting_role.value} may not delete document {document_id}")
            raise StageMismatchError(f"Documents cannot be deleted by {acting_role.value}")

        async with self._document_lock(document_id):
            document = await self.get_document(document_id)
            if not await self.document_repo.delete(document):
                raise NotFoundError(f"Document {document_id} not found")

        logger.info(
            f"Document {document_id} deleted at {document.stage.value} by {deleted_by}"
        )
        await self._publish(
            document.model_copy(update={"updated_at": self.clock()}),
            TransitionKind.DELETED,
            actor_name=deleted_by,
            previous_stage=document.stage,
        )
        return document

    # Internals

    @asynccontextmanager
    async def _document_lock(self, document_id: str) -> AsyncGenerator[None, None]:
        try:
            async with self.lock_provider.hold(
                document_lock_key(document_id),
                lock_ttl_seconds=DOCUMENT_LOCK_TTL,
                acquire_timeout_seconds=DOCUMENT_LOCK_ACQUIRE_TIMEOUT,
            ):
                yield
        except LockNotAcquiredError as e:
            logger.warning(
                f"Document {document_id} is locked by a concurrent transition"
            )
            raise StageMismatchError(
                f"Document {document_id} is being changed by another request"
            ) from e

    def _require_actor(
        self, chain: StageChain, document: Document, acting_role: Role
    ) -> StageDefinition:
        definition = chain.definition_for(document.stage)
        if definition is None:
            logger.warning(
                f"Transition on document {document.id} refused: stage is {document.stage.value}"
            )
            if chain.is_terminal(document.stage):
                raise StageMismatchError(
                    f"Document {document.id} has completed its approval chain"
                )
            raise StageMismatchError(
                f"Document {document.id} was rejected; edit it to restart approvals"
            )
        if acting_role not in definition.allowed_roles:
            logger.warning(
                f"Role {acting_role.value} may not act on document {document.id} "
                f"at {document.stage.value}"
            )
            raise StageMismatchError(
                f"Stage {document.stage.value} is not handled by {acting_role.value}"
            )
        return definition

    def _approve(
        self,
        chain: StageChain,
        document: Document,
        acting_role: Role,
        approver_name: str,
        line_items: List[LineItem],
    ) -> Document:
        now = self.clock()
        approvals = dict(document.approvals)
        approvals[document.stage] = ApprovalEntry(
            approver_name=approver_name, approver_role=acting_role, timestamp=now
        )
        return document.model_copy(
            update={
                "stage": chain.next_stage(document.stage),
                "approvals": approvals,
                "line_items": line_items,
                "updated_at": now,
            }
        )

    def _validate_content(self, recipient: Optional[str], line_items: List[LineItem]):
        if not recipient or not recipient.strip():
            raise ValidationError("Recipient is required")
        if not line_items:
            raise ValidationError("At least one line item is required")
        for item in line_items:
            if not item.name or not item.name.strip():
                raise ValidationError("Every line item needs a name")
            if item.requested_quantity < 0 or item.requested_weight < 0:
                raise ValidationError(
                    f"Requested figures for {item.name} must not be negative"
                )

    async def _save(self, updated: Document, original: Document) -> Document:
        saved = await self.document_repo.save(updated, expected_version=original.version)
        if saved is None:
            raise StageMismatchError(
                f"Document {original.id} was changed concurrently; reload and retry"
            )
        return saved

    async def _publish(
        self,
        document: Document,
        transition: TransitionKind,
        actor_name: str,
        target_roles: Iterable[Role] = (),
        notify_owner_ids: Optional[List[str]] = None,
        previous_stage: Optional[ApprovalStage] = None,
    ) -> None:
        event = WorkflowEvent(
            document=document,
            transition=transition,
            actor_name=actor_name,
            target_roles=sorted(target_roles),
            notify_owner_ids=notify_owner_ids or [],
            previous_stage=previous_stage,
            occurred_at=document.updated_at,
        )
        try:
            await self.event_publisher.publish(event)
        except Exception as e:
            logger.error(
                f"Publishing {transition.value} event for document {document.id} failed: {e}",
                exc_info=True,
            )


def get_workflow_service() -> ApprovalWorkflowService:
    return ApprovalWorkflowService()
