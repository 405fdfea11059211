"""Text composed for workflow notifications."""

from typing import Dict, Optional, Tuple

from common.providers.notification_channels.models import ChannelMessage
from common.providers.rendering.interface import RenderedArtifact
from packages.approvals.models.domain.document import LineItem
from packages.approvals.models.domain.enums import (
    ApprovalStage,
    DocumentType,
    TransitionKind,
)
from packages.approvals.models.domain.workflow_event import WorkflowEvent

DOCUMENT_LABELS: Dict[DocumentType, str] = {
    DocumentType.EXIT_PERMIT: "Exit permit",
    DocumentType.PAYMENT_ORDER: "Payment order",
}

# Titles for approvals, keyed by the stage the document just left
_ADVANCE_TITLES: Dict[Tuple[DocumentType, ApprovalStage], str] = {
    (DocumentType.EXIT_PERMIT, ApprovalStage.PENDING_CEO): (
        "Approved by CEO, awaiting factory manager"
    ),
    (DocumentType.EXIT_PERMIT, ApprovalStage.PENDING_FACTORY): (
        "Approved by factory manager, awaiting warehouse"
    ),
    (DocumentType.EXIT_PERMIT, ApprovalStage.PENDING_WAREHOUSE): (
        "Weighed at warehouse, awaiting security"
    ),
    (DocumentType.EXIT_PERMIT, ApprovalStage.PENDING_SECURITY): "Goods have exited",
    (DocumentType.PAYMENT_ORDER, ApprovalStage.PENDING_FINANCE): (
        "Approved by finance, awaiting manager"
    ),
    (DocumentType.PAYMENT_ORDER, ApprovalStage.PENDING_MANAGER): (
        "Approved by manager, awaiting CEO"
    ),
    (DocumentType.PAYMENT_ORDER, ApprovalStage.PENDING_CEO): "Payment order approved",
}

# Goods lines listed in a caption before it is summarised as "and N more"
MAX_CAPTION_ITEMS = 10


def compose_title(event: WorkflowEvent) -> str:
    document = event.document
    label = DOCUMENT_LABELS[document.document_type]

    if event.transition == TransitionKind.SUBMITTED:
        return f"New {label.lower()} request"
    if event.transition == TransitionKind.EDITED:
        return f"{label} corrected, approval restarted"
    if event.transition == TransitionKind.REJECTED:
        return f"{label} rejected"
    if event.transition == TransitionKind.DELETED:
        return f"{label} cancelled and deleted"

    title: Optional[str] = None
    if event.previous_stage is not None:
        title = _ADVANCE_TITLES.get((document.document_type, event.previous_stage))
    return title or f"{label} approved"


def _item_line(item: LineItem) -> str:
    line = f"- {item.name}: {item.quantity:g} ({item.weight:g} kg)"
    if item.is_reconciled and (
        item.quantity != item.requested_quantity or item.weight != item.requested_weight
    ):
        line += f", requested {item.requested_quantity:g} ({item.requested_weight:g} kg)"
    return line


def compose_caption(event: WorkflowEvent) -> str:
    """Full caption: title, number, recipient, goods and time."""
    document = event.document
    lines = [
        compose_title(event),
        f"Number: {document.sequence_number}",
        f"Recipient: {document.recipient}",
    ]

    items = [_item_line(item) for item in document.line_items[:MAX_CAPTION_ITEMS]]
    hidden = len(document.line_items) - MAX_CAPTION_ITEMS
    if hidden > 0:
        items.append(f"- and {hidden} more")
    if items:
        lines.append("Goods:")
        lines.extend(items)

    if event.transition == TransitionKind.REJECTED and document.rejection:
        lines.append(f"Reason: {document.rejection.reason}")

    lines.append(f"By: {event.actor_name}")
    lines.append(f"Time: {event.occurred_at.strftime('%Y-%m-%d %H:%M')}")
    return "\n".join(lines)


def compose_channel_message(
    event: WorkflowEvent, attachment: Optional[RenderedArtifact] = None
) -> ChannelMessage:
    document = event.document
    return ChannelMessage(
        title=compose_title(event),
        body=f"No. {document.sequence_number} for {document.recipient}",
        caption=compose_caption(event),
        url=f"/documents/{document.id}",
        attachment=attachment,
        data={
            "document_id": document.id,
            "document_type": document.document_type.value,
            "transition": event.transition.value,
            "stage": document.stage.value,
        },
    )
