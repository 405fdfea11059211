from typing import Dict, List, Optional

from common.core.exceptions import ValidationError
from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.approvals.models.domain.document import LineItem
from packages.approvals.models.domain.reconciliation import (
    DeliveredItem,
    ReconciliationLine,
    ReconciliationResult,
)

logger = get_logger(__name__)


class ReconciliationService:
    """Records delivered figures against the requested ones.

    Partial and over-delivery are both legitimate outcomes; the variances are
    reported for audit and never block the document.
    """

    @trace_span
    def reconcile(
        self,
        line_items: List[LineItem],
        delivered_items: Optional[List[DeliveredItem]] = None,
    ) -> ReconciliationResult:
        """
        Apply delivered figures to line items.

        Items without a submitted figure keep their current figures, which are
        the requested ones unless already reconciled.

        Raises:
            ValidationError: empty item name, unknown or duplicate item id,
                or a negative figure
        """
        for item in line_items:
            if not item.name or not item.name.strip():
                raise ValidationError("Every line item needs a name")

        known_ids = {item.id for item in line_items}
        delivered_by_id: Dict[str, DeliveredItem] = {}
        for delivered in delivered_items or []:
            if delivered.item_id not in known_ids:
                raise ValidationError(f"Unknown line item: {delivered.item_id}")
            if delivered.item_id in delivered_by_id:
                raise ValidationError(
                    f"Line item {delivered.item_id} was reported more than once"
                )
            if delivered.delivered_quantity < 0 or delivered.delivered_weight < 0:
                raise ValidationError(
                    f"Delivered figures for {delivered.item_id} must not be negative"
                )
            delivered_by_id[delivered.item_id] = delivered

        reconciled = []
        for item in line_items:
            delivered = delivered_by_id.get(item.id)
            reconciled.append(
                item.model_copy(
                    update={
                        "delivered_quantity": (
                            delivered.delivered_quantity if delivered else item.quantity
                        ),
                        "delivered_weight": (
                            delivered.delivered_weight if delivered else item.weight
                        ),
                    }
                )
            )

        result = self.summarize(reconciled)
        logger.info(
            f"Reconciled {len(reconciled)} line items: quantity variance "
            f"{result.total_quantity_variance}, weight variance {result.total_weight_variance}"
        )
        return result

    def summarize(self, line_items: List[LineItem]) -> ReconciliationResult:
        """Compare current against requested figures without changing anything."""
        lines = [
            ReconciliationLine(
                item_id=item.id,
                name=item.name,
                requested_quantity=item.requested_quantity,
                delivered_quantity=item.quantity,
                quantity_variance=item.quantity - item.requested_quantity,
                requested_weight=item.requested_weight,
                delivered_weight=item.weight,
                weight_variance=item.weight - item.requested_weight,
            )
            for item in line_items
        ]
        return ReconciliationResult(
            line_items=line_items,
            lines=lines,
            total_requested_quantity=sum(line.requested_quantity for line in lines),
            total_delivered_quantity=sum(line.delivered_quantity for line in lines),
            total_requested_weight=sum(line.requested_weight for line in lines),
            total_delivered_weight=sum(line.delivered_weight for line in lines),
        )
