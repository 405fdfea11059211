from typing import List

from pydantic import BaseModel

from packages.approvals.models.domain.document import LineItem


class DeliveredItem(BaseModel):
    """Actual figures recorded by the warehouse for one line item."""

    item_id: str
    delivered_quantity: float
    delivered_weight: float


class ReconciliationLine(BaseModel):
    item_id: str
    name: str
    requested_quantity: float
    delivered_quantity: float
    quantity_variance: float
    requested_weight: float
    delivered_weight: float
    weight_variance: float


class ReconciliationResult(BaseModel):
    """Requested vs delivered comparison. Variances are informational only."""

    line_items: List[LineItem]
    lines: List[ReconciliationLine]
    total_requested_quantity: float
    total_delivered_quantity: float
    total_requested_weight: float
    total_delivered_weight: float

    @property
    def total_quantity_variance(self) -> float:
        return self.total_delivered_quantity - self.total_requested_quantity

    @property
    def total_weight_variance(self) -> float:
        return self.total_delivered_weight - self.total_requested_weight
