import enum
from dataclasses import dataclass, field
from typing import List

from sqlalchemy.orm import Session

from app.errors import ValidationError
from app.services.inventory_projector import InventoryLine, InventoryProjector

DEFAULT_LOW_STOCK_THRESHOLD = 10


class StockStatus(str, enum.Enum):
    OUT_OF_STOCK = "OUT_OF_STOCK"
    LOW_STOCK = "LOW_STOCK"
    NORMAL = "NORMAL"


def classify(quantity: int, threshold: int = DEFAULT_LOW_STOCK_THRESHOLD) -> StockStatus:
    if quantity <= 0:
        return StockStatus.OUT_OF_STOCK
    if quantity <= threshold:
        return StockStatus.LOW_STOCK
    return StockStatus.NORMAL


@dataclass
class AlertReport:
    threshold: int
    out_of_stock: List[InventoryLine] = field(default_factory=list)
    low_stock: List[InventoryLine] = field(default_factory=list)


def _alert_order(line: InventoryLine):
    return (line.quantity, line.product.category or "", line.product.name)


class AlertClassifier:
    """Partitions a store's projected inventory by stock status"""

    def __init__(self, db: Session):
        self.projector = InventoryProjector(db)

    def alerts_for_store(self, store_id: int, threshold: int = DEFAULT_LOW_STOCK_THRESHOLD) -> AlertReport:
        if threshold < 0:
            raise ValidationError("Threshold must be zero or greater")

        report = AlertReport(threshold=threshold)
        for line in sorted(self.projector.current_inventory(store_id), key=_alert_order):
            status = classify(line.quantity, threshold)
            if status == StockStatus.OUT_OF_STOCK:
                report.out_of_stock.append(line)
            elif status == StockStatus.LOW_STOCK:
                report.low_stock.append(line)
        return report
