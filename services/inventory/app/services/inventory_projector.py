"""Folds the stock ledger into current quantities and values.

Nothing here is persisted: every call recomputes from stock_movements, so the
ledger stays the only source of truth. Values are kept as full-precision
Decimals; rounding to cents is left to the response schemas.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import and_, case, func, select
from sqlalchemy.orm import Session

from app.errors import ValidationError
from app.models.product import Product
from app.models.stock_movement import MovementType, StockMovement


def signed_quantity():
    """SQL expression: +quantity for stock-in, -quantity for sales and removals"""
    return case(
        (StockMovement.movement_type == MovementType.STOCK_IN.value, StockMovement.quantity),
        else_=-StockMovement.quantity,
    )


@dataclass
class InventoryLine:
    product: Product
    quantity: int
    value: Decimal


@dataclass
class CategoryValue:
    category: Optional[str]
    product_count: int = 0
    total_units: int = 0
    value: Decimal = Decimal("0")


@dataclass
class InventorySummary:
    total_products: int = 0
    total_units: int = 0
    total_value: Decimal = Decimal("0")
    by_category: List[CategoryValue] = field(default_factory=list)


class InventoryProjector:
    def __init__(self, db: Session):
        self.db = db

    def current_quantity(self, store_id: int, product_id: int) -> int:
        stmt = select(func.coalesce(func.sum(signed_quantity()), 0)).where(
            StockMovement.store_id == store_id,
            StockMovement.product_id == product_id,
        )
        return int(self.db.execute(stmt).scalar_one())

    def current_inventory(
        self,
        store_id: int,
        category: Optional[str] = None,
        min_stock: Optional[int] = None,
        max_stock: Optional[int] = None,
    ) -> List[InventoryLine]:
        """Every catalog product with its quantity and value at one store.

        Products never stocked at the store come back with quantity 0.
        """
        if min_stock is not None and max_stock is not None and min_stock > max_stock:
            raise ValidationError("min_stock must not be greater than max_stock")

        quantity = func.coalesce(func.sum(signed_quantity()), 0)
        stmt = (
            select(Product, quantity.label("current_quantity"))
            .outerjoin(
                StockMovement,
                and_(StockMovement.product_id == Product.id, StockMovement.store_id == store_id),
            )
            .group_by(Product.id)
            .order_by(Product.category, Product.name, Product.id)
        )
        if category:
            stmt = stmt.where(Product.category == category)
        if min_stock is not None:
            stmt = stmt.having(quantity >= min_stock)
        if max_stock is not None:
            stmt = stmt.having(quantity <= max_stock)

        lines = []
        for product, current_quantity in self.db.execute(stmt).all():
            current_quantity = int(current_quantity)
            lines.append(InventoryLine(
                product=product,
                quantity=current_quantity,
                value=current_quantity * Decimal(product.unit_price),
            ))
        return lines


def inventory_summary(lines: List[InventoryLine]) -> InventorySummary:
    """Totals and per-category breakdown over the lines that hold stock"""
    summary = InventorySummary()
    categories: Dict[Optional[str], CategoryValue] = defaultdict(lambda: CategoryValue(category=None))

    for line in lines:
        if line.quantity <= 0:
            continue
        summary.total_products += 1
        summary.total_units += line.quantity
        summary.total_value += line.value

        bucket = categories[line.product.category]
        bucket.category = line.product.category
        bucket.product_count += 1
        bucket.total_units += line.quantity
        bucket.value += line.value

    summary.by_category = sorted(
        categories.values(),
        key=lambda c: (-c.value, c.category or ""),
    )
    return summary
