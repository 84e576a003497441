from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
import logging

from sqlalchemy import select, text
from sqlalchemy.orm import Session

from app.errors import NotFoundError, ValidationError
from app.models.product import Product
from app.models.stock_movement import MAX_QUANTITY, MovementType, StockMovement
from app.models.store import Store

logger = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # Naive datetimes are taken to be UTC, matching how created_at is written
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class MovementFilter:
    product_id: Optional[int] = None
    store_id: Optional[int] = None
    movement_type: Optional[MovementType] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class LedgerStore:
    """Append-only access to the stock_movements table.

    Works inside the caller's session and transaction: ``append`` flushes but
    never commits, so the mutation service decides the unit of work.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: int) -> Product:
        product = self.db.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product not found")
        return product

    def get_store(self, store_id: int) -> Store:
        store = self.db.get(Store, store_id)
        if store is None:
            raise NotFoundError("Store not found")
        return store

    def append(
        self,
        product_id: int,
        store_id: int,
        movement_type: MovementType,
        quantity: int,
        unit_price: Decimal,
        notes: Optional[str] = None,
    ) -> StockMovement:
        """Insert one immutable movement and return it with its id assigned"""
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError("Quantity must be an integer")
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than zero")
        if quantity > MAX_QUANTITY:
            raise ValidationError(f"Quantity must not exceed {MAX_QUANTITY}")
        try:
            movement_type = MovementType(movement_type)
        except ValueError:
            raise ValidationError(f"Unknown movement type: {movement_type}")
        if unit_price is None or Decimal(str(unit_price)) < 0:
            raise ValidationError("Unit price must be zero or greater")

        self.get_product(product_id)
        self.get_store(store_id)

        movement = StockMovement(
            product_id=product_id,
            store_id=store_id,
            movement_type=movement_type.value,
            quantity=quantity,
            unit_price=Decimal(str(unit_price)),
            notes=notes,
        )
        self.db.add(movement)
        self.db.flush()
        logger.debug(
            f"Appended {movement_type.value} movement {movement.id}: "
            f"store={store_id} product={product_id} quantity={quantity}"
        )
        return movement

    def lock_aggregate(self, store_id: int, product_id: int) -> None:
        """Take the transaction-scoped database lock for a (store, product) pair.

        PostgreSQL releases the advisory lock on commit or rollback. Other
        backends have no equivalent; there the in-process lock is the only guard.
        """
        if self.db.get_bind().dialect.name == "postgresql":
            self.db.execute(
                text("SELECT pg_advisory_xact_lock(:store_id, :product_id)"),
                {"store_id": store_id, "product_id": product_id},
            )

    def query_movements(self, filters: Optional[MovementFilter] = None, limit: Optional[int] = None) -> List[StockMovement]:
        """Read movements newest first, optionally filtered"""
        filters = filters or MovementFilter()
        start_date = _as_utc(filters.start_date)
        end_date = _as_utc(filters.end_date)
        if start_date and end_date and start_date > end_date:
            raise ValidationError("start_date must not be after end_date")

        stmt = select(StockMovement)
        if filters.product_id is not None:
            stmt = stmt.where(StockMovement.product_id == filters.product_id)
        if filters.store_id is not None:
            stmt = stmt.where(StockMovement.store_id == filters.store_id)
        if filters.movement_type is not None:
            stmt = stmt.where(StockMovement.movement_type == MovementType(filters.movement_type).value)
        if start_date is not None:
            stmt = stmt.where(StockMovement.created_at >= start_date)
        if end_date is not None:
            stmt = stmt.where(StockMovement.created_at <= end_date)

        stmt = stmt.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        if limit is not None:
            if limit <= 0:
                raise ValidationError("Limit must be greater than zero")
            stmt = stmt.limit(limit)
        return list(self.db.scalars(stmt).all())
