import enum
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Column, Integer, Numeric, String, Text, DateTime, ForeignKey, CheckConstraint, Index, event
)
from sqlalchemy.orm import relationship
from app.db.database import Base
from app.errors import PersistenceError


# Largest values the quantity (Integer) and unit_price (Numeric(10, 2)) columns hold
MAX_QUANTITY = 2**31 - 1
MAX_UNIT_PRICE = Decimal("99999999.99")
PRICE_DECIMAL_PLACES = 2


class MovementType(str, enum.Enum):
    STOCK_IN = "STOCK_IN"
    SALE = "SALE"
    MANUAL_REMOVAL = "MANUAL_REMOVAL"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StockMovement(Base):
    """One immutable ledger entry.

    The ledger is the single source of truth for inventory. Rows are only
    ever inserted; current stock is folded from them on read.
    """
    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False)
    movement_type = Column(String(20), nullable=False)
    quantity = Column(Integer, nullable=False)
    # Price at the time of the movement, independent of the current catalog price
    unit_price = Column(Numeric(10, 2), nullable=False)
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    product = relationship("Product", lazy="joined")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="positive_quantity"),
        CheckConstraint(
            "movement_type IN ('STOCK_IN', 'SALE', 'MANUAL_REMOVAL')",
            name="movement_type_valid"
        ),
        Index("idx_stock_movements_store_product", "store_id", "product_id"),
        Index("idx_stock_movements_created_at", "created_at"),
    )


@event.listens_for(StockMovement, "before_update")
def _reject_update(mapper, connection, target):
    raise PersistenceError(f"Stock movement {target.id} is immutable and cannot be updated")


@event.listens_for(StockMovement, "before_delete")
def _reject_delete(mapper, connection, target):
    raise PersistenceError(f"Stock movement {target.id} is immutable and cannot be deleted")
