from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.errors import InsufficientStockError, InventoryError, PersistenceError, ValidationError
from app.kafka.producer import event_producer
from app.models.stock_movement import (
    MAX_QUANTITY, MAX_UNIT_PRICE, PRICE_DECIMAL_PLACES, MovementType, StockMovement,
)
from app.models.store import Store
from app.services.alert_classifier import StockStatus, classify
from app.services.inventory_projector import InventoryProjector
from app.services.ledger_store import LedgerStore
from app.services.locks import StockLockRegistry

logger = logging.getLogger(__name__)

# Shared by every request worker in this process
stock_locks = StockLockRegistry(timeout_seconds=settings.stock_lock_timeout_seconds)


@dataclass
class StockMutation:
    movement: StockMovement
    previous_stock: int
    current_stock: int


@dataclass
class StockTransfer:
    removal: StockMovement
    addition: StockMovement
    source_stock: int
    target_stock: int


def _validate_quantity(quantity) -> int:
    if quantity is None:
        raise ValidationError("Quantity is required")
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("Quantity must be an integer")
    if quantity <= 0:
        raise ValidationError("Quantity must be greater than zero")
    if quantity > MAX_QUANTITY:
        raise ValidationError(f"Quantity must not exceed {MAX_QUANTITY}")
    return quantity


def _validate_price(unit_price) -> Optional[Decimal]:
    if unit_price is None:
        return None
    try:
        price = Decimal(str(unit_price))
    except InvalidOperation:
        raise ValidationError("Unit price must be a number")
    if not price.is_finite() or price < 0:
        raise ValidationError("Unit price must be zero or greater")
    if price > MAX_UNIT_PRICE:
        raise ValidationError(f"Unit price must not exceed {MAX_UNIT_PRICE}")
    # The ledger keeps the exact historical price; the column would round extra places
    if price.as_tuple().exponent < -PRICE_DECIMAL_PLACES:
        raise ValidationError(f"Unit price must have at most {PRICE_DECIMAL_PLACES} decimal places")
    return price


class StockService:
    """The only writer to the stock ledger.

    Every mutation holds the (store, product) lock across read, check, append
    and commit, so two concurrent debits can never both pass the stock check
    against the same quantity and each result reports exact before and after
    quantities.
    """

    def __init__(
        self,
        db: Session,
        locks: Optional[StockLockRegistry] = None,
        publisher=None,
        low_stock_threshold: Optional[int] = None,
    ):
        self.db = db
        self.ledger = LedgerStore(db)
        self.projector = InventoryProjector(db)
        self.locks = locks or stock_locks
        self.publisher = publisher or event_producer
        self.low_stock_threshold = (
            settings.low_stock_threshold if low_stock_threshold is None else low_stock_threshold
        )

    def _active_store(self, store_id: int) -> Store:
        store = self.ledger.get_store(store_id)
        if not store.is_active:
            raise ValidationError(f"Store {store_id} is not active")
        return store

    def _load(self, store_id: int, product_id: int):
        if product_id is None:
            raise ValidationError("Product ID is required")
        product = self.ledger.get_product(product_id)
        store = self._active_store(store_id)
        return product, store

    def _commit(self):
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to commit stock movement: {e}", exc_info=True)
            raise PersistenceError("Failed to record stock movement") from e

    def _run(self, operation):
        """Run one unit of work, rolling back on any failure"""
        try:
            return operation()
        except InventoryError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Storage error during stock mutation: {e}", exc_info=True)
            raise PersistenceError("Storage error while recording stock movement") from e

    def add_stock(
        self,
        store_id: int,
        product_id: int,
        quantity: int,
        unit_price=None,
        notes: Optional[str] = None,
    ) -> StockMutation:
        quantity = _validate_quantity(quantity)
        price = _validate_price(unit_price)

        def operation():
            product, _ = self._load(store_id, product_id)
            # Locked like a debit so the reported before/after are exact
            with self.locks.hold(store_id, product_id):
                self.ledger.lock_aggregate(store_id, product_id)
                previous_stock = self.projector.current_quantity(store_id, product_id)
                movement = self.ledger.append(
                    product_id=product.id,
                    store_id=store_id,
                    movement_type=MovementType.STOCK_IN,
                    quantity=quantity,
                    unit_price=price if price is not None else product.unit_price,
                    notes=notes or "Stock addition",
                )
                self._commit()
            return movement, previous_stock

        movement, previous_stock = self._run(operation)
        current_stock = previous_stock + quantity
        logger.info(
            f"Stock added: store={store_id} product={product_id} quantity={quantity} "
            f"current_stock={current_stock}"
        )
        self._publish(
            "publish_stock_added",
            store_id, product_id, quantity, movement.unit_price, current_stock,
        )
        return StockMutation(
            movement=movement,
            previous_stock=previous_stock,
            current_stock=current_stock,
        )

    def record_sale(
        self,
        store_id: int,
        product_id: int,
        quantity: int,
        unit_price=None,
        notes: Optional[str] = None,
    ) -> StockMutation:
        price = _validate_price(unit_price)
        return self._debit(
            store_id, product_id, quantity,
            movement_type=MovementType.SALE,
            unit_price=price,
            notes=notes or "Sale transaction",
        )

    def remove_stock(
        self,
        store_id: int,
        product_id: int,
        quantity: int,
        notes: Optional[str] = None,
    ) -> StockMutation:
        # Removals are not sales: always valued at the catalog price
        return self._debit(
            store_id, product_id, quantity,
            movement_type=MovementType.MANUAL_REMOVAL,
            unit_price=None,
            notes=notes or "Manual stock removal",
        )

    def _debit(
        self,
        store_id: int,
        product_id: int,
        quantity: int,
        movement_type: MovementType,
        unit_price: Optional[Decimal],
        notes: str,
    ) -> StockMutation:
        quantity = _validate_quantity(quantity)

        def operation():
            product, _ = self._load(store_id, product_id)
            with self.locks.hold(store_id, product_id):
                self.ledger.lock_aggregate(store_id, product_id)
                current_stock = self._check_stock(store_id, product_id, quantity)
                movement = self.ledger.append(
                    product_id=product.id,
                    store_id=store_id,
                    movement_type=movement_type,
                    quantity=quantity,
                    unit_price=unit_price if unit_price is not None else product.unit_price,
                    notes=notes,
                )
                self._commit()
            return movement, current_stock

        movement, previous_stock = self._run(operation)
        remaining = previous_stock - quantity
        logger.info(
            f"Stock debited ({movement_type.value}): store={store_id} product={product_id} "
            f"quantity={quantity} remaining={remaining}"
        )
        self._publish(
            "publish_stock_removed",
            store_id, product_id, quantity, movement_type.value, remaining,
        )
        self._evaluate_low_stock(store_id, product_id, remaining)
        return StockMutation(movement=movement, previous_stock=previous_stock, current_stock=remaining)

    def _check_stock(self, store_id: int, product_id: int, quantity: int) -> int:
        current_stock = self.projector.current_quantity(store_id, product_id)
        if current_stock < quantity:
            logger.warning(
                f"Insufficient stock: store={store_id} product={product_id} "
                f"current={current_stock} requested={quantity}"
            )
            raise InsufficientStockError(
                current_stock=current_stock,
                requested=quantity,
                store_id=store_id,
                product_id=product_id,
            )
        return current_stock

    def transfer_stock(
        self,
        source_store_id: int,
        target_store_id: int,
        product_id: int,
        quantity: int,
        notes: Optional[str] = None,
    ) -> StockTransfer:
        """Move stock between stores as one transaction of two movements"""
        if source_store_id is None or target_store_id is None:
            raise ValidationError("Source and target store IDs are required")
        if source_store_id == target_store_id:
            raise ValidationError("Source and target stores must be different")
        quantity = _validate_quantity(quantity)

        def operation():
            product, _ = self._load(source_store_id, product_id)
            self._active_store(target_store_id)
            # Both pairs in store order so opposite transfers cannot deadlock
            first, second = sorted((source_store_id, target_store_id))
            with self.locks.hold(first, product_id), self.locks.hold(second, product_id):
                self.ledger.lock_aggregate(first, product_id)
                self.ledger.lock_aggregate(second, product_id)
                source_before = self._check_stock(source_store_id, product_id, quantity)
                target_before = self.projector.current_quantity(target_store_id, product_id)
                removal = self.ledger.append(
                    product_id=product.id,
                    store_id=source_store_id,
                    movement_type=MovementType.MANUAL_REMOVAL,
                    quantity=quantity,
                    unit_price=product.unit_price,
                    notes=notes or f"Transfer to store {target_store_id}",
                )
                addition = self.ledger.append(
                    product_id=product.id,
                    store_id=target_store_id,
                    movement_type=MovementType.STOCK_IN,
                    quantity=quantity,
                    unit_price=product.unit_price,
                    notes=notes or f"Transfer from store {source_store_id}",
                )
                self._commit()
            return removal, addition, source_before, target_before

        removal, addition, source_before, target_before = self._run(operation)
        source_stock = source_before - quantity
        target_stock = target_before + quantity
        logger.info(
            f"Stock transferred: product={product_id} quantity={quantity} "
            f"from store {source_store_id} ({source_stock} left) to store {target_store_id} ({target_stock})"
        )
        self._publish(
            "publish_stock_removed",
            source_store_id, product_id, quantity, "TRANSFER", source_stock,
        )
        self._publish(
            "publish_stock_added",
            target_store_id, product_id, quantity, addition.unit_price, target_stock,
        )
        self._evaluate_low_stock(source_store_id, product_id, source_stock)
        return StockTransfer(
            removal=removal,
            addition=addition,
            source_stock=source_stock,
            target_stock=target_stock,
        )

    def _evaluate_low_stock(self, store_id: int, product_id: int, current_stock: int):
        status = classify(current_stock, self.low_stock_threshold)
        if status == StockStatus.NORMAL:
            return
        logger.warning(
            f"{status.value}: product {product_id} at store {store_id} has {current_stock} units "
            f"(threshold {self.low_stock_threshold})"
        )
        self._publish(
            "publish_low_stock",
            store_id, product_id, current_stock, self.low_stock_threshold, status.value,
        )

    def _publish(self, method: str, *args):
        try:
            getattr(self.publisher, method)(*args)
        except Exception as e:
            # The movement is already committed; notification is best-effort
            logger.warning(f"Event notification {method} failed after commit: {e}")
