import threading
from decimal import Decimal

import pytest

from app.errors import InsufficientStockError, NotFoundError, ValidationError
from app.models import MovementType, StockMovement, Store
from app.services.inventory_projector import InventoryProjector
from app.services.stock_service import StockService


def movement_count(db):
    return db.query(StockMovement).count()


def test_add_stock_defaults_to_catalog_price(service, store, product, publisher):
    result = service.add_stock(store.id, product.id, 25)

    assert result.movement.movement_type == MovementType.STOCK_IN.value
    assert result.movement.unit_price == Decimal("19.99")
    assert result.movement.notes == "Stock addition"
    assert result.previous_stock == 0
    assert result.current_stock == 25
    assert publisher.types() == ["STOCK_ADDED"]


def test_add_stock_with_explicit_price_and_notes(service, store, product):
    result = service.add_stock(store.id, product.id, 5, unit_price="12.5", notes="Supplier delivery")

    assert result.movement.unit_price == Decimal("12.50")
    assert result.movement.notes == "Supplier delivery"


@pytest.mark.parametrize("quantity", [0, -1, None, 1.5, 2**31, 2**63])
def test_add_stock_rejects_bad_quantity(service, db, store, product, quantity):
    with pytest.raises(ValidationError):
        service.add_stock(store.id, product.id, quantity)
    assert movement_count(db) == 0


def test_add_stock_rejects_negative_price(service, db, store, product):
    with pytest.raises(ValidationError):
        service.add_stock(store.id, product.id, 1, unit_price="-1")
    assert movement_count(db) == 0


@pytest.mark.parametrize("unit_price", ["100000000", "1.234", "NaN"])
def test_add_stock_rejects_price_the_column_cannot_hold(service, db, store, product, unit_price):
    with pytest.raises(ValidationError):
        service.add_stock(store.id, product.id, 1, unit_price=unit_price)
    assert movement_count(db) == 0


def test_sale_rejects_quantity_beyond_column_range(service, db, store, product):
    service.add_stock(store.id, product.id, 5)
    with pytest.raises(ValidationError):
        service.record_sale(store.id, product.id, 2**63)
    assert movement_count(db) == 1


def test_unknown_product_or_store(service, store, product):
    with pytest.raises(NotFoundError):
        service.add_stock(store.id, 12345, 1)
    with pytest.raises(NotFoundError):
        service.record_sale(12345, product.id, 1)


def test_inactive_store_rejects_mutations(service, db, product):
    closed = Store(name="Closed", is_active=False)
    db.add(closed)
    db.commit()

    with pytest.raises(ValidationError):
        service.add_stock(closed.id, product.id, 3)
    assert movement_count(db) == 0


def test_sale_within_stock(service, store, product, publisher):
    service.add_stock(store.id, product.id, 30)
    result = service.record_sale(store.id, product.id, 4, unit_price=Decimal("24.99"))

    assert result.movement.movement_type == MovementType.SALE.value
    assert result.movement.unit_price == Decimal("24.99")
    assert result.movement.notes == "Sale transaction"
    assert result.previous_stock == 30
    assert result.current_stock == 26
    assert publisher.events[-1] == ("STOCK_REMOVED", store.id, product.id, 4, "SALE", 26)


def test_sale_exceeding_stock_leaves_ledger_unchanged(service, db, store, product):
    service.add_stock(store.id, product.id, 5)

    with pytest.raises(InsufficientStockError) as exc_info:
        service.record_sale(store.id, product.id, 10)

    assert exc_info.value.current_stock == 5
    assert exc_info.value.requested == 10
    assert exc_info.value.to_dict()["currentStock"] == 5
    assert movement_count(db) == 1
    assert InventoryProjector(db).current_quantity(store.id, product.id) == 5


def test_sale_of_exact_stock_reaches_zero(service, store, product, publisher):
    service.add_stock(store.id, product.id, 3)
    result = service.record_sale(store.id, product.id, 3)

    assert result.current_stock == 0
    assert publisher.events[-1] == ("LOW_STOCK_DETECTED", store.id, product.id, 0, "OUT_OF_STOCK")


def test_removal_uses_catalog_price(service, store, product):
    service.add_stock(store.id, product.id, 10, unit_price="5.00")
    result = service.remove_stock(store.id, product.id, 2)

    assert result.movement.movement_type == MovementType.MANUAL_REMOVAL.value
    assert result.movement.unit_price == Decimal("19.99")
    assert result.movement.notes == "Manual stock removal"
    assert result.current_stock == 8


def test_removal_on_empty_stock_fails(service, store, product):
    with pytest.raises(InsufficientStockError) as exc_info:
        service.remove_stock(store.id, product.id, 1)
    assert exc_info.value.current_stock == 0


def test_low_stock_event_after_debit(service, store, product, publisher):
    service.add_stock(store.id, product.id, 12)
    service.record_sale(store.id, product.id, 2)

    assert publisher.types() == ["STOCK_ADDED", "STOCK_REMOVED", "LOW_STOCK_DETECTED"]
    assert publisher.events[-1][-1] == "LOW_STOCK"


def test_publish_failure_does_not_undo_mutation(db, locks, store, product):
    class BrokenPublisher:
        def __getattr__(self, name):
            def fail(*args):
                raise RuntimeError("broker unavailable")
            return fail

    service = StockService(db, locks=locks, publisher=BrokenPublisher())
    result = service.add_stock(store.id, product.id, 7)

    assert result.current_stock == 7
    assert movement_count(db) == 1


def test_concurrent_sales_of_last_unit(session_factory, locks, store, product):
    setup = session_factory()
    StockService(setup, locks=locks, publisher=None).add_stock(store.id, product.id, 1)
    setup.close()

    workers = 8
    barrier = threading.Barrier(workers)
    outcomes = []
    outcomes_lock = threading.Lock()

    def sell():
        session = session_factory()
        try:
            service = StockService(session, locks=locks, publisher=_NullPublisher())
            barrier.wait()
            try:
                service.record_sale(store.id, product.id, 1)
                outcome = "sold"
            except InsufficientStockError:
                outcome = "rejected"
        finally:
            session.close()
        with outcomes_lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=sell) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert outcomes.count("sold") == 1
    assert outcomes.count("rejected") == workers - 1

    check = session_factory()
    try:
        assert InventoryProjector(check).current_quantity(store.id, product.id) == 0
    finally:
        check.close()


class _NullPublisher:
    def __getattr__(self, name):
        return lambda *args: None


def test_concurrent_additions_report_exact_before_and_after(session_factory, locks, store, product):
    workers = 8
    barrier = threading.Barrier(workers)
    results = []
    results_lock = threading.Lock()

    def receive():
        session = session_factory()
        try:
            service = StockService(session, locks=locks, publisher=_NullPublisher())
            barrier.wait()
            result = service.add_stock(store.id, product.id, 1)
        finally:
            session.close()
        with results_lock:
            results.append((result.previous_stock, result.current_stock))

    threads = [threading.Thread(target=receive) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(results) == [(n, n + 1) for n in range(workers)]
    assert len(locks) == 0


def test_transfer_reports_target_stock_from_inside_the_transaction(service, store, other_store, product):
    service.add_stock(store.id, product.id, 10)
    service.add_stock(other_store.id, product.id, 4)

    result = service.transfer_stock(store.id, other_store.id, product.id, 3)

    assert (result.source_stock, result.target_stock) == (7, 7)


def test_transfer_moves_stock_between_stores(service, db, store, other_store, product, publisher):
    service.add_stock(store.id, product.id, 20)

    result = service.transfer_stock(store.id, other_store.id, product.id, 8)

    assert result.source_stock == 12
    assert result.target_stock == 8
    assert result.removal.movement_type == MovementType.MANUAL_REMOVAL.value
    assert result.removal.notes == f"Transfer to store {other_store.id}"
    assert result.addition.movement_type == MovementType.STOCK_IN.value
    assert result.addition.notes == f"Transfer from store {store.id}"
    assert result.addition.unit_price == Decimal("19.99")

    projector = InventoryProjector(db)
    assert projector.current_quantity(store.id, product.id) == 12
    assert projector.current_quantity(other_store.id, product.id) == 8
    assert ("STOCK_REMOVED", store.id, product.id, 8, "TRANSFER", 12) in publisher.events


def test_transfer_validation(service, db, store, other_store, product):
    service.add_stock(store.id, product.id, 2)

    with pytest.raises(ValidationError):
        service.transfer_stock(store.id, store.id, product.id, 1)
    with pytest.raises(InsufficientStockError):
        service.transfer_stock(store.id, other_store.id, product.id, 3)
    with pytest.raises(NotFoundError):
        service.transfer_stock(store.id, 9999, product.id, 1)

    # Nothing but the initial stock-in was written
    assert movement_count(db) == 1
