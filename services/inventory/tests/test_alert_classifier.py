from decimal import Decimal

import pytest

from app.errors import ValidationError
from app.models import MovementType, Product
from app.services.alert_classifier import AlertClassifier, StockStatus, classify
from app.services.ledger_store import LedgerStore


@pytest.mark.parametrize("quantity,expected", [
    (-2, StockStatus.OUT_OF_STOCK),
    (0, StockStatus.OUT_OF_STOCK),
    (1, StockStatus.LOW_STOCK),
    (10, StockStatus.LOW_STOCK),
    (11, StockStatus.NORMAL),
])
def test_classify_boundaries(quantity, expected):
    assert classify(quantity, 10) == expected


def test_zero_threshold_has_no_low_stock():
    assert classify(1, 0) == StockStatus.NORMAL
    assert classify(0, 0) == StockStatus.OUT_OF_STOCK


def test_alerts_for_store(db, store):
    products = {
        name: Product(name=name, sku=f"SKU-{name}", category=category, unit_price=Decimal("1.00"))
        for name, category in [
            ("Bolt", "Hardware"), ("Anchor", "Hardware"), ("Glue", "Adhesives"),
            ("Tape", "Adhesives"), ("Saw", "Tools"),
        ]
    }
    db.add_all(products.values())
    db.commit()

    ledger = LedgerStore(db)
    stock = {"Bolt": 3, "Anchor": 3, "Glue": 10, "Tape": 11}
    for name, quantity in stock.items():
        ledger.append(products[name].id, store.id, MovementType.STOCK_IN, quantity, Decimal("1.00"))
    ledger.append(products["Saw"].id, store.id, MovementType.STOCK_IN, 2, Decimal("1.00"))
    ledger.append(products["Saw"].id, store.id, MovementType.SALE, 2, Decimal("1.00"))
    db.commit()

    report = AlertClassifier(db).alerts_for_store(store.id, threshold=10)

    assert [line.product.name for line in report.out_of_stock] == ["Saw"]
    # Quantity ascending, then category, then name
    assert [line.product.name for line in report.low_stock] == ["Anchor", "Bolt", "Glue"]
    assert report.threshold == 10


def test_alerts_reject_negative_threshold(db, store):
    with pytest.raises(ValidationError):
        AlertClassifier(db).alerts_for_store(store.id, threshold=-1)
