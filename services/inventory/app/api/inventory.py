from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db.database import get_db
from app.models.store import Store
from app.schemas.common import StoreRef
from app.schemas.inventory import (
    AlertsResponse, CategoryValueResponse, InventoryItem, InventoryResponse,
    InventorySummaryResponse, InventoryValueResponse, ProductInventoryResponse,
)
from app.schemas.stock import MovementResponse
from app.services.alert_classifier import DEFAULT_LOW_STOCK_THRESHOLD, AlertClassifier, StockStatus, classify
from app.services.inventory_projector import InventoryLine, InventoryProjector, InventorySummary, inventory_summary
from app.services.ledger_store import LedgerStore, MovementFilter

router = APIRouter(
    prefix="/stores/{store_id}/inventory",
    tags=["Inventory"]
)


def _item(line: InventoryLine, threshold: int) -> InventoryItem:
    product = line.product
    return InventoryItem(
        product_id=product.id,
        name=product.name,
        sku=product.sku,
        category=product.category,
        unit_price=product.unit_price,
        current_quantity=line.quantity,
        inventory_value=line.value,
        status=classify(line.quantity, threshold).value,
    )


def _summary(summary: InventorySummary) -> InventorySummaryResponse:
    return InventorySummaryResponse(
        total_products=summary.total_products,
        total_units=summary.total_units,
        total_value=summary.total_value,
        by_category=[
            CategoryValueResponse(
                category=c.category,
                product_count=c.product_count,
                total_units=c.total_units,
                value=c.value,
            )
            for c in summary.by_category
        ],
    )


def _store_ref(store: Store) -> StoreRef:
    return StoreRef(id=store.id, name=store.name)


def _select(lines: List[InventoryLine], low_stock: bool, out_of_stock: bool, threshold: int) -> List[InventoryLine]:
    if out_of_stock:
        wanted = {StockStatus.OUT_OF_STOCK}
    elif low_stock:
        wanted = {StockStatus.LOW_STOCK}
    else:
        return [line for line in lines if line.quantity > 0]
    return [line for line in lines if classify(line.quantity, threshold) in wanted]


@router.get(
    "",
    response_model=InventoryResponse,
    summary="Current inventory for a store",
    description="""
    Products with their current quantity and value at the store, derived from
    the stock ledger on every request.

    **Selection:**
    - default: products with stock on hand
    - `low_stock=true`: 0 < quantity <= threshold
    - `out_of_stock=true`: quantity <= 0 (takes precedence over `low_stock`)
    - `min_stock` / `max_stock` bound the quantity; `category` matches exactly
    """,
    responses={404: {"description": "Store not found"}}
)
def get_current_inventory(
    store_id: int,
    category: Optional[str] = Query(None, description="Filter by product category"),
    min_stock: Optional[int] = Query(None, description="Minimum current quantity"),
    max_stock: Optional[int] = Query(None, description="Maximum current quantity"),
    low_stock: bool = Query(False, description="Only low stock products"),
    out_of_stock: bool = Query(False, description="Only out of stock products"),
    threshold: int = Query(DEFAULT_LOW_STOCK_THRESHOLD, ge=0, description="Low stock threshold"),
    db: Session = Depends(get_db)
):
    store = LedgerStore(db).get_store(store_id)
    lines = InventoryProjector(db).current_inventory(
        store_id, category=category, min_stock=min_stock, max_stock=max_stock
    )
    selected = _select(lines, low_stock, out_of_stock, threshold)
    return InventoryResponse(
        store=_store_ref(store),
        count=len(selected),
        threshold=threshold,
        data=[_item(line, threshold) for line in selected],
        summary=_summary(inventory_summary(selected)),
    )


@router.get(
    "/alerts",
    response_model=AlertsResponse,
    summary="Inventory alerts for a store",
    description="""
    Out-of-stock and low-stock products at the store. Each list is ordered by
    quantity ascending, then category, then name.
    """,
    responses={404: {"description": "Store not found"}}
)
def get_inventory_alerts(
    store_id: int,
    threshold: int = Query(DEFAULT_LOW_STOCK_THRESHOLD, ge=0, description="Low stock threshold"),
    db: Session = Depends(get_db)
):
    store = LedgerStore(db).get_store(store_id)
    report = AlertClassifier(db).alerts_for_store(store_id, threshold)
    return AlertsResponse(
        store=_store_ref(store),
        low_stock_threshold=threshold,
        count=len(report.out_of_stock) + len(report.low_stock),
        out_of_stock_count=len(report.out_of_stock),
        low_stock_count=len(report.low_stock),
        out_of_stock=[_item(line, threshold) for line in report.out_of_stock],
        low_stock=[_item(line, threshold) for line in report.low_stock],
    )


@router.get(
    "/value",
    response_model=InventoryValueResponse,
    summary="Inventory value for a store",
    description="Total and per-category value of stock on hand, valued at catalog prices.",
    responses={404: {"description": "Store not found"}}
)
def get_inventory_value(
    store_id: int,
    db: Session = Depends(get_db)
):
    store = LedgerStore(db).get_store(store_id)
    lines = InventoryProjector(db).current_inventory(store_id)
    return InventoryValueResponse(
        store=_store_ref(store),
        total=_summary(inventory_summary(lines)),
    )


@router.get(
    "/products/{product_id}",
    response_model=ProductInventoryResponse,
    summary="Inventory detail for one product",
    description="Current quantity and status of a product at the store plus its movement history.",
    responses={404: {"description": "Product or store not found"}}
)
def get_product_inventory(
    store_id: int,
    product_id: int,
    threshold: int = Query(DEFAULT_LOW_STOCK_THRESHOLD, ge=0, description="Low stock threshold"),
    db: Session = Depends(get_db)
):
    ledger = LedgerStore(db)
    store = ledger.get_store(store_id)
    product = ledger.get_product(product_id)
    quantity = InventoryProjector(db).current_quantity(store_id, product_id)
    movements = ledger.query_movements(MovementFilter(product_id=product_id, store_id=store_id))
    line = InventoryLine(product=product, quantity=quantity, value=quantity * product.unit_price)
    return ProductInventoryResponse(
        store=_store_ref(store),
        product=_item(line, threshold),
        movements=[MovementResponse.model_validate(m) for m in movements],
    )
