from typing import List, Optional

from pydantic import BaseModel, Field

from app.schemas.common import Money, StoreRef
from app.schemas.stock import MovementResponse


class InventoryItem(BaseModel):
    product_id: int
    name: str
    sku: str
    category: Optional[str] = None
    unit_price: Money
    current_quantity: int
    inventory_value: Money
    status: str = Field(..., description="NORMAL, LOW_STOCK or OUT_OF_STOCK")


class CategoryValueResponse(BaseModel):
    category: Optional[str] = None
    product_count: int
    total_units: int
    value: Money


class InventorySummaryResponse(BaseModel):
    total_products: int
    total_units: int
    total_value: Money
    by_category: List[CategoryValueResponse]


class InventoryResponse(BaseModel):
    store: StoreRef
    count: int
    threshold: int
    data: List[InventoryItem]
    summary: InventorySummaryResponse


class AlertsResponse(BaseModel):
    store: StoreRef
    low_stock_threshold: int
    count: int
    out_of_stock_count: int
    low_stock_count: int
    out_of_stock: List[InventoryItem]
    low_stock: List[InventoryItem]


class InventoryValueResponse(BaseModel):
    store: StoreRef
    total: InventorySummaryResponse


class ProductInventoryResponse(BaseModel):
    store: StoreRef
    product: InventoryItem
    movements: List[MovementResponse]

