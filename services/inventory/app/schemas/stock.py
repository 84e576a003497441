from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.stock_movement import MAX_QUANTITY, MAX_UNIT_PRICE, PRICE_DECIMAL_PLACES
from app.schemas.common import CamelRequest, Money


class StockAddRequest(CamelRequest):
    product_id: int = Field(..., description="Product ID", examples=[5])
    quantity: int = Field(..., gt=0, le=MAX_QUANTITY, description="Units received", examples=[10])
    unit_price: Optional[Decimal] = Field(
        None, ge=0, le=MAX_UNIT_PRICE, max_digits=10, decimal_places=PRICE_DECIMAL_PLACES,
        description="Unit cost; defaults to the catalog price", examples=["149.99"])
    notes: Optional[str] = Field(None, max_length=1000, examples=["Initial inventory"])


class SaleRequest(CamelRequest):
    product_id: int = Field(..., description="Product ID", examples=[5])
    quantity: int = Field(..., gt=0, le=MAX_QUANTITY, description="Units sold", examples=[2])
    unit_price: Optional[Decimal] = Field(
        None, ge=0, le=MAX_UNIT_PRICE, max_digits=10, decimal_places=PRICE_DECIMAL_PLACES,
        description="Sale price; defaults to the catalog price", examples=["159.99"])
    notes: Optional[str] = Field(None, max_length=1000)


class RemovalRequest(CamelRequest):
    product_id: int = Field(..., description="Product ID", examples=[5])
    quantity: int = Field(..., gt=0, le=MAX_QUANTITY, description="Units removed", examples=[1])
    notes: Optional[str] = Field(None, max_length=1000, examples=["Damaged in transit"])


class TransferRequest(CamelRequest):
    source_store_id: int = Field(..., description="Store to transfer from", examples=[1])
    target_store_id: int = Field(..., description="Store to transfer to", examples=[2])
    product_id: int = Field(..., description="Product ID", examples=[5])
    quantity: int = Field(..., gt=0, le=MAX_QUANTITY, description="Units to move", examples=[3])
    notes: Optional[str] = Field(None, max_length=1000)


class MovementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Movement ID")
    product_id: int
    store_id: int
    movement_type: str = Field(..., description="STOCK_IN, SALE or MANUAL_REMOVAL")
    quantity: int
    unit_price: Money
    notes: Optional[str] = None
    created_at: datetime


class MovementDetailResponse(MovementResponse):
    product_name: Optional[str] = None


class StockMutationResponse(BaseModel):
    message: str
    movement: MovementResponse
    previous_stock: int
    current_stock: int


class StockTransferSide(BaseModel):
    id: int
    stock: int


class StockTransferResponse(BaseModel):
    message: str
    product_id: int
    quantity: int
    source_store: StockTransferSide
    target_store: StockTransferSide
    movements: List[MovementResponse]


class MovementListResponse(BaseModel):
    count: int
    data: List[MovementDetailResponse]
