from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.dependencies import get_stock_service
from app.db.database import get_db
from app.models.stock_movement import MovementType, StockMovement
from app.schemas.stock import (
    MovementDetailResponse, MovementListResponse, MovementResponse, RemovalRequest, SaleRequest,
    StockAddRequest, StockMutationResponse, StockTransferResponse, StockTransferSide, TransferRequest,
)
from app.services.ledger_store import LedgerStore, MovementFilter
from app.services.stock_service import StockMutation, StockService

router = APIRouter(tags=["Stock"])

INSUFFICIENT_STOCK_EXAMPLE = {
    "detail": "Insufficient stock: requested 10, available 5",
    "error_type": "InsufficientStockError",
    "store": 1,
    "currentStock": 5,
    "requestedQuantity": 10,
}


def _mutation_response(message: str, result: StockMutation) -> StockMutationResponse:
    return StockMutationResponse(
        message=message,
        movement=MovementResponse.model_validate(result.movement),
        previous_stock=result.previous_stock,
        current_stock=result.current_stock,
    )


def _movement_details(movements: List[StockMovement]) -> MovementListResponse:
    data = []
    for movement in movements:
        detail = MovementDetailResponse.model_validate(movement)
        detail.product_name = movement.product.name if movement.product else None
        data.append(detail)
    return MovementListResponse(count=len(data), data=data)


@router.post(
    "/stores/{store_id}/stock/add",
    response_model=StockMutationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add stock",
    description="""
    Record a STOCK_IN movement for a product at a store.

    The unit price defaults to the product's current catalog price. There is
    no upper bound on the quantity added.
    """,
    responses={
        400: {"description": "Invalid quantity or price, or store inactive"},
        404: {"description": "Product or store not found"},
    }
)
def add_stock(
    store_id: int,
    payload: StockAddRequest,
    stock_service: StockService = Depends(get_stock_service)
):
    result = stock_service.add_stock(
        store_id=store_id,
        product_id=payload.product_id,
        quantity=payload.quantity,
        unit_price=payload.unit_price,
        notes=payload.notes,
    )
    return _mutation_response("Stock added successfully", result)


@router.post(
    "/stores/{store_id}/stock/sale",
    response_model=StockMutationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a sale",
    description="""
    Record a SALE movement. Fails when the sale would take the store's stock
    of the product below zero; the ledger is left unchanged in that case.
    """,
    responses={
        400: {
            "description": "Invalid input or insufficient stock",
            "content": {"application/json": {"example": INSUFFICIENT_STOCK_EXAMPLE}},
        },
        404: {"description": "Product or store not found"},
    }
)
def record_sale(
    store_id: int,
    payload: SaleRequest,
    stock_service: StockService = Depends(get_stock_service)
):
    result = stock_service.record_sale(
        store_id=store_id,
        product_id=payload.product_id,
        quantity=payload.quantity,
        unit_price=payload.unit_price,
        notes=payload.notes,
    )
    return _mutation_response("Sale recorded successfully", result)


@router.post(
    "/stores/{store_id}/stock/remove",
    response_model=StockMutationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Manual stock removal",
    description="""
    Record a MANUAL_REMOVAL (damage, shrinkage, write-off). Always valued at the
    catalog price; no caller price is accepted.
    """,
    responses={
        400: {
            "description": "Invalid input or insufficient stock",
            "content": {"application/json": {"example": INSUFFICIENT_STOCK_EXAMPLE}},
        },
        404: {"description": "Product or store not found"},
    }
)
def remove_stock(
    store_id: int,
    payload: RemovalRequest,
    stock_service: StockService = Depends(get_stock_service)
):
    result = stock_service.remove_stock(
        store_id=store_id,
        product_id=payload.product_id,
        quantity=payload.quantity,
        notes=payload.notes,
    )
    return _mutation_response("Stock removed successfully", result)


@router.post(
    "/stock/transfer",
    response_model=StockTransferResponse,
    summary="Transfer stock between stores",
    description="""
    Atomically remove stock at the source store and add it at the target store.
    Both movements are valued at the catalog price.
    """,
    responses={
        400: {"description": "Invalid input, same store, or insufficient stock at source"},
        404: {"description": "Product or store not found"},
    }
)
def transfer_stock(
    payload: TransferRequest,
    stock_service: StockService = Depends(get_stock_service)
):
    result = stock_service.transfer_stock(
        source_store_id=payload.source_store_id,
        target_store_id=payload.target_store_id,
        product_id=payload.product_id,
        quantity=payload.quantity,
        notes=payload.notes,
    )
    return StockTransferResponse(
        message="Stock transferred successfully",
        product_id=payload.product_id,
        quantity=payload.quantity,
        source_store=StockTransferSide(id=payload.source_store_id, stock=result.source_stock),
        target_store=StockTransferSide(id=payload.target_store_id, stock=result.target_stock),
        movements=[
            MovementResponse.model_validate(result.removal),
            MovementResponse.model_validate(result.addition),
        ],
    )


@router.get(
    "/stores/{store_id}/stock/movements",
    response_model=MovementListResponse,
    summary="Stock movement history for a store",
    description="Movements at one store, newest first.",
    responses={404: {"description": "Store not found"}}
)
def list_store_movements(
    store_id: int,
    product_id: Optional[int] = Query(None, description="Filter by product"),
    movement_type: Optional[MovementType] = Query(None, description="Filter by movement type"),
    start_date: Optional[datetime] = Query(None, description="Created at or after (ISO 8601)"),
    end_date: Optional[datetime] = Query(None, description="Created at or before (ISO 8601)"),
    limit: int = Query(500, ge=1, le=5000, description="Maximum number of movements"),
    db: Session = Depends(get_db)
):
    ledger = LedgerStore(db)
    ledger.get_store(store_id)
    movements = ledger.query_movements(
        MovementFilter(
            product_id=product_id,
            store_id=store_id,
            movement_type=movement_type,
            start_date=start_date,
            end_date=end_date,
        ),
        limit=limit,
    )
    return _movement_details(movements)


@router.get(
    "/stock/movements",
    response_model=MovementListResponse,
    summary="Stock movement history",
    description="Movements across all stores, newest first.",
)
def list_movements(
    product_id: Optional[int] = Query(None, description="Filter by product"),
    store_id: Optional[int] = Query(None, description="Filter by store"),
    movement_type: Optional[MovementType] = Query(None, description="Filter by movement type"),
    start_date: Optional[datetime] = Query(None, description="Created at or after (ISO 8601)"),
    end_date: Optional[datetime] = Query(None, description="Created at or before (ISO 8601)"),
    limit: int = Query(500, ge=1, le=5000, description="Maximum number of movements"),
    db: Session = Depends(get_db)
):
    movements = LedgerStore(db).query_movements(
        MovementFilter(
            product_id=product_id,
            store_id=store_id,
            movement_type=movement_type,
            start_date=start_date,
            end_date=end_date,
        ),
        limit=limit,
    )
    return _movement_details(movements)
