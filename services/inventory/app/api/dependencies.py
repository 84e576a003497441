from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.db.database import get_db
from app.kafka.producer import event_producer
from app.rate_limit.limiter import AdmissionController
from app.services.stock_service import StockService, stock_locks


def get_event_publisher():
    """Dependency returning the post-commit event publisher"""
    return event_producer


def get_stock_locks():
    return stock_locks


def get_stock_service(
    db: Session = Depends(get_db),
    publisher=Depends(get_event_publisher),
    locks=Depends(get_stock_locks),
) -> StockService:
    """Dependency to get stock mutation service"""
    return StockService(db, locks=locks, publisher=publisher)


def get_admission_controller(request: Request) -> AdmissionController:
    controller = getattr(request.app.state, "admission_controller", None)
    if controller is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Rate limiting is not initialised"
        )
    return controller
