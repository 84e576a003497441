from fastapi import APIRouter
from pydantic import BaseModel, Field

router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    status: str = Field(..., description="Service health status", examples=["healthy"])
    service: str = Field(..., description="Service name", examples=["inventory-service"])
    version: str = Field(..., description="Service version", examples=["1.0.0"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="""
    Health check endpoint for monitoring and load balancer health checks.
    Exempt from rate limiting.
    """,
)
async def health():
    """Health check endpoint"""
    return HealthResponse(
        status="healthy",
        service="inventory-service",
        version="1.0.0"
    )
