import logging
from typing import Dict

from fastapi import APIRouter, Body, Depends

from app.api.dependencies import get_admission_controller
from app.rate_limit.limiter import AdmissionController
from app.schemas.rate_limit import RateLimitConfigResponse

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin/rate-limits",
    tags=["Rate Limiting"]
)


def _config_response(controller: AdmissionController, overrides: Dict[str, int]) -> RateLimitConfigResponse:
    return RateLimitConfigResponse(
        window_seconds=controller.window_seconds,
        default_limit=controller.max_requests,
        overrides=overrides,
        tracked_clients=controller.bucket_count(),
    )


@router.get(
    "",
    response_model=RateLimitConfigResponse,
    summary="View rate limit configuration",
)
def get_rate_limits(
    controller: AdmissionController = Depends(get_admission_controller)
):
    return _config_response(controller, controller.config.current())


@router.put(
    "",
    response_model=RateLimitConfigResponse,
    summary="Update rate limit overrides",
    description="""
    Replace the endpoint-specific overrides. The new overrides are persisted to
    the configuration source and take effect immediately.

    Patterns are matched case-insensitively as a substring of the request path
    or as a regular expression; the first matching pattern wins.
    """,
    responses={
        400: {"description": "Invalid rate limits format"},
        503: {"description": "Configuration could not be saved"},
    }
)
def update_rate_limits(
    overrides: Dict[str, int] = Body(..., examples=[{"/api/auth": 5, "/api/stores": 200}]),
    controller: AdmissionController = Depends(get_admission_controller)
):
    updated = controller.config.update(overrides)
    controller.reload_config()
    logger.info(f"Rate limit overrides replaced: {updated}")
    return _config_response(controller, updated)


@router.post(
    "/reload",
    response_model=RateLimitConfigResponse,
    summary="Reload rate limit overrides",
    description="Re-read the overrides from the configuration source. On failure the last good overrides stay active.",
)
def reload_rate_limits(
    controller: AdmissionController = Depends(get_admission_controller)
):
    overrides = controller.reload_config()
    return _config_response(controller, overrides)
