from typing import Dict

from pydantic import BaseModel, Field


class RateLimitConfigResponse(BaseModel):
    window_seconds: float = Field(..., description="Width of the counting window")
    default_limit: int = Field(..., description="Requests allowed per window when no override matches")
    overrides: Dict[str, int] = Field(
        default_factory=dict,
        description="Endpoint pattern to limit; first matching pattern wins",
        examples=[{"/api/auth": 5, "/api/stores": 200}],
    )
    tracked_clients: int = Field(..., description="Live rate limit buckets")
