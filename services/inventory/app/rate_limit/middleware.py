import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import settings
from app.errors import RateLimitExceededError

logger = logging.getLogger(__name__)
throttle_logger = logging.getLogger("app.rate_limit.throttled")

# Request headers worth keeping in the throttle record; credentials are never logged
LOGGED_HEADERS = ("user-agent", "x-forwarded-for", "x-real-ip", "referer", "origin")


def client_identity(request: Request) -> str:
    if request.client and request.client.host:
        return request.client.host
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return "unknown"


def log_throttled_request(request: Request, client_id: str, endpoint: str, retry_after: int,
                          log_path: Optional[str] = None):
    entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "ip": client_id,
        "endpoint": endpoint,
        "method": request.method,
        "retryAfterSeconds": retry_after,
        "headers": {name: request.headers[name] for name in LOGGED_HEADERS if name in request.headers},
    }
    throttle_logger.warning(
        f"[RATE LIMIT] {entry['timestamp']} - IP: {client_id}, Endpoint: {endpoint}",
        extra={"throttle": entry},
    )
    if log_path:
        try:
            with open(log_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry) + "\n")
        except OSError as e:
            logger.error(f"Error writing to throttle log {log_path}: {e}")


def rate_limit_response(exc: RateLimitExceededError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=exc.to_dict(),
        headers={"Retry-After": str(exc.retry_after_seconds)},
    )


class AdmissionMiddleware(BaseHTTPMiddleware):
    """Admits or rejects each request before it reaches a route.

    The controller is read from ``app.state.admission_controller`` on every
    request so it can be replaced without rebuilding the middleware stack.
    """

    async def dispatch(self, request: Request, call_next):
        controller = getattr(request.app.state, "admission_controller", None)
        endpoint = request.url.path
        if (
            controller is None
            or not settings.rate_limit_enabled
            or request.method == "OPTIONS"
            or endpoint in settings.rate_limit_exempt_paths
        ):
            return await call_next(request)

        client_id = client_identity(request)
        decision = controller.admit(client_id, endpoint)
        if not decision.allowed:
            # The throttle log is a file append; keep it off the event loop
            await asyncio.to_thread(
                log_throttled_request,
                request, client_id, endpoint, decision.retry_after_seconds,
                log_path=settings.throttle_log_path,
            )
            return rate_limit_response(RateLimitExceededError(decision.retry_after_seconds))

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(decision.limit)
        response.headers["X-RateLimit-Remaining"] = str(max(0, decision.limit - decision.count))
        return response
