# =============================================================================
# Request Logging Middleware
# =============================================================================
#
# One log line per request:  GET /api/v1/resource - 200 - 3ms
#
# DESIGN DECISION: Starlette middleware (not a FastAPI dependency) because:
# 1. Middleware wraps the ENTIRE request lifecycle (captures status code)
# 2. Captures timing across the full request
# 3. Does not require every endpoint to explicitly opt-in
#
# The audit trail (services/audit.py) is a different thing: it records
# sensitive actions, not traffic, and is written by the handlers.
# =============================================================================

from __future__ import annotations

import logging
import time

from starlette.middleware.base import (
    BaseHTTPMiddleware,
    RequestResponseEndpoint,
)
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

# Paths not worth a log line
_SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs method, path, status and latency for every request.

    Appends the account id when an API key was accepted (request.state.principal,
    set by require_api_key). Never logs header values.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        if request.url.path in _SKIP_PATHS:
            return await call_next(request)

        start_time = time.monotonic()
        response = await call_next(request)
        elapsed_ms = int((time.monotonic() - start_time) * 1000)

        principal = getattr(request.state, "principal", None)
        if principal is not None:
            logger.info(
                "%s %s - %d - %dms - account_id=%d",
                request.method, request.url.path, response.status_code,
                elapsed_ms, principal.account_id,
            )
        else:
            logger.info(
                "%s %s - %d - %dms",
                request.method, request.url.path, response.status_code,
                elapsed_ms,
            )
        return response
