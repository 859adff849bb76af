import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from orca.core.tenant import clinic_context, request_id_context

logger = logging.getLogger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign a request id, expose it to logging and echo it back"""

    EXCLUDED_ROUTES = [
        "/health",
        "/docs",
        "/redoc",
    ]

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        request_token = request_id_context.set(request_id)
        clinic_token = clinic_context.set(None)
        start_time = time.time()
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id

            if not any(request.url.path.startswith(route) for route in self.EXCLUDED_ROUTES):
                duration_ms = (time.time() - start_time) * 1000
                logger.info(
                    f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms:.1f}ms)"
                )
            return response
        finally:
            clinic_context.reset(clinic_token)
            request_id_context.reset(request_token)
