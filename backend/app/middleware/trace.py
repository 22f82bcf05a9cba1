import time
import uuid
import logging
from typing import Optional
from contextvars import ContextVar

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from backend.app.core.logging import correlation_id_ctx, business_id_ctx

# Additional context var for request-specific event ID
event_id_ctx: ContextVar[Optional[str]] = ContextVar("event_id", default=None)

logger = logging.getLogger(__name__)

class TracingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to manage Trace ID (Correlation ID) and Event ID for every request.
    """
    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get("X-Correlation-ID") or \
                         request.headers.get("X-Trace-ID") or \
                         str(uuid.uuid4())

        event_id = str(uuid.uuid4())

        correlation_id_ctx.set(correlation_id)
        event_id_ctx.set(event_id)

        # Business scope hint for log lines (query param used by the status endpoints)
        business_id = request.query_params.get("business_id")
        if business_id:
            business_id_ctx.set(business_id)

        start_time = time.time()

        try:
            response = await call_next(request)
            process_time = time.time() - start_time

            logger.info(
                f"{request.method} {request.url.path} completed",
                extra={
                    "extra_data": {
                        "method": request.method,
                        "path": request.url.path,
                        "status_code": response.status_code,
                        "duration_ms": round(process_time * 1000, 2),
                        "event_id": event_id,
                        "client_ip": request.client.host if request.client else None
                    }
                }
            )

            response.headers["X-Correlation-ID"] = correlation_id
            response.headers["X-Event-ID"] = event_id

            return response

        except Exception as e:
            process_time = time.time() - start_time
            logger.error(
                f"Request failed: {request.method} {request.url.path}",
                extra={
                    "extra_data": {
                        "method": request.method,
                        "path": request.url.path,
                        "status_code": 500,
                        "duration_ms": round(process_time * 1000, 2),
                        "event_id": event_id,
                        "error": str(e)
                    }
                },
                exc_info=True
            )
            raise
