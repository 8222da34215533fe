"""FastAPI exception handlers producing the standard ErrorResponse body."""

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cbahi.errors.exceptions import AuthorizationError, CbahiError
from cbahi.models.common import ErrorDetail, ErrorResponse

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    """Register all custom exception handlers on the FastAPI app."""

    @app.exception_handler(CbahiError)
    async def cbahi_error_handler(request: Request, exc: CbahiError):
        trace_id = getattr(request.state, "trace_id", "unknown")
        if isinstance(exc, AuthorizationError):
            user = getattr(request.state, "user", {}) or {}
            logger.warning(
                "workflow_access_denied",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                    "trace_id": trace_id,
                    "user_sub": user.get("sub", "anonymous"),
                    "reason": str(exc),
                },
            )
        elif exc.status_code == 409:
            # Lost races and state clashes; request/step ids come from the bound context
            logger.info(
                "workflow_conflict",
                extra={
                    "path": request.url.path,
                    "trace_id": trace_id,
                    "code": exc.code,
                    "details": exc.details,
                },
            )
        error_response = ErrorResponse(
            error=ErrorDetail(
                code=exc.code,
                message=exc.message,
                details=exc.details,
                trace_id=trace_id,
                timestamp=datetime.now(timezone.utc),
            ),
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response.model_dump(mode="json", exclude_none=True),
        )
