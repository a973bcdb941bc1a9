"""
Maps the domain error taxonomy onto HTTP responses.
"""

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from landman.errors import (
    ConflictError,
    ExternalDependencyError,
    LandmanError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)

logger = structlog.get_logger(__name__)

STATUS_CODES = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    UnauthorizedError: status.HTTP_403_FORBIDDEN,
    ConflictError: status.HTTP_409_CONFLICT,
    ExternalDependencyError: status.HTTP_502_BAD_GATEWAY,
}


def status_for(error: LandmanError) -> int:
    for error_cls in type(error).__mro__:
        if error_cls in STATUS_CODES:
            return STATUS_CODES[error_cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def landman_error_handler(request: Request, exc: LandmanError) -> JSONResponse:
    code = status_for(exc)
    if code >= 500:
        logger.error("request_failed", path=request.url.path, error_code=exc.error_code, error=exc.message)
    return JSONResponse(
        status_code=code,
        content={"detail": exc.message, "error_code": exc.error_code},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LandmanError, landman_error_handler)
