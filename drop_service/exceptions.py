"""
Error taxonomy for the drop service and the FastAPI handlers that render it.

Every error leaves the service as ``{"error": <message>, "code": <code>}`` so
clients can show the message and branch on the code.
"""
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from drop_service.logging_config import get_logger

logger = get_logger(__name__)


class DropServiceError(Exception):
    """Base class for errors raised by the service layer."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"error": self.message, "code": self.code}


class ValidationError(DropServiceError):
    """Bad or missing input the caller can correct."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class NotFoundError(DropServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class UpstreamError(DropServiceError):
    """The object store or the database failed."""

    code = "upstream_error"


class ConfigurationError(DropServiceError):
    """A required external service is not configured for this deployment."""

    code = "not_configured"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(DropServiceError)
    async def drop_service_error_handler(request: Request, exc: DropServiceError):
        if isinstance(exc, ConfigurationError):
            logger.error(f"Configuration error on {request.method} {request.url.path}: {exc.message}")
        elif isinstance(exc, UpstreamError):
            logger.error(f"Upstream failure on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = f"{location}: {first.get('msg')}" if location else first.get("msg")
        else:
            message = "Invalid request"
        logger.info(f"Rejected {request.method} {request.url.path}: {message}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ValidationError(message).to_dict(),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error", "code": "internal_error"},
        )
