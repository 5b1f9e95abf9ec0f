import logging

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from quotegate.schemas import ErrorResponse

logger = logging.getLogger(__name__)


class QuoteGateError(Exception):
    """Base for every failure a handler turns into a JSON error body."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, *, details: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code


class ConfigurationError(QuoteGateError):
    """A required credential is missing. Never retried."""


class ClientInputError(QuoteGateError):
    status_code = status.HTTP_400_BAD_REQUEST


class LocalThrottleError(QuoteGateError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS


class UpstreamServerError(QuoteGateError):
    pass


class UpstreamFormatError(QuoteGateError):
    """Upstream answered but the payload held nothing usable."""


class UpstreamError(QuoteGateError):
    """Raised by the retrying caller once retries are exhausted or the status is not retryable."""

    def __init__(self, message: str, status: int):
        super().__init__(message, status_code=status)
        self.status = status


def error_body(exc: QuoteGateError) -> ErrorResponse:
    return ErrorResponse(error=exc.message, details=exc.details)


async def quotegate_error_handler(request: Request, exc: QuoteGateError) -> JSONResponse:
    body = error_body(exc)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(exclude_none=True))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error on %s", request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(error=str(exc) or exc.__class__.__name__).model_dump(exclude_none=True),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed query or body: 400 with the same flat body as every other error."""
    details = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', '')}" for err in exc.errors()
    )
    logger.info("rejected request on %s: %s", request.url.path, details)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(error="Requête invalide", details=details or None).model_dump(exclude_none=True),
    )
