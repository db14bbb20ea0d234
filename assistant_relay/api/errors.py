"""JSON error envelopes shared by every route.

Routes raise ``ApiError``; the handler registered by ``create_app`` renders it
as ``{"error": ..., "details": ...}`` with the given status code.
"""

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from assistant_relay.models.schemas import ErrorEnvelope

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """A failure that should reach the client as an error envelope.

    Attributes:
        status_code: HTTP status to respond with.
        error: Short, user-facing description.
        details: Optional underlying cause.
    """

    def __init__(
        self,
        error: str,
        details: str | None = None,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
    ) -> None:
        super().__init__(error)
        self.error = error
        self.details = details
        self.status_code = status_code


def error_response(
    error: str,
    details: str | None = None,
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
) -> JSONResponse:
    """Build an error envelope response."""
    envelope = ErrorEnvelope(error=error, details=details)
    return JSONResponse(
        status_code=status_code,
        content=envelope.model_dump(exclude_none=True),
    )


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    """Render an ApiError raised anywhere below a route."""
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error(f"{request.method} {request.url.path} failed: {exc.error} ({exc.details})")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.error}")
    return error_response(exc.error, exc.details, exc.status_code)
