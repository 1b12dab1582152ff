"""Map the error taxonomy to JSON error responses."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from backend.chatbot.errors import (
    ChatbotError,
    DocumentNotFoundError,
    ExtractionError,
    PersistenceError,
    UploadRejectedError,
    UpstreamError,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR: list[tuple[type[ChatbotError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (UploadRejectedError, status.HTTP_400_BAD_REQUEST),
    (ExtractionError, status.HTTP_400_BAD_REQUEST),
    (DocumentNotFoundError, status.HTTP_404_NOT_FOUND),
    (UpstreamError, status.HTTP_502_BAD_GATEWAY),
    (PersistenceError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_for(error: ChatbotError) -> int:
    for error_type, code in STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def chatbot_error_handler(request: Request, exc: ChatbotError) -> JSONResponse:
    """Render a ChatbotError as {"success": false, "message": ...}."""
    code = status_for(exc)

    if code >= 500:
        logger.error(
            f"Request failed: {exc}",
            extra={"structured": {"path": request.url.path, "error": type(exc).__name__}},
        )
        # Upstream and storage details stay in the log
        message = "Upstream provider unavailable" if code == status.HTTP_502_BAD_GATEWAY else "Internal error"
    else:
        message = str(exc)

    return JSONResponse(status_code=code, content={"success": False, "message": message})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ChatbotError, chatbot_error_handler)
