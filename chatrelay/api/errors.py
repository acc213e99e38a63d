"""Map chatrelay errors to JSON responses."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..exceptions import ChatRelayError
from ..utils.logger import get_app_logger

logger = get_app_logger("api")


def error_body(exc: ChatRelayError) -> dict:
    return {
        "error": exc.__class__.__name__,
        "error_code": exc.error_code,
        "detail": exc.message,
        "details": exc.details,
    }


async def chatrelay_error_handler(request: Request, exc: ChatRelayError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=error_body(exc))


def register_exception_handlers(app: FastAPI) -> None:
    """Install the handler on an application."""
    app.add_exception_handler(ChatRelayError, chatrelay_error_handler)
