"""FastAPI main application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config import settings
from .api.errors import register_exception_handlers
from .api.v1 import conversations, websocket
from .services import ChatService
from .utils.logger import init_app_logger


logger = init_app_logger(settings)


def _mask(secret: str) -> str:
    return secret[:4] + "..." + secret[-4:] if len(secret) > 12 else "***"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.

    Args:
        app: FastAPI application instance
    """
    logger.info("=" * 70)
    logger.info("Starting chatrelay...")
    logger.info("=" * 70)

    logger.info("Server Configuration:")
    logger.info(f"  Host: {settings.host}")
    logger.info(f"  Port: {settings.port}")
    logger.info(f"  Debug: {settings.debug}")
    logger.info(f"  Database: {settings.database_path}")
    logger.info(f"  Log Level: {settings.log_level}")

    logger.info("AI Provider Configuration:")
    logger.info(f"  Endpoint: {settings.ai_api_url}")
    logger.info(f"  Model: {settings.ai_model}")
    logger.info(f"  Timeout: {settings.relay_timeout}s, retries: {settings.relay_max_retries}")
    if settings.ai_api_key:
        logger.info(f"  API Key: {_mask(settings.ai_api_key)}")
    else:
        logger.warning("  API Key: Not set, AI replies will fall back to the notice")

    service = ChatService(settings)
    conversations.chat_service = service
    websocket.chat_service = service

    logger.info(f"chatrelay started, API docs at http://{settings.host}:{settings.port}/docs")

    yield

    logger.info("Shutting down chatrelay...")
    await service.shutdown()
    conversations.chat_service = None
    websocket.chat_service = None


app = FastAPI(
    title="chatrelay",
    description="Live conversation sync and AI reply relay",
    version=__version__,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)
app.include_router(conversations.router)
app.include_router(websocket.router)


@app.get("/health")
async def health():
    """
    Simple health check endpoint.

    Returns:
        Health status
    """
    return {
        "status": "healthy",
        "service": "chatrelay",
        "version": __version__
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "chatrelay.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
