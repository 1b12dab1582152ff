"""FastAPI application factory."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI

from backend.chatbot.api.errors import register_exception_handlers
from backend.chatbot.api.routes.chat import router as chat_router
from backend.chatbot.api.routes.documents import router as documents_router
from backend.chatbot.api.routes.health import router as health_router
from backend.chatbot.api.routes.metrics import router as metrics_router
from backend.chatbot.config import get_settings
from backend.chatbot.container import Container, build_container
from backend.chatbot.utils.logging import configure_logging

API_PREFIX = "/api/v1/chatbot"


def create_app(container: Container | None = None) -> FastAPI:
    """Create the app.

    Args:
        container: Prebuilt container (tests); built from settings when None

    Returns:
        FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if app.state.container is None:
            settings = get_settings()
            configure_logging(settings.log_level)
            app.state.container = build_container(settings)
        await app.state.container.startup()
        try:
            yield
        finally:
            await app.state.container.aclose()

    app = FastAPI(title="Chatbot API", version="0.1.0", lifespan=lifespan)
    app.state.container = container

    register_exception_handlers(app)

    api = APIRouter()
    api.include_router(documents_router)
    api.include_router(chat_router)

    # Register routes
    app.include_router(health_router, tags=["health"])
    app.include_router(metrics_router, tags=["metrics"])
    app.include_router(api)
    app.include_router(api, prefix=API_PREFIX)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {"message": "Chatbot API", "version": "0.1.0"}

    return app


app = create_app()
