"""FastAPI application factory and configuration.

Main application entry point with lifespan management, middleware,
error handling and router registration.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from assistant_relay.api.chat import router as chat_router
from assistant_relay.api.documents import router as documents_router
from assistant_relay.api.errors import ApiError, api_error_handler
from assistant_relay.api.files import router as files_router
from assistant_relay.api.image import router as image_router
from assistant_relay.api.threads import router as threads_router
from assistant_relay.storage.threads import close_thread_store
from assistant_relay.upstream.adapter import close_upstream_adapter

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application startup and shutdown lifecycle.

    Shared clients are created lazily by their dependency getters and
    closed here on shutdown.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control to the application while it runs.
    """
    # Startup
    logger.info("Starting Assistant Relay API...")
    yield
    # Shutdown
    logger.info("Shutting down Assistant Relay API...")
    await close_upstream_adapter()
    await close_thread_store()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    application = FastAPI(
        title="Assistant Relay API",
        description=(
            "Streaming chat relay in front of an OpenAI assistant. Relays a "
            "conversation upstream and streams the reply back as server-sent "
            "events, with thread storage, document indexing for retrieval, and "
            "text extraction for attached files."
        ),
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["*"],
    )

    application.add_exception_handler(ApiError, api_error_handler)

    application.include_router(chat_router)
    application.include_router(image_router)
    application.include_router(threads_router)
    application.include_router(documents_router)
    application.include_router(files_router)

    @application.get("/health")
    async def health_check() -> dict[str, str]:
        """Check service health status."""
        return {"status": "healthy", "service": "assistant-relay"}

    return application


app = create_app()
