"""Agora Backend Application.

This is the main entry point for the Agora realtime service. Agora's
request handlers (posts, follows, communities, messages) persist their data
and then reach live clients through the realtime coordinator.

Modules:
    - realtime: WebSocket presence, private messaging, typing indicators
    - notifications: DuckDB-backed notification inbox with live push
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agora.config import AppSettings, get_config
from agora.notifications import NotificationService
from agora.notifications.router import router as notifications_router
from agora.realtime import RealtimeCoordinator
from agora.realtime.router import router as realtime_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

for _noisy in ("uvicorn.access", "duckdb"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    config: AppSettings = app.state.settings

    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    NotificationService.get_instance(config.notifications.db_path)
    logger.info(
        f"Agora ready on http://{config.server.host}:{config.server.port} "
        f"(typing debounce {config.realtime.typing_debounce_ms} ms)"
    )

    yield  # Application runs here

    app.state.coordinator.shutdown()
    NotificationService.reset_instance()
    logger.info("Application shutdown complete")


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """Build the FastAPI application and its realtime coordinator.

    Args:
        settings: Settings to use; defaults to ``get_config()``.
    """
    config = settings or get_config()

    app = FastAPI(
        title="Agora API",
        description="Realtime presence, messaging and notifications for Agora",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = config
    app.state.coordinator = RealtimeCoordinator(
        typing_window_seconds=config.realtime.typing_debounce_seconds,
        stop_typing_on_disconnect=config.realtime.typing_stop_on_disconnect,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.allowed_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )

    app.include_router(realtime_router)
    app.include_router(notifications_router)

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint.

        Returns:
            dict: Status object with the number of open connections.
        """
        return {
            "status": "ok",
            "connections": app.state.coordinator.registry.connection_count(),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _config = get_config()
    uvicorn.run(app, host=_config.server.host, port=_config.server.port)
