"""Roomchat Backend Application.

This is the main entry point for the roomchat backend service. Roomchat
serves chat rooms whose history is rendered through a bounded window that
grows backwards on demand, with a simulated conversational partner that
replies under a minimum-interval throttle.

Modules:
    - messages: Message records, durable storage and the per-room store
    - chat: Window manager, scroll anchoring, reply scheduling, WebSocket
    - rooms: Room directory (DuckDB) and its CRUD router
    - agent: MockResponder producing synthetic replies
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from roomchat import __version__
from roomchat.chat.manager import SessionManager
from roomchat.chat.router import router as chat_router
from roomchat.config import AppSettings, get_config
from roomchat.messages import DuckDBRecordStorage, MessageStore
from roomchat.rooms.router import router as rooms_router
from roomchat.rooms.service import RoomDirectory

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence per-request access lines and connection chatter.
for _noisy in (
    "uvicorn.access",
    "httpx",
    "httpcore",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """Build the FastAPI application.

    Services (storage, message store, room directory, session manager) are
    created in the lifespan handler and exposed on ``app.state``.

    Args:
        settings: Settings to use. Defaults to ``get_config()``.
    """
    settings = settings or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager for startup/shutdown events."""
        # Startup
        configured_level = getattr(logging, settings.logging.level.upper(), None)
        if configured_level is not None:
            logging.getLogger().setLevel(configured_level)
            logger.info("Root logger level set to %s", settings.logging.level.upper())

        storage = DuckDBRecordStorage(settings.storage.messages_path())
        store = MessageStore(
            storage,
            seed_count=settings.seed.count,
            seed_interval_ms=settings.seed.interval_ms,
        )
        directory = RoomDirectory(settings.storage.rooms_path())
        sessions = SessionManager(store, directory, settings)

        app.state.store = store
        app.state.directory = directory
        app.state.sessions = sessions
        logger.info(
            f"Roomchat ready on http://{settings.server.host}:{settings.server.port} "
            f"(page_size={settings.window.page_size})"
        )

        yield  # Application runs here

        # Shutdown
        sessions.close_all()
        directory.close()
        storage.close()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Roomchat API",
        description="Chat rooms with windowed history and simulated replies",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.allowed_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register all routers
    app.include_router(rooms_router)
    app.include_router(chat_router)

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint.

        Returns:
            dict: Status object indicating the server is running.
        """
        return {"status": "ok"}

    return app


app = create_app()
