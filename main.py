"""
Storage Connector — application entry point.
"""

from __future__ import annotations

import logging
import sys

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.connect import router as connect_router
from api.errors import register_exception_handlers
from api.files import router as files_router
from api.middleware import register_middleware
from config.settings import config
from connectors.encryption import get_cipher
from connectors.registry import build_oauth_registry
from connectors.state_store import InMemoryStateStore, SqlStateStore
from connectors.token_manager import AccessTokenManager
from connectors.token_store import SqlTokenStore
from core.file_service import FileService
from core.link_service import LinkProviderService
from database.session import async_session_factory, engine, init_db
from file_providers import build_file_provider_registry

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "urllib3", "asyncio"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def wire_services(app: FastAPI) -> None:
    """Build stores, registries and services and attach them to ``app.state``."""
    token_store = SqlTokenStore(get_cipher(), async_session_factory)

    if config.state_store_backend == "database":
        state_store = SqlStateStore(async_session_factory)
    else:
        state_store = InMemoryStateStore()
    logger.info("State store backend: %s", config.state_store_backend)

    oauth_clients = build_oauth_registry()
    token_manager = AccessTokenManager(token_store, oauth_clients)
    file_providers = build_file_provider_registry(token_manager)

    app.state.state_store = state_store
    app.state.link_service = LinkProviderService(
        oauth_clients, token_store, state_store, token_manager
    )
    app.state.file_service = FileService(token_store, file_providers)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Storage Connector",
        version="1.0.0",
        description="Link Google Drive and OneDrive accounts and browse their files.",
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app)
    register_exception_handlers(app)

    # Routes
    app.include_router(connect_router, prefix="/api/v1")
    app.include_router(files_router, prefix="/api/v1")

    @app.on_event("startup")
    async def on_startup():
        logger.info("Creating tables…")
        await init_db()

        wire_services(app)

        purged = await app.state.state_store.purge_expired()
        if purged:
            logger.info("Purged %d expired link states from previous run", purged)

        logger.info("Application ready to accept requests.")

    @app.on_event("shutdown")
    async def on_shutdown():
        await engine.dispose()

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )
