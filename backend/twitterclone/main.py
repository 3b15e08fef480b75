"""
Twitter Clone Backend — Composition Root
==========================================

What:  Builds the FastAPI app, its storage and cache handles, and the Server
       that wires the request pipeline onto it.
Why:   One place decides which concrete collaborators the process runs
       with; tests inject their own instead.
How:   build_server() assembles everything without touching the network.
       create_app() additionally initializes the pipeline, for external
       ASGI servers (`uvicorn --factory twitterclone.main:create_app`).

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                       FastAPI App                        │
    │                                                          │
    │  Middleware Chain:                                       │
    │  ┌────────┐ ┌──────────────┐ ┌────────────┐              │
    │  │  CORS  │→│  Rate Limit  │→│ Access Log │              │
    │  └────────┘ └──────────────┘ └────────────┘              │
    │                                                          │
    │  Route Groups:                                           │
    │  ┌───────┐ ┌───────────────┐ ┌──────────────┐ ┌────────┐ │
    │  │ /auth │ │ /tweets  CSRF │ │ /users  CSRF │ │ /rel.. │ │
    │  └───────┘ └───────────────┘ └──────────────┘ └────────┘ │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging configured, pipeline + routes installed, socket bound
    Shutdown: storage engine disposed (only when this module created it)
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Callable, Mapping, Optional

from fastapi import FastAPI, Request

from twitterclone import __version__
from twitterclone.cache import MemoryCache
from twitterclone.config import Settings, settings as default_settings
from twitterclone.database import Database
from twitterclone.exceptions import TwitterCloneError, error_response, internal_error_response
from twitterclone.routes.composer import RegisterRoutes
from twitterclone.server import Server

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(settings: Settings = default_settings) -> None:
    """
    Configure process-wide logging.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Access records come from the "twitterclone.access" logger; their
    fields are also available as record attributes for structured handlers.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Our access logger replaces uvicorn's
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

def create_lifespan(dispose: Optional[Callable[[], Any]] = None):
    """Lifespan that disposes storage owned by the composition root."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        yield
        logger.info("Shutting down...")
        if dispose is not None:
            await dispose()
        logger.info("Shutdown complete.")

    return lifespan


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI) -> None:
    """
    Map application exceptions to JSON error responses.

        TwitterCloneError (and subclasses) → exc.status_code, standard body
        Exception (fallback)               → 500, generic body

    Handler exceptions are normally rendered by the access log middleware,
    inside CORS; the fallback covers errors raised outside it.

    Stack traces are logged server-side only.
    """

    @app.exception_handler(TwitterCloneError)
    async def handle_app_error(request: Request, exc: TwitterCloneError):
        logger.warning("%s on %s %s: %s", exc.error_code, request.method, request.url.path, exc.message)
        return error_response(exc)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "Unexpected error on %s %s: %s",
            request.method,
            request.url.path,
            str(exc),
            exc_info=True,
        )
        return internal_error_response()


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def build_server(
    settings: Optional[Settings] = None,
    storage: Any = None,
    cache: Any = None,
    features: Optional[Mapping[str, RegisterRoutes]] = None,
) -> Server:
    """
    Assemble app, handles and Server; nothing is initialized or bound yet.

    Storage and cache default to a SQLAlchemy `Database` and a `MemoryCache`
    built from settings. A storage handle created here is disposed on
    shutdown; an injected one is left to its owner.
    """
    settings = settings or default_settings

    dispose = None
    if storage is None:
        storage = Database.from_settings(settings)
        dispose = storage.dispose
    if cache is None:
        cache = MemoryCache(default_ttl=settings.cache_default_ttl)

    app = FastAPI(
        title=settings.app_name,
        description="Twitter clone API: auth, tweets, users and relationships.",
        version=settings.app_version or __version__,
        lifespan=create_lifespan(dispose),
    )
    register_exception_handlers(app)

    return Server(app, storage, cache, settings=settings, features=features)


def create_app(
    settings: Optional[Settings] = None,
    storage: Any = None,
    cache: Any = None,
    features: Optional[Mapping[str, RegisterRoutes]] = None,
) -> FastAPI:
    """ASGI factory: a fully composed app, ready for any ASGI server."""
    server = build_server(settings=settings, storage=storage, cache=cache, features=features)
    server.initialize()
    return server.app
