"""
Twitter Clone Backend — Server (Listener)
===========================================

What:  Wires the global middleware and route groups onto a FastAPI app and
       serves it with uvicorn, in plain HTTP or TLS mode.
Why:   Startup must happen in a fixed order: pipeline first, routes second,
       socket last. Bind and certificate failures are reported, not raised.
How:   `Server.initialize()` runs once. `listen()` / `listen_tls()` then bind
       the socket themselves and hand it to a uvicorn Server, which blocks
       until the process is told to stop.

Lifecycle of listen()/listen_tls():
    1. initialize()    → middleware + routes (exactly once per Server)
    2. startup log     → "Starting up <name> <version>:<build>"
                         (skipped in supervised child worker processes)
    3. load TLS config → missing/invalid cert or key: log, return False
    4. bind socket     → address in use, permission denied: log, return False
    5. serve           → blocks until SIGINT/SIGTERM, returns True
"""

import logging
import multiprocessing
import os
import socket
from typing import Any, List, Mapping, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from twitterclone.config import Settings, settings as default_settings
from twitterclone.middleware.csrf import CSRFGuard, CSRFTokenStore
from twitterclone.middleware.logging import RequestLoggingMiddleware
from twitterclone.middleware.rate_limit import RateLimitMiddleware, RateWindowTable
from twitterclone.routes.composer import RegisterRoutes, RouteComposer, RouteGroup
from twitterclone.routes.features import DEFAULT_FEATURES

logger = logging.getLogger(__name__)

# Set to "1" by process supervisors for the worker processes they fork
CHILD_PROCESS_ENV = "TWITTERCLONE_CHILD_PROCESS"

CORS_ALLOW_METHODS = ["GET", "POST", "HEAD", "PUT", "DELETE", "PATCH"]


def is_child_process() -> bool:
    """True inside a supervised worker (multiprocessing child or flagged by env)."""
    if os.environ.get(CHILD_PROCESS_ENV) == "1":
        return True
    return multiprocessing.parent_process() is not None


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind a listening TCP socket; raises OSError if the address is unusable."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    sock.set_inheritable(True)
    return sock


class Server:
    """
    Composition of app, pipeline, routes and listener.

    Args:
        app:         FastAPI instance to configure and serve
        storage:     Storage handle passed through to feature modules
        cache:       Cache handle passed through to feature modules
        settings:    Service configuration (defaults to the env-loaded singleton)
        rate_table:  Rate limit counters (a fresh table per Server by default)
        csrf_store:  CSRF token registry (a fresh store per Server by default)
        features:    Feature registrations (defaults to DEFAULT_FEATURES)
    """

    def __init__(
        self,
        app: FastAPI,
        storage: Any,
        cache: Any,
        settings: Optional[Settings] = None,
        rate_table: Optional[RateWindowTable] = None,
        csrf_store: Optional[CSRFTokenStore] = None,
        features: Optional[Mapping[str, RegisterRoutes]] = None,
    ):
        self.app = app
        self.storage = storage
        self.cache = cache
        self.settings = settings or default_settings
        if rate_table is None:
            rate_table = RateWindowTable(
                limit=self.settings.rate_limit_max,
                window=self.settings.rate_limit_window,
            )
        self.rate_table = rate_table
        self.csrf_guard = CSRFGuard.from_settings(self.settings, store=csrf_store)
        self.features = features if features is not None else DEFAULT_FEATURES
        self.groups: List[RouteGroup] = []
        self._initialized = False

    # ── Initialization ────────────────────────────────────────────────────

    def initialize(self) -> None:
        """Install middleware and routes. Later calls are no-ops."""
        if self._initialized:
            return
        self.init_middlewares()
        self.init_routes()
        self._initialized = True

    def init_middlewares(self) -> None:
        # Starlette runs middleware in REVERSE order of addition.
        # Added: Access Log → Rate Limit → CORS
        # Runs:  CORS → Rate Limit → Access Log
        self.app.add_middleware(RequestLoggingMiddleware)
        self.app.add_middleware(RateLimitMiddleware, table=self.rate_table)
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=CORS_ALLOW_METHODS,
            allow_headers=["Content-Type", self.settings.csrf_header_name],
        )

    def init_routes(self) -> None:
        composer = RouteComposer(csrf_guard=self.csrf_guard, features=self.features)
        self.groups = composer.register_all(self.app, self.storage, self.cache)

    # ── Listening ─────────────────────────────────────────────────────────

    def listen(self) -> bool:
        """Serve plain HTTP on host:port. Returns False on startup failure."""
        return self._serve()

    def listen_tls(self, cert_file: str, key_file: str) -> bool:
        """Serve HTTPS on host:port. Returns False on startup failure."""
        return self._serve(ssl_certfile=cert_file, ssl_keyfile=key_file)

    def _serve(
        self,
        ssl_certfile: Optional[str] = None,
        ssl_keyfile: Optional[str] = None,
    ) -> bool:
        self.initialize()
        if not is_child_process():
            logger.info(
                "Starting up %s %s:%s",
                self.settings.app_name,
                self.settings.app_version,
                self.settings.build_id,
            )

        config = uvicorn.Config(
            self.app,
            host=self.settings.host,
            port=self.settings.port,
            ssl_certfile=ssl_certfile,
            ssl_keyfile=ssl_keyfile,
            log_config=None,  # logging is configured by setup_logging()
            access_log=False,
            server_header=False,
        )

        try:
            # Builds the SSL context, so bad cert/key paths fail here
            config.load()
            sock = bind_socket(self.settings.host, self.settings.port)
        except OSError as exc:
            logger.error("Failed to start listener on %s: %s", self.settings.address, exc)
            return False

        server = uvicorn.Server(config)
        try:
            server.run(sockets=[sock])
        except OSError as exc:
            logger.error("Listener on %s failed: %s", self.settings.address, exc)
            return False
        finally:
            sock.close()

        return server.started
