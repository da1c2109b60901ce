"""Composition root for the Planner backend.

This module is the ONLY location that imports both core domain logic
and concrete adapter implementations. All wiring of dependencies
happens here, creating a clear entry point for the application.

Module Structure:
- Configuration loading via config module and command-line flags
- Store selection and schema migration
- Core service initialization
- RPC server and client facade startup
- Shutdown on SIGINT/SIGTERM, releasing resources in reverse order
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from contextlib import AsyncExitStack
from typing import Any

from pydantic import ValidationError

from planner.adapters.client.client import PlannerClient
from planner.adapters.rpc.dispatcher import RPCDispatcher
from planner.adapters.rpc.http_server import RPCServer
from planner.adapters.store.sqlite import SQLiteEntityStore
from planner.config import Settings, load_settings
from planner.core.entity_service import Services, build_services
from planner.core.models import DeletePolicy
from planner.core.ports import EntityStorePort

logger = logging.getLogger(__name__)


class JSONFormatter(logging.Formatter):
    """One JSON object per line; message text is escaped."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def configure_logging(log_level: str, log_format: str) -> None:
    """Configure application logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: Log format (json, text).
    """
    level = getattr(logging, log_level, logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    logging.basicConfig(level=level, handlers=[handler])


def build_store(settings: Settings) -> EntityStorePort:
    """Instantiate the entity store selected by ``settings.db_type``.

    Raises:
        ValueError: If the store kind is unknown or misconfigured.
    """
    if settings.db_type == "sqlite":
        logger.info(f"Entity store: SQLite at {settings.db_path}")
        return SQLiteEntityStore(
            db_path=settings.db_path,
            pool_size=settings.sqlite_pool_size,
        )
    if settings.db_type == "postgres":
        if not settings.database_url:
            raise ValueError("postgres store selected but no database URL configured")
        # Lazy import for optional PostgreSQL dependency
        from planner.adapters.store.postgresql import PostgreSQLEntityStore

        logger.info("Entity store: PostgreSQL")
        return PostgreSQLEntityStore(
            dsn=settings.database_url,
            pool_size=settings.postgres_pool_size,
        )
    raise ValueError(f"Unknown store backend: {settings.db_type}")


def client_base_url(bound_address: str) -> str:
    """URL a local client uses to reach a server bound to ``host:port``."""
    host, _, port = bound_address.rpartition(":")
    if host in ("", "0.0.0.0"):
        host = "127.0.0.1"
    elif host == "::":
        host = "[::1]"
    return f"http://{host}:{port}"


class Application:
    """Owns the store, services, RPC server and client facade.

    Used as an async context manager. Resources are acquired in the order
    store, server, client and released in reverse, so the store is closed
    only after the server has stopped accepting calls and drained.
    """

    def __init__(self, settings: Settings, store: EntityStorePort | None = None):
        """Initialize the application.

        Args:
            settings: Validated configuration.
            store: Optional pre-built store; by default one is built from
                settings.
        """
        self.settings = settings
        self._store = store
        self.services: Services | None = None
        self.server: RPCServer | None = None
        self.client: PlannerClient | None = None
        self._stack = AsyncExitStack()

    @property
    def store(self) -> EntityStorePort | None:
        return self._store

    async def __aenter__(self) -> "Application":
        try:
            await self._start()
        except BaseException:
            await self._stack.aclose()
            raise
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        logger.info("Shutting down Planner...")
        await self._stack.aclose()
        logger.info("Planner stopped")

    async def _start(self) -> None:
        settings = self.settings

        if self._store is None:
            self._store = build_store(settings)
        store = self._store
        self._stack.push_async_callback(store.close)
        await store.initialize()

        self.services = build_services(
            store, delete_policy=DeletePolicy(settings.delete_policy)
        )
        logger.info(f"Delete policy: {settings.delete_policy}")

        server = RPCServer(
            RPCDispatcher(self.services),
            default_timeout=settings.request_timeout_seconds,
        )
        bound = await server.start(settings.listen_address)
        self._stack.push_async_callback(server.stop)
        self.server = server

        client = PlannerClient(
            client_base_url(bound), timeout=settings.request_timeout_seconds
        )
        self._stack.push_async_callback(client.close)
        self.client = client
        logger.info(f"Planner listening on {bound}")


async def serve(settings: Settings, stop_event: asyncio.Event | None = None) -> None:
    """Run the application until SIGINT/SIGTERM or ``stop_event`` is set."""
    stop_event = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()

    def _handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating graceful shutdown...")
        stop_event.set()

    try:
        loop.add_signal_handler(signal.SIGTERM, _handle_signal, signal.SIGTERM)
        loop.add_signal_handler(signal.SIGINT, _handle_signal, signal.SIGINT)
    except NotImplementedError:
        # Signal handlers not available on Windows
        logger.debug("Signal handlers not available on this platform")

    async with Application(settings):
        logger.info("Press Ctrl+C to stop")
        await stop_event.wait()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="planner-server",
        description="Planner RPC server backed by SQLite or PostgreSQL.",
    )
    parser.add_argument(
        "--db-type",
        choices=["sqlite", "postgres"],
        help="Database type (overrides PLANNER_DB_TYPE)",
    )
    parser.add_argument(
        "--db-config",
        help="File path for sqlite, connection string for postgres",
    )
    parser.add_argument("--host", help="Host to listen on")
    parser.add_argument("--port", type=int, help="Port to listen on")
    parser.add_argument("--env-file", help="Path to a .env file")
    return parser.parse_args(argv)


def settings_from_args(args: argparse.Namespace) -> Settings:
    """Load settings, letting command-line flags override the environment."""
    overrides: dict[str, Any] = {}
    if args.db_type:
        overrides["db_type"] = args.db_type
    if args.host:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.db_config:
        db_type = args.db_type or load_settings(args.env_file).db_type
        key = "db_path" if db_type == "sqlite" else "database_url"
        overrides[key] = args.db_config
    return load_settings(args.env_file, **overrides)


def main(argv: list[str] | None = None) -> None:
    """Application entry point.

    Exit codes:
        0: Successful shutdown
        1: Fatal configuration or runtime error
        130: Interrupted by user (SIGINT/KeyboardInterrupt)
    """
    args = parse_args(argv)
    try:
        settings = settings_from_args(args)
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    configure_logging(settings.log_level, settings.log_format)
    logger.info(f"Starting Planner (database: {settings.db_type})")

    try:
        asyncio.run(serve(settings))
    except KeyboardInterrupt:
        logger.warning("Shutdown requested by user (SIGINT)")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
