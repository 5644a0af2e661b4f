"""Roku Integration -- standalone host entry point.

Usage::

    python -m roku_integration [--config PATH] [--port PORT]

Startup sequence:
    1. Parse CLI arguments
    2. Load configuration from YAML (or defaults)
    3. Open SQLite database and prepare the host schema
    4. Initialise the event bus and host
    5. Install and initialise the Roku extension
    6. Start the polling manager
    7. Start the uvicorn server
    8. On shutdown: stop polling, close database
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

import uvicorn

from roku_integration import EXTENSION_NAME, __version__
from roku_integration.config import Settings, load_settings, parse_log_level
from roku_integration.host.http import create_app  # noqa: F401 -- patched in tests

logger = logging.getLogger("roku_integration")


# ---------------------------------------------------------------------------
# Integration seams -- module-level names so tests can patch them individually
# ---------------------------------------------------------------------------


def load_config(config_path: str | None) -> Settings:
    path = Path(config_path) if config_path else None
    return load_settings(config_path=path)


async def open_db(db_path: Path) -> Any:
    """Open the SQLite database."""
    import aiosqlite

    db_path.parent.mkdir(parents=True, exist_ok=True)
    db = await aiosqlite.connect(str(db_path))
    db.row_factory = aiosqlite.Row
    return db


async def prepare_schema(db: Any) -> None:
    """Create missing host tables and stamp the schema version."""
    from roku_integration.host.schema import ensure_schema

    version = await ensure_schema(db)
    logger.info("Host schema at v%d", version)


def create_event_bus(db: Any) -> Any:
    """Create the event bus backed by the persistent event log."""
    from roku_integration.host.events import EventBus, EventLog

    return EventBus(EventLog(db))


async def install_extension(host: Any, settings: Settings) -> Any:
    """Install and initialise the Roku extension on *host*."""
    from roku_integration.plugin import RokuIntegration

    extension = RokuIntegration(settings=settings)
    api = host.api_for(EXTENSION_NAME)
    await extension.on_install(api)
    await extension.init(api)
    return extension


# ---------------------------------------------------------------------------
# CLI argument parsing
# ---------------------------------------------------------------------------


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Parameters
    ----------
    argv:
        Argument list.  Defaults to ``sys.argv[1:]`` when ``None``.
    """
    parser = argparse.ArgumentParser(
        prog="roku-integration",
        description="Discover, poll and control Roku devices over ECP",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML configuration file",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for the API server (default: from config, 8080)",
    )
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Main run coroutine
# ---------------------------------------------------------------------------


async def run_host(config_path: str | None = None, port: int | None = None) -> None:
    """Start the host with the Roku extension and run until cancelled."""
    from roku_integration.host.polling import PollingManager
    from roku_integration.host.sqlite_host import Host

    # 1. Load config
    settings = load_config(config_path)
    if port is not None:
        settings.host.port = port

    # 2. Open database and prepare the schema
    db = await open_db(Path(settings.host.data_dir) / "roku_integration.db")
    await prepare_schema(db)

    # 3. Event bus, host and polling manager
    event_bus = create_event_bus(db)
    host = Host(db, event_bus)
    polling = PollingManager(host, offline_after_failures=settings.polling.offline_after_failures)

    # 4. Extension
    extension = await install_extension(host, settings)

    # 5. Polling
    await polling.start()

    # 6. HTTP
    app = create_app(host, title=settings.host.name, version=__version__)
    server = uvicorn.Server(uvicorn.Config(
        app=app,
        host=settings.host.bind_host,
        port=settings.host.port,
        log_level="info",
    ))

    try:
        await server.serve()
    except asyncio.CancelledError:
        logger.info("Shutdown signal received -- stopping host")
    finally:
        logger.info("Stopping polling manager...")
        await polling.stop()

        await extension.on_disable()

        logger.info("Closing database...")
        await db.close()

        logger.info("Host shutdown complete")


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = parse_args(argv)
    settings = load_config(args.config)

    logging.basicConfig(
        level=parse_log_level(settings.logging.level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        asyncio.run(run_host(config_path=args.config, port=args.port))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
