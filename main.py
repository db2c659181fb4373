# Main File

import asyncio
import logging
import signal
import sys
from datetime import datetime
from pathlib import Path

from regsearch.config import Config
from regsearch.context import Context
from regsearch.exceptions import IngestionError
from regsearch.server.constructor import construct_server_manager
from regsearch.services.constructor import construct_services_manager

# Configure Python's built-in logging for server initialization
# (before AsyncLoggingService is available)
logs_dir = Path("logs")
logs_dir.mkdir(parents=True, exist_ok=True)
timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
log_file = logs_dir / f"app_{timestamp}.log"

logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler(log_file, mode="a", encoding="utf-8"),
    ],
    force=True,
)


# -------------------------------------------------------------- #
# Startup Ingestion
# -------------------------------------------------------------- #


async def ingest_paths(context: Context, paths: list[str]) -> None:
    """Ingest documents given on the command line, one source id per file stem."""
    logger = context.services_manager.logging_service
    ingestion = context.services_manager.ingestion_manager

    for raw_path in paths:
        path = Path(raw_path)
        if not path.is_file():
            await logger.warning(f"Skipping '{path}': not a file")
            continue

        try:
            report = await ingestion.ingest(path.read_bytes(), path.stem, path.name)
            await logger.info(
                f"✓ Ingested {path.name}: {report.persisted_chunks}/{report.quality_chunks} "
                f"chunks (avg quality {report.average_quality}, {report.distribution})"
            )
        except IngestionError as e:
            await logger.error(f"Ingestion of {path.name} incomplete: {e}")


# -------------------------------------------------------------- #
# Run Service
# -------------------------------------------------------------- #


async def main():
    """Start servers and services, then run until SIGINT / SIGTERM."""
    print("=" * 40)
    print("Syncing services...")

    config = Config()
    context = Context(config)

    # init server manager
    servers_manager = construct_server_manager(config.server_type, context)
    context.set_server_manager(servers_manager)
    await servers_manager.connect_all()
    print("[OK] Connected all servers.")

    services_manager = construct_services_manager(
        config.server_type,
        context=context,
        default_logging_path=config.log_dir,
        use_timestamp_logs=True,
    )
    context.set_services_manager(services_manager)
    await services_manager.initialize_all()
    print("[OK] Initialized all services.")
    print("=" * 40)

    logger = services_manager.logging_service

    # shutdown runs once no matter how many signals arrive
    shutdown_task: asyncio.Task | None = None

    def request_shutdown(sig: signal.Signals) -> None:
        nonlocal shutdown_task
        if shutdown_task is not None:
            return
        logger.log_nowait(f"Received {sig.name}, shutting down", "WARNING")
        shutdown_task = asyncio.create_task(services_manager.shutdown_all(timeout=30.0))

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, request_shutdown, sig)

    services_manager.cache_maintenance_manager.start()

    if len(sys.argv) > 1:
        await ingest_paths(context, sys.argv[1:])

    health = await servers_manager.health_check_all()
    await logger.info(f"Server health: {health}")
    unhealthy = [role for role, ok in health.items() if not ok]
    if unhealthy:
        await logger.critical(f"Backends failing health checks: {unhealthy}")
    await logger.info("Retrieval core running. Press Ctrl+C to stop.")

    await context.wait_for_shutdown().wait()
    if shutdown_task is not None:
        await shutdown_task

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.remove_signal_handler(sig)


if __name__ == "__main__":
    asyncio.run(main())
