from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from regsearch.context import Context

from regsearch.constructor import ServerManagerType
from regsearch.services.cache_maintenance.manager import CacheMaintenanceManagerService
from regsearch.services.database_pool_manager.manager import DatabasePoolManagerService
from regsearch.services.embedding_manager.manager import EmbeddingManagerService
from regsearch.services.ingestion_manager.manager import IngestionManagerService
from regsearch.services.logger import AsyncLoggingService
from regsearch.services.manager import ServicesManager
from regsearch.services.profiler.manager import ProfilerManagerService
from regsearch.services.vector_search_manager.manager import VectorSearchManagerService
from regsearch.utils import now_ms

# -------------------------------------------------------------- #
# Constructor for Dynamic Creation of Services Manager
# -------------------------------------------------------------- #


def construct_services_manager(
    service_type: ServerManagerType,
    context: "Context",
    default_logging_path: str | None = None,
    log_file: str | None = None,
    use_timestamp_logs: bool = True,
    clock: Callable[[], float] = now_ms,
) -> ServicesManager:
    """Construct and return a services manager for the given environment.

    Args:
        service_type: Environment the services run in
        context: Context holding the config and an initialized ServerManager
        default_logging_path: Directory for log files (defaults to config.log_dir)
        log_file: Specific log file name (optional, overrides use_timestamp_logs)
        use_timestamp_logs: If True and log_file is None, creates timestamped log files
        clock: Wall clock in ms shared by every cache and the profiler
    """
    if service_type not in (
        ServerManagerType.TESTING,
        ServerManagerType.DEVELOPMENT,
        ServerManagerType.PRODUCTION,
    ):
        raise ValueError(f"Unsupported service type: {service_type}")

    config = context.config

    logging_service = AsyncLoggingService(
        context=context,
        log_dir=default_logging_path or config.log_dir,
        log_file=log_file,
        use_timestamp=use_timestamp_logs,
        console_output=config.log_console,
        # production logs skip the per-query debug lines
        min_level="INFO" if service_type == ServerManagerType.PRODUCTION else "DEBUG",
    )

    # -------------------------------------------------------------- #
    # Instrumentation
    # -------------------------------------------------------------- #

    profiler_manager = ProfilerManagerService(
        context=context, max_age_ms=config.profile_max_age_ms, clock=clock
    )

    # -------------------------------------------------------------- #
    # DB Interfaces Setup
    # -------------------------------------------------------------- #

    database_pool_manager = DatabasePoolManagerService(
        context=context,
        acquire_timeout=config.pool_acquire_timeout,
        statement_timeout=config.statement_timeout,
        slow_query_threshold_ms=config.slow_query_threshold_ms,
        cache_ttl_ms=config.query_cache_ttl_ms,
        clock=clock,
    )

    # -------------------------------------------------------------- #
    # Retrieval Setup
    # -------------------------------------------------------------- #

    embedding_manager = EmbeddingManagerService(
        context=context, ttl_ms=config.embedding_cache_ttl_ms, clock=clock
    )
    vector_search_manager = VectorSearchManagerService(
        context=context,
        collection=config.chroma_collection,
        ttl_ms=config.search_cache_ttl_ms,
        clock=clock,
    )
    ingestion_manager = IngestionManagerService(
        context=context, collection=config.chroma_collection
    )

    # -------------------------------------------------------------- #
    # Background Maintenance Setup
    # -------------------------------------------------------------- #

    cache_maintenance_manager = CacheMaintenanceManagerService(
        context=context,
        interval=config.cache_sweep_interval,
        profile_max_age_ms=config.profile_max_age_ms,
    )

    return ServicesManager(
        context=context,
        logging_service=logging_service,
        profiler_manager=profiler_manager,
        database_pool_manager=database_pool_manager,
        embedding_manager=embedding_manager,
        vector_search_manager=vector_search_manager,
        ingestion_manager=ingestion_manager,
        cache_maintenance_manager=cache_maintenance_manager,
    )
