"""
Configuration loader for the retrieval core.

Loads environment variables from .env.local (falling back to .env) with
sensible defaults. Every tunable used by the managers lives here so the
host builds a single Config at start-up and hands it to the constructors.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

from regsearch.constructor import ServerManagerType


def get_project_root() -> Path:
    """Get the project root directory (parent of the regsearch package)."""
    return Path(__file__).parent.parent


def load_env_files() -> None:
    """Load .env.local first, then .env; existing variables are never overridden."""
    root = get_project_root()
    load_dotenv(dotenv_path=root / ".env.local")
    load_dotenv(dotenv_path=root / ".env")


def _get_float(key: str, default: float) -> float:
    return float(os.getenv(key, str(default)))


def _get_int(key: str, default: int) -> int:
    return int(os.getenv(key, str(default)))


def _get_bool(key: str, default: bool) -> bool:
    return os.getenv(key, str(default)).lower() in ("1", "true", "yes")


class Config:
    """Configuration class with sensible defaults."""

    def __init__(self, load_env: bool = True):
        if load_env:
            load_env_files()

        self.project_root = get_project_root()
        self.server_type = ServerManagerType.from_env_value(os.getenv("REGSEARCH_ENV"))

        # SQL configuration
        self.sql_host = os.getenv("SQL_HOST", "localhost")
        self.sql_port = _get_int("SQL_PORT", 5432)
        self.sql_user = os.getenv("SQL_USER", "postgres")
        self.sql_password = os.getenv("SQL_PASSWORD", "")
        self.sql_database = os.getenv("SQL_DATABASE", "regulations")
        self.sql_ssl = _get_bool("SQL_SSL", False)

        # Pool bounds and timeouts (seconds)
        self.pool_min_size = _get_int("SQL_POOL_MIN", 2)
        self.pool_max_size = _get_int("SQL_POOL_MAX", 20)
        self.pool_acquire_timeout = _get_float("SQL_ACQUIRE_TIMEOUT", 2.0)
        self.statement_timeout = _get_float("SQL_STATEMENT_TIMEOUT", 10.0)
        self.pool_idle_timeout = _get_float("SQL_IDLE_TIMEOUT", 30.0)
        self.slow_query_threshold_ms = _get_float("SQL_SLOW_QUERY_MS", 100.0)

        # Vector store configuration
        self.chroma_host = os.getenv("CHROMA_HOST", "localhost")
        self.chroma_port = _get_int("CHROMA_PORT", 8000)
        self.chroma_collection = os.getenv("CHROMA_COLLECTION", "regulation_chunks")

        # Embedding provider configuration
        self.embedding_model = os.getenv("EMBEDDING_MODEL", "intfloat/multilingual-e5-large")
        self.embedding_batch_size = _get_int("EMBEDDING_BATCH_SIZE", 32)

        # Cache TTLs (milliseconds)
        self.embedding_cache_ttl_ms = _get_float("EMBEDDING_CACHE_TTL_MS", 24 * 60 * 60 * 1000)
        self.search_cache_ttl_ms = _get_float("SEARCH_CACHE_TTL_MS", 30 * 60 * 1000)
        self.query_cache_ttl_ms = _get_float("QUERY_CACHE_TTL_MS", 5 * 60 * 1000)

        # Background maintenance (seconds)
        self.cache_sweep_interval = _get_float("CACHE_SWEEP_INTERVAL", 5 * 60)
        self.profile_max_age_ms = _get_float("PROFILE_MAX_AGE_MS", 24 * 60 * 60 * 1000)

        # Logging
        self.log_dir = os.getenv("LOG_DIR", "logs")
        self.log_console = _get_bool("LOG_CONSOLE", True)

    @property
    def sql_connection_string(self) -> str:
        """Build the asyncpg connection string."""
        return (
            f"postgresql://{self.sql_user}:{self.sql_password}"
            f"@{self.sql_host}:{self.sql_port}/{self.sql_database}"
        )
