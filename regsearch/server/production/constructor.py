from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from regsearch.context import Context

from regsearch.server.common.chroma import construct_vector_db_client
from regsearch.server.common.embedding import SentenceTransformerProvider
from regsearch.server.production.postgresql import PostgreSQLServer
from regsearch.server.server import ServerManager

# -------------------------------------------------------------- #
# Constructor for Production Server Manager
# -------------------------------------------------------------- #


def load_sql_client(context: "Context") -> PostgreSQLServer:
    """Load and return the SQL client for production."""
    config = context.config

    if not config.sql_host or not config.sql_user or not config.sql_database:
        raise ValueError("Missing required SQL environment variables.")

    sql_handler = PostgreSQLServer(
        connection_string=config.sql_connection_string,
        min_size=config.pool_min_size,
        max_size=config.pool_max_size,
        command_timeout=config.statement_timeout,
        idle_timeout=config.pool_idle_timeout,
        ssl=config.sql_ssl,
    )
    return sql_handler


def load_vectordb_client(context: "Context"):
    """Load and return the ChromaDB HTTP client."""
    config = context.config
    return construct_vector_db_client(
        host=config.chroma_host, port=config.chroma_port, collection=config.chroma_collection
    )


def load_embedding_client(context: "Context") -> SentenceTransformerProvider:
    """Load and return the sentence-transformers embedding provider."""
    config = context.config
    return SentenceTransformerProvider(
        model_name=config.embedding_model, batch_size=config.embedding_batch_size
    )


def construct_server_manager(context: "Context") -> ServerManager:
    """
    Construct and return a ServerManager instance for production.

    Args:
        context: Context instance to pass to ServerManager

    Returns:
        Configured ServerManager instance
    """
    server_manager = ServerManager(
        context=context,
        sql_client=load_sql_client(context),
        vector_db_client=load_vectordb_client(context),
        embedding_client=load_embedding_client(context),
    )

    return server_manager
