from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from regsearch.context import Context

from regsearch.constructor import ServerManagerType
from regsearch.server.server import ServerManager

# -------------------------------------------------------------- #
# Constructor for Dynamic Creation of Server Manager
# -------------------------------------------------------------- #


def construct_server_manager(client_type: ServerManagerType, context: "Context") -> ServerManager:
    """Construct and return a ServerManager instance for the given backend set."""

    if client_type == ServerManagerType.TESTING:
        from regsearch.server.testing.constructor import construct_server_manager

        return construct_server_manager(context)
    elif client_type in (ServerManagerType.DEVELOPMENT, ServerManagerType.PRODUCTION):
        # development points the production clients at local services through Config
        from regsearch.server.production.constructor import construct_server_manager

        return construct_server_manager(context)

    raise ValueError(f"Unsupported ServerManagerType: {client_type}")
