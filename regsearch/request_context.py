"""
Request Context Module.

This module provides a context variable for the id of the request currently
being served. Managers read it to attribute timings to the right profile
without the id being passed explicitly through every call.
"""

from contextvars import ContextVar, Token
from typing import Optional

current_request_id: ContextVar[Optional[str]] = ContextVar("current_request_id", default=None)


def set_request_id(request_id: Optional[str]) -> Token:
    """
    Set the current request id.

    Args:
        request_id: The id of the request being served

    Returns:
        Token that restores the previous value
    """
    return current_request_id.set(request_id)


def reset_request_id(token: Token) -> None:
    """Restore the request id that was active before `set_request_id`."""
    current_request_id.reset(token)


def get_request_id() -> Optional[str]:
    """Get the id of the request being served, if any."""
    return current_request_id.get()
