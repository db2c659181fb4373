import logging
import re
import time
import uuid
from datetime import datetime
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

# -------------------------------------------------------------- #
# Constants
# -------------------------------------------------------------- #


CHUNK_ID_LENGTH = 16  # fixed length for chunk ids

# punctuation stripped from cache keys (full-width and ascii question marks, CJK stops)
NORMALIZE_STRIP_PATTERN = re.compile(r"[？?。、]")
WHITESPACE_PATTERN = re.compile(r"\s+")


# -------------------------------------------------------------- #
# Generators
# -------------------------------------------------------------- #


def generate_variable_char_uuid(length: int) -> str:
    """Generate a unique identifier of specified length."""
    if length <= 0 or length > 32:
        raise ValueError("Length must be between 1 and 32")
    return uuid.uuid4().hex[:length]


def generate_16_char_uuid() -> str:
    """Generate a unique 16-character identifier."""
    return generate_variable_char_uuid(CHUNK_ID_LENGTH)


# -------------------------------------------------------------- #
# Util Functions
# -------------------------------------------------------------- #


def get_current_timestamp_est() -> datetime:
    """Get the current EST timestamp."""
    return datetime.now(ZoneInfo("America/New_York"))


def now_ms() -> float:
    """Wall-clock time in milliseconds (used for TTL bookkeeping)."""
    return time.time() * 1000.0


def elapsed_ms(start: float) -> float:
    """Milliseconds elapsed since a `time.perf_counter()` reading."""
    return (time.perf_counter() - start) * 1000.0


def normalize_text(text: str) -> str:
    """
    Normalize text for use as a cache key.

    Case-folds, collapses whitespace runs into one space, strips the fixed
    punctuation set and trims the result.

    Args:
        text: Raw input text

    Returns:
        Normalized text
    """
    collapsed = WHITESPACE_PATTERN.sub(" ", text.casefold())
    return NORMALIZE_STRIP_PATTERN.sub("", collapsed).strip()


def truncate_for_log(text: str, limit: int = 50) -> str:
    """Shorten text for log lines."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
