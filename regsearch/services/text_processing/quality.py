from dataclasses import dataclass
from typing import Iterable

from regsearch.services.text_processing.patterns import (
    PAGE_NUMBER_START_PATTERN,
    PARENTHETICAL_HEADING_PATTERN,
    SECTION_MARKER_PATTERN,
    SPACE_RUN_PATTERN,
    TERMINAL_PUNCTUATION_PATTERN,
)

# -------------------------------------------------------------- #
# Constants
# -------------------------------------------------------------- #

BASE_SCORE = 100
QUALITY_THRESHOLD = 50  # chunks below this are never persisted

HIGH_QUALITY = 80
MEDIUM_QUALITY = 60


@dataclass(frozen=True)
class ScoredChunk:
    text: str
    quality: int


# -------------------------------------------------------------- #
# Scoring
# -------------------------------------------------------------- #


def score(text: str) -> int:
    """
    Heuristic quality score for a chunk, clamped to [0, 100].

    Every rule is evaluated independently against the same text and the
    adjustments are summed before clamping.

    Args:
        text: Chunk text

    Returns:
        Integer score
    """
    length = len(text)
    total = BASE_SCORE

    # length
    if length < 50:
        total -= 50
    elif length < 100:
        total -= 20
    elif length > 2000:
        total -= 30

    # meaningful content
    if SECTION_MARKER_PATTERN.search(text):
        total += 20
    if PARENTHETICAL_HEADING_PATTERN.search(text):
        total += 10
    if TERMINAL_PUNCTUATION_PATTERN.search(text):
        total += 15

    # noise
    if PAGE_NUMBER_START_PATTERN.match(text):
        total -= 30
    if text.count("\n") + 1 > length / 10:
        total -= 20
    if SPACE_RUN_PATTERN.search(text):
        total -= 15

    return max(0, min(100, total))


def filter_and_rank(chunks: Iterable[str]) -> list[ScoredChunk]:
    """Score chunks, drop those under the quality gate and sort best first (stable)."""
    scored = [ScoredChunk(text=chunk, quality=score(chunk)) for chunk in chunks]
    approved = [item for item in scored if item.quality >= QUALITY_THRESHOLD]
    return sorted(approved, key=lambda item: item.quality, reverse=True)


def quality_distribution(scores: Iterable[int]) -> dict[str, int]:
    """Bucket approved scores into high (>=80), medium (60-79) and low (50-59)."""
    distribution = {"high": 0, "medium": 0, "low": 0}
    for value in scores:
        if value >= HIGH_QUALITY:
            distribution["high"] += 1
        elif value >= MEDIUM_QUALITY:
            distribution["medium"] += 1
        else:
            distribution["low"] += 1
    return distribution
