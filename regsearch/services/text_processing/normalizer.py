"""
Raw text cleanup applied before chunking.

Text extracted from PDFs carries page numbers, running headers and footers,
layout whitespace and a few known mojibake sequences. `clean_text` removes
them line by line while keeping single blank lines as paragraph boundaries.
"""

import re
from typing import Iterable

from regsearch.services.text_processing.patterns import (
    DEFAULT_BOILERPLATE_PATTERNS,
    PAGE_NUMBER_LINE_PATTERN,
    SPACE_RUN_PATTERN,
)

# literal substitutions applied to every kept line
CHARACTER_REPLACEMENTS = [
    ("→", ""),
    ("◯◯", "XX"),
]


def clean_text(raw: str, boilerplate_patterns: Iterable[re.Pattern] | None = None) -> str:
    """
    Clean extracted document text.

    - drops page-number-only lines and boilerplate header/footer lines
    - drops arrows and replaces `◯◯` with `XX`
    - collapses runs of 5+ spaces/tabs to two spaces and trims every line
    - collapses consecutive blank lines into one

    Args:
        raw: Raw extracted text
        boilerplate_patterns: Line patterns to drop (defaults cover common headers/footers)

    Returns:
        Cleaned text, empty when nothing meaningful remains
    """
    patterns = (
        list(boilerplate_patterns)
        if boilerplate_patterns is not None
        else DEFAULT_BOILERPLATE_PATTERNS
    )

    cleaned_lines: list[str] = []
    previous_blank = True  # suppresses leading blank lines

    for line in raw.splitlines():
        stripped = line.strip()

        if stripped and PAGE_NUMBER_LINE_PATTERN.match(stripped):
            continue
        if stripped and any(pattern.match(stripped) for pattern in patterns):
            continue

        for old, new in CHARACTER_REPLACEMENTS:
            stripped = stripped.replace(old, new)
        stripped = SPACE_RUN_PATTERN.sub("  ", stripped).strip()

        if not stripped:
            if not previous_blank:
                cleaned_lines.append("")
            previous_blank = True
            continue

        cleaned_lines.append(stripped)
        previous_blank = False

    while cleaned_lines and not cleaned_lines[-1]:
        cleaned_lines.pop()

    return "\n".join(cleaned_lines)
