from regsearch.services.text_processing.normalizer import clean_text
from regsearch.services.text_processing.patterns import (
    PARAGRAPH_BREAK_PATTERN,
    SECTION_HEADING_PATTERN,
)

# -------------------------------------------------------------- #
# Constants
# -------------------------------------------------------------- #

SECTION_CEILING = 2000  # sections longer than this are split by paragraph
PARAGRAPH_CEILING = 1500  # max characters accumulated into one chunk
MIN_CHUNK_LENGTH = 50  # shorter candidates are noise


# -------------------------------------------------------------- #
# Chunking
# -------------------------------------------------------------- #


def split_into_chunks(raw: str) -> list[str]:
    """
    Split a raw document into ordered chunk candidates.

    Sections start at numbered headings and keep their heading. Sections over
    the section ceiling are split by paragraph. A document with no headings
    at all is split by paragraph directly. Candidates under the minimum
    length are dropped.

    Args:
        raw: Raw extracted document text

    Returns:
        Chunk texts in document order (empty for empty input)
    """
    cleaned = clean_text(raw)
    if not cleaned:
        return []

    if SECTION_HEADING_PATTERN.search(cleaned) is None:
        candidates = split_by_paragraphs(cleaned)
    else:
        candidates = []
        for section in split_into_sections(cleaned):
            if len(section) > SECTION_CEILING:
                candidates.extend(split_by_paragraphs(section))
            else:
                candidates.append(section)

    return [candidate for candidate in candidates if len(candidate) >= MIN_CHUNK_LENGTH]


def split_into_sections(text: str) -> list[str]:
    """Split in front of every heading; text before the first heading is its own section."""
    starts = [match.start() for match in SECTION_HEADING_PATTERN.finditer(text)]
    bounds = [0, *starts, len(text)]
    sections = (text[start:end].strip() for start, end in zip(bounds, bounds[1:]))
    return [section for section in sections if section]


def split_by_paragraphs(text: str, ceiling: int = PARAGRAPH_CEILING) -> list[str]:
    """
    Accumulate paragraphs into chunks of at most `ceiling` characters.

    A single paragraph longer than the ceiling is windowed into contiguous
    `ceiling`-sized slices.
    """
    chunks: list[str] = []
    current = ""

    for paragraph in PARAGRAPH_BREAK_PATTERN.split(text):
        trimmed = paragraph.strip()
        if not trimmed:
            continue

        if len(trimmed) > ceiling:
            if current:
                chunks.append(current)
                current = ""
            chunks.extend(window(trimmed, ceiling))
            continue

        if current and len(current) + 2 + len(trimmed) > ceiling:
            chunks.append(current)
            current = trimmed
        else:
            current = f"{current}\n\n{trimmed}" if current else trimmed

    if current:
        chunks.append(current)

    return chunks


def window(text: str, size: int = PARAGRAPH_CEILING) -> list[str]:
    """Cut text into contiguous, non-overlapping slices of `size` characters."""
    return [text[start : start + size] for start in range(0, len(text), size)]
