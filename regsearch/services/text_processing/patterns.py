"""
Regular expressions shared by the chunker, the quality scorer and the ranker.

Headings cover Japanese regulation numbering (`第N条`, optionally preceded by
a full-width parenthetical title) as well as English `Article N`,
`Section N` and `§ N` styles.
"""

import re

# -------------------------------------------------------------- #
# Structure
# -------------------------------------------------------------- #

_SECTION_MARKER = r"第\d+条|Article\s+\d+|Section\s+\d+|§\s*\d+"

# any section / article marker inside a chunk
SECTION_MARKER_PATTERN = re.compile(_SECTION_MARKER)

# heading at line start, optionally preceded by a full-width title such as "（目的）\n第1条"
SECTION_HEADING_PATTERN = re.compile(
    rf"^(?:（[^）\n]+）\s*)?(?:{_SECTION_MARKER})", re.MULTILINE
)

# full-width parenthetical anywhere, or an ascii one opening a line
PARENTHETICAL_HEADING_PATTERN = re.compile(r"（[^）]+）|^\([^)\n]+\)", re.MULTILINE)

PARAGRAPH_BREAK_PATTERN = re.compile(r"\n\s*\n")

# -------------------------------------------------------------- #
# Noise
# -------------------------------------------------------------- #

# whole line is a page number: "12", "- 12 -", "−12"
PAGE_NUMBER_LINE_PATTERN = re.compile(r"^[-−]?\s*\d+\s*[-−]?$")

# chunk opens with a page-number fragment
PAGE_NUMBER_START_PATTERN = re.compile(r"^\s*[-−]\s*\d+")

SPACE_RUN_PATTERN = re.compile(r"[ \t　]{5,}")

DEFAULT_BOILERPLATE_PATTERNS = [
    re.compile(r"^資料\d+$"),
    re.compile(r"^マンション標準管理規約.*$"),
    re.compile(r"^Page\s+\d+\s+of\s+\d+$", re.IGNORECASE),
]

# -------------------------------------------------------------- #
# Content
# -------------------------------------------------------------- #

TERMINAL_PUNCTUATION_PATTERN = re.compile(r"[。！？]|[.!?](?:\s|$)")

# kanji-numbered definition items ("一 区分所有権 ... をいう") and English definition clauses
DEFINITION_PATTERNS = [
    re.compile(r"[一二三四五六七八九十]\s+[^。]+\s+[^。]*をいう"),
    re.compile(r"^[一二三四五六七八九十]\s+"),
    re.compile(r"[\"“][^\"”]+[\"”]\s+(?:means|shall mean)\b", re.IGNORECASE),
    re.compile(r"\bis defined as\b", re.IGNORECASE),
]

COMPLETE_SENTENCE_PATTERN = re.compile(r"[。.]")


def has_section_marker(text: str) -> bool:
    return SECTION_MARKER_PATTERN.search(text) is not None


def is_definition(text: str) -> bool:
    return any(pattern.search(text) for pattern in DEFINITION_PATTERNS)
