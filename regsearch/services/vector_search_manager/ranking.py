"""
Re-scoring, filtering and ordering of vector store candidates.

Everything here is pure: identical candidates and query always produce the
same ordered results. Queries are expected in normalized form so every value
derived from them depends only on the search cache key.
"""

import functools
import json
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from regsearch.server.services import VectorMatch
from regsearch.services.text_processing.patterns import (
    COMPLETE_SENTENCE_PATTERN,
    has_section_marker,
    is_definition,
)
from regsearch.utils import normalize_text

# -------------------------------------------------------------- #
# Constants
# -------------------------------------------------------------- #

SHORT_QUERY_LENGTH = 10
LONG_QUERY_LENGTH = 50
THRESHOLD_STEP = 0.1
MAX_DYNAMIC_THRESHOLD = 0.8
MIN_DYNAMIC_THRESHOLD = 0.2
MIN_RELAXED_THRESHOLD = 0.1
CANDIDATE_MULTIPLIER = 3

KEYWORD_BONUS = 0.2
DEFINITION_BONUS = 0.3
SECTION_BONUS = 0.2
COMPLETE_SENTENCE_BONUS = 0.1
COMPLETE_SENTENCE_MIN_LENGTH = 100
MAX_SCORE = 1.0

SIMILARITY_TIE_WINDOW = 0.05
MIN_CONTENT_LENGTH = 10
LONG_CHUNK_LENGTH = 500
MAX_KEYWORDS = 10

# question scaffolding removed before keyword extraction
QUESTION_PHRASES = ["教えてください", "について", "何ですか", "とは", "what is", "what are", "tell me about"]

STOPWORDS = {"the", "and", "for", "are", "does", "how", "what", "which", "about", "with", "this", "that"}


# -------------------------------------------------------------- #
# Data Structures
# -------------------------------------------------------------- #


@dataclass(frozen=True)
class SearchOptions:
    threshold: float = 0.3
    max_results: int = 5
    scope_id: Optional[str] = None
    prioritize_definitions: bool = True
    enable_cache: bool = True

    def __post_init__(self):
        if not 0.0 <= self.threshold <= 1.0:
            raise ValueError(f"threshold must be within [0, 1], got {self.threshold}")
        if self.max_results < 1:
            raise ValueError(f"max_results must be positive, got {self.max_results}")

    def cache_fields(self) -> dict[str, Any]:
        """Options that affect results; enable_cache only decides whether to look."""
        fields = asdict(self)
        fields.pop("enable_cache")
        return fields


@dataclass(frozen=True)
class ChunkAnalysis:
    char_count: int
    has_section_marker: bool
    is_definition: bool
    importance: int


@dataclass(frozen=True)
class SearchResult:
    chunk_id: str
    text: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def importance(self) -> int:
        return self.metadata.get("importance", 1)

    @property
    def char_count(self) -> int:
        return self.metadata.get("char_count", len(self.text))


# -------------------------------------------------------------- #
# Query Analysis
# -------------------------------------------------------------- #


def compute_dynamic_threshold(query: str, base_threshold: float) -> float:
    """Short queries need more precision, long ones allow more recall."""
    length = len(query)
    if length < SHORT_QUERY_LENGTH:
        adjusted = min(base_threshold + THRESHOLD_STEP, MAX_DYNAMIC_THRESHOLD)
    elif length > LONG_QUERY_LENGTH:
        adjusted = max(base_threshold - THRESHOLD_STEP, MIN_DYNAMIC_THRESHOLD)
    else:
        adjusted = base_threshold
    return round(adjusted, 4)


def compute_relaxed_threshold(dynamic_threshold: float) -> float:
    """Threshold for the broad first retrieval phase."""
    return round(max(dynamic_threshold - THRESHOLD_STEP, MIN_RELAXED_THRESHOLD), 4)


def extract_keywords(query: str) -> list[str]:
    """
    Keywords used for the overlap bonus.

    Question phrases are removed, tokens of one character and common
    stopwords are dropped, duplicates are removed and at most ten are kept.
    """
    text = normalize_text(query)
    for phrase in QUESTION_PHRASES:
        text = text.replace(phrase, " ")

    keywords: list[str] = []
    for token in text.split():
        if len(token) <= 1 or token in STOPWORDS or token in keywords:
            continue
        keywords.append(token)
        if len(keywords) == MAX_KEYWORDS:
            break
    return keywords


def build_search_cache_key(query: str, options: SearchOptions) -> str:
    options_json = json.dumps(options.cache_fields(), sort_keys=True, ensure_ascii=False)
    return f"{normalize_text(query)}|{options_json}"


# -------------------------------------------------------------- #
# Chunk Analysis and Scoring
# -------------------------------------------------------------- #


def analyze_chunk(text: str) -> ChunkAnalysis:
    """Structural features and importance weight of a chunk."""
    char_count = len(text)
    section = has_section_marker(text)
    definition = is_definition(text)

    importance = 1
    if definition:
        importance += 3
    if section:
        importance += 2
    if char_count > LONG_CHUNK_LENGTH:
        importance += 1

    return ChunkAnalysis(
        char_count=char_count,
        has_section_marker=section,
        is_definition=definition,
        importance=importance,
    )


def enhanced_score(
    similarity: float,
    text: str,
    keywords: list[str],
    analysis: ChunkAnalysis,
    prioritize_definitions: bool,
) -> float:
    score = similarity
    lowered = text.lower()

    matched = sum(1 for keyword in keywords if keyword in lowered)
    score += matched / max(len(keywords), 1) * KEYWORD_BONUS

    if prioritize_definitions and analysis.is_definition:
        score += DEFINITION_BONUS
    if analysis.has_section_marker:
        score += SECTION_BONUS
    if COMPLETE_SENTENCE_PATTERN.search(text) and len(text) > COMPLETE_SENTENCE_MIN_LENGTH:
        score += COMPLETE_SENTENCE_BONUS

    return min(score, MAX_SCORE)


def compare_results(a: SearchResult, b: SearchResult) -> int:
    """Similarity first unless within the tie window, then importance, then length."""
    if abs(a.score - b.score) > SIMILARITY_TIE_WINDOW:
        return -1 if a.score > b.score else 1
    if a.importance != b.importance:
        return b.importance - a.importance
    return b.char_count - a.char_count


# -------------------------------------------------------------- #
# Post Processing
# -------------------------------------------------------------- #


def rank_results(
    matches: list[VectorMatch],
    query: str,
    threshold: float,
    max_results: int,
    scope_id: Optional[str] = None,
    prioritize_definitions: bool = True,
) -> list[SearchResult]:
    """
    Re-score, filter and order candidates from the broad retrieval phase.

    Args:
        matches: Candidates from the vector store
        query: Normalized query text
        threshold: Strict threshold applied to the boosted score
        max_results: Maximum results returned
        scope_id: Only keep chunks of this scope when given
        prioritize_definitions: Apply the definition bonus

    Returns:
        Ranked results, at most `max_results`
    """
    keywords = extract_keywords(query)
    results: list[SearchResult] = []

    for match in matches:
        text = match.text or ""
        analysis = analyze_chunk(text)
        score = enhanced_score(match.similarity, text, keywords, analysis, prioritize_definitions)

        if score < threshold:
            continue
        if analysis.char_count < MIN_CONTENT_LENGTH:
            continue
        if scope_id and match.metadata.get("scope_id") != scope_id:
            continue

        metadata = dict(match.metadata)
        metadata.update(asdict(analysis))
        metadata["vector_similarity"] = match.similarity
        results.append(SearchResult(chunk_id=match.id, text=text, score=score, metadata=metadata))

    results.sort(key=functools.cmp_to_key(compare_results))
    return results[:max_results]
