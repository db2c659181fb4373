from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from regsearch.server.sql_models import RegulationChunkModel
from regsearch.utils import CHUNK_ID_LENGTH

# -------------------------------------------------------------- #
# SQL DB Models
# -------------------------------------------------------------- #

SQL_DATABASE_MODELS = [
    RegulationChunkModel,
]


# -------------------------------------------------------------- #
# Pydantic Validation Models
# -------------------------------------------------------------- #


class ChunkRecord(BaseModel):
    """
    A persisted chunk. Built once during ingestion and never mutated after.

    Mirrors `RegulationChunkModel` for the relational row and supplies the
    metadata stored beside the vector.
    """

    id: str = Field(min_length=CHUNK_ID_LENGTH, max_length=CHUNK_ID_LENGTH)
    source_document_id: str = Field(min_length=1)
    text: str
    char_count: int = Field(ge=0)
    quality_score: int = Field(ge=0, le=100)
    has_section_marker: bool = False
    is_definition: bool = False
    importance: int = Field(default=1, ge=1)
    document_label: str
    scope_id: Optional[str] = None
    chunk_index: int = Field(ge=0)
    created_at: datetime

    model_config = {"frozen": True}

    @field_validator("text")
    def validate_text(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Chunk text cannot be empty")
        return v

    def to_vector_metadata(self) -> dict[str, Any]:
        """
        Metadata stored alongside the vector.

        Chroma metadata values must be scalars, so a missing scope is stored
        as an empty string.
        """
        return {
            "source_document_id": self.source_document_id,
            "document_label": self.document_label,
            "scope_id": self.scope_id or "",
            "chunk_index": self.chunk_index,
            "char_count": self.char_count,
            "quality_score": self.quality_score,
            "has_section_marker": self.has_section_marker,
            "is_definition": self.is_definition,
            "importance": self.importance,
        }

    def to_sql_row(self) -> dict[str, Any]:
        """Column values for `RegulationChunkModel`."""
        return {
            "id": self.id,
            "source_document_id": self.source_document_id,
            "scope_id": self.scope_id,
            "document_label": self.document_label,
            "chunk_index": self.chunk_index,
            "content": self.text,
            "char_count": self.char_count,
            "quality_score": self.quality_score,
            "has_section_marker": self.has_section_marker,
            "is_definition": self.is_definition,
            "importance": self.importance,
            "created_at": self.created_at,
        }
