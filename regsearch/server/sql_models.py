from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import declarative_base

from regsearch.utils import CHUNK_ID_LENGTH

# -------------------------------------------------------------- #
# SQL Database Data Models
# -------------------------------------------------------------- #

Base = declarative_base()


# -------------------------------------------------------------- #
# Models
# -------------------------------------------------------------- #


class RegulationChunkModel(Base):
    """
    ID = Chunk ID
    Source Document ID = Document the chunk was cut from; re-ingestion replaces all of its rows
    Scope ID = Tenant / union the document belongs to (nullable for shared documents)
    Document Label = Human-readable document title
    Chunk Index = Position of the chunk after quality sorting
    Content = Chunk text
    Char Count = Length of the content in characters
    Quality Score = Heuristic score in [0, 100]
    Has Section Marker = Content carries an article / section heading
    Is Definition = Content is a definitions clause
    Importance = Ranking tiebreak weight
    Created At = Ingestion timestamp
    """

    __tablename__ = "regulation_chunks"

    id = Column(String(CHUNK_ID_LENGTH), primary_key=True, index=True)
    source_document_id = Column(String(255), nullable=False, index=True)
    scope_id = Column(String(255), nullable=True, index=True)
    document_label = Column(String(512), nullable=False)
    chunk_index = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    char_count = Column(Integer, nullable=False)
    quality_score = Column(Integer, nullable=False)
    has_section_marker = Column(Boolean, nullable=False, default=False)
    is_definition = Column(Boolean, nullable=False, default=False)
    importance = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, nullable=False)
