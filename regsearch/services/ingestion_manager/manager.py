"""
Ingestion Manager Service.

Turns one regulation document into persisted chunks:

1. Text extraction (PDF through PyMuPDF, otherwise UTF-8)
2. Cleaning and structural chunking
3. Quality scoring, filtering (>= 50) and ordering
4. Removal of every chunk previously stored for the same source document
5. Per chunk: embedding, vector upsert, relational insert

A chunk that fails in step 5 is skipped; its siblings are kept. When any
chunk failed an IngestionError carrying the counts is raised after the loop.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, insert

if TYPE_CHECKING:
    from regsearch.context import Context

from regsearch.exceptions import DatabaseError, EmbeddingError, IngestionError, VectorStoreError
from regsearch.server.db_models import ChunkRecord
from regsearch.server.sql_models import RegulationChunkModel
from regsearch.server.vector_db_collections import REGULATION_CHUNKS_COLLECTION
from regsearch.services.ingestion_manager.extraction import extract_text
from regsearch.services.manager import BaseIngestionManagerService
from regsearch.services.text_processing.chunker import split_into_chunks
from regsearch.services.text_processing.quality import (
    ScoredChunk,
    filter_and_rank,
    quality_distribution,
)
from regsearch.services.vector_search_manager.ranking import analyze_chunk
from regsearch.utils import generate_16_char_uuid, get_current_timestamp_est


@dataclass
class IngestionReport:
    source_id: str
    total_chunks: int = 0
    quality_chunks: int = 0
    average_quality: float = 0.0
    persisted_chunks: int = 0
    distribution: dict[str, int] = field(
        default_factory=lambda: {"high": 0, "medium": 0, "low": 0}
    )
    chunk_ids: list[str] = field(default_factory=list)


class IngestionManagerService(BaseIngestionManagerService):
    """Document ingestion into the vector store and the relational table."""

    def __init__(self, context: Context, collection: str = REGULATION_CHUNKS_COLLECTION):
        super().__init__(context)
        self.collection = collection

    # -------------------------------------------------------------- #
    # Manager Methods
    # -------------------------------------------------------------- #

    async def on_start(self, services) -> None:
        await super().on_start(services)
        await self.services.logging_service.info(
            f"[IngestionManager] Started on collection '{self.collection}'"
        )

    async def on_close(self) -> None:
        await self.services.logging_service.info("[IngestionManager] Closed")

    # -------------------------------------------------------------- #
    # Ingestion
    # -------------------------------------------------------------- #

    async def ingest(
        self,
        document_bytes: bytes,
        source_id: str,
        document_label: str,
        scope_id: str | None = None,
    ) -> IngestionReport:
        """
        Ingest a document, replacing anything stored for `source_id` before.

        Args:
            document_bytes: PDF or UTF-8 text
            source_id: Source document id; re-ingestion replaces its chunks
            document_label: Human readable label stored with every chunk
            scope_id: Optional scope (e.g. union / tenant) for filtered search

        Returns:
            IngestionReport with chunk counts and the quality distribution

        Raises:
            IngestionError: Extraction or cleanup failed, or some chunks were not persisted
        """
        if not source_id:
            raise IngestionError("source_id is required")

        await self.services.logging_service.info(
            f"[IngestionManager] Ingesting '{document_label}' ({len(document_bytes)} bytes) "
            f"as {source_id}"
        )

        raw_text = await self._extract(document_bytes, source_id)
        chunks = split_into_chunks(raw_text)
        scored = filter_and_rank(chunks)
        qualities = [chunk.quality for chunk in scored]

        report = IngestionReport(
            source_id=source_id,
            total_chunks=len(chunks),
            quality_chunks=len(scored),
            average_quality=round(sum(qualities) / len(qualities), 2) if qualities else 0.0,
            distribution=quality_distribution(qualities),
        )

        await self._delete_prior_chunks(source_id)

        failures: list[dict[str, Any]] = []
        for index, chunk in enumerate(scored):
            record = self._build_record(chunk, index, source_id, document_label, scope_id)
            try:
                await self._persist(record)
            except (EmbeddingError, VectorStoreError, DatabaseError) as e:
                failures.append({"chunk_index": index, "error": str(e)})
                await self.services.logging_service.warning(
                    f"[IngestionManager] Skipped chunk {index} of {source_id}: {e}"
                )
                continue
            report.persisted_chunks += 1
            report.chunk_ids.append(record.id)

        await self.services.logging_service.info(
            f"[IngestionManager] {source_id}: {report.total_chunks} chunks, "
            f"{report.quality_chunks} passed quality (avg {report.average_quality}), "
            f"{report.persisted_chunks} persisted, {len(failures)} failed"
        )

        if failures:
            raise IngestionError(
                f"{len(failures)} of {report.quality_chunks} chunks could not be persisted",
                source_id=source_id,
                details={
                    "persisted": report.persisted_chunks,
                    "failed": len(failures),
                    "failures": failures,
                },
            )

        return report

    # -------------------------------------------------------------- #
    # Utils
    # -------------------------------------------------------------- #

    async def _extract(self, document_bytes: bytes, source_id: str) -> str:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, extract_text, document_bytes)
        except Exception as e:
            await self.services.logging_service.error(
                f"[IngestionManager] Text extraction failed for {source_id}: {e}"
            )
            raise IngestionError("Text extraction failed", source_id, {"error": str(e)}) from e

    async def _delete_prior_chunks(self, source_id: str) -> None:
        try:
            await self.server.vector_db_client.delete_where(
                self.collection, {"source_document_id": source_id}
            )
            stmt = delete(RegulationChunkModel).where(
                RegulationChunkModel.source_document_id == source_id
            )
            await self.services.database_pool_manager.write(stmt)
        except Exception as e:
            raise IngestionError(
                "Failed to remove previous chunks", source_id, {"error": str(e)}
            ) from e

    def _build_record(
        self,
        chunk: ScoredChunk,
        index: int,
        source_id: str,
        document_label: str,
        scope_id: str | None,
    ) -> ChunkRecord:
        analysis = analyze_chunk(chunk.text)
        return ChunkRecord(
            id=generate_16_char_uuid(),
            source_document_id=source_id,
            text=chunk.text,
            char_count=analysis.char_count,
            quality_score=chunk.quality,
            has_section_marker=analysis.has_section_marker,
            is_definition=analysis.is_definition,
            importance=analysis.importance,
            document_label=document_label,
            scope_id=scope_id,
            chunk_index=index,
            created_at=get_current_timestamp_est(),
        )

    async def _persist(self, record: ChunkRecord) -> None:
        embedding = await self.services.embedding_manager.embed(record.text)

        try:
            await self.server.vector_db_client.upsert(
                self.collection,
                ids=[record.id],
                embeddings=[embedding],
                documents=[record.text],
                metadatas=[record.to_vector_metadata()],
            )
        except Exception as e:
            raise VectorStoreError(
                "Chunk upsert failed", operation="upsert", details={"chunk_id": record.id}
            ) from e

        stmt = insert(RegulationChunkModel).values(**record.to_sql_row())
        await self.services.database_pool_manager.write(stmt)
