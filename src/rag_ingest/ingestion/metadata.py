"""Chunk identity, metadata sanitisation and batch statistics."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from rag_ingest.ingestion.models import EnrichedChunk, Primitive, ProcessingStats

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from langchain_core.documents import Document

# Fields owned by the enricher; loader metadata never overrides them.
RESERVED_FIELDS = frozenset(
    {
        "source",
        "document_id",
        "chunk_id",
        "chunk_index",
        "total_chunks",
        "chunk_size",
        "timestamp",
        "original_filename",
    }
)


def sanitize_metadata(metadata: Mapping[str, Any]) -> dict[str, Primitive]:
    """Restrict *metadata* to the primitive types a vector store accepts.

    ``None`` values are dropped, ``str``/``int``/``float``/``bool`` pass through
    unchanged and anything else is JSON-encoded to a string.  Applying the
    function twice gives the same result as applying it once.
    """
    sanitized: dict[str, Primitive] = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, (str, int, float, bool)):
            sanitized[str(key)] = value
        else:
            sanitized[str(key)] = json.dumps(value, default=str, ensure_ascii=False)
    return sanitized


def enrich_chunks(
    chunks: Sequence[Document],
    document_id: str,
    original_filename: str,
    source: str,
) -> list[EnrichedChunk]:
    """Attach identity and provenance to every chunk of one document.

    ``chunk_index`` follows the order of *chunks* and ``total_chunks`` is
    ``len(chunks)``.  The ``source`` stamped by the loader is kept; *source*
    is used only for chunks that carry none.  A fresh ``chunk_id`` is
    generated for each chunk, even when the same text is ingested again.
    *chunks* is not modified.
    """
    total = len(chunks)
    enriched: list[EnrichedChunk] = []
    for index, chunk in enumerate(chunks):
        sanitized = sanitize_metadata(chunk.metadata or {})
        inherited = {k: v for k, v in sanitized.items() if k not in RESERVED_FIELDS}
        enriched.append(
            EnrichedChunk(
                text=chunk.page_content,
                source=str(sanitized.get("source") or source),
                document_id=document_id,
                chunk_id=str(uuid4()),
                chunk_index=index,
                total_chunks=total,
                chunk_size=len(chunk.page_content),
                timestamp=datetime.now(timezone.utc).isoformat(),
                original_filename=original_filename,
                extra_metadata=inherited,
            )
        )
    return enriched


def calculate_chunk_stats(chunks: Sequence[EnrichedChunk], processing_time: float = 0.0) -> ProcessingStats:
    """Aggregate size statistics over *chunks*; an empty batch yields zeros."""
    sizes = [len(c.text) for c in chunks]
    if not sizes:
        return ProcessingStats(processing_time=processing_time)
    total = sum(sizes)
    return ProcessingStats(
        total_chunks=len(sizes),
        avg_chunk_size=round(total / len(sizes)),
        min_chunk_size=min(sizes),
        max_chunk_size=max(sizes),
        total_characters=total,
        processing_time=processing_time,
    )


def chunk_preview(content: str, max_length: int = 100) -> str:
    if len(content) <= max_length:
        return content
    return content[:max_length].strip() + "..."
