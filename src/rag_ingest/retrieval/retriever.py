"""Semantic retriever — metadata-aware search with citation tracking.

This is the query surface that reads back what ingestion stored: the
metadata field names attached by the enricher (``source``,
``document_id``, ``chunk_index``, ``original_filename``,
``page_number``) are exactly what citations expose.

Usage::

    retriever = SemanticRetriever(store)
    for r in retriever.search("What does the report conclude?", k=5):
        print(r.citation.short_ref(), r.content[:80])
"""

from __future__ import annotations

import logging
from typing import Any

from rag_ingest.retrieval.base import VectorStoreBase
from rag_ingest.retrieval.models import Citation, MetadataFilter, RetrievalResult

logger = logging.getLogger(__name__)


def _as_int(value: Any) -> int | None:
    return value if isinstance(value, int) and not isinstance(value, bool) else None


class SemanticRetriever:
    """High-level retriever that wraps any :class:`VectorStoreBase`.

    Parameters
    ----------
    store:
        A concrete vector-store backend.
    default_k:
        Default number of results returned by :meth:`search`.
    score_threshold:
        Minimum similarity score; results below this are discarded.
    """

    def __init__(
        self,
        store: VectorStoreBase,
        *,
        default_k: int = 4,
        score_threshold: float = 0.0,
    ) -> None:
        self._store = store
        self.default_k = default_k
        self.score_threshold = score_threshold

    def search(
        self,
        query: str,
        *,
        k: int | None = None,
        filters: list[MetadataFilter] | None = None,
        collection_name: str | None = None,
    ) -> list[RetrievalResult]:
        """Run a semantic search and return ranked results with citations."""
        k = k or self.default_k
        raw_hits = self._store.similarity_search_by_text(
            query, k=k, filters=filters, collection_name=collection_name
        )
        results = self._to_results(raw_hits)
        logger.info("Retrieved %d result(s) for query (%d chars)", len(results), len(query))
        return results

    def search_by_embedding(
        self,
        embedding: list[float],
        *,
        k: int | None = None,
        filters: list[MetadataFilter] | None = None,
        collection_name: str | None = None,
    ) -> list[RetrievalResult]:
        """Same as :meth:`search` but accepts a pre-computed embedding."""
        k = k or self.default_k
        raw_hits = self._store.similarity_search(
            embedding, k=k, filters=filters, collection_name=collection_name
        )
        return self._to_results(raw_hits)

    def _to_results(self, raw_hits: list[dict[str, Any]]) -> list[RetrievalResult]:
        results: list[RetrievalResult] = []
        for hit in raw_hits:
            score = hit.get("score")
            if score is not None and score < self.score_threshold:
                continue

            meta = hit.get("metadata", {})
            citation = Citation(
                chunk_id=hit.get("id"),
                document_id=meta.get("document_id"),
                source=meta.get("source", "unknown"),
                original_filename=meta.get("original_filename"),
                chunk_index=_as_int(meta.get("chunk_index")),
                page_number=_as_int(meta.get("page_number")),
                score=score,
                metadata=meta,
            )
            results.append(RetrievalResult(content=hit.get("content", ""), citation=citation))
        return results
