"""Abstract base class for vector-store backends.

A backend is the ingestion pipeline's embedding+storage collaborator and the
query surface of the answering path.  Adding a new backend (Pinecone,
Qdrant …) only requires subclassing :class:`VectorStoreBase` and
implementing the abstract methods; tests substitute in-memory fakes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from rag_ingest.ingestion.models import EnrichedChunk, StoreResult
from rag_ingest.retrieval.models import MetadataFilter


class VectorStoreBase(ABC):
    """Backend-agnostic vector-store interface.

    Parameters
    ----------
    collection_name:
        Default collection used when a call does not name one.
    """

    def __init__(self, collection_name: str) -> None:
        self.collection_name = collection_name

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def upsert(self, chunks: Sequence[EnrichedChunk], collection_name: str | None = None) -> StoreResult:
        """Embed and store *chunks*, creating the collection on demand.

        Implementations must not raise for embedding problems: a chunk that
        cannot be embedded is reported in :attr:`StoreResult.failures` and
        the rest are stored.  ``success=False`` means nothing was stored.
        """
        ...

    @abstractmethod
    def similarity_search(
        self,
        query_embedding: list[float],
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
        collection_name: str | None = None,
    ) -> list[dict[str, Any]]:
        """Return the top-*k* results matching *query_embedding*.

        Each result dict **must** contain at least:

        * ``"id"`` – chunk identifier
        * ``"content"`` – the textual content
        * ``"score"`` – similarity score (higher = more similar)
        * ``"metadata"`` – the chunk's stored metadata
        """
        ...

    @abstractmethod
    def similarity_search_by_text(
        self,
        query: str,
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
        collection_name: str | None = None,
    ) -> list[dict[str, Any]]:
        """Embed *query* and delegate to :meth:`similarity_search`."""
        ...

    @abstractmethod
    def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        ...

    # -- optional overrides ---------------------------------------------------

    def delete(self, ids: list[str], collection_name: str | None = None) -> None:
        """Delete chunks by their IDs.  Optional — raises by default."""
        raise NotImplementedError(f"{type(self).__name__} does not support delete")

    def list_collections(self) -> list[dict[str, Any]]:
        """Return ``{"name", "count"}`` for every collection."""
        raise NotImplementedError(f"{type(self).__name__} does not support listing collections")

    def collection_stats(self, collection_name: str | None = None) -> dict[str, Any]:
        raise NotImplementedError(f"{type(self).__name__} does not support collection stats")

    def delete_collection(self, collection_name: str) -> None:
        raise NotImplementedError(f"{type(self).__name__} does not support deleting collections")

    def _resolve(self, collection_name: str | None) -> str:
        return collection_name or self.collection_name
