"""Chroma implementation of the vector-store abstraction."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import chromadb
from langchain_huggingface import HuggingFaceEmbeddings

from rag_ingest.config import settings
from rag_ingest.ingestion.metadata import sanitize_metadata
from rag_ingest.ingestion.models import EmbeddingFailureDetail, EnrichedChunk, StoreResult
from rag_ingest.retrieval.base import VectorStoreBase
from rag_ingest.retrieval.models import MetadataFilter

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

logger = logging.getLogger(__name__)


def get_embedding_function(model_name: str = settings.embedding_model) -> HuggingFaceEmbeddings:
    """Return the configured sentence-transformer embedding function."""
    return HuggingFaceEmbeddings(model_name=model_name)


def _build_chroma_where(filters: list[MetadataFilter]) -> dict[str, Any] | None:
    """Convert a list of :class:`MetadataFilter` to Chroma ``where`` syntax."""
    if not filters:
        return None

    _OP_MAP = {
        "eq": "$eq",
        "ne": "$ne",
        "gt": "$gt",
        "gte": "$gte",
        "lt": "$lt",
        "lte": "$lte",
        "in": "$in",
        "nin": "$nin",
    }

    clauses: list[dict[str, Any]] = []
    for f in filters:
        chroma_op = _OP_MAP.get(f.operator)
        if chroma_op is None:
            raise ValueError(f"Unsupported filter operator: {f.operator!r}")
        clauses.append({f.field: {chroma_op: f.value}})

    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def distance_to_score(distance: float, space: str = "cosine") -> float:
    """Map a Chroma distance in *space* to a similarity score in ``[0, 1]``.

    ``cosine`` and ``ip`` distances are ``1 - similarity``; ``l2`` distances
    are unbounded and use ``1 / (1 + d)``.
    """
    if space in ("cosine", "ip"):
        return min(1.0, max(0.0, 1.0 - distance))
    return 1.0 / (1.0 + distance)


class ChromaVectorStore(VectorStoreBase):
    """Chroma-backed vector store with batched, fault-tolerant embedding.

    Parameters
    ----------
    collection_name:
        Default Chroma collection.
    client:
        A ready Chroma client; when omitted an ``HttpClient`` is created
        from *host* / *port*.
    embeddings:
        LangChain embedding function; defaults to the configured
        HuggingFace sentence-transformer.
    batch_size:
        Texts per embedding call.
    batch_delay:
        Seconds to sleep between embedding batches.
    distance:
        ``hnsw:space`` used when a collection is created.
    """

    def __init__(
        self,
        collection_name: str = settings.chroma_collection,
        *,
        client: Any | None = None,
        host: str = settings.chroma_host,
        port: int = settings.chroma_port,
        embeddings: Embeddings | None = None,
        batch_size: int = settings.embedding_batch_size,
        batch_delay: float = settings.embedding_batch_delay,
        distance: str = settings.chroma_distance,
    ) -> None:
        super().__init__(collection_name)
        self._client = client if client is not None else chromadb.HttpClient(host=host, port=port)
        self._embedder = embeddings if embeddings is not None else get_embedding_function()
        self.batch_size = max(1, batch_size)
        self.batch_delay = batch_delay
        self.distance = distance
        self._collections: dict[str, Any] = {}
        self._lock = threading.Lock()

    # -- collections ----------------------------------------------------------

    def _collection(self, collection_name: str | None = None) -> Any:
        name = self._resolve(collection_name)
        with self._lock:
            collection = self._collections.get(name)
            if collection is None:
                collection = self._client.get_or_create_collection(
                    name=name,
                    metadata={"hnsw:space": self.distance},
                )
                self._collections[name] = collection
            return collection

    def list_collections(self) -> list[dict[str, Any]]:
        """Return ``{"name", "count"}`` for every collection on the server."""
        info: list[dict[str, Any]] = []
        for col in self._client.list_collections():
            name = col if isinstance(col, str) else col.name
            try:
                count = self._client.get_collection(name=name).count()
            except Exception:
                logger.warning("Could not count collection %s", name, exc_info=True)
                count = 0
            info.append({"name": name, "count": count})
        return info

    def collection_stats(self, collection_name: str | None = None) -> dict[str, Any]:
        name = self._resolve(collection_name)
        return {"name": name, "count": self._collection(name).count()}

    def delete_collection(self, collection_name: str) -> None:
        self._client.delete_collection(name=collection_name)
        with self._lock:
            self._collections.pop(collection_name, None)
        logger.info("Deleted collection %s", collection_name)

    # -- embedding ------------------------------------------------------------

    def embed_batches(self, texts: Sequence[str]) -> tuple[list[list[float] | None], list[EmbeddingFailureDetail]]:
        """Embed *texts* batch by batch.

        A failing batch marks each of its positions as failed and processing
        continues with the next batch.  The returned vector list is aligned
        with *texts* (``None`` where embedding failed).
        """
        vectors: list[list[float] | None] = [None] * len(texts)
        failures: list[EmbeddingFailureDetail] = []
        total_batches = (len(texts) + self.batch_size - 1) // self.batch_size

        for batch_num, start in enumerate(range(0, len(texts), self.batch_size), 1):
            batch = list(texts[start : start + self.batch_size])
            try:
                embedded = self._embedder.embed_documents(batch)
                if len(embedded) != len(batch):
                    raise ValueError(f"Embedding count mismatch: expected {len(batch)}, got {len(embedded)}")
            except Exception as exc:
                logger.warning("Embedding batch %d/%d failed: %s", batch_num, total_batches, exc)
                failures.extend(
                    EmbeddingFailureDetail(index=start + offset, reason=str(exc)) for offset in range(len(batch))
                )
            else:
                vectors[start : start + len(batch)] = embedded
                logger.debug("Embedding batch %d/%d done", batch_num, total_batches)

            if self.batch_delay and start + self.batch_size < len(texts):
                time.sleep(self.batch_delay)

        return vectors, failures

    # -- VectorStoreBase overrides --------------------------------------------

    def upsert(self, chunks: Sequence[EnrichedChunk], collection_name: str | None = None) -> StoreResult:
        name = self._resolve(collection_name)
        requested = len(chunks)
        if not chunks:
            return StoreResult(success=True, requested=0)

        t0 = time.monotonic()
        vectors, failures = self.embed_batches([c.text for c in chunks])
        stored = [(chunk, vec) for chunk, vec in zip(chunks, vectors) if vec is not None]
        if not stored:
            return StoreResult(
                success=False,
                requested=requested,
                failures=failures,
                error="No chunks were successfully embedded",
            )

        try:
            self._collection(name).upsert(
                ids=[c.chunk_id for c, _ in stored],
                embeddings=[v for _, v in stored],
                metadatas=[sanitize_metadata(c.metadata) for c, _ in stored],
                documents=[c.text for c, _ in stored],
            )
        except Exception as exc:
            logger.error("Chroma upsert into %s failed: %s", name, exc)
            return StoreResult(success=False, requested=requested, failures=failures, error=str(exc))

        elapsed = time.monotonic() - t0
        logger.info(
            "Stored %d/%d chunks in collection '%s' in %.1fs", len(stored), requested, name, elapsed
        )
        if failures:
            logger.warning("Skipped %d chunk(s) due to embedding failures", len(failures))
        return StoreResult(
            success=True,
            requested=requested,
            stored_ids=[c.chunk_id for c, _ in stored],
            failures=failures,
        )

    def similarity_search(
        self,
        query_embedding: list[float],
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
        collection_name: str | None = None,
    ) -> list[dict[str, Any]]:
        where = _build_chroma_where(filters) if filters else None

        results = self._collection(collection_name).query(
            query_embeddings=[query_embedding],
            n_results=k,
            where=where,
            include=["documents", "metadatas", "distances"],
        )

        hits: list[dict[str, Any]] = []
        ids = results.get("ids", [[]])[0]
        docs = results.get("documents", [[]])[0]
        metas = results.get("metadatas", [[]])[0]
        distances = results.get("distances", [[]])[0]

        for doc_id, content, meta, dist in zip(ids, docs, metas, distances):
            score = distance_to_score(dist, self.distance)
            hits.append(
                {
                    "id": doc_id,
                    "content": content or "",
                    "score": score,
                    "metadata": meta or {},
                }
            )
        return hits

    def similarity_search_by_text(
        self,
        query: str,
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
        collection_name: str | None = None,
    ) -> list[dict[str, Any]]:
        embedding = self._embedder.embed_query(query)
        return self.similarity_search(embedding, k=k, filters=filters, collection_name=collection_name)

    def health_check(self) -> bool:
        try:
            self._client.heartbeat()
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False

    def delete(self, ids: list[str], collection_name: str | None = None) -> None:
        self._collection(collection_name).delete(ids=ids)
