"""Shared pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

import pytest

from rag_ingest.ingestion.models import EmbeddingFailureDetail, EnrichedChunk, StoreResult
from rag_ingest.retrieval.base import VectorStoreBase
from rag_ingest.retrieval.models import MetadataFilter


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


# ── Fake vector store for deterministic testing ─────────────────────────


class FakeVectorStore(VectorStoreBase):
    """In-memory fake that records upserts and returns canned search hits.

    ``fail_indices`` makes those positions of every upsert fail to embed;
    ``fail_all`` makes every upsert report total failure.
    """

    def __init__(
        self,
        hits: list[dict[str, Any]] | None = None,
        *,
        fail_indices: Sequence[int] = (),
        fail_all: bool = False,
        healthy: bool = True,
    ) -> None:
        super().__init__("test-collection")
        self._hits: list[dict[str, Any]] = hits or []
        self.fail_indices = set(fail_indices)
        self.fail_all = fail_all
        self.healthy = healthy
        self.upserts: list[tuple[list[EnrichedChunk], str]] = []
        self.last_filters: list[MetadataFilter] | None = None
        self.last_collection: str | None = None
        self.collections: dict[str, int] = {}

    def upsert(self, chunks: Sequence[EnrichedChunk], collection_name: str | None = None) -> StoreResult:
        self.upserts.append((list(chunks), self._resolve(collection_name)))
        if self.fail_all:
            return StoreResult(success=False, requested=len(chunks), error="embedding service unavailable")
        failures = [
            EmbeddingFailureDetail(index=i, reason="rate limited") for i in range(len(chunks)) if i in self.fail_indices
        ]
        stored = [c.chunk_id for i, c in enumerate(chunks) if i not in self.fail_indices]
        name = self._resolve(collection_name)
        self.collections[name] = self.collections.get(name, 0) + len(stored)
        return StoreResult(success=True, requested=len(chunks), stored_ids=stored, failures=failures)

    def similarity_search(
        self,
        query_embedding: list[float],
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
        collection_name: str | None = None,
    ) -> list[dict[str, Any]]:
        self.last_filters = filters
        self.last_collection = self._resolve(collection_name)
        return self._hits[:k]

    def similarity_search_by_text(
        self,
        query: str,
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
        collection_name: str | None = None,
    ) -> list[dict[str, Any]]:
        self.last_filters = filters
        self.last_collection = self._resolve(collection_name)
        return self._hits[:k]

    def health_check(self) -> bool:
        return self.healthy

    def list_collections(self) -> list[dict[str, Any]]:
        return [{"name": name, "count": count} for name, count in self.collections.items()]

    def collection_stats(self, collection_name: str | None = None) -> dict[str, Any]:
        name = self._resolve(collection_name)
        return {"name": name, "count": self.collections.get(name, 0)}

    def delete_collection(self, collection_name: str) -> None:
        self.collections.pop(collection_name, None)


@pytest.fixture()
def make_store() -> Callable[..., FakeVectorStore]:
    """Factory for :class:`FakeVectorStore` instances."""
    return FakeVectorStore


@pytest.fixture()
def fake_store() -> FakeVectorStore:
    return FakeVectorStore()


def prose(sentences: int, seed: str = "") -> str:
    """Readable, varied English text of roughly ``60 * sentences`` characters."""
    words = [
        "river", "market", "engine", "harbor", "winter", "garden", "signal", "forest",
        "copper", "lantern", "meadow", "canvas", "orbit", "pepper", "silver", "timber",
    ]
    out = []
    for i in range(sentences):
        a, b, c = words[i % 16], words[(i * 3 + 1) % 16], words[(i * 5 + 2) % 16]
        out.append(f"The {a} near the {b} kept its {c} {seed}quiet for sentence number {i}.")
    return " ".join(out)


@pytest.fixture()
def make_prose() -> Callable[..., str]:
    return prose
