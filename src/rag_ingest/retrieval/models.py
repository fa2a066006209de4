"""Domain models for retrieval results and citation tracking."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


class MetadataFilter(BaseModel):
    """Declarative metadata filter for vector-store queries.

    Attributes
    ----------
    field:
        The metadata key to filter on (e.g. ``"document_id"``, ``"source"``).
    operator:
        Comparison operator — one of ``eq``, ``ne``, ``gt``, ``gte``,
        ``lt``, ``lte``, ``in``, ``nin``.
    value:
        The value (or list of values for ``in`` / ``nin``) to compare against.
    """

    field: str
    operator: str = "eq"
    value: Any = None

    @classmethod
    def equals(cls, field: str, value: Any) -> MetadataFilter:
        return cls(field=field, operator="eq", value=value)

    @classmethod
    def one_of(cls, field: str, values: list[Any]) -> MetadataFilter:
        return cls(field=field, operator="in", value=values)


class Citation(BaseModel):
    """Provenance record linking a retrieved chunk back to its source document.

    The fields mirror the metadata attached at ingestion time, so whatever
    the enricher stamps is what a citation can show.
    """

    citation_id: str = Field(default_factory=lambda: uuid4().hex[:12])
    chunk_id: str | None = None
    document_id: str | None = None
    source: str = "unknown"
    original_filename: str | None = None
    chunk_index: int | None = None
    page_number: int | None = None
    score: float | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    retrieved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def short_ref(self) -> str:
        """Return a compact ``[name§chunk]`` reference string."""
        name = self.original_filename or self.source
        chunk = self.chunk_index if self.chunk_index is not None else "?"
        page = f" p.{self.page_number}" if self.page_number is not None else ""
        return f"[{name}§{chunk}{page}]"


class RetrievalResult(BaseModel):
    """A single retrieved passage together with its citation."""

    content: str
    citation: Citation

    def __str__(self) -> str:  # noqa: D105
        return f"{self.citation.short_ref()} {self.content[:120]}…"
