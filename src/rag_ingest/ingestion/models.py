"""Domain models flowing through the ingestion pipeline.

Loader output (*RawRecord*), cleaner output (*CleanedRecord*) and splitter
output (*Chunk*) are all plain LangChain ``Document`` objects: ``page_content``
holds the text and ``metadata`` the primitive-typed source metadata.  The
models below cover what the pipeline adds on top of that.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Union

from langchain_core.documents import Document
from pydantic import BaseModel, Field

Primitive = Union[str, int, float, bool]


class IngestionState(str, Enum):
    """Lifecycle of one ingestion unit.  ``COMPLETED`` and ``FAILED`` are terminal."""

    PENDING = "pending"
    LOADING = "loading"
    CLEANING = "cleaning"
    SPLITTING = "splitting"
    VALIDATING = "validating"
    ENRICHING = "enriching"
    STORING = "storing"
    COMPLETED = "completed"
    FAILED = "failed"


class EnrichedChunk(BaseModel):
    """A chunk carrying its stable identity and provenance.

    Attributes
    ----------
    text:
        The chunk content.
    source:
        Stable provenance string (file path, ``dataset://name``, …).
    document_id:
        Groups every chunk produced from one ingestion unit.
    chunk_id:
        Freshly generated unique id, never derived from the content.
    chunk_index:
        0-based position within the document's chunk sequence.
    total_chunks:
        Length of that sequence.
    chunk_size:
        Character length of :attr:`text`.
    timestamp:
        ISO-8601 creation instant (UTC).
    original_filename:
        Name the document was uploaded or registered under.
    extra_metadata:
        Sanitized metadata inherited from the loader (``page_number``,
        ``row``, CSV columns, …).
    """

    text: str
    source: str
    document_id: str
    chunk_id: str
    chunk_index: int
    total_chunks: int
    chunk_size: int
    timestamp: str
    original_filename: str
    extra_metadata: dict[str, Primitive] = Field(default_factory=dict)

    @property
    def metadata(self) -> dict[str, Primitive]:
        """Flat metadata map as stored in the vector store."""
        return {
            **self.extra_metadata,
            "source": self.source,
            "document_id": self.document_id,
            "chunk_id": self.chunk_id,
            "chunk_index": self.chunk_index,
            "total_chunks": self.total_chunks,
            "chunk_size": self.chunk_size,
            "timestamp": self.timestamp,
            "original_filename": self.original_filename,
        }

    @property
    def page_number(self) -> int | None:
        value = self.extra_metadata.get("page_number")
        return value if isinstance(value, int) else None

    def to_document(self) -> Document:
        return Document(page_content=self.text, metadata=self.metadata)


class ProcessingStats(BaseModel):
    """Aggregate statistics over the final chunk set of one run."""

    total_chunks: int = 0
    avg_chunk_size: int = 0
    min_chunk_size: int = 0
    max_chunk_size: int = 0
    total_characters: int = 0
    processing_time: float = Field(default=0.0, description="Wall-clock seconds for the run")


class EmbeddingFailureDetail(BaseModel):
    """One chunk that could not be embedded or stored."""

    index: int
    reason: str


class StoreResult(BaseModel):
    """Outcome of handing a chunk batch to the embedding+storage collaborator.

    Three shapes are possible: full success (no failures), partial success
    (``success`` with a non-empty :attr:`failures` list) and total failure
    (``success=False`` with :attr:`error`).
    """

    success: bool
    requested: int = 0
    stored_ids: list[str] = Field(default_factory=list)
    failures: list[EmbeddingFailureDetail] = Field(default_factory=list)
    error: str | None = None

    @property
    def failed_indices(self) -> list[int]:
        return [f.index for f in self.failures]

    @property
    def is_partial(self) -> bool:
        return self.success and bool(self.failures)


class ProcessingResult(BaseModel):
    """Return contract of the ingestion orchestrator.

    ``success=False`` always comes with an empty chunk list, zero counts and a
    populated :attr:`error`.
    """

    success: bool
    document_id: str
    chunks_created: int = 0
    chunks: list[EnrichedChunk] = Field(default_factory=list)
    stats: ProcessingStats = Field(default_factory=ProcessingStats)
    vector_ids: list[str] = Field(default_factory=list)
    message: str = ""
    error: str | None = None
    state: IngestionState = IngestionState.COMPLETED
    chunks_filtered: int = 0
    chunks_failed: int = 0
    failures: list[EmbeddingFailureDetail] = Field(default_factory=list)

    @classmethod
    def failed(cls, document_id: str, error: str, processing_time: float = 0.0) -> ProcessingResult:
        return cls(
            success=False,
            document_id=document_id,
            stats=ProcessingStats(processing_time=processing_time),
            message="Document processing failed",
            error=error,
            state=IngestionState.FAILED,
        )


def metadata_of(document: Document) -> dict[str, Any]:
    """Return a shallow copy of *document*'s metadata."""
    return dict(document.metadata or {})
