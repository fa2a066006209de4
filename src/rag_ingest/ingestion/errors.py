"""Error taxonomy for the ingestion pipeline.

Every error raised by a pipeline stage derives from :class:`IngestionError`.
The orchestrator converts them into a failed ``ProcessingResult`` at its
boundary, so callers of :class:`~rag_ingest.ingestion.processor.DocumentProcessor`
never see these exceptions directly.
"""

from __future__ import annotations


class IngestionError(Exception):
    """Base class for all ingestion failures."""


class LoadError(IngestionError):
    """Source unreachable, malformed, of an unsupported type, or missing its content field."""


class SplitError(IngestionError):
    """Splitter misconfiguration (e.g. overlap >= size) or internal splitting failure."""


class ValidationExhaustionError(IngestionError):
    """Every chunk of a batch was rejected by the chunk validator, or none was produced."""

    def __init__(self, rejected: int) -> None:
        self.rejected = rejected
        if not rejected:
            super().__init__(
                "No text left after cleaning. The content may consist only of "
                "whitespace, page markers or identifier lines."
            )
            return
        super().__init__(
            f"All {rejected} chunks were rejected by quality validation. "
            "The content may be too repetitive, too short, or malformed "
            "(e.g. scanned ID lists or mostly numeric tables)."
        )


class EmbeddingFailure(IngestionError):
    """The embedding/storage collaborator could not store any chunk of the batch."""
