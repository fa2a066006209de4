"""Ingestion orchestrator.

:class:`DocumentProcessor` drives one ingestion unit through
``loading → cleaning → splitting → validating → enriching → storing`` and
always hands back a :class:`ProcessingResult`; pipeline errors never escape
to the caller.

Usage::

    processor = DocumentProcessor(ChromaVectorStore())
    result = processor.process_file("report.pdf", "application/pdf")
    if not result.success:
        print(result.error)
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from rag_ingest.config import settings
from rag_ingest.ingestion.chunker import chunk_documents, config_for_source_type
from rag_ingest.ingestion.cleaning import clean_documents
from rag_ingest.ingestion.errors import EmbeddingFailure, IngestionError, LoadError, ValidationExhaustionError
from rag_ingest.ingestion.loader import DatasetRowLoader, SourceKind, load_document, load_records
from rag_ingest.ingestion.metadata import calculate_chunk_stats, enrich_chunks
from rag_ingest.ingestion.models import EnrichedChunk, IngestionState, ProcessingResult, StoreResult
from rag_ingest.ingestion.validation import is_valid_chunk

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from langchain_core.documents import Document

    from rag_ingest.retrieval.base import VectorStoreBase

logger = logging.getLogger(__name__)


class DocumentProcessor:
    """Run documents through the cleaning, chunking and storage pipeline.

    Parameters
    ----------
    store:
        Embedding+storage collaborator.  May be ``None`` when results are
        never stored (``store_in_vector_store=False``).
    min_chunk_length:
        Length floor applied by the chunk quality gate.
    """

    def __init__(
        self,
        store: VectorStoreBase | None = None,
        *,
        min_chunk_length: int = settings.min_chunk_length,
    ) -> None:
        self.store = store
        self.min_chunk_length = min_chunk_length

    # -- entry points -----------------------------------------------------------

    def process_documents(
        self,
        documents: Sequence[Document],
        document_id: str,
        source_name: str,
        source_type: str | None = None,
        store_in_vector_store: bool = True,
        start_time: float | None = None,
        collection_name: str | None = None,
    ) -> ProcessingResult:
        """Process already-loaded documents into enriched (and stored) chunks.

        Parameters
        ----------
        documents:
            Loader output for one ingestion unit.
        document_id:
            Identifier shared by every chunk of this unit.
        source_name:
            Original file name (or dataset label) recorded on each chunk.
        source_type:
            ``pdf``, ``docx``, ``txt``, … selects the chunking policy.
        store_in_vector_store:
            Hand the enriched chunks to the store when ``True``.
        start_time:
            ``time.time()`` at which the unit started; defaults to now.
        collection_name:
            Target collection; the store's default when omitted.
        """
        start_time = time.time() if start_time is None else start_time
        try:
            return self._run(
                documents,
                document_id=document_id,
                source_name=source_name,
                source_type=source_type,
                store_in_vector_store=store_in_vector_store,
                start_time=start_time,
                collection_name=collection_name,
            )
        except IngestionError as exc:
            logger.error("Document %s failed: %s", document_id, exc)
            return ProcessingResult.failed(document_id, str(exc), time.time() - start_time)
        except Exception as exc:
            logger.error("Unexpected error while processing document %s", document_id, exc_info=True)
            return ProcessingResult.failed(document_id, str(exc), time.time() - start_time)

    def process_file(
        self,
        path: str | Path,
        mime_type: str,
        document_id: str | None = None,
        original_filename: str | None = None,
        *,
        collection_name: str | None = None,
        store_in_vector_store: bool = True,
        csv_column: str | None = None,
        csv_combined_columns: bool = False,
    ) -> ProcessingResult:
        """Load the file at *path* and process it.

        A load failure (unsupported type, missing file, unknown CSV column)
        produces a failed result like any other stage.
        """
        document_id = document_id or str(uuid4())
        original_filename = original_filename or Path(path).name
        start_time = time.time()
        self._enter(document_id, IngestionState.LOADING)
        try:
            kind = SourceKind.from_mime_type(mime_type)
            options: dict[str, Any] = {}
            if kind is SourceKind.CSV:
                options = {"column": csv_column, "combined_columns": csv_combined_columns}
            documents = load_document(path, kind, **options)
        except IngestionError as exc:
            logger.error("Document %s failed to load: %s", document_id, exc)
            return ProcessingResult.failed(document_id, str(exc), time.time() - start_time)
        except Exception as exc:
            logger.error("Unexpected error while loading %s", path, exc_info=True)
            return ProcessingResult.failed(document_id, str(exc), time.time() - start_time)

        return self.process_documents(
            documents,
            document_id=document_id,
            source_name=original_filename,
            source_type=kind.value,
            store_in_vector_store=store_in_vector_store,
            start_time=start_time,
            collection_name=collection_name,
        )

    def process_records(
        self,
        rows: Iterable[Mapping[str, Any]],
        source: str,
        document_id: str | None = None,
        *,
        content_field: str | None = None,
        metadata_columns: Sequence[str] | None = None,
        collection_name: str | None = None,
        store_in_vector_store: bool = True,
    ) -> ProcessingResult:
        """Process pre-loaded in-memory rows (see :func:`load_records`)."""
        document_id = document_id or str(uuid4())
        start_time = time.time()
        self._enter(document_id, IngestionState.LOADING)
        try:
            documents = load_records(rows, source, content_field=content_field, metadata_columns=metadata_columns)
        except IngestionError as exc:
            logger.error("Document %s failed to load: %s", document_id, exc)
            return ProcessingResult.failed(document_id, str(exc), time.time() - start_time)
        except Exception as exc:
            logger.error("Unexpected error while reading rows from %s", source, exc_info=True)
            return ProcessingResult.failed(document_id, str(exc), time.time() - start_time)

        return self.process_documents(
            documents,
            document_id=document_id,
            source_name=source,
            source_type=SourceKind.CSV.value,
            store_in_vector_store=store_in_vector_store,
            start_time=start_time,
            collection_name=collection_name,
        )

    def process_dataset(
        self,
        loader: DatasetRowLoader,
        document_id: str | None = None,
        *,
        collection_name: str | None = None,
        store_in_vector_store: bool = True,
    ) -> ProcessingResult:
        """Fetch rows through *loader* and process them as one unit."""
        document_id = document_id or str(uuid4())
        start_time = time.time()
        self._enter(document_id, IngestionState.LOADING)
        try:
            documents = loader.load()
        except IngestionError as exc:
            logger.error("Dataset %s failed to load: %s", loader.dataset_name, exc)
            return ProcessingResult.failed(document_id, str(exc), time.time() - start_time)
        except Exception as exc:
            logger.error("Unexpected error while loading dataset %s", loader.dataset_name, exc_info=True)
            return ProcessingResult.failed(document_id, str(exc), time.time() - start_time)

        return self.process_documents(
            documents,
            document_id=document_id,
            source_name=loader.dataset_name,
            source_type=SourceKind.DATASET.value,
            store_in_vector_store=store_in_vector_store,
            start_time=start_time,
            collection_name=collection_name,
        )

    # -- pipeline ---------------------------------------------------------------

    def _run(
        self,
        documents: Sequence[Document],
        *,
        document_id: str,
        source_name: str,
        source_type: str | None,
        store_in_vector_store: bool,
        start_time: float,
        collection_name: str | None,
    ) -> ProcessingResult:
        if not documents:
            raise LoadError(f"No content to process for {source_name}")

        self._enter(document_id, IngestionState.CLEANING)
        cleaned = clean_documents(documents)

        self._enter(document_id, IngestionState.SPLITTING)
        chunks = chunk_documents(cleaned, config_for_source_type(source_type))

        self._enter(document_id, IngestionState.VALIDATING)
        valid_chunks = [c for c in chunks if is_valid_chunk(c.page_content, self.min_chunk_length)]
        filtered = len(chunks) - len(valid_chunks)
        if filtered:
            logger.info("Filtered %d low-quality chunk(s) of %d", filtered, len(chunks))
        if not valid_chunks:
            raise ValidationExhaustionError(len(chunks))

        self._enter(document_id, IngestionState.ENRICHING)
        source = documents[0].metadata.get("source", source_name)
        enriched = enrich_chunks(valid_chunks, document_id, source_name, str(source))

        vector_ids: list[str] = []
        store_result: StoreResult | None = None
        if store_in_vector_store:
            self._enter(document_id, IngestionState.STORING)
            store_result = self._store(enriched, collection_name)
            vector_ids = store_result.stored_ids

        stats = calculate_chunk_stats(enriched, time.time() - start_time)
        failures = store_result.failures if store_result else []

        message = f"Successfully processed document into {len(enriched)} chunks"
        if filtered:
            message += f" ({filtered} low-quality chunks filtered)"
        if failures:
            message += f"; {len(failures)} chunks failed to embed"

        self._enter(document_id, IngestionState.COMPLETED)
        return ProcessingResult(
            success=True,
            document_id=document_id,
            chunks_created=len(enriched),
            chunks=enriched,
            stats=stats,
            vector_ids=vector_ids,
            message=message,
            state=IngestionState.COMPLETED,
            chunks_filtered=filtered,
            chunks_failed=len(failures),
            failures=failures,
        )

    def _store(self, enriched: list[EnrichedChunk], collection_name: str | None) -> StoreResult:
        if self.store is None:
            raise EmbeddingFailure("No vector store configured")
        result = self.store.upsert(enriched, collection_name=collection_name)
        if not result.success:
            raise EmbeddingFailure(f"Failed to store embeddings: {result.error or 'unknown error'}")
        if result.failures:
            logger.warning(
                "Partial embedding failure: %d of %d chunks not stored",
                len(result.failures),
                len(enriched),
            )
        return result

    @staticmethod
    def _enter(document_id: str, state: IngestionState) -> None:
        logger.info("Document %s: %s", document_id, state.value)
