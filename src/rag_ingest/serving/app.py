"""FastAPI application exposing ingestion and search as a REST API.

The app is built by :func:`create_app` from explicitly constructed
components, so tests can pass in-memory fakes::

    store = ChromaVectorStore()
    app = create_app(DocumentProcessor(store), store, SessionStore())
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal
from uuid import uuid4

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from rag_ingest.config import settings
from rag_ingest.ingestion.errors import LoadError
from rag_ingest.ingestion.loader import DatasetPreview, DatasetRowLoader, DatasetValidation, validate_file_type
from rag_ingest.ingestion.models import ProcessingResult, ProcessingStats
from rag_ingest.ingestion.processor import DocumentProcessor
from rag_ingest.retrieval.base import VectorStoreBase
from rag_ingest.retrieval.retriever import SemanticRetriever
from rag_ingest.sessions import ChatSession, SessionStore

logger = logging.getLogger(__name__)

DocumentStatus = Literal["pending", "processing", "completed", "failed"]


# ── Request / Response schemas ────────────────────────────────────────
class DocumentRecord(BaseModel):
    """Status of one uploaded document or dataset."""

    id: str
    filename: str
    status: DocumentStatus = "pending"
    uploaded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    collection_name: str | None = None
    chunks_created: int = 0
    stats: ProcessingStats | None = None
    error: str | None = None


class IngestResponse(BaseModel):
    success: bool
    document_id: str
    status: DocumentStatus
    chunks_created: int = 0
    chunks_filtered: int = 0
    chunks_failed: int = 0
    stats: ProcessingStats | None = None
    message: str = ""
    error: str | None = None


class DatasetIngestRequest(BaseModel):
    dataset_name: str
    content_field: str | None = None
    split: str = "train"
    config: str | None = None
    metadata_columns: list[str] = Field(default_factory=list)
    collection_name: str | None = None


class DatasetPreviewRequest(BaseModel):
    dataset_name: str
    content_field: str | None = None
    split: str = "train"
    config: str | None = None
    metadata_columns: list[str] = Field(default_factory=list)
    limit: int = Field(default=5, ge=1, le=100)


class DatasetPreviewResponse(BaseModel):
    preview: DatasetPreview
    validation: DatasetValidation


class CollectionInfo(BaseModel):
    name: str
    count: int


class SearchRequest(BaseModel):
    query: str
    k: int = Field(default=5, ge=1, le=50)
    collection_name: str | None = None


class SearchHit(BaseModel):
    content: str
    score: float | None = None
    ref: str
    chunk_id: str | None = None
    document_id: str | None = None
    source: str
    original_filename: str | None = None
    chunk_index: int | None = None
    page_number: int | None = None


class SearchResponse(BaseModel):
    query: str
    results: list[SearchHit]


class SessionRequest(BaseModel):
    collection_name: str | None = None
    session_id: str | None = None


def _to_response(record: DocumentRecord, result: ProcessingResult) -> JSONResponse:
    body = IngestResponse(
        success=result.success,
        document_id=result.document_id,
        status=record.status,
        chunks_created=result.chunks_created,
        chunks_filtered=result.chunks_filtered,
        chunks_failed=result.chunks_failed,
        stats=result.stats,
        message=result.message,
        error=result.error,
    )
    return JSONResponse(status_code=200 if result.success else 500, content=body.model_dump(mode="json"))


def create_app(
    processor: DocumentProcessor,
    store: VectorStoreBase,
    sessions: SessionStore | None = None,
    *,
    upload_dir: str | Path = settings.upload_dir,
    max_upload_bytes: int = settings.max_upload_bytes,
    dataset_loader_factory: Callable[..., DatasetRowLoader] = DatasetRowLoader,
) -> FastAPI:
    """Build the REST app around injected components.

    Parameters
    ----------
    processor:
        Ingestion orchestrator run for every upload.
    store:
        Vector store used for health checks and search.
    sessions:
        Chat session store; a fresh one is created when omitted.
    upload_dir:
        Directory uploaded files are written to before loading.
    max_upload_bytes:
        Uploads larger than this are rejected with 400.
    dataset_loader_factory:
        Builds the :class:`DatasetRowLoader` for ``/ingest/dataset``.
    """
    sessions = sessions if sessions is not None else SessionStore()
    retriever = SemanticRetriever(store)
    upload_root = Path(upload_dir)
    documents: dict[str, DocumentRecord] = {}
    documents_lock = threading.Lock()

    app = FastAPI(
        title="RAG Ingestion API",
        version="0.1.0",
        description="Document ingestion, chunk quality gating and semantic search.",
    )

    def _track(record: DocumentRecord) -> None:
        with documents_lock:
            documents[record.id] = record

    def _finish(record: DocumentRecord, result: ProcessingResult) -> None:
        with documents_lock:
            record.status = "completed" if result.success else "failed"
            record.chunks_created = result.chunks_created
            record.stats = result.stats
            record.error = result.error

    # ── Routes ────────────────────────────────────────────────────────
    @app.exception_handler(NotImplementedError)
    async def unsupported(request: Request, exc: NotImplementedError) -> JSONResponse:
        return JSONResponse(status_code=501, content={"detail": str(exc)})

    @app.get("/health")
    def health() -> dict[str, str]:
        """Liveness probe."""
        return {"status": "ok", "vector_store": "up" if store.health_check() else "down"}

    # Sync handlers run in the threadpool; ingestion blocks for a long time.
    @app.post("/ingest")
    def ingest(
        file: UploadFile = File(...),
        collection_name: str | None = Form(None),
        csv_column: str | None = Form(None),
        csv_combined_columns: bool = Form(False),
    ) -> JSONResponse:
        """Upload a PDF / DOCX / TXT / CSV file and ingest it."""
        filename = Path(file.filename or "").name
        content_type = file.content_type or ""
        if not filename:
            raise HTTPException(status_code=400, detail="No file provided")

        valid, reason = validate_file_type(filename, content_type)
        if not valid:
            raise HTTPException(status_code=400, detail=reason)

        data = file.file.read()
        if not data:
            raise HTTPException(status_code=400, detail="File is empty")
        if len(data) > max_upload_bytes:
            raise HTTPException(
                status_code=400,
                detail=f"File size exceeds {max_upload_bytes / (1024 * 1024):g}MB limit",
            )

        document_id = str(uuid4())
        record = DocumentRecord(
            id=document_id, filename=filename, status="processing", collection_name=collection_name
        )
        _track(record)

        upload_root.mkdir(parents=True, exist_ok=True)
        path = upload_root / f"{document_id}_{filename}"
        path.write_bytes(data)
        logger.info("File uploaded: %s (%d bytes, id=%s)", filename, len(data), document_id)

        result = processor.process_file(
            path,
            content_type,
            document_id=document_id,
            original_filename=filename,
            collection_name=collection_name,
            csv_column=csv_column or None,
            csv_combined_columns=csv_combined_columns,
        )
        _finish(record, result)
        return _to_response(record, result)

    @app.post("/ingest/dataset")
    def ingest_dataset(request: DatasetIngestRequest) -> JSONResponse:
        """Fetch rows of a hosted dataset and ingest them as one unit."""
        document_id = str(uuid4())
        record = DocumentRecord(
            id=document_id,
            filename=f"dataset://{request.dataset_name}",
            status="processing",
            collection_name=request.collection_name,
        )
        _track(record)

        loader = dataset_loader_factory(
            request.dataset_name,
            request.content_field,
            split=request.split,
            metadata_columns=request.metadata_columns,
            config=request.config,
        )
        try:
            result = processor.process_dataset(loader, document_id, collection_name=request.collection_name)
        finally:
            loader.close()
        _finish(record, result)
        return _to_response(record, result)

    @app.post("/ingest/dataset/preview", response_model=DatasetPreviewResponse)
    def preview_dataset(request: DatasetPreviewRequest) -> DatasetPreviewResponse:
        """Sample rows and check the requested columns before ingesting."""
        loader = dataset_loader_factory(
            request.dataset_name,
            request.content_field,
            split=request.split,
            metadata_columns=request.metadata_columns,
            config=request.config,
        )
        try:
            preview = loader.preview(limit=request.limit)
            validation = loader.validate()
        except LoadError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        finally:
            loader.close()
        return DatasetPreviewResponse(preview=preview, validation=validation)

    @app.get("/ingest/{document_id}", response_model=DocumentRecord)
    def ingest_status(document_id: str) -> DocumentRecord:
        with documents_lock:
            record = documents.get(document_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Document not found")
        return record

    @app.post("/search", response_model=SearchResponse)
    def search(request: SearchRequest) -> SearchResponse:
        """Semantic search over a collection, with citation fields."""
        if not request.query.strip():
            raise HTTPException(status_code=400, detail="Query is required")
        results = retriever.search(request.query, k=request.k, collection_name=request.collection_name)
        hits = [
            SearchHit(
                content=r.content,
                score=r.citation.score,
                ref=r.citation.short_ref(),
                chunk_id=r.citation.chunk_id,
                document_id=r.citation.document_id,
                source=r.citation.source,
                original_filename=r.citation.original_filename,
                chunk_index=r.citation.chunk_index,
                page_number=r.citation.page_number,
            )
            for r in results
        ]
        return SearchResponse(query=request.query, results=hits)

    @app.get("/collections", response_model=list[CollectionInfo])
    def list_collections() -> list[dict[str, Any]]:
        return store.list_collections()

    @app.get("/collections/{collection_name}", response_model=CollectionInfo)
    def collection_stats(collection_name: str) -> dict[str, Any]:
        return store.collection_stats(collection_name)

    @app.delete("/collections/{collection_name}")
    def delete_collection(collection_name: str) -> dict[str, str]:
        store.delete_collection(collection_name)
        logger.info("Collection %s deleted via API", collection_name)
        return {"deleted": collection_name}

    @app.post("/sessions", response_model=ChatSession)
    def create_session(request: SessionRequest) -> ChatSession:
        sessions.expire()
        return sessions.create(collection_name=request.collection_name, session_id=request.session_id)

    @app.get("/sessions/{session_id}")
    def session_history(session_id: str, max_messages: int = 10) -> dict[str, Any]:
        session = sessions.get(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail="Session not found")
        return {
            "session_id": session.id,
            "collection_name": session.collection_name,
            "message_count": len(session.messages),
            "history": sessions.formatted_history(session_id, max_messages),
        }

    @app.delete("/sessions/{session_id}")
    def delete_session(session_id: str) -> dict[str, bool]:
        return {"deleted": sessions.delete(session_id)}

    app.state.sessions = sessions
    app.state.documents = documents
    return app


def build_default_app() -> FastAPI:
    """Wire the Chroma-backed components; ``uvicorn --factory`` entry point."""
    from rag_ingest.retrieval.chroma_store import ChromaVectorStore

    store = ChromaVectorStore()
    return create_app(DocumentProcessor(store), store, SessionStore())
