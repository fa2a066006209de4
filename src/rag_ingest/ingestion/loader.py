"""Document loaders — thin wrappers around LangChain document loaders.

Every loader returns a flat list of LangChain ``Document`` objects whose
``metadata`` carries a ``source`` that uniquely identifies provenance.
Records whose text is empty or whitespace-only are skipped (and counted in
the logs), never emitted.

Supported source kinds form the closed :class:`SourceKind` enum; each member
knows how to load itself, so there is no string-keyed dispatch table that
can silently fall through.
"""

from __future__ import annotations

import csv
import logging
from collections.abc import Iterable, Mapping, Sequence
from enum import Enum
from pathlib import Path
from typing import Any

import requests
from langchain_community.document_loaders import Docx2txtLoader, PyPDFLoader, TextLoader
from langchain_core.documents import Document
from pydantic import BaseModel, Field

from rag_ingest.config import settings
from rag_ingest.ingestion.errors import LoadError
from rag_ingest.ingestion.metadata import sanitize_metadata

logger = logging.getLogger(__name__)

# Field names treated as the content column when none is declared.
CANONICAL_CONTENT_FIELDS: tuple[str, ...] = ("text", "content", "body", "description", "message", "document")
# A field must exceed this many characters to be picked as content by the length rule.
MIN_CONTENT_FIELD_LENGTH = 50

_MAX_SKIP_WARNINGS = 5


class SourceKind(str, Enum):
    """Closed set of supported source kinds."""

    PDF = "pdf"
    DOCX = "docx"
    TXT = "txt"
    CSV = "csv"
    DATASET = "dataset"

    @classmethod
    def from_mime_type(cls, mime_type: str) -> SourceKind:
        """Resolve a MIME type (as sent by browsers) to a source kind."""
        kind = _MIME_TYPES.get(mime_type)
        if kind is None:
            raise LoadError(
                f"Unsupported MIME type: {mime_type}. Supported types: {', '.join(supported_mime_types())}"
            )
        return kind

    @classmethod
    def from_filename(cls, filename: str) -> SourceKind:
        """Resolve a file name by its extension."""
        kind = _EXTENSIONS.get(Path(filename).suffix.lower())
        if kind is None:
            raise LoadError(f"Unsupported file extension: {Path(filename).suffix or '(none)'}")
        return kind

    @property
    def is_file_based(self) -> bool:
        return self is not SourceKind.DATASET

    def load(self, path: str | Path, **options: Any) -> list[Document]:
        """Load the file at *path* with this kind's loader.

        ``options`` are forwarded to the CSV loader (``column``,
        ``combined_columns``, ``separator``) and ignored otherwise.
        """
        if self is SourceKind.PDF:
            return load_pdf(path)
        if self is SourceKind.DOCX:
            return load_docx(path)
        if self is SourceKind.TXT:
            return load_text(path)
        if self is SourceKind.CSV:
            return load_csv(path, **options)
        raise LoadError(
            f"'{self.value}' sources are not file based; use DatasetRowLoader or load_records"
        )


_MIME_TYPES: dict[str, SourceKind] = {
    "application/pdf": SourceKind.PDF,
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": SourceKind.DOCX,
    "text/plain": SourceKind.TXT,
    "text/csv": SourceKind.CSV,
    "application/csv": SourceKind.CSV,
    # Some systems report CSV uploads as Excel.
    "application/vnd.ms-excel": SourceKind.CSV,
}

_EXTENSIONS: dict[str, SourceKind] = {
    ".pdf": SourceKind.PDF,
    ".docx": SourceKind.DOCX,
    ".doc": SourceKind.DOCX,
    ".txt": SourceKind.TXT,
    ".csv": SourceKind.CSV,
}


def supported_mime_types() -> list[str]:
    return list(_MIME_TYPES)


def validate_file_type(filename: str, mime_type: str) -> tuple[bool, str | None]:
    """Check that *filename*'s extension agrees with *mime_type*.

    Returns ``(valid, reason)``; *reason* is ``None`` when valid.
    """
    suffix = Path(filename).suffix.lower()
    if not suffix:
        return False, "No file extension found"
    expected = _EXTENSIONS.get(suffix)
    if expected is None:
        return False, f"Unsupported file extension: {suffix}"
    detected = _MIME_TYPES.get(mime_type)
    if detected is None:
        return False, f"Unsupported MIME type: {mime_type}"
    if expected is not detected:
        return False, f"File extension ({suffix}) does not match MIME type ({mime_type})"
    return True, None


# ---------------------------------------------------------------------------
# File loaders
# ---------------------------------------------------------------------------


def _require_file(path: str | Path) -> Path:
    p = Path(path)
    if not p.is_file():
        raise LoadError(f"File not found: {p}")
    return p


def _drop_empty(documents: Iterable[Document], label: str) -> list[Document]:
    kept: list[Document] = []
    skipped = 0
    for doc in documents:
        if doc.page_content and doc.page_content.strip():
            kept.append(doc)
        else:
            skipped += 1
    if skipped:
        logger.warning("Skipped %d empty record(s) from %s", skipped, label)
    return kept


def load_pdf(path: str | Path) -> list[Document]:
    """Load a PDF, one document per page, stamping ``page_number`` / ``total_pages``."""
    p = _require_file(path)
    try:
        pages = PyPDFLoader(str(p)).load()
    except Exception as exc:
        raise LoadError(f"Failed to load PDF {p.name}: {exc}") from exc

    total_pages = len(pages)
    stamped = [
        Document(
            page_content=page.page_content,
            metadata={
                **page.metadata,
                "source": str(p),
                "page_number": index + 1,
                "total_pages": total_pages,
                "document_type": "pdf",
            },
        )
        for index, page in enumerate(pages)
    ]
    documents = _drop_empty(stamped, str(p))
    logger.info("PDF loaded: %s (%d/%d pages with text)", p.name, len(documents), total_pages)
    return documents


def load_docx(path: str | Path) -> list[Document]:
    """Load a single DOCX file."""
    p = _require_file(path)
    try:
        docs = Docx2txtLoader(str(p)).load()
    except Exception as exc:
        raise LoadError(f"Failed to load DOCX {p.name}: {exc}") from exc
    docs = [
        Document(page_content=d.page_content, metadata={**d.metadata, "source": str(p), "document_type": "docx"})
        for d in docs
    ]
    return _drop_empty(docs, str(p))


def load_text(path: str | Path) -> list[Document]:
    """Load a single plain-text file."""
    p = _require_file(path)
    try:
        docs = TextLoader(str(p), encoding="utf-8", autodetect_encoding=True).load()
    except Exception as exc:
        raise LoadError(f"Failed to load text file {p.name}: {exc}") from exc
    docs = [
        Document(page_content=d.page_content, metadata={**d.metadata, "source": str(p), "document_type": "text"})
        for d in docs
    ]
    return _drop_empty(docs, str(p))


# ---------------------------------------------------------------------------
# Tabular rows (CSV files, in-memory rows, remote dataset rows)
# ---------------------------------------------------------------------------


def _as_text(value: Any) -> str:
    return "" if value is None else str(value)


def resolve_content_field(
    columns: Sequence[str],
    rows: Sequence[Mapping[str, Any]],
    content_field: str | None = None,
) -> str | None:
    """Pick the content field for one load call.

    An explicit *content_field* must exist in *columns*.  Otherwise the first
    column named like one of :data:`CANONICAL_CONTENT_FIELDS` wins, then the
    first column holding a value longer than :data:`MIN_CONTENT_FIELD_LENGTH`.
    ``None`` means "concatenate every ``field: value`` pair".
    """
    if content_field is not None:
        if content_field not in columns:
            raise LoadError(
                f"Column '{content_field}' not found. Available columns: {', '.join(map(str, columns))}"
            )
        return content_field

    for column in columns:
        if str(column).lower() in CANONICAL_CONTENT_FIELDS:
            return column

    for row in rows:
        for column in columns:
            if len(_as_text(row.get(column))) > MIN_CONTENT_FIELD_LENGTH:
                return column
    return None


def _combine_fields(row: Mapping[str, Any], columns: Sequence[str]) -> str:
    return "\n".join(
        f"{column}: {_as_text(row.get(column)).strip()}"
        for column in columns
        if _as_text(row.get(column)).strip()
    )


def rows_to_documents(
    rows: Sequence[Mapping[str, Any]],
    columns: Sequence[str],
    *,
    content_field: str | None,
    base_metadata: Mapping[str, Any],
    row_key: str = "row",
    row_start: int = 1,
    metadata_columns: Sequence[str] | None = None,
    combined_columns: bool = False,
) -> list[Document]:
    """Turn tabular *rows* into documents using one resolved content policy.

    Parameters
    ----------
    rows:
        Row mappings, in source order.
    columns:
        Column names, in source order.
    content_field:
        Column holding the text, or ``None`` to concatenate all fields.
    base_metadata:
        Metadata shared by every record (``source`` at minimum).
    row_key / row_start:
        Metadata key and numbering origin for the row position.
    metadata_columns:
        Restrict copied columns to these; default is every non-content column.
    combined_columns:
        Use the concatenated ``field: value`` form even when a content field exists.
    """
    documents: list[Document] = []
    skipped = 0
    for position, row in enumerate(rows):
        if combined_columns or content_field is None:
            content = _combine_fields(row, columns)
        else:
            content = _as_text(row.get(content_field))

        if not content.strip():
            skipped += 1
            if skipped <= _MAX_SKIP_WARNINGS:
                logger.warning("Skipping row %d: empty content", position + row_start)
            continue

        metadata: dict[str, Any] = {**base_metadata, row_key: position + row_start}
        copied = metadata_columns if metadata_columns else columns
        for column in copied:
            if column == content_field and not combined_columns:
                continue
            value = row.get(column)
            if value is not None and value != "":
                metadata.setdefault(column, value)
        documents.append(Document(page_content=content.strip(), metadata=sanitize_metadata(metadata)))

    if skipped:
        logger.warning("Skipped %d row(s) with empty content", skipped)
    return documents


def load_csv(
    path: str | Path,
    column: str | None = None,
    combined_columns: bool = False,
    separator: str | None = None,
) -> list[Document]:
    """Load a CSV file, one document per row.

    Parameters
    ----------
    path:
        CSV file with a header row.
    column:
        Explicit content column; inferred by :func:`resolve_content_field` when omitted.
    combined_columns:
        Use every ``column: value`` pair of the row as content.
    separator:
        Field delimiter (default ``,``).
    """
    p = _require_file(path)
    try:
        with p.open(newline="", encoding="utf-8-sig") as fh:
            reader = csv.DictReader(fh, delimiter=separator or ",")
            rows = list(reader)
            columns = [c for c in (reader.fieldnames or []) if c]
    except (OSError, UnicodeDecodeError, csv.Error) as exc:
        raise LoadError(f"Failed to load CSV {p.name}: {exc}") from exc

    if not rows or not columns:
        raise LoadError(f"CSV file is empty or invalid: {p.name}")
    logger.info("Parsed %d rows from %s (columns: %s)", len(rows), p.name, ", ".join(columns))

    content_field = resolve_content_field(columns, rows, column)
    documents = rows_to_documents(
        rows,
        columns,
        content_field=content_field,
        base_metadata={"source": str(p), "csv_columns": ",".join(columns)},
        combined_columns=combined_columns,
    )
    if not documents:
        raise LoadError("No valid content found in CSV. Please specify a content column.")
    logger.info("Created %d documents from CSV (content column: %s)", len(documents), content_field or "<combined>")
    return documents


def load_records(
    rows: Iterable[Mapping[str, Any]],
    source: str,
    content_field: str | None = None,
    metadata_columns: Sequence[str] | None = None,
    combined_columns: bool = False,
) -> list[Document]:
    """Normalise pre-loaded in-memory rows into documents."""
    rows = list(rows)
    if not rows:
        raise LoadError(f"No rows provided for {source}")
    columns: list[str] = []
    for row in rows:
        columns.extend(k for k in row if k not in columns)

    resolved = resolve_content_field(columns, rows, content_field)
    documents = rows_to_documents(
        rows,
        columns,
        content_field=resolved,
        base_metadata={"source": source},
        row_key="row_index",
        row_start=0,
        metadata_columns=metadata_columns,
        combined_columns=combined_columns,
    )
    if not documents:
        raise LoadError(f"No valid content found in rows from {source}")
    return documents


def load_document(path: str | Path, source_kind: SourceKind | str, **options: Any) -> list[Document]:
    """Load *path* as *source_kind* (a :class:`SourceKind` or a MIME type)."""
    kind = source_kind if isinstance(source_kind, SourceKind) else SourceKind.from_mime_type(source_kind)
    logger.info("Loading %s as %s", path, kind.value)
    documents = kind.load(path, **options)
    logger.info("Loaded %d record(s) from %s", len(documents), kind.value.upper())
    return documents


# ---------------------------------------------------------------------------
# Remote dataset rows
# ---------------------------------------------------------------------------


class DatasetPreview(BaseModel):
    columns: list[str]
    sample_rows: list[dict[str, Any]]
    total_rows: int


class DatasetValidation(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    available_columns: list[str] | None = None


class DatasetRowLoader:
    """Load rows of a hosted dataset through a datasets-server ``/rows`` endpoint.

    Several access variants are attempted in order (explicit config, no
    config, ``config=default``) and the first one that answers is used.

    Parameters
    ----------
    dataset_name:
        Dataset identifier, e.g. ``"imdb"`` or ``"org/name"``.
    content_field:
        Column holding the text; inferred when ``None``.
    split:
        Dataset split to read.
    metadata_columns:
        Columns to copy into metadata; default is every non-content column.
    config:
        Optional dataset configuration name.
    base_url / row_limit / timeout:
        Server location, rows fetched per load, per-request timeout.
    session:
        Optional ``requests.Session`` (injected in tests).
    """

    def __init__(
        self,
        dataset_name: str,
        content_field: str | None = None,
        *,
        split: str = "train",
        metadata_columns: Sequence[str] | None = None,
        config: str | None = None,
        base_url: str = settings.dataset_server_url,
        row_limit: int = settings.dataset_row_limit,
        timeout: int = settings.request_timeout,
        session: requests.Session | None = None,
    ) -> None:
        self.dataset_name = dataset_name
        self.content_field = content_field
        self.split = split
        self.metadata_columns = list(metadata_columns or [])
        self.config = config
        self.base_url = base_url.rstrip("/")
        self.row_limit = row_limit
        self.timeout = timeout
        # Config of the variant that last answered; ``None`` when it had none.
        self.resolved_config: str | None = None
        self._owns_session = session is None
        self._http = session or requests.Session()

    def close(self) -> None:
        """Close the HTTP session if this loader created it."""
        if self._owns_session:
            self._http.close()

    def __enter__(self) -> DatasetRowLoader:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def source(self) -> str:
        return f"dataset://{self.dataset_name}"

    def candidate_params(self, length: int | None = None) -> list[dict[str, Any]]:
        """Query parameter variants, in the order they are attempted."""
        base = {"dataset": self.dataset_name, "split": self.split, "offset": 0, "length": length or self.row_limit}
        candidates: list[dict[str, Any]] = []
        if self.config:
            candidates.append({**base, "config": self.config})
        candidates.append(dict(base))
        if not self.config:
            candidates.append({**base, "config": "default"})
        return candidates

    def _fetch_rows(self, length: int | None = None) -> list[dict[str, Any]]:
        last_error: str | None = None
        url = f"{self.base_url}/rows"
        for params in self.candidate_params(length):
            try:
                resp = self._http.get(url, params=params, timeout=self.timeout)
            except requests.RequestException as exc:
                last_error = str(exc)
                logger.info("Dataset request failed (%s): %s", params.get("config", "<no config>"), exc)
                continue
            if resp.ok:
                try:
                    payload = resp.json()
                except ValueError as exc:
                    last_error = f"Malformed response: {exc}"
                    continue
                self.resolved_config = params.get("config")
                logger.info("Fetched dataset rows with config=%s", params.get("config", "<none>"))
                return [item.get("row", {}) for item in payload.get("rows") or []]
            last_error = f"{resp.status_code} {resp.reason}: {resp.text[:200]}"
            logger.info("Dataset request rejected (%s): %s", params.get("config", "<no config>"), last_error)

        raise LoadError(
            "Failed to fetch dataset after trying multiple configurations.\n"
            f"Last error: {last_error}\n\n"
            "Please check:\n"
            f"1. Dataset name is correct: {self.dataset_name}\n"
            f"2. Split '{self.split}' exists\n"
            "3. Dataset is public and accessible\n"
            f"4. Column '{self.content_field or '<inferred>'}' exists in the dataset"
        )

    def load(self) -> list[Document]:
        rows = self._fetch_rows()
        if not rows:
            raise LoadError(f"No rows found in dataset '{self.dataset_name}' split '{self.split}'")

        columns = list(rows[0].keys())
        try:
            content_field = resolve_content_field(columns, rows, self.content_field)
        except LoadError as exc:
            raise LoadError(f"Dataset '{self.dataset_name}' split '{self.split}': {exc}") from exc

        base_metadata: dict[str, Any] = {
            "source": self.source,
            "dataset_name": self.dataset_name,
            "split": self.split,
        }
        if self.resolved_config:
            base_metadata["dataset_config"] = self.resolved_config

        documents = rows_to_documents(
            rows,
            columns,
            content_field=content_field,
            base_metadata=base_metadata,
            row_key="row_index",
            row_start=0,
            metadata_columns=self.metadata_columns,
        )
        if not documents:
            raise LoadError(
                f"No valid documents found. Column '{content_field}' may be empty in every row "
                f"of dataset '{self.dataset_name}' split '{self.split}'."
            )
        logger.info(
            "Loaded %d documents from %s (%d empty rows filtered)",
            len(documents),
            self.source,
            len(rows) - len(documents),
        )
        return documents

    def preview(self, limit: int = 5) -> DatasetPreview:
        rows = self._fetch_rows(length=limit)
        if not rows:
            raise LoadError(f"No data available for preview of '{self.dataset_name}'")
        return DatasetPreview(columns=list(rows[0].keys()), sample_rows=rows, total_rows=len(rows))

    def validate(self) -> DatasetValidation:
        try:
            preview = self.preview(limit=1)
        except LoadError as exc:
            return DatasetValidation(valid=False, errors=[str(exc)])

        errors: list[str] = []
        warnings: list[str] = []
        if self.content_field and self.content_field not in preview.columns:
            errors.append(
                f"Content column '{self.content_field}' not found. Available: {', '.join(preview.columns)}"
            )
        missing = [c for c in self.metadata_columns if c not in preview.columns]
        if missing:
            warnings.append(f"Metadata columns not found: {', '.join(missing)}")
        return DatasetValidation(
            valid=not errors,
            errors=errors,
            warnings=warnings,
            available_columns=preview.columns,
        )
