"""Unit tests for the ingestion orchestrator."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from langchain_core.documents import Document

from rag_ingest.ingestion.errors import SplitError
from rag_ingest.ingestion.models import IngestionState
from rag_ingest.ingestion.processor import DocumentProcessor

_ALPHABET = "abcdefghijklmnopqrstuvwxyz"


def _word(n: int) -> str:
    # Distinct four-letter words: baaa, baab, baac, ...
    n += 26**3
    letters = []
    while n:
        n, r = divmod(n, 26)
        letters.append(_ALPHABET[r])
    return "".join(reversed(letters))


def make_text(chars: int, start: int = 0) -> str:
    """Sentence-structured text of exactly *chars* characters with no repeated words."""
    parts: list[str] = []
    length = 0
    i = start
    while length < chars + 10:
        words = [_word(i + k) for k in range(8)]
        sentence = " ".join(words).capitalize() + "."
        parts.append(sentence)
        length += len(sentence) + 1
        i += 8
    text = " ".join(parts)[: chars - 1].rstrip()
    return text + "." * (chars - len(text))


def _docs(count: int, chars: int = 200) -> list[Document]:
    return [
        Document(page_content=make_text(chars, start=i * 1000), metadata={"source": f"/data/part-{i}.txt"})
        for i in range(count)
    ]


@pytest.fixture()
def processor(fake_store) -> DocumentProcessor:
    return DocumentProcessor(fake_store)


class TestProcessDocuments:
    def test_success(self, processor: DocumentProcessor, fake_store) -> None:
        result = processor.process_documents(_docs(3), "doc-1", "parts.txt", "txt")

        assert result.success
        assert result.state is IngestionState.COMPLETED
        assert result.chunks_created == 3
        assert len(result.vector_ids) == 3
        assert result.stats.total_chunks == 3
        assert result.error is None
        assert result.message == "Successfully processed document into 3 chunks"
        stored, collection = fake_store.upserts[0]
        assert collection == "test-collection"
        assert [c.chunk_id for c in stored] == result.vector_ids

    def test_index_contiguity(self, processor: DocumentProcessor) -> None:
        result = processor.process_documents(_docs(2, chars=3000), "doc-2", "parts.txt", "txt")

        indices = sorted(c.chunk_index for c in result.chunks)
        assert indices == list(range(result.chunks_created))
        assert {c.total_chunks for c in result.chunks} == {result.chunks_created}
        assert {c.document_id for c in result.chunks} == {"doc-2"}
        assert {c.original_filename for c in result.chunks} == {"parts.txt"}

    def test_collection_name_is_forwarded(self, processor: DocumentProcessor, fake_store) -> None:
        processor.process_documents(_docs(1), "d", "f.txt", collection_name="reports")
        assert fake_store.upserts[0][1] == "reports"

    def test_store_skipped_when_disabled(self, processor: DocumentProcessor, fake_store) -> None:
        result = processor.process_documents(_docs(1), "d", "f.txt", store_in_vector_store=False)
        assert result.success
        assert result.vector_ids == []
        assert fake_store.upserts == []

    def test_low_quality_chunks_are_filtered(self, processor: DocumentProcessor) -> None:
        docs = _docs(2) + [Document(page_content=" ".join(str(1000 + 7 * i) for i in range(40)))]
        result = processor.process_documents(docs, "d", "mixed.txt", "txt")

        assert result.success
        assert result.chunks_created == 2
        assert result.chunks_filtered == 1
        assert "(1 low-quality chunks filtered)" in result.message
        assert result.stats.total_chunks == 2

    def test_all_chunks_rejected(self, processor: DocumentProcessor, fake_store) -> None:
        junk = [Document(page_content=" ".join(str(1000 + 7 * i) for i in range(40)))]
        result = processor.process_documents(junk, "d", "junk.txt", "txt")

        assert not result.success
        assert result.state is IngestionState.FAILED
        assert result.chunks == []
        assert result.chunks_created == 0
        assert "too repetitive, too short, or malformed" in result.error
        assert fake_store.upserts == []

    def test_partial_embedding_failure(self, make_store) -> None:
        store = make_store(fail_indices=[3, 7])
        result = DocumentProcessor(store).process_documents(_docs(10), "d", "ten.txt", "txt")

        assert result.success
        assert result.chunks_created == 10
        assert result.chunks_failed == 2
        assert [f.index for f in result.failures] == [3, 7]
        assert len(result.vector_ids) == 8
        assert result.stats.total_chunks == 10
        assert "2 chunks failed to embed" in result.message

    def test_total_embedding_failure(self, make_store) -> None:
        store = make_store(fail_all=True)
        result = DocumentProcessor(store).process_documents(_docs(2), "d", "f.txt")

        assert not result.success
        assert result.chunks == []
        assert result.chunks_created == 0
        assert "embedding service unavailable" in result.error

    def test_split_failure_aborts(self, processor: DocumentProcessor) -> None:
        with patch(
            "rag_ingest.ingestion.processor.chunk_documents",
            side_effect=SplitError("chunk_overlap (300) must be < chunk_size (200)"),
        ):
            result = processor.process_documents(_docs(1), "d", "f.txt")

        assert not result.success
        assert "chunk_overlap (300)" in result.error

    def test_unexpected_error_becomes_failed_result(self, processor: DocumentProcessor, fake_store) -> None:
        fake_store.upsert = MagicMock(side_effect=RuntimeError("socket closed"))
        result = processor.process_documents(_docs(1), "d", "f.txt")

        assert not result.success
        assert result.error == "socket closed"
        assert result.message == "Document processing failed"

    def test_missing_store(self) -> None:
        result = DocumentProcessor(None).process_documents(_docs(1), "d", "f.txt")
        assert not result.success
        assert "No vector store configured" in result.error

    def test_empty_input(self, processor: DocumentProcessor, fake_store) -> None:
        result = processor.process_documents([], "d", "f.txt")
        assert not result.success
        assert "No content to process" in result.error
        assert fake_store.upserts == []

    def test_nothing_left_after_cleaning(self, processor: DocumentProcessor, fake_store) -> None:
        ids = "\n".join(f"SCAN{10_000_000 + i}" for i in range(8))
        result = processor.process_documents([Document(page_content=ids)], "d", "scan.pdf", "pdf")

        assert not result.success
        assert "No text left after cleaning" in result.error
        assert "All 0 chunks" not in result.error
        assert fake_store.upserts == []

    def test_inputs_are_not_mutated(self, processor: DocumentProcessor) -> None:
        docs = [Document(page_content="  spaced   out  " + make_text(200), metadata={"source": "s"})]
        before = docs[0].page_content
        processor.process_documents(docs, "d", "f.txt")
        assert docs[0].page_content == before
        assert docs[0].metadata == {"source": "s"}


class TestProcessFile:
    def test_plain_text_shorter_than_chunk_size(self, processor: DocumentProcessor, tmp_path: Path) -> None:
        text = make_text(900)
        assert len(text) == 900
        path = tmp_path / "short.txt"
        path.write_text(text, encoding="utf-8")

        result = processor.process_file(path, "text/plain", "doc-e", "short.txt")

        assert result.success
        assert result.chunks_created == 1
        assert result.chunks[0].text == text
        assert result.chunks[0].source == str(path)

    def test_pdf_pages_are_inherited(self, processor: DocumentProcessor, tmp_path: Path) -> None:
        pages = [make_text(5000, start=p * 10_000) for p in range(3)]
        path = tmp_path / "report.pdf"
        path.write_bytes(b"%PDF-stub")

        with patch("rag_ingest.ingestion.loader.PyPDFLoader") as loader_cls:
            loader_cls.return_value.load.return_value = [Document(page_content=p, metadata={}) for p in pages]
            result = processor.process_file(path, "application/pdf", "doc-a", "report.pdf")

        assert result.success
        assert result.chunks_created >= 3 * 4
        for chunk in result.chunks:
            page = chunk.extra_metadata["page_number"]
            assert chunk.extra_metadata["total_pages"] == 3
            assert chunk.text in pages[page - 1]
            assert chunk.total_chunks == result.chunks_created
            assert len(chunk.text) <= 1500
        assert {c.extra_metadata["page_number"] for c in result.chunks} == {1, 2, 3}

    def test_csv_options_are_forwarded(self, processor: DocumentProcessor, tmp_path: Path) -> None:
        path = tmp_path / "rows.csv"
        path.write_text(f"id,summary\n1,{make_text(120)}\n2,{make_text(120, start=500)}\n", encoding="utf-8")

        result = processor.process_file(path, "text/csv", original_filename="rows.csv", csv_column="summary")

        assert result.success
        assert result.chunks_created == 2
        assert result.chunks[0].extra_metadata["id"] == "1"
        assert result.chunks[1].extra_metadata["row"] == 2

    def test_unsupported_type(self, processor: DocumentProcessor, tmp_path: Path) -> None:
        result = processor.process_file(tmp_path / "img.png", "image/png", "doc-x")
        assert not result.success
        assert result.document_id == "doc-x"
        assert "Unsupported MIME type" in result.error

    def test_missing_file(self, processor: DocumentProcessor, tmp_path: Path) -> None:
        result = processor.process_file(tmp_path / "gone.txt", "text/plain")
        assert not result.success
        assert "File not found" in result.error


class TestProcessRowsAndDatasets:
    def test_process_records(self, processor: DocumentProcessor) -> None:
        rows = [{"text": make_text(150, start=i * 100), "lang": "en"} for i in range(3)]
        result = processor.process_records(rows, "memory://batch", "doc-r")
        assert result.success
        assert result.chunks_created == 3
        assert result.chunks[2].extra_metadata["row_index"] == 2
        assert result.chunks[0].source == "memory://batch"

    def test_row_iterator_error_becomes_failed_result(self, processor: DocumentProcessor, fake_store) -> None:
        def rows():
            yield {"text": make_text(150)}
            raise OSError("cursor lost")

        result = processor.process_records(rows(), "db://table", "doc-r")

        assert not result.success
        assert result.document_id == "doc-r"
        assert result.error == "cursor lost"
        assert fake_store.upserts == []

    def test_records_with_integer_columns(self, processor: DocumentProcessor) -> None:
        result = processor.process_records([{0: make_text(150), 1: "en"}], "df://frame")
        assert result.success
        assert result.chunks[0].extra_metadata["1"] == "en"

    def test_process_dataset(self, processor: DocumentProcessor) -> None:
        loader = MagicMock()
        loader.dataset_name = "acme/reviews"
        loader.load.return_value = [
            Document(page_content=make_text(300), metadata={"source": "dataset://acme/reviews", "row_index": 0})
        ]
        result = processor.process_dataset(loader, "doc-d")
        assert result.success
        assert result.chunks[0].source == "dataset://acme/reviews"
        assert result.chunks[0].original_filename == "acme/reviews"

    def test_dataset_load_error(self, processor: DocumentProcessor) -> None:
        from rag_ingest.ingestion.errors import LoadError

        loader = MagicMock()
        loader.dataset_name = "missing"
        loader.load.side_effect = LoadError("Failed to fetch dataset")
        result = processor.process_dataset(loader, "doc-d")
        assert not result.success
        assert result.error == "Failed to fetch dataset"
