"""Unit tests for text cleaning."""

from __future__ import annotations

import pytest
from langchain_core.documents import Document

from rag_ingest.ingestion.cleaning import clean_document, clean_documents, clean_text


class TestCleanText:
    def test_collapses_blank_runs(self) -> None:
        assert clean_text("alpha  \t beta") == "alpha beta"

    def test_drops_empty_lines(self) -> None:
        assert clean_text("first\n\n\n\n\nsecond") == "first\nsecond"

    def test_trims_every_line(self) -> None:
        assert clean_text("  first  \n\t second\t") == "first\nsecond"

    def test_removes_identifier_blocks(self) -> None:
        ids = "\n".join(f"ABC{12345678 + i}" for i in range(6))
        text = f"Report header\n{ids}\nReport footer"
        assert clean_text(text) == "Report header\nReport footer"

    def test_keeps_short_identifier_runs(self) -> None:
        ids = "\n".join(f"ABC{12345678 + i}" for i in range(3))
        assert clean_text(f"Header\n{ids}") == f"Header\n{ids}"

    def test_collapses_repeated_phrase(self) -> None:
        assert clean_text("word " * 6 + "end") == "word end"

    def test_collapses_repeated_characters(self) -> None:
        assert clean_text("Section" + "-" * 30 + "Body") == "Section-Body"

    def test_empty_and_whitespace(self) -> None:
        assert clean_text("") == ""
        assert clean_text(" \n\t \n ") == ""

    @pytest.mark.parametrize(
        "text",
        [
            "plain sentence with nothing to do",
            "  a  b  \n\n\n\n c ",
            "ab" * 40,
            "x y " * 30 + "\n\n\n" + "QRS123456789\n" * 7,
            "Title\n" + "=" * 80 + "\n   body   text   \n",
            "la la la la la\nla la la la la la",
        ],
    )
    def test_idempotent(self, text: str) -> None:
        once = clean_text(text)
        assert clean_text(once) == once


class TestCleanDocuments:
    def test_metadata_is_copied(self) -> None:
        doc = Document(page_content="some   text", metadata={"source": "a.txt", "page_number": 1})
        cleaned = clean_document(doc)
        assert cleaned.page_content == "some text"
        assert cleaned.metadata == doc.metadata
        assert cleaned.metadata is not doc.metadata

    def test_inputs_are_not_mutated(self) -> None:
        docs = [Document(page_content="a   b", metadata={"source": "x"})]
        cleaned = clean_documents(docs)
        cleaned[0].metadata["extra"] = True
        assert docs[0].page_content == "a   b"
        assert "extra" not in docs[0].metadata
