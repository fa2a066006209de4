"""Text normalisation applied to raw loader output before splitting."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from langchain_core.documents import Document

from rag_ingest.ingestion.models import metadata_of

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_EXCESS_BLANKS = re.compile(r"[ \t]{2,}")
# Five or more consecutive lines holding nothing but a scanned-document id
# such as ``ABC12345678``.
_ID_LINE_BLOCK = re.compile(r"(?m)(?:^[A-Z]{3,}\d{8,}\s*(?:\n|\Z)){5,}")
_REPEATED_PHRASE = re.compile(r"(.{1,50})\1{4,}")


def _clean_once(text: str) -> str:
    cleaned = _EXCESS_NEWLINES.sub("\n\n", text)
    cleaned = _EXCESS_BLANKS.sub(" ", cleaned)
    cleaned = _ID_LINE_BLOCK.sub("", cleaned)
    cleaned = _REPEATED_PHRASE.sub(r"\1", cleaned)
    lines = (line.strip() for line in cleaned.split("\n"))
    return "\n".join(line for line in lines if line).strip()


def clean_text(text: str) -> str:
    """Normalise whitespace and strip common scan/OCR artifacts from *text*.

    Rules, in order:

    1. three or more consecutive newlines become two;
    2. runs of two or more spaces/tabs become one space;
    3. blocks of five or more lines consisting only of an id
       (3+ uppercase letters followed by 8+ digits) are removed;
    4. a 1-50 character substring repeated five or more times in a row is
       collapsed to a single occurrence;
    5. every line is trimmed and empty lines are dropped;
    6. the result is trimmed.

    Every rule only ever removes characters, so the rule sequence is repeated
    until the text stops changing.  This makes ``clean_text`` idempotent even
    when trimming lines exposes a new repeated run.
    """
    if not text:
        return ""

    current = text
    while True:
        cleaned = _clean_once(current)
        if cleaned == current:
            return cleaned
        current = cleaned


def clean_document(document: Document) -> Document:
    """Return a new document with cleaned text and a copy of the metadata."""
    return Document(page_content=clean_text(document.page_content), metadata=metadata_of(document))


def clean_documents(documents: Iterable[Document]) -> list[Document]:
    """Clean every document; the inputs are left untouched."""
    documents = list(documents)
    cleaned = [clean_document(doc) for doc in documents]
    before = sum(len(d.page_content) for d in documents)
    after = sum(len(d.page_content) for d in cleaned)
    logger.info("Cleaned %d document(s): %d -> %d chars", len(cleaned), before, after)
    return cleaned
