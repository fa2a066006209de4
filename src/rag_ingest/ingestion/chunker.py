"""Text chunking strategies."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass

from langchain_core.documents import Document
from langchain_text_splitters import RecursiveCharacterTextSplitter

from rag_ingest.ingestion.errors import SplitError

logger = logging.getLogger(__name__)

# Paragraph, line, sentence, word, then character level as a last resort.
DEFAULT_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ". ", " ", "")

# Whitespace kept between the carried tail and the next core.
_GAP_ALLOWANCE = 2


@dataclass(frozen=True)
class ChunkingConfig:
    """Size/overlap policy for the recursive splitter.

    Parameters
    ----------
    chunk_size:
        Maximum number of characters per chunk.
    chunk_overlap:
        Number of trailing characters of a chunk carried into the next one.
        Must be strictly smaller than ``chunk_size``.
    separators:
        Split boundaries, in priority order.
    """

    chunk_size: int = 1200
    chunk_overlap: int = 200
    separators: tuple[str, ...] = DEFAULT_SEPARATORS

    def validate(self) -> None:
        if self.chunk_size <= 0:
            raise SplitError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.chunk_overlap < 0:
            raise SplitError(f"chunk_overlap must be >= 0, got {self.chunk_overlap}")
        if self.chunk_overlap >= self.chunk_size:
            raise SplitError(
                f"chunk_overlap ({self.chunk_overlap}) must be < chunk_size ({self.chunk_size})"
            )


DEFAULT_CONFIG = ChunkingConfig()

# Denser, structured sources tolerate bigger chunks; plain text gets smaller ones.
_SOURCE_TYPE_CONFIGS: dict[str, ChunkingConfig] = {
    "pdf": ChunkingConfig(chunk_size=1500, chunk_overlap=250),
    "docx": ChunkingConfig(chunk_size=1200, chunk_overlap=200),
    "txt": ChunkingConfig(chunk_size=1000, chunk_overlap=150),
}


def config_for_source_type(source_type: str | None) -> ChunkingConfig:
    """Return the chunking policy for *source_type* (``pdf``, ``docx``, ``txt``, …).

    Unknown or missing types fall back to :data:`DEFAULT_CONFIG`.
    """
    if source_type is None:
        return DEFAULT_CONFIG
    return _SOURCE_TYPE_CONFIGS.get(str(source_type).lower(), DEFAULT_CONFIG)


def _build_splitter(config: ChunkingConfig, chunk_size: int) -> RecursiveCharacterTextSplitter:
    return RecursiveCharacterTextSplitter(
        chunk_size=chunk_size,
        chunk_overlap=0,
        length_function=len,
        separators=list(config.separators),
    )


def _core_size(config: ChunkingConfig) -> int:
    # Room for the carried tail plus a short whitespace gap.
    budget = config.chunk_size - config.chunk_overlap
    if config.chunk_overlap and budget > _GAP_ALLOWANCE:
        budget -= _GAP_ALLOWANCE
    return budget


def _carry_overlap(text: str, cores: list[str], config: ChunkingConfig) -> list[str]:
    """Prefix every core after the first with the last ``chunk_overlap`` characters of the previous chunk."""
    chunks = [cores[0]]
    cursor = text.find(cores[0]) + len(cores[0])
    for core in cores[1:]:
        start = text.find(core, cursor)
        if start < 0:
            gap, start = " ", cursor
        else:
            gap = text[cursor:start]
        cursor = start + len(core)

        tail = chunks[-1][-config.chunk_overlap :]
        room = config.chunk_size - len(tail) - len(core)
        chunks.append(tail + gap[: max(room, 0)] + core)
    return chunks


def split_text(text: str, config: ChunkingConfig = DEFAULT_CONFIG) -> list[str]:
    """Split *text* into overlapping chunks no longer than ``config.chunk_size``.

    The recursive splitter cuts non-overlapping cores; every chunk after the
    first then starts with exactly the last ``chunk_overlap`` characters of
    the chunk before it.  Text no longer than the chunk size comes back as a
    single chunk.

    Raises
    ------
    SplitError
        On an invalid configuration or any failure inside the splitter.
    """
    config.validate()
    stripped = text.strip()
    if len(stripped) <= config.chunk_size:
        return [stripped] if stripped else []

    splitter = _build_splitter(config, _core_size(config))
    try:
        cores = splitter.split_text(text)
    except Exception as exc:
        raise SplitError(f"Failed to split text into chunks: {exc}") from exc

    if not config.chunk_overlap or len(cores) < 2:
        return cores
    return _carry_overlap(text, cores, config)


def chunk_documents(
    documents: list[Document],
    config: ChunkingConfig = DEFAULT_CONFIG,
) -> list[Document]:
    """Split *documents* into smaller chunks for embedding.

    Parameters
    ----------
    documents:
        Cleaned documents produced by a loader.
    config:
        Size/overlap policy, usually from :func:`config_for_source_type`.

    Returns
    -------
    list[Document]
        Chunked documents; each inherits a copy of its parent's metadata.
    """
    chunks: list[Document] = []
    for doc in documents:
        for piece in split_text(doc.page_content, config):
            chunks.append(Document(page_content=piece, metadata=copy.deepcopy(doc.metadata)))

    if chunks:
        avg = sum(len(c.page_content) for c in chunks) // len(chunks)
        logger.info(
            "Split %d document(s) into %d chunks (size=%d, overlap=%d, avg=%d chars)",
            len(documents),
            len(chunks),
            config.chunk_size,
            config.chunk_overlap,
            avg,
        )
    return chunks
