"""Chunk quality gate.

Rejects chunks that are too short, too repetitive, dominated by
identifier-like lines, or mostly non-alphabetic.  Every rejection is
attributable to one :class:`RejectionReason` for diagnostics; only the
boolean outcome gates the pipeline.
"""

from __future__ import annotations

import logging
import re
from enum import Enum

logger = logging.getLogger(__name__)

DEFAULT_MIN_LENGTH = 100

MIN_UNIQUE_TOKEN_RATIO = 0.3
REPETITION_MIN_TOKENS = 20
MAX_ID_LINE_RATIO = 0.7
MIN_ALPHA_RATIO = 0.4

_ID_LINE = re.compile(r"[A-Z]{3,}\d{5,}")
_ALPHA = re.compile(r"[a-zA-Z]")
_WHITESPACE = re.compile(r"\s")


class RejectionReason(str, Enum):
    """Which quality rule rejected a chunk."""

    TOO_SHORT = "too_short"
    TOO_REPETITIVE = "too_repetitive"
    MOSTLY_IDENTIFIERS = "mostly_identifiers"
    TOO_FEW_LETTERS = "too_few_letters"


def check_chunk(text: str, min_length: int = DEFAULT_MIN_LENGTH) -> RejectionReason | None:
    """Return the first rule *text* violates, or ``None`` when the chunk is acceptable."""
    text = text or ""
    trimmed_length = len(text.strip())
    if trimmed_length < min_length:
        logger.debug("Chunk rejected: too short (%d chars, need %d)", trimmed_length, min_length)
        return RejectionReason.TOO_SHORT

    tokens = text.split()
    if len(tokens) > REPETITION_MIN_TOKENS:
        unique = len(set(tokens))
        if unique / len(tokens) < MIN_UNIQUE_TOKEN_RATIO:
            logger.debug("Chunk rejected: too repetitive (%d/%d unique tokens)", unique, len(tokens))
            return RejectionReason.TOO_REPETITIVE

    lines = text.split("\n")
    id_lines = sum(1 for line in lines if _ID_LINE.fullmatch(line.strip()))
    if id_lines / len(lines) > MAX_ID_LINE_RATIO:
        logger.debug("Chunk rejected: mostly identifiers (%d/%d lines)", id_lines, len(lines))
        return RejectionReason.MOSTLY_IDENTIFIERS

    alpha = len(_ALPHA.findall(text))
    non_whitespace = len(_WHITESPACE.sub("", text))
    if non_whitespace == 0 or alpha / non_whitespace < MIN_ALPHA_RATIO:
        logger.debug("Chunk rejected: too few letters (%d/%d)", alpha, non_whitespace)
        return RejectionReason.TOO_FEW_LETTERS

    return None


def is_valid_chunk(text: str, min_length: int = DEFAULT_MIN_LENGTH) -> bool:
    """``True`` when *text* passes every quality rule."""
    return check_chunk(text, min_length) is None
