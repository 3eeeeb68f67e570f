"""Text extraction and chunking for uploaded course materials."""

import io
import logging
from typing import Iterator, List, Tuple

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from ..core.errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = 1800
DEFAULT_OVERLAP = 200


def extract_pdf_text(data: bytes) -> Tuple[str, int]:
    """
    Extract text from a PDF.

    Args:
        data: Raw PDF bytes

    Returns:
        Tuple of (full text with pages separated by blank lines, page count)
    """
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
    except (PdfReadError, ValueError) as e:
        raise ValidationError(f"Could not read PDF: {e}") from e

    return "\n\n".join(pages), len(pages)


def iter_text_chunks(
    text: str,
    window: int = DEFAULT_WINDOW,
    overlap: int = DEFAULT_OVERLAP,
    start: int = 0,
) -> Iterator[Tuple[int, str]]:
    """
    Yield ``(chunk_index, content)`` pairs over whitespace-separated words.

    Words are packed into chunks of at most ``window`` characters (a single
    longer word becomes its own chunk). Each chunk after the first begins
    with the trailing words of the previous chunk, up to ``overlap``
    characters. The sequence is deterministic, so passing ``start`` resumes
    at that chunk index.

    Args:
        text: Text to chunk
        window: Maximum characters per chunk
        overlap: Maximum characters carried over between chunks
        start: First chunk index to yield
    """
    if window <= 0:
        raise ValueError("window must be positive")
    if overlap < 0 or overlap >= window:
        raise ValueError("overlap must be in [0, window)")

    words = text.split()
    current: List[str] = []
    size = 0
    index = 0

    for word in words:
        added = len(word) if not current else len(word) + 1
        if current and size + added > window:
            if index >= start:
                yield index, " ".join(current)
            index += 1
            current = _overlap_tail(current, overlap)
            size = len(" ".join(current))
            added = len(word) if not current else len(word) + 1
            # The carried tail must leave room for the next word
            while current and size + added > window:
                current.pop(0)
                size = len(" ".join(current))
                added = len(word) if not current else len(word) + 1
        current.append(word)
        size += added

    if current and index >= start:
        yield index, " ".join(current)


def _overlap_tail(words: List[str], overlap: int) -> List[str]:
    tail: List[str] = []
    size = 0
    for word in reversed(words):
        added = len(word) if not tail else len(word) + 1
        if size + added > overlap:
            break
        tail.insert(0, word)
        size += added
    # Never carry a whole chunk forward, or chunking would not advance
    if len(tail) == len(words):
        tail = tail[1:]
    return tail


def chunk_text(
    text: str,
    window: int = DEFAULT_WINDOW,
    overlap: int = DEFAULT_OVERLAP,
) -> List[str]:
    """Split text into overlapping chunks. See ``iter_text_chunks``."""
    return [content for _, content in iter_text_chunks(text, window, overlap)]
