"""
Text chunking strategies for document segmentation.

Chunks are half-open spans ``[start, end)`` over normalized text. Every
strategy guarantees ``0 <= start < end <= len(text)`` and that each chunk's
text is exactly ``text[start:end]``.
"""

import re
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from rag_ingest.errors import ConfigurationError
from rag_ingest.models import TextChunk

STRATEGIES = ("character", "sentence", "paragraph")

_SENTENCE_BOUNDARY = re.compile(r"([.!?]+)\s+")
_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")

Span = Tuple[int, int]


def _trim_span(text: str, start: int, end: int) -> Optional[Span]:
    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    if start == end:
        return None
    return start, end


def split_into_sentences(text: str) -> List[Span]:
    """Sentence spans: terminal punctuation followed by whitespace ends a sentence."""
    spans: List[Span] = []
    last = 0

    for match in _SENTENCE_BOUNDARY.finditer(text):
        span = _trim_span(text, last, match.end(1))
        if span:
            spans.append(span)
        last = match.end()

    if last < len(text):
        span = _trim_span(text, last, len(text))
        if span:
            spans.append(span)

    return spans


def split_into_paragraphs(text: str) -> List[Span]:
    """Paragraph spans separated by blank lines."""
    spans: List[Span] = []
    last = 0

    for match in _PARAGRAPH_BREAK.finditer(text):
        span = _trim_span(text, last, match.start())
        if span:
            spans.append(span)
        last = match.end()

    span = _trim_span(text, last, len(text))
    if span:
        spans.append(span)

    return spans


class TextChunker:
    """Splits normalized text into overlapping chunk spans."""

    def __init__(self, chunk_size: int = 1000, overlap: int = 200, strategy: str = "sentence"):
        """
        Initialize chunker.

        Args:
            chunk_size: Target chunk size in characters.
            overlap: Overlap between consecutive chunks, in characters.
            strategy: One of ``character``, ``sentence``, ``paragraph``.

        Raises:
            ConfigurationError: If the options are invalid.
        """
        self.validate_options(chunk_size, overlap, strategy)
        self.chunk_size = chunk_size
        self.overlap = overlap
        self.strategy = strategy

    @staticmethod
    def validate_options(chunk_size: int, overlap: int, strategy: str) -> None:
        if not isinstance(chunk_size, int) or chunk_size <= 0:
            raise ConfigurationError("Chunk size must be positive")
        if not isinstance(overlap, int) or overlap < 0:
            raise ConfigurationError("Overlap cannot be negative")
        if overlap >= chunk_size:
            raise ConfigurationError("Overlap must be smaller than chunk size")
        if strategy not in STRATEGIES:
            raise ConfigurationError(
                f"Invalid chunking strategy '{strategy}'. Must be one of: {', '.join(STRATEGIES)}"
            )

    def chunk(self, text: str) -> Iterator[TextChunk]:
        """
        Lazily yield chunks in index order.

        Args:
            text: Normalized document text.

        Yields:
            TextChunk spans; indices are 0-based and contiguous.
        """
        if self.strategy == "character":
            spans = self._character_spans(text)
        elif self.strategy == "sentence":
            spans = self._accumulate(split_into_sentences(text), self._sentence_overlap)
        else:
            spans = self._accumulate(split_into_paragraphs(text), self._paragraph_overlap)

        for index, (start, end) in enumerate(spans):
            yield TextChunk(text=text[start:end], start_position=start, end_position=end, index=index)

    def chunk_text(self, text: str) -> List[TextChunk]:
        return list(self.chunk(text))

    def _character_spans(self, text: str) -> Iterator[Span]:
        length = len(text)
        step = max(self.chunk_size - self.overlap, 1)
        start = 0

        while start < length:
            end = min(start + self.chunk_size, length)
            yield start, end
            if end == length:
                break
            start += step

    def _accumulate(self, units: Sequence[Span],
                    overlap_start: Callable[[Sequence[Span], int, int], Optional[int]]) -> Iterator[Span]:
        """
        Greedily pack units (sentences or paragraphs) into chunks.

        The first new unit of a chunk is always taken, even when it alone is
        longer than ``chunk_size``. Units carried over as overlap are dropped
        if they would push that first new unit past ``chunk_size``.
        """
        count = len(units)
        carry: Optional[int] = None
        i = 0

        while i < count:
            first = i
            if carry is not None and units[i][1] - units[carry][0] <= self.chunk_size:
                first = carry
            chunk_start = units[first][0]

            j = i + 1
            while j < count and units[j][1] - chunk_start <= self.chunk_size:
                j += 1

            yield chunk_start, units[j - 1][1]

            carry = overlap_start(units, first, j) if self.overlap else None
            i = j

    def _sentence_overlap(self, units: Sequence[Span], first: int, end: int) -> Optional[int]:
        # Walk back from the chunk's last sentence while the reused span fits
        # in the overlap budget; never back up to the chunk's first sentence.
        carry = None
        k = end - 1
        while k > first and units[end - 1][1] - units[k][0] <= self.overlap:
            carry = k
            k -= 1
        return carry

    def _paragraph_overlap(self, units: Sequence[Span], first: int, end: int) -> Optional[int]:
        previous = end - 1
        if previous > first and units[previous][1] - units[previous][0] <= self.overlap:
            return previous
        return None


def summarize_chunks(chunks: Sequence[Any]) -> Dict[str, Any]:
    """Size statistics and total overlap for a sequence of spans in index order."""
    if not chunks:
        return {"count": 0, "avg_chunk_size": 0.0, "min_chunk_size": 0,
                "max_chunk_size": 0, "total_overlap": 0}

    sizes = [chunk.end_position - chunk.start_position for chunk in chunks]
    total_overlap = sum(
        max(0, previous.end_position - current.start_position)
        for previous, current in zip(chunks, chunks[1:])
    )
    return {
        "count": len(chunks),
        "avg_chunk_size": sum(sizes) / len(sizes),
        "min_chunk_size": min(sizes),
        "max_chunk_size": max(sizes),
        "total_overlap": total_overlap,
    }
