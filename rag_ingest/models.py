"""
Data model shared by the segmenter, resolver, stores and coordinator.

Chunks never store their text: a chunk is a half-open interval
``[start_position, end_position)`` into the document's normalized text, and
the text is recovered on demand by the content resolver.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional


def utc_now() -> str:
    """ISO 8601 timestamp used for created_at/updated_at fields."""
    return datetime.now(timezone.utc).isoformat()


class ChunkStatus(str, Enum):
    PENDING = "pending"
    CONTEXTUALIZED = "contextualized"
    EMBEDDED = "embedded"
    COMPLETE = "complete"
    FAILED = "failed"


class DocumentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"
    FILE_MISSING = "file_missing"


class ProcessingStep(str, Enum):
    CHUNKING = "chunking"
    CONTEXT_GENERATION = "context_generation"
    EMBEDDING = "embedding"


@dataclass
class TextChunk:
    """A span produced by the segmenter; ``text == source[start:end]``."""

    text: str
    start_position: int
    end_position: int
    index: int

    @property
    def length(self) -> int:
        return self.end_position - self.start_position


@dataclass
class Document:
    """
    An indexed source file.

    Attributes:
        id: Store-assigned identifier.
        filename: Base name of the file.
        filepath: Absolute path to the source file.
        content_hash: SHA256 of the cleaned document text (dedupe key).
        file_hash: SHA256 of the raw file bytes at indexing time.
        file_size: File size in bytes at indexing time.
        file_mtime_ns: Modification time (ns) at indexing time, if recorded.
        total_chunks: Number of chunk spans created for the document.
        processed_chunks: Number of chunks that reached ``complete``.
        status: Aggregate status, maintained by the coordinator.
        last_error: Most recent aggregate error message.
    """

    id: int
    filename: str
    filepath: str
    content_hash: str
    file_hash: str
    file_size: int
    file_mtime_ns: Optional[int] = None
    total_chunks: int = 0
    processed_chunks: int = 0
    status: DocumentStatus = DocumentStatus.PENDING
    last_error: Optional[str] = None
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)


@dataclass
class Chunk:
    """A persisted chunk span and its processing state."""

    id: int
    document_id: int
    chunk_index: int
    start_position: int
    end_position: int
    chunk_length: int
    status: ChunkStatus = ChunkStatus.PENDING
    contextualized_text: Optional[str] = None
    error_message: Optional[str] = None
    processing_step: Optional[ProcessingStep] = ProcessingStep.CHUNKING
    created_at: str = field(default_factory=utc_now)


@dataclass
class EmbeddingRecord:
    chunk_id: int
    embedding: List[float]
    model_used: str
    embedding_dimension: int
    created_at: str = field(default_factory=utc_now)


# Fields callers may change after a record is created.
CHUNK_MUTABLE_FIELDS = frozenset({
    "status", "contextualized_text", "error_message", "processing_step",
})

DOCUMENT_MUTABLE_FIELDS = frozenset({
    "status", "last_error", "processed_chunks", "total_chunks",
    "file_hash", "file_size", "file_mtime_ns",
})
