"""
Chunk content resolution from source files.

Chunks only store offsets, so their text is recovered by re-reading the
document's file, extracting its normalized text with the same loader that
indexed it, and slicing. Before any content is trusted the file is compared
against the fingerprint recorded at indexing time; a changed file fails the
read with ``FileIntegrityError`` instead of returning shifted text.
"""

from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence
import hashlib
import logging
import threading
import time

from rag_ingest.errors import ChunkBoundsError, FileAccessError, FileIntegrityError
from rag_ingest.loader import DocumentLoader
from rag_ingest.models import Chunk, Document

logger = logging.getLogger(__name__)

DEFAULT_CACHE_SIZE = 10


@dataclass
class IntegrityCheck:
    valid: bool
    reason: Optional[str] = None


@dataclass
class ResolvedChunk:
    text: str
    document: Document
    chunk: Chunk


@dataclass
class _CacheEntry:
    text: str
    file_hash: str
    cached_at: float


class ChunkContentResolver:
    """
    Resolves chunk text from the original file using stored offsets.

    Decoded file content is cached per file path, up to ``max_cache_size``
    files; the oldest entry is evicted first. A cached entry is only used
    when its hash matches the document's recorded ``file_hash``.
    """

    def __init__(self, max_cache_size: int = DEFAULT_CACHE_SIZE,
                 loader: Optional[DocumentLoader] = None,
                 verify_hash: bool = True):
        """
        Args:
            max_cache_size: Maximum number of decoded files kept in memory
            loader: Loader used to extract text; must match the one used at indexing
            verify_hash: Compare the SHA256 of freshly read bytes with the recorded hash
        """
        if max_cache_size < 1:
            raise ValueError("max_cache_size must be at least 1")

        self.max_cache_size = max_cache_size
        self.loader = loader or DocumentLoader()
        self.verify_hash = verify_hash
        self._cache: "OrderedDict[str, _CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()

    def validate_file_integrity(self, document: Document) -> IntegrityCheck:
        """
        Check that a file hasn't changed since it was indexed.

        Compares size and modification time only; the content hash is checked
        when the file is actually read.
        """
        try:
            stats = Path(document.filepath).stat()
        except FileNotFoundError:
            return IntegrityCheck(False, "File not found")
        except PermissionError:
            return IntegrityCheck(False, "Permission denied")
        except OSError as e:
            return IntegrityCheck(False, f"File access error: {e}")

        if not Path(document.filepath).is_file():
            return IntegrityCheck(False, "File no longer exists or is not a file")

        if stats.st_size != document.file_size:
            return IntegrityCheck(False, "File size has changed")

        if document.file_mtime_ns is not None and stats.st_mtime_ns != document.file_mtime_ns:
            return IntegrityCheck(False, "File has been modified")

        return IntegrityCheck(True)

    def get_document_content(self, document: Document) -> str:
        """Full normalized text of a document."""
        return self._get_file_content(document)

    def get_chunk_text(self, document: Document, chunk: Chunk) -> str:
        """
        Text for a single chunk.

        Raises:
            FileIntegrityError: If the file changed or the offsets don't fit
        """
        return self._extract_chunk_text(self._get_file_content(document), chunk)

    def resolve_chunk(self, document: Document, chunk: Chunk) -> ResolvedChunk:
        return ResolvedChunk(text=self.get_chunk_text(document, chunk), document=document, chunk=chunk)

    def resolve_multiple_chunks(self, document: Document, chunks: Sequence[Chunk]) -> List[str]:
        """
        Text for several chunks of one document.

        The file is read and decoded at most once; results are in the order
        of ``chunks``.
        """
        content = self._get_file_content(document)
        return [self._extract_chunk_text(content, chunk) for chunk in chunks]

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    def invalidate_file(self, filepath: str) -> None:
        with self._lock:
            self._cache.pop(filepath, None)

    def cached_files(self) -> List[str]:
        """Cached file paths, oldest first."""
        with self._lock:
            return list(self._cache.keys())

    def _get_file_content(self, document: Document) -> str:
        integrity = self.validate_file_integrity(document)
        if not integrity.valid:
            self.invalidate_file(document.filepath)
            raise FileIntegrityError(f"File integrity check failed: {integrity.reason}")

        with self._lock:
            cached = self._cache.get(document.filepath)
        if cached is not None and cached.file_hash == document.file_hash:
            return cached.text

        try:
            raw = Path(document.filepath).read_bytes()
        except FileNotFoundError:
            raise FileIntegrityError("File integrity check failed: File not found")
        except PermissionError:
            raise FileAccessError("Permission denied")
        except OSError as e:
            raise FileAccessError(f"Failed to read file: {e}")

        if self.verify_hash and document.file_hash:
            current_hash = hashlib.sha256(raw).hexdigest()
            if current_hash != document.file_hash:
                self.invalidate_file(document.filepath)
                raise FileIntegrityError(
                    "File integrity check failed: File content has changed (hash mismatch)"
                )

        text = self.loader.get_loader(document.filepath, strict=False).extract(raw)
        self._cache_file_content(document.filepath, text, document.file_hash)
        return text

    def _cache_file_content(self, filepath: str, text: str, file_hash: str) -> None:
        with self._lock:
            # A stale entry for the same file is replaced, not kept alongside
            self._cache.pop(filepath, None)
            while len(self._cache) >= self.max_cache_size:
                self._cache.popitem(last=False)
            self._cache[filepath] = _CacheEntry(text=text, file_hash=file_hash, cached_at=time.time())

    @staticmethod
    def _extract_chunk_text(content: str, chunk: Chunk) -> str:
        start, end = chunk.start_position, chunk.end_position

        if start < 0 or end > len(content):
            raise ChunkBoundsError(
                f"Chunk {chunk.chunk_index} positions [{start}, {end}) are out of bounds "
                f"for file content of length {len(content)}"
            )
        if start >= end:
            raise ChunkBoundsError(f"Invalid chunk positions: start {start} >= end {end}")

        text = content[start:end]

        if chunk.chunk_length and len(text) != chunk.chunk_length:
            logger.warning(
                "Chunk length mismatch for chunk %s: expected %s, got %s",
                chunk.chunk_index, chunk.chunk_length, len(text),
            )

        return text
