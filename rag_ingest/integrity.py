"""
File integrity monitoring for indexed documents.

The resolver refuses to read files whose fingerprint changed; this service
finds those documents ahead of time, flags them as ``file_missing`` and can
re-fingerprint a file whose text is provably unchanged.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional
import hashlib
import logging

from rag_ingest.audit.logger import AuditLogger
from rag_ingest.chunking.text import generate_content_hash
from rag_ingest.errors import FileAccessError, RagIngestError
from rag_ingest.loader import DocumentLoader
from rag_ingest.models import Chunk, Document, DocumentStatus
from rag_ingest.resolver import ChunkContentResolver
from rag_ingest.store.base import ChunkStore

logger = logging.getLogger(__name__)

HASH_MISMATCH = "File content has changed (hash mismatch)"
FILE_NOT_FOUND = "File not found"
REQUIRES_REINDEX = "File text changed since indexing - requires re-indexing"


@dataclass
class FileIntegrityResult:
    document: Document
    valid: bool
    reason: Optional[str] = None
    current_hash: Optional[str] = None
    current_size: Optional[int] = None


@dataclass
class RepairResult:
    success: bool
    reason: Optional[str] = None


def calculate_file_hash(filepath: str) -> str:
    """SHA256 of a file's bytes."""
    sha256 = hashlib.sha256()
    try:
        with open(filepath, 'rb') as f:
            for block in iter(lambda: f.read(65536), b''):
                sha256.update(block)
    except OSError as e:
        raise FileAccessError(f"Failed to calculate file hash: {e}")
    return sha256.hexdigest()


class FileIntegrityService:
    """Checks indexed documents against their source files."""

    def __init__(self, store: ChunkStore, audit_logger: Optional[AuditLogger] = None,
                 loader: Optional[DocumentLoader] = None):
        self.store = store
        self.audit = audit_logger
        self.loader = loader or DocumentLoader()
        # Only the stat-based gate is used; nothing is ever cached
        self._gate = ChunkContentResolver(max_cache_size=1, loader=self.loader)

    def check_document_integrity(self, document: Document) -> FileIntegrityResult:
        """
        Full integrity check: existence, size, modification time, then SHA256.

        Returns:
            FileIntegrityResult; ``reason`` is set when the file is not valid
        """
        quick = self._gate.validate_file_integrity(document)
        if not quick.valid:
            current_size = None
            if quick.reason == "File size has changed":
                try:
                    current_size = Path(document.filepath).stat().st_size
                except OSError:
                    # Removed between the two stat calls
                    return FileIntegrityResult(document, False, FILE_NOT_FOUND)
            return FileIntegrityResult(document, False, quick.reason, current_size=current_size)

        try:
            current_hash = calculate_file_hash(document.filepath)
        except FileAccessError as e:
            return FileIntegrityResult(document, False, str(e))

        if current_hash != document.file_hash:
            return FileIntegrityResult(document, False, HASH_MISMATCH, current_hash=current_hash)

        return FileIntegrityResult(document, True, current_hash=current_hash)

    async def check_all_documents(self, limit: int = 1000) -> List[FileIntegrityResult]:
        documents = await self.store.list_documents(limit=limit, offset=0)
        return [self.check_document_integrity(document) for document in documents]

    async def get_integrity_stats(self) -> Dict[str, int]:
        """Counts of valid, missing, modified and corrupted documents."""
        results = await self.check_all_documents()
        stats = {
            'total_documents': len(results),
            'valid_documents': 0,
            'invalid_documents': 0,
            'missing_files': 0,
            'modified_files': 0,
            'corrupted_files': 0,
        }

        for result in results:
            if result.valid:
                stats['valid_documents'] += 1
                continue

            stats['invalid_documents'] += 1
            reason = result.reason or ''
            if reason == FILE_NOT_FOUND:
                stats['missing_files'] += 1
            elif 'modified' in reason or 'size' in reason:
                stats['modified_files'] += 1
            elif 'hash' in reason:
                stats['corrupted_files'] += 1

        return stats

    async def update_document_status(self, document: Document,
                                     result: FileIntegrityResult) -> Optional[Document]:
        """
        Record the outcome of an integrity check on the document.

        Invalid files move the document to ``file_missing``; a document that
        was ``file_missing`` and whose file is valid again goes back to
        ``complete`` or ``processing`` depending on its chunk progress.
        """
        if not result.valid:
            if self.audit:
                self.audit.log_integrity_violation(document.filepath, result.reason or '')
            logger.warning("Integrity issue for %s: %s", document.filepath, result.reason)
            updated = await self.store.update_document(document.id, {
                'status': DocumentStatus.FILE_MISSING,
                'last_error': f"File integrity issue: {result.reason}",
            })
            await self.store.flush()
            return updated

        if document.status == DocumentStatus.FILE_MISSING:
            restored = self._restored_status(document)
            logger.info("File restored for %s; status back to %s", document.filepath, restored.value)
            updated = await self.store.update_document(document.id, {
                'status': restored,
                'last_error': None,
            })
            await self.store.flush()
            return updated

        return document

    async def repair_document(self, document: Document) -> RepairResult:
        """
        Refresh the fingerprint of a file whose text is unchanged.

        Only metadata-level changes (a touch, a copy, re-saved identical text)
        can be repaired: the re-extracted text must hash to the document's
        ``content_hash`` and still end where the last chunk ends. Any other
        change would shift the stored offsets, so the document stays
        ``file_missing`` until it is re-indexed.
        """
        result = self.check_document_integrity(document)
        if result.valid:
            return RepairResult(True)

        if result.reason == FILE_NOT_FOUND:
            return RepairResult(False, "Cannot repair: file not found")

        reason = result.reason or ''
        if not ('modified' in reason or 'size' in reason or 'hash' in reason):
            return RepairResult(False, f"Cannot repair: {reason or 'unknown integrity issue'}")

        try:
            loaded = self.loader.load(document.filepath)
        except RagIngestError as e:
            return RepairResult(False, f"Repair failed: {e}")

        chunks = await self.store.get_chunks_by_document(document.id)
        if not self._offsets_still_valid(document, chunks, loaded.text):
            await self.store.update_document(document.id, {
                'status': DocumentStatus.FILE_MISSING,
                'last_error': REQUIRES_REINDEX,
            })
            await self.store.flush()
            if self.audit:
                self.audit.log_integrity_violation(document.filepath, REQUIRES_REINDEX)
            logger.warning("Not repairing %s: text changed since indexing", document.filepath)
            return RepairResult(False, f"Cannot repair: {REQUIRES_REINDEX}")

        restored = self._restored_status(document)
        await self.store.update_document(document.id, {
            'file_hash': loaded.file_hash,
            'file_size': loaded.file_size,
            'file_mtime_ns': loaded.file_mtime_ns,
            'status': restored,
            'last_error': None,
        })
        await self.store.flush()
        logger.info("Refreshed fingerprint for %s; status %s", document.filepath, restored.value)
        return RepairResult(True, "Fingerprint refreshed; text unchanged")

    @staticmethod
    def _offsets_still_valid(document: Document, chunks: List[Chunk], text: str) -> bool:
        if not chunks or generate_content_hash(text) != document.content_hash:
            return False
        # Equal cleaned text can differ in whitespace layout; a new length means moved offsets
        return max(chunk.end_position for chunk in chunks) == len(text)

    @staticmethod
    def _restored_status(document: Document) -> DocumentStatus:
        finished = document.total_chunks > 0 and document.processed_chunks >= document.total_chunks
        return DocumentStatus.COMPLETE if finished else DocumentStatus.PROCESSING

    def summarize(self, results: List[FileIntegrityResult]) -> Dict[str, Any]:
        invalid = [r for r in results if not r.valid]
        return {
            'checked': len(results),
            'invalid': [{'document_id': r.document.id, 'filepath': r.document.filepath,
                         'reason': r.reason} for r in invalid],
        }
