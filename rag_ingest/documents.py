"""
Document ingestion: file -> document record + chunk spans.

Only offsets are persisted for chunks; the text itself stays in the source
file and is recovered later by the content resolver.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

from rag_ingest.audit.logger import AuditLogger
from rag_ingest.chunking.chunker import TextChunker, summarize_chunks
from rag_ingest.chunking.text import extract_metadata, generate_content_hash, validate_text
from rag_ingest.errors import FileAccessError, RagIngestError, ValidationError
from rag_ingest.loader import DocumentLoader
from rag_ingest.models import Chunk, ChunkStatus, Document, DocumentStatus, ProcessingStep
from rag_ingest.store.base import ChunkStore

logger = logging.getLogger(__name__)


@dataclass
class DocumentProcessingResult:
    document: Document
    chunks: List[Chunk]
    metadata: Optional[Dict[str, Any]] = None
    analysis: Dict[str, Any] = field(default_factory=dict)
    reused: bool = False


class DocumentService:
    """
    Reads, validates, deduplicates and segments source files.

    Args:
        store: Persistence for documents and chunks
        chunking: ``strategy``, ``chunk_size`` and ``overlap`` defaults
        loader: Format loader, shared with the resolver so offsets agree
        audit_logger: Optional audit log for ingestion events
        validate_content: Reject empty or too-short documents
    """

    def __init__(self, store: ChunkStore, chunking: Optional[Dict[str, Any]] = None,
                 loader: Optional[DocumentLoader] = None,
                 audit_logger: Optional[AuditLogger] = None,
                 validate_content: bool = True):
        self.store = store
        self.chunking = {'strategy': 'sentence', 'chunk_size': 1000, 'overlap': 200, **(chunking or {})}
        self.loader = loader or DocumentLoader()
        self.audit = audit_logger
        self.validate_content = validate_content

        # Fail on bad segmentation parameters before any file is touched
        TextChunker.validate_options(self.chunking['chunk_size'], self.chunking['overlap'],
                                     self.chunking['strategy'])

    def build_chunker(self, overrides: Optional[Dict[str, Any]] = None) -> TextChunker:
        options = {**self.chunking, **(overrides or {})}
        return TextChunker(
            chunk_size=options['chunk_size'],
            overlap=options['overlap'],
            strategy=options['strategy'],
        )

    def preview(self, file_path: str, chunking: Optional[Dict[str, Any]] = None) -> DocumentProcessingResult:
        """
        Segment a file without persisting anything (``--dry-run``).

        The returned document has id 0 and the chunks ids 0.
        """
        path = str(Path(file_path).resolve())
        loaded = self.loader.load(path)
        self._validate(loaded.text, path)
        text_chunks = self.build_chunker(chunking).chunk_text(loaded.text)

        document = Document(
            id=0,
            filename=Path(path).name,
            filepath=path,
            content_hash=generate_content_hash(loaded.text),
            file_hash=loaded.file_hash,
            file_size=loaded.file_size,
            file_mtime_ns=loaded.file_mtime_ns,
            total_chunks=len(text_chunks),
        )
        chunks = [
            Chunk(id=0, document_id=0, chunk_index=c.index, start_position=c.start_position,
                  end_position=c.end_position, chunk_length=c.length)
            for c in text_chunks
        ]
        return DocumentProcessingResult(
            document=document,
            chunks=chunks,
            metadata=extract_metadata(loaded.text),
            analysis=summarize_chunks(text_chunks),
        )

    async def process_document_from_file(self, file_path: str,
                                         chunking: Optional[Dict[str, Any]] = None) -> DocumentProcessingResult:
        """
        Ingest a file: fingerprint, extract, validate, dedupe, segment, persist.

        Args:
            file_path: Path to a supported file
            chunking: Per-call overrides of the chunking defaults

        Returns:
            DocumentProcessingResult. When a document with the same cleaned
            content already exists it is returned with ``reused=True`` and no
            new records are created.

        Raises:
            ValidationError: Unsupported format or invalid content
            ConfigurationError: Invalid chunking overrides
            FileAccessError: File missing or unreadable
        """
        path = str(Path(file_path).resolve())
        try:
            loaded = self.loader.load(path)
        except RagIngestError:
            raise
        except Exception as e:
            raise FileAccessError(f"Failed to process document from file: {e}")

        self._validate(loaded.text, path)
        content_hash = generate_content_hash(loaded.text)
        metadata = extract_metadata(loaded.text)

        existing = await self.store.get_document_by_hash(content_hash)
        if existing is not None:
            chunks = await self.store.get_chunks_by_document(existing.id)
            logger.info("Document already indexed as %d (%s); reusing", existing.id, existing.filename)
            return DocumentProcessingResult(
                document=existing,
                chunks=chunks,
                metadata=metadata,
                analysis=self._analyze(chunks),
                reused=True,
            )

        text_chunks = self.build_chunker(chunking).chunk_text(loaded.text)
        if not text_chunks:
            raise ValidationError(f"No chunks produced for {path}")

        document = await self.store.insert_document(
            filename=Path(path).name,
            filepath=path,
            content_hash=content_hash,
            file_hash=loaded.file_hash,
            file_size=loaded.file_size,
            file_mtime_ns=loaded.file_mtime_ns,
            total_chunks=len(text_chunks),
            processed_chunks=0,
            status=DocumentStatus.PENDING,
        )

        chunks = []
        for text_chunk in text_chunks:
            chunk = await self.store.insert_chunk(
                document_id=document.id,
                chunk_index=text_chunk.index,
                start_position=text_chunk.start_position,
                end_position=text_chunk.end_position,
                chunk_length=text_chunk.length,
                status=ChunkStatus.PENDING,
                processing_step=ProcessingStep.CHUNKING,
            )
            chunks.append(chunk)

        document = await self.store.update_document(document.id, {'status': DocumentStatus.PROCESSING})
        await self.store.flush()
        logger.info("Indexed %s as document %d with %d chunks", document.filename, document.id, len(chunks))

        if self.audit:
            self.audit.log_document_ingestion(
                source_path=path,
                doc_type=loaded.doc_type,
                num_chunks=len(chunks),
                document_id=document.id,
                file_hash=loaded.file_hash,
            )

        return DocumentProcessingResult(
            document=document,
            chunks=chunks,
            metadata=metadata,
            analysis=summarize_chunks(text_chunks),
        )

    async def resume_document(self, document_id: int) -> DocumentProcessingResult:
        """Reload a document and its chunks to continue processing."""
        document = await self.store.get_document(document_id)
        if document is None:
            raise ValidationError(f"Document with ID {document_id} not found")

        chunks = await self.store.get_chunks_by_document(document_id)
        return DocumentProcessingResult(document=document, chunks=chunks, analysis=self._analyze(chunks))

    async def get_document(self, document_id: int) -> Optional[DocumentProcessingResult]:
        document = await self.store.get_document(document_id)
        if document is None:
            return None
        chunks = await self.store.get_chunks_by_document(document_id)
        return DocumentProcessingResult(document=document, chunks=chunks, analysis=self._analyze(chunks))

    async def list_documents(self, limit: int = 50, offset: int = 0) -> List[Document]:
        return await self.store.list_documents(limit=limit, offset=offset)

    async def update_chunk_status(self, chunk_id: int, status: ChunkStatus,
                                  error_message: Optional[str] = None) -> Optional[Chunk]:
        chunk = await self.store.update_chunk(chunk_id, {'status': status, 'error_message': error_message})
        await self.store.flush()
        return chunk

    async def update_document_status(self, document_id: int, status: DocumentStatus,
                                     last_error: Optional[str] = None) -> Optional[Document]:
        document = await self.store.update_document(document_id, {'status': status, 'last_error': last_error})
        await self.store.flush()
        return document

    def _validate(self, text: str, path: str) -> None:
        if not self.validate_content:
            return
        validation = validate_text(text)
        if not validation['valid']:
            raise ValidationError(f"Invalid document content in {path}: {', '.join(validation['errors'])}")

    @staticmethod
    def _analyze(chunks: List[Chunk]) -> Dict[str, Any]:
        return summarize_chunks(sorted(chunks, key=lambda c: c.chunk_index))
