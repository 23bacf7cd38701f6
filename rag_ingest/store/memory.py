"""In-process store, used for tests and dry runs."""

from dataclasses import replace
from typing import Any, Dict, List, Optional
import itertools

from rag_ingest.errors import StoreError
from rag_ingest.models import (
    CHUNK_MUTABLE_FIELDS,
    DOCUMENT_MUTABLE_FIELDS,
    Chunk,
    Document,
    EmbeddingRecord,
    utc_now,
)
from .base import ChunkStore


class InMemoryChunkStore(ChunkStore):
    """
    Dict-backed store.

    Records are returned as copies so callers never mutate stored state
    except through ``update_*``.
    """

    def __init__(self):
        self.documents: Dict[int, Document] = {}
        self.chunks: Dict[int, Chunk] = {}
        self.embeddings: Dict[int, EmbeddingRecord] = {}
        self._document_ids = itertools.count(1)
        self._chunk_ids = itertools.count(1)

    async def insert_document(self, **fields: Any) -> Document:
        document = Document(id=next(self._document_ids), **fields)
        self.documents[document.id] = document
        self._on_change()
        return replace(document)

    async def get_document(self, document_id: int) -> Optional[Document]:
        document = self.documents.get(document_id)
        return replace(document) if document else None

    async def get_document_by_hash(self, content_hash: str) -> Optional[Document]:
        for document in self.documents.values():
            if document.content_hash == content_hash:
                return replace(document)
        return None

    async def list_documents(self, limit: int = 50, offset: int = 0) -> List[Document]:
        ordered = sorted(self.documents.values(), key=lambda d: d.id)
        return [replace(d) for d in ordered[offset:offset + limit]]

    async def update_document(self, document_id: int, updates: Dict[str, Any]) -> Optional[Document]:
        if document_id not in self.documents:
            return None
        self._check_fields(updates, DOCUMENT_MUTABLE_FIELDS, "document")
        document = replace(self.documents[document_id], updated_at=utc_now(), **updates)
        self.documents[document_id] = document
        self._on_change()
        return replace(document)

    async def insert_chunk(self, **fields: Any) -> Chunk:
        if fields.get("document_id") not in self.documents:
            raise StoreError(f"Document {fields.get('document_id')} does not exist")
        chunk = Chunk(id=next(self._chunk_ids), **fields)
        self.chunks[chunk.id] = chunk
        self._on_change()
        return replace(chunk)

    async def get_chunk(self, chunk_id: int) -> Optional[Chunk]:
        chunk = self.chunks.get(chunk_id)
        return replace(chunk) if chunk else None

    async def get_chunks_by_document(self, document_id: int) -> List[Chunk]:
        owned = [c for c in self.chunks.values() if c.document_id == document_id]
        return [replace(c) for c in sorted(owned, key=lambda c: c.chunk_index)]

    async def update_chunk(self, chunk_id: int, updates: Dict[str, Any]) -> Optional[Chunk]:
        if chunk_id not in self.chunks:
            return None
        self._check_fields(updates, CHUNK_MUTABLE_FIELDS, "chunk")
        chunk = replace(self.chunks[chunk_id], **updates)
        self.chunks[chunk_id] = chunk
        self._on_change()
        return replace(chunk)

    async def insert_embedding(self, chunk_id: int, embedding: List[float],
                               model_used: str) -> EmbeddingRecord:
        if chunk_id not in self.chunks:
            raise StoreError(f"Chunk {chunk_id} does not exist")
        record = EmbeddingRecord(
            chunk_id=chunk_id,
            embedding=list(embedding),
            model_used=model_used,
            embedding_dimension=len(embedding),
        )
        self.embeddings[chunk_id] = record
        return record

    async def get_embedding_by_chunk(self, chunk_id: int) -> Optional[EmbeddingRecord]:
        return self.embeddings.get(chunk_id)

    def _on_change(self) -> None:
        """Hook for subclasses that persist records."""

    @staticmethod
    def _check_fields(updates: Dict[str, Any], allowed: frozenset, kind: str) -> None:
        unknown = set(updates) - allowed
        if unknown:
            raise StoreError(f"Cannot update {kind} fields: {', '.join(sorted(unknown))}")
