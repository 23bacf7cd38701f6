"""
Persistence capability used by the ingestion flow and the coordinator.

Stores only hold records; they know nothing about aggregate document
status. Keeping chunk and document statuses consistent is the caller's job.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from rag_ingest.models import Chunk, Document, EmbeddingRecord


class ChunkStore(ABC):
    """Async CRUD for documents, chunks and embeddings."""

    @abstractmethod
    async def insert_document(self, **fields: Any) -> Document:
        """Create a document; the store assigns ``id``."""

    @abstractmethod
    async def get_document(self, document_id: int) -> Optional[Document]:
        ...

    @abstractmethod
    async def get_document_by_hash(self, content_hash: str) -> Optional[Document]:
        ...

    @abstractmethod
    async def list_documents(self, limit: int = 50, offset: int = 0) -> List[Document]:
        ...

    @abstractmethod
    async def update_document(self, document_id: int, updates: Dict[str, Any]) -> Optional[Document]:
        """Apply partial updates; returns None if the document does not exist."""

    @abstractmethod
    async def insert_chunk(self, **fields: Any) -> Chunk:
        ...

    @abstractmethod
    async def get_chunk(self, chunk_id: int) -> Optional[Chunk]:
        ...

    @abstractmethod
    async def get_chunks_by_document(self, document_id: int) -> List[Chunk]:
        """Chunks of a document ordered by ``chunk_index``."""

    @abstractmethod
    async def update_chunk(self, chunk_id: int, updates: Dict[str, Any]) -> Optional[Chunk]:
        """Apply partial updates; returns None if the chunk does not exist."""

    @abstractmethod
    async def insert_embedding(self, chunk_id: int, embedding: List[float],
                               model_used: str) -> EmbeddingRecord:
        ...

    @abstractmethod
    async def get_embedding_by_chunk(self, chunk_id: int) -> Optional[EmbeddingRecord]:
        """Stored embedding for a chunk, or None if the embedding stage hasn't run."""

    async def flush(self) -> None:
        """Persist buffered writes. Stores that write through need not override."""
