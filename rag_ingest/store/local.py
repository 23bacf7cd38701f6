"""
Local persistent store.

Document and chunk records live in a JSON file; embedding vectors live in a
ChromaDB persistent collection keyed by chunk id.
"""

from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional
import itertools
import json
import logging
import time

import chromadb

from rag_ingest.errors import StoreError
from rag_ingest.models import (
    Chunk,
    ChunkStatus,
    Document,
    DocumentStatus,
    EmbeddingRecord,
    ProcessingStep,
)
from .memory import InMemoryChunkStore

logger = logging.getLogger(__name__)


class LocalChunkStore(InMemoryChunkStore):
    """
    JSON metadata file plus a ChromaDB collection for vectors.

    Record changes are written at most once per ``flush_interval`` seconds;
    callers ``flush()`` at the end of a batch so the file reflects every
    change. Vectors are upserted into Chroma immediately.
    """

    def __init__(self, path: str = "./data/rag_ingest.json",
                 vector_path: str = "./data/vectors",
                 collection_name: str = "chunks",
                 flush_interval: float = 1.0):
        """
        Args:
            path: JSON file holding documents and chunks
            vector_path: Directory for the ChromaDB persistent client
            collection_name: Chroma collection for chunk embeddings
            flush_interval: Minimum seconds between JSON rewrites; 0 writes on every change
        """
        super().__init__()
        self.path = Path(path)
        self.flush_interval = flush_interval
        self._dirty = False
        self._last_write: Optional[float] = None
        Path(vector_path).mkdir(parents=True, exist_ok=True)

        self.client = chromadb.PersistentClient(path=vector_path)
        self.collection = self.client.get_or_create_collection(
            name=collection_name,
            metadata={"hnsw:space": "cosine"},
        )
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            raise StoreError(f"Cannot read store file {self.path}: {e}")

        for raw in data.get("documents", []):
            raw["status"] = DocumentStatus(raw["status"])
            document = Document(**raw)
            self.documents[document.id] = document

        for raw in data.get("chunks", []):
            raw["status"] = ChunkStatus(raw["status"])
            if raw.get("processing_step"):
                raw["processing_step"] = ProcessingStep(raw["processing_step"])
            chunk = Chunk(**raw)
            self.chunks[chunk.id] = chunk

        self._document_ids = itertools.count(max(self.documents, default=0) + 1)
        self._chunk_ids = itertools.count(max(self.chunks, default=0) + 1)
        logger.debug("Loaded %d documents and %d chunks from %s",
                     len(self.documents), len(self.chunks), self.path)

    def _on_change(self) -> None:
        self._dirty = True
        now = time.monotonic()
        if self._last_write is None or now - self._last_write >= self.flush_interval:
            self._write()

    async def flush(self) -> None:
        if self._dirty:
            self._write()

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "documents": [asdict(d) for d in self.documents.values()],
            "chunks": [asdict(c) for c in self.chunks.values()],
        }
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp_path.replace(self.path)
        self._dirty = False
        self._last_write = time.monotonic()

    async def insert_embedding(self, chunk_id: int, embedding: List[float],
                               model_used: str) -> EmbeddingRecord:
        chunk = self.chunks.get(chunk_id)
        if chunk is None:
            raise StoreError(f"Chunk {chunk_id} does not exist")

        record = EmbeddingRecord(
            chunk_id=chunk_id,
            embedding=[float(x) for x in embedding],
            model_used=model_used,
            embedding_dimension=len(embedding),
        )
        self.collection.upsert(
            ids=[str(chunk_id)],
            embeddings=[record.embedding],
            metadatas=[{
                "document_id": chunk.document_id,
                "chunk_index": chunk.chunk_index,
                "model_used": model_used,
                "embedding_dimension": record.embedding_dimension,
                "created_at": record.created_at,
            }],
        )
        return record

    async def get_embedding_by_chunk(self, chunk_id: int) -> Optional[EmbeddingRecord]:
        result = self.collection.get(ids=[str(chunk_id)], include=["embeddings", "metadatas"])
        if not result["ids"]:
            return None

        metadata: Dict[str, Any] = result["metadatas"][0] or {}
        vector = [float(x) for x in result["embeddings"][0]]
        return EmbeddingRecord(
            chunk_id=chunk_id,
            embedding=vector,
            model_used=str(metadata.get("model_used", "")),
            embedding_dimension=int(metadata.get("embedding_dimension", len(vector))),
            created_at=str(metadata.get("created_at", "")),
        )
