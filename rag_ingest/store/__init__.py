"""Persistence stores for documents, chunks and embeddings."""

from rag_ingest.store.base import ChunkStore
from rag_ingest.store.memory import InMemoryChunkStore


def get_store(config: dict) -> ChunkStore:
    """
    Build the configured store.

    ``backend: memory`` gives a throwaway in-process store; anything else the
    local JSON + ChromaDB store.
    """
    if config.get('backend', 'local') == 'memory':
        return InMemoryChunkStore()

    from rag_ingest.store.local import LocalChunkStore  # chromadb is heavy to import
    return LocalChunkStore(
        path=config.get('path', './data/rag_ingest.json'),
        vector_path=config.get('vector_path', './data/vectors'),
        collection_name=config.get('collection', 'chunks'),
        flush_interval=float(config.get('flush_interval', 1.0)),
    )


__all__ = ['ChunkStore', 'InMemoryChunkStore', 'get_store']
