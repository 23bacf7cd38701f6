"""
Pytest configuration and fixtures.

Ensures rag_ingest package can be imported from tests.
"""

import sys
import os
from pathlib import Path

import pytest

# Add the repository root to Python path so tests can import rag_ingest
repo_root = Path(__file__).parent.parent
sys.path.insert(0, str(repo_root))

# Also set PYTHONPATH environment variable
os.environ['PYTHONPATH'] = str(repo_root)

from rag_ingest.store.memory import InMemoryChunkStore  # noqa: E402


SAMPLE_TEXT = (
    "Retrieval augmented generation pairs a search index with a language model. "
    "Documents are split into chunks before they are embedded. "
    "Each chunk keeps its start and end offsets into the source text.\n\n"
    "Context generation situates a chunk within its document. "
    "The generated context is stored next to the chunk. "
    "Embeddings are computed from the chunk text.\n\n"
    "Processing can be resumed after a failure. "
    "Chunks that already finished are not processed again."
)


@pytest.fixture
def sample_text():
    return SAMPLE_TEXT


@pytest.fixture
def sample_file(tmp_path):
    path = tmp_path / "sample.txt"
    path.write_text(SAMPLE_TEXT, encoding="utf-8")
    return path


@pytest.fixture
def store():
    return InMemoryChunkStore()


def document_for(path, document_id=1):
    """Document record fingerprinted from the file as it is now."""
    from rag_ingest.chunking.text import generate_content_hash
    from rag_ingest.loader import DocumentLoader
    from rag_ingest.models import Document

    loaded = DocumentLoader().load(str(path))
    return Document(
        id=document_id,
        filename=path.name,
        filepath=str(path),
        content_hash=generate_content_hash(loaded.text),
        file_hash=loaded.file_hash,
        file_size=loaded.file_size,
        file_mtime_ns=loaded.file_mtime_ns,
    )


def chunk_for(start, end, index=0, chunk_id=1, document_id=1, length=None):
    from rag_ingest.models import Chunk

    return Chunk(id=chunk_id, document_id=document_id, chunk_index=index,
                 start_position=start, end_position=end,
                 chunk_length=end - start if length is None else length)
