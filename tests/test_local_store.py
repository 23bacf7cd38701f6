"""Tests for the JSON + ChromaDB store."""

import asyncio

import pytest

pytest.importorskip("chromadb")

from rag_ingest.models import ChunkStatus, DocumentStatus  # noqa: E402
from rag_ingest.store.local import LocalChunkStore  # noqa: E402


def _store(tmp_path, flush_interval=60.0):
    return LocalChunkStore(path=str(tmp_path / "store.json"), vector_path=str(tmp_path / "vectors"),
                           flush_interval=flush_interval)


async def _populate(store):
    document = await store.insert_document(
        filename="a.txt", filepath="/tmp/a.txt", content_hash="c" * 64,
        file_hash="f" * 64, file_size=10, file_mtime_ns=123, total_chunks=1,
    )
    chunk = await store.insert_chunk(document_id=document.id, chunk_index=0,
                                     start_position=0, end_position=10, chunk_length=10)
    await store.update_chunk(chunk.id, {'status': ChunkStatus.CONTEXTUALIZED,
                                        'contextualized_text': 'ctx'})
    await store.update_document(document.id, {'status': DocumentStatus.PROCESSING})
    await store.insert_embedding(chunk.id, [0.1, 0.2, 0.3], "hash-3")
    await store.flush()
    return document, chunk


def test_records_survive_reopen(tmp_path):
    document, chunk = asyncio.run(_populate(_store(tmp_path)))

    reopened = _store(tmp_path)
    loaded_document = asyncio.run(reopened.get_document(document.id))
    loaded_chunk = asyncio.run(reopened.get_chunk(chunk.id))
    record = asyncio.run(reopened.get_embedding_by_chunk(chunk.id))

    assert loaded_document.status == DocumentStatus.PROCESSING
    assert loaded_document.file_mtime_ns == 123
    assert loaded_chunk.status == ChunkStatus.CONTEXTUALIZED
    assert loaded_chunk.contextualized_text == 'ctx'
    assert record.model_used == "hash-3"
    assert record.embedding == pytest.approx([0.1, 0.2, 0.3])


def test_new_ids_continue_after_reopen(tmp_path):
    asyncio.run(_populate(_store(tmp_path)))

    reopened = _store(tmp_path)
    document, chunk = asyncio.run(_populate(reopened))

    assert document.id == 2
    assert chunk.id == 2
    assert asyncio.run(reopened.get_embedding_by_chunk(99)) is None


def test_changes_within_interval_are_written_once_then_flushed(tmp_path, monkeypatch):
    store = _store(tmp_path)
    writes = []
    real_write = store._write
    monkeypatch.setattr(store, "_write", lambda: (writes.append(1), real_write()))

    async def run():
        document = await store.insert_document(
            filename="a.txt", filepath="/tmp/a.txt", content_hash="c" * 64,
            file_hash="f" * 64, file_size=10, file_mtime_ns=1, total_chunks=20,
        )
        for index in range(20):
            chunk = await store.insert_chunk(document_id=document.id, chunk_index=index,
                                             start_position=index, end_position=index + 1, chunk_length=1)
            await store.update_chunk(chunk.id, {'status': ChunkStatus.COMPLETE})
        return document

    document = asyncio.run(run())
    assert len(writes) == 1
    assert asyncio.run(_store(tmp_path).get_chunks_by_document(document.id)) == []

    asyncio.run(store.flush())
    asyncio.run(store.flush())
    assert len(writes) == 2

    chunks = asyncio.run(_store(tmp_path).get_chunks_by_document(document.id))
    assert len(chunks) == 20
    assert all(chunk.status == ChunkStatus.COMPLETE for chunk in chunks)


def test_zero_interval_writes_every_change(tmp_path):
    store = _store(tmp_path, flush_interval=0)

    document = asyncio.run(store.insert_document(
        filename="a.txt", filepath="/tmp/a.txt", content_hash="c" * 64,
        file_hash="f" * 64, file_size=10, total_chunks=0,
    ))
    asyncio.run(store.update_document(document.id, {'status': DocumentStatus.COMPLETE}))

    reopened = asyncio.run(_store(tmp_path).get_document(document.id))
    assert reopened.status == DocumentStatus.COMPLETE
