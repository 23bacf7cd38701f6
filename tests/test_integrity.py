"""Tests for file integrity monitoring."""

import asyncio
import os

import pytest

from conftest import SAMPLE_TEXT
from rag_ingest.documents import DocumentService
from rag_ingest.errors import FileIntegrityError
from rag_ingest.integrity import FileIntegrityService, calculate_file_hash
from rag_ingest.models import DocumentStatus
from rag_ingest.resolver import ChunkContentResolver, IntegrityCheck


def _ingest(store, path):
    return asyncio.run(DocumentService(store).process_document_from_file(str(path))).document


def test_unchanged_file_is_valid(store, sample_file):
    document = _ingest(store, sample_file)
    result = FileIntegrityService(store).check_document_integrity(document)

    assert result.valid
    assert result.current_hash == document.file_hash == calculate_file_hash(str(sample_file))


def test_same_size_edit_is_caught_by_hash(store, sample_file):
    document = _ingest(store, sample_file)
    stats = sample_file.stat()
    sample_file.write_text(SAMPLE_TEXT.replace("Chunks", "chunks"), encoding="utf-8")
    os.utime(sample_file, ns=(stats.st_atime_ns, stats.st_mtime_ns))

    result = FileIntegrityService(store).check_document_integrity(document)

    assert not result.valid
    assert result.reason == "File content has changed (hash mismatch)"


def test_integrity_stats(store, tmp_path):
    paths = []
    for name, body in [("a.txt", "First document has words."),
                       ("b.txt", "Second document has words."),
                       ("c.txt", "Third document has words.")]:
        path = tmp_path / name
        path.write_text(body, encoding="utf-8")
        paths.append(path)
        _ingest(store, path)

    paths[0].unlink()
    paths[1].write_text("Second document has more words now.", encoding="utf-8")

    stats = asyncio.run(FileIntegrityService(store).get_integrity_stats())

    assert stats == {
        'total_documents': 3,
        'valid_documents': 1,
        'invalid_documents': 2,
        'missing_files': 1,
        'modified_files': 1,
        'corrupted_files': 0,
    }


def test_status_moves_to_file_missing_and_back(store, sample_file, tmp_path):
    document = _ingest(store, sample_file)
    service = FileIntegrityService(store)
    backup = sample_file.read_bytes()
    stats = sample_file.stat()

    sample_file.unlink()
    result = service.check_document_integrity(document)
    missing = asyncio.run(service.update_document_status(document, result))
    assert missing.status == DocumentStatus.FILE_MISSING
    assert missing.last_error == "File integrity issue: File not found"

    sample_file.write_bytes(backup)
    os.utime(sample_file, ns=(stats.st_atime_ns, stats.st_mtime_ns))
    restored = asyncio.run(service.update_document_status(missing, service.check_document_integrity(missing)))
    assert restored.status == DocumentStatus.PROCESSING
    assert restored.last_error is None


def test_repair_refuses_changed_text(store, sample_file):
    document = _ingest(store, sample_file)
    chunks = asyncio.run(store.get_chunks_by_document(document.id))
    resolver = ChunkContentResolver()
    original = resolver.get_chunk_text(document, chunks[0])

    sample_file.write_text("PREPENDED SENTENCE HERE. " + SAMPLE_TEXT, encoding="utf-8")
    service = FileIntegrityService(store)

    repaired = asyncio.run(service.repair_document(document))
    assert not repaired.success
    assert "requires re-indexing" in repaired.reason

    updated = asyncio.run(store.get_document(document.id))
    assert updated.status == DocumentStatus.FILE_MISSING
    assert updated.file_hash == document.file_hash
    with pytest.raises(FileIntegrityError):
        ChunkContentResolver().get_chunk_text(updated, chunks[0])
    assert original.startswith("Retrieval augmented generation")


def test_repair_refreshes_fingerprint_when_text_is_unchanged(store, sample_file):
    document = _ingest(store, sample_file)
    chunks = asyncio.run(store.get_chunks_by_document(document.id))
    original = ChunkContentResolver().get_chunk_text(document, chunks[-1])

    # Same text with a CRLF line ending and a later mtime
    sample_file.write_bytes(SAMPLE_TEXT.replace("\n", "\r\n").encode("utf-8"))
    stats = sample_file.stat()
    os.utime(sample_file, ns=(stats.st_atime_ns, stats.st_mtime_ns + 5_000_000_000))
    service = FileIntegrityService(store)
    assert not service.check_document_integrity(document).valid

    repaired = asyncio.run(service.repair_document(document))
    assert repaired.success

    updated = asyncio.run(store.get_document(document.id))
    assert updated.status == DocumentStatus.PROCESSING
    assert updated.file_size == sample_file.stat().st_size
    assert updated.file_hash == calculate_file_hash(str(sample_file))
    assert service.check_document_integrity(updated).valid
    assert ChunkContentResolver().get_chunk_text(updated, chunks[-1]) == original


def test_size_check_tolerates_file_removed_after_gate(store, sample_file, monkeypatch):
    document = _ingest(store, sample_file)
    service = FileIntegrityService(store)
    # The gate saw a size change, then the file disappeared before the second stat
    monkeypatch.setattr(service._gate, "validate_file_integrity",
                        lambda doc: IntegrityCheck(False, "File size has changed"))
    sample_file.unlink()

    result = service.check_document_integrity(document)

    assert not result.valid
    assert result.reason == "File not found"


def test_repair_missing_file_fails(store, sample_file):
    document = _ingest(store, sample_file)
    sample_file.unlink()

    repaired = asyncio.run(FileIntegrityService(store).repair_document(document))

    assert not repaired.success
    assert repaired.reason == "Cannot repair: file not found"
