"""
Error taxonomy for the ingestion pipeline.

Every error carries a short machine-readable code so callers (CLI, audit log)
can report failures without string matching on messages.
"""

from typing import Optional


class RagIngestError(Exception):
    """Base class for all pipeline errors."""

    code = "RAG_INGEST_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ConfigurationError(RagIngestError):
    """Raised when configuration or segmentation parameters are invalid."""

    code = "CONFIG_ERROR"


class ValidationError(RagIngestError):
    """Raised for unknown documents/chunks or content that cannot be ingested."""

    code = "VALIDATION_ERROR"


class ApiError(RagIngestError):
    """Raised when an AI provider call fails."""

    code = "API_ERROR"

    def __init__(self, message: str, provider: Optional[str] = None, retryable: bool = True):
        super().__init__(message)
        self.provider = provider
        self.retryable = retryable


class StoreError(RagIngestError):
    """Raised when the persistence store cannot complete an operation."""

    code = "STORE_ERROR"


class FileAccessError(RagIngestError):
    """Raised when a source file cannot be read."""

    code = "FILE_ERROR"


class FileIntegrityError(FileAccessError):
    """Raised when a source file no longer matches its indexed fingerprint."""

    code = "FILE_INTEGRITY_ERROR"


class ChunkBoundsError(FileIntegrityError):
    """Raised when stored chunk offsets do not fit the decoded file content."""

    code = "CHUNK_BOUNDS_ERROR"
