"""
Base text loader.

A loader turns raw file bytes into normalized text. The same loader is used
when a document is indexed and when chunk text is later resolved from the
file, so both sides agree on the offsets.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import hashlib

from rag_ingest.errors import FileAccessError


@dataclass
class LoadedFile:
    """Normalized text of a file plus the fingerprint it was read with."""

    path: str
    text: str
    file_hash: str
    file_size: int
    file_mtime_ns: Optional[int]
    doc_type: str


class BaseTextLoader(ABC):
    """Abstract base for format-specific text extraction."""

    doc_type = "text"

    @staticmethod
    def compute_hash(data: bytes) -> str:
        """
        Compute SHA256 hash of raw file bytes.

        Args:
            data: File content

        Returns:
            Hex-encoded SHA256 hash
        """
        return hashlib.sha256(data).hexdigest()

    @abstractmethod
    def extract(self, raw: bytes) -> str:
        """
        Extract normalized text from raw file bytes.

        Raises:
            FileAccessError: If the content cannot be decoded or parsed
        """

    def load(self, path: str) -> LoadedFile:
        """
        Read a file and extract its text together with its fingerprint.

        Args:
            path: Path to the file

        Returns:
            LoadedFile with normalized text, SHA256, size and mtime

        Raises:
            FileAccessError: If the file is missing or unreadable
        """
        file_path = Path(path)

        try:
            stats = file_path.stat()
            raw = file_path.read_bytes()
        except FileNotFoundError:
            raise FileAccessError(f"File not found: {path}")
        except PermissionError:
            raise FileAccessError(f"Permission denied: {path}")
        except OSError as e:
            raise FileAccessError(f"Failed to read file {path}: {e}")

        return LoadedFile(
            path=str(file_path),
            text=self.extract(raw),
            file_hash=self.compute_hash(raw),
            file_size=stats.st_size,
            file_mtime_ns=stats.st_mtime_ns,
            doc_type=self.doc_type,
        )

    @staticmethod
    def decode(raw: bytes) -> str:
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise FileAccessError(f"File is not valid UTF-8: {e}")
