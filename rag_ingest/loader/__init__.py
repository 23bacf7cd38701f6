"""Format detection and text extraction for source files."""

from pathlib import Path
from typing import Dict

from rag_ingest.errors import ValidationError
from .base import BaseTextLoader, LoadedFile
from .text import PlainTextLoader, MarkdownLoader
from .pdf import PDFLoader
from .docx import DOCXLoader


LOADER_MAP = {
    '.txt': PlainTextLoader,
    '.text': PlainTextLoader,
    '.md': MarkdownLoader,
    '.markdown': MarkdownLoader,
    '.pdf': PDFLoader,
    '.docx': DOCXLoader,
}


class DocumentLoader:
    """Picks a loader by file extension."""

    def __init__(self):
        self.loaders: Dict[str, BaseTextLoader] = {
            ext: loader_class() for ext, loader_class in LOADER_MAP.items()
        }

    def supports(self, path: str) -> bool:
        return Path(path).suffix.lower() in self.loaders

    def get_loader(self, path: str, strict: bool = True) -> BaseTextLoader:
        """
        Loader for a path.

        Args:
            path: File path
            strict: Raise for unknown extensions instead of treating them as plain text

        Raises:
            ValidationError: If strict and the format is not supported
        """
        ext = Path(path).suffix.lower()
        if ext in self.loaders:
            return self.loaders[ext]
        if strict:
            raise ValidationError(f"Unsupported format: {ext or '(none)'}")
        return self.loaders['.txt']

    def load(self, path: str) -> LoadedFile:
        return self.get_loader(path).load(path)


__all__ = ['DocumentLoader', 'LoadedFile', 'BaseTextLoader', 'LOADER_MAP']
