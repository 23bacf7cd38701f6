"""Plain text and Markdown loaders."""

from rag_ingest.chunking.text import extract_text
from .base import BaseTextLoader


class PlainTextLoader(BaseTextLoader):
    """Plain text: whitespace normalization only."""

    doc_type = "text"

    def extract(self, raw: bytes) -> str:
        return extract_text(self.decode(raw), "txt")


class MarkdownLoader(BaseTextLoader):
    """Markdown: syntax is stripped before normalization."""

    doc_type = "markdown"

    def extract(self, raw: bytes) -> str:
        return extract_text(self.decode(raw), "md")
