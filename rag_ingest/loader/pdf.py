"""PDF text extraction using PyPDF2."""

import io

import PyPDF2

from rag_ingest.chunking.text import normalize_text
from rag_ingest.errors import FileAccessError
from .base import BaseTextLoader


class PDFLoader(BaseTextLoader):
    """Extracts page text; pages are separated by a blank line."""

    doc_type = "pdf"

    def extract(self, raw: bytes) -> str:
        try:
            reader = PyPDF2.PdfReader(io.BytesIO(raw))
            pages = [page.extract_text() or "" for page in reader.pages]
        except PyPDF2.errors.PdfReadError as e:
            raise FileAccessError(f"Invalid PDF: {e}")

        return normalize_text("\n\n".join(page.strip() for page in pages if page.strip()))
