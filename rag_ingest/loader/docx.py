"""DOCX text extraction using python-docx."""

import io

from docx import Document as DocxDocument

from rag_ingest.chunking.text import normalize_text
from rag_ingest.errors import FileAccessError
from .base import BaseTextLoader


class DOCXLoader(BaseTextLoader):
    """Extracts Word paragraphs (headings included) as blank-line separated text."""

    doc_type = "docx"

    def extract(self, raw: bytes) -> str:
        try:
            doc = DocxDocument(io.BytesIO(raw))
        except Exception as e:
            raise FileAccessError(f"Error reading DOCX: {e}")

        paragraphs = [para.text.strip() for para in doc.paragraphs]
        return normalize_text("\n\n".join(text for text in paragraphs if text))
