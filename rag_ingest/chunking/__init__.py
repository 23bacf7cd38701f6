"""Segmentation of normalized document text into chunk spans."""

from rag_ingest.chunking.chunker import TextChunker, STRATEGIES, summarize_chunks
from rag_ingest.chunking.text import normalize_text, extract_text

__all__ = ['TextChunker', 'STRATEGIES', 'summarize_chunks', 'normalize_text', 'extract_text']
