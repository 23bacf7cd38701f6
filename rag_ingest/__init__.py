"""
RAG ingestion pipeline.

Segments documents into offset-addressed chunks, resolves chunk text back
from the source file, and runs each chunk through context generation and
embedding with bounded parallelism.
"""

__version__ = "1.0.0"
