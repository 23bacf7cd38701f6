"""
AI provider capability consumed by the pipeline coordinator.

Providers wrap every backend failure in ``ApiError`` and keep the backend's
message text, which the retry classifier inspects (rate limits, auth).
"""

from abc import ABC, abstractmethod
from typing import List

from rag_ingest.errors import ApiError

MAX_INPUT_CHARS = 1_000_000


class AIProvider(ABC):
    """Embedding and context generation for chunk text."""

    name = "base"

    @property
    @abstractmethod
    def embedding_model(self) -> str:
        """Identifier recorded with every stored embedding."""

    @abstractmethod
    async def generate_embedding(self, text: str) -> List[float]:
        """
        Embed one chunk of text.

        Raises:
            ApiError: If the backend fails
        """

    @abstractmethod
    async def generate_context(self, document_text: str, chunk_text: str) -> str:
        """
        Short context situating ``chunk_text`` within ``document_text``.

        Raises:
            ApiError: If the backend fails
        """

    def validate_input(self, text: str) -> None:
        if not text or not text.strip():
            raise ApiError("Text cannot be empty", self.name, retryable=False)
        if len(text) > MAX_INPUT_CHARS:
            raise ApiError("Text is too long for processing", self.name, retryable=False)
