"""Provider backed by in-process models (sentence-transformers, llama.cpp)."""

from typing import Any, Dict, List, Optional
import asyncio
import logging
import threading

from rag_ingest.chunking.text import truncate_to_tokens
from rag_ingest.errors import ApiError
from .base import AIProvider
from .embedder import EmbeddingManager
from .llama_cpp import LlamaCppContextModel

logger = logging.getLogger(__name__)


class LocalProvider(AIProvider):
    """
    Runs embedding and context models in worker threads so that model calls
    don't block other chunk pipelines on the event loop.

    A llama.cpp context is not thread-safe, so at most one thread is inside
    the context model at a time, whatever the chunk parallelism.
    """

    name = "local"

    def __init__(self, embedder: EmbeddingManager,
                 context_model: Optional[LlamaCppContextModel] = None,
                 max_document_tokens: int = 3000):
        self.embedder = embedder
        self.context_model = context_model
        self.max_document_tokens = max_document_tokens
        self._context_lock = threading.Lock()

    @property
    def embedding_model(self) -> str:
        return self.embedder.model_name

    async def generate_embedding(self, text: str) -> List[float]:
        self.validate_input(text)
        try:
            return await asyncio.to_thread(self.embedder.embed_single, text)
        except Exception as e:
            raise ApiError(f"Failed to generate embedding: {e}", self.name)

    async def generate_context(self, document_text: str, chunk_text: str) -> str:
        if self.context_model is None:
            raise ApiError("No context model configured (set llm.model_path)", self.name, retryable=False)
        self.validate_input(chunk_text)

        document_text = truncate_to_tokens(document_text, self.max_document_tokens)
        prompt = self.context_model.build_prompt(document_text, chunk_text)
        try:
            result = await asyncio.to_thread(self._generate_serialized, prompt)
        except Exception as e:
            raise ApiError(f"Failed to generate context: {e}", self.name)

        logger.debug("Context generated in %.0fms (%s tokens)", result['time_ms'], result['tokens'])
        return result['text']

    def _generate_serialized(self, prompt: str) -> Dict[str, Any]:
        with self._context_lock:
            return self.context_model.generate(prompt)
