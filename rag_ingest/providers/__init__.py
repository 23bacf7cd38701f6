"""AI providers for the context and embedding stages."""

from rag_ingest.providers.base import AIProvider
from rag_ingest.providers.embedder import EmbeddingManager, get_embedding_manager
from rag_ingest.providers.llama_cpp import get_context_model
from rag_ingest.providers.local import LocalProvider


def get_provider(config_dict: dict, load_context_model: bool = True) -> AIProvider:
    """
    Build the provider from the ``embedding`` and ``llm`` config sections.

    Args:
        config_dict: Full configuration dictionary
        load_context_model: Skip loading the LLM when context generation is not needed
    """
    llm_cfg = config_dict.get('llm', {})
    context_model = get_context_model(llm_cfg) if load_context_model else None
    return LocalProvider(
        embedder=get_embedding_manager(config_dict.get('embedding', {})),
        context_model=context_model,
        max_document_tokens=llm_cfg.get('max_document_tokens', 3000),
    )


__all__ = ['AIProvider', 'EmbeddingManager', 'LocalProvider', 'get_provider']
