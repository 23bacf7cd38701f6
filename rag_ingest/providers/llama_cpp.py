"""Local context generation using llama-cpp-python."""

from typing import Optional, Dict, Any
import time

DEFAULT_CONTEXT_PROMPT = """<document>
{document}
</document>
Here is the chunk we want to situate within the whole document
<chunk>
{chunk}
</chunk>
Please give a short succinct context to situate this chunk within the overall document for the purposes of improving search retrieval of the chunk. Answer only with the succinct context and nothing else."""


class LlamaCppContextModel:
    """Wrapper for llama-cpp-python local inference."""

    def __init__(self, model_path: str, context_length: int = 4096,
                 temperature: float = 0.1, max_tokens: int = 100,
                 prompt: str = DEFAULT_CONTEXT_PROMPT):
        """
        Initialize Llama.cpp model.

        Args:
            model_path: Path to GGUF model file
            context_length: Context window size
            temperature: Sampling temperature
            max_tokens: Max tokens of generated context
            prompt: Template with ``{document}`` and ``{chunk}`` placeholders
        """
        try:
            from llama_cpp import Llama
        except ImportError:
            raise ImportError("Install: pip install rag-ingest[llm]")

        self.model_path = model_path
        self.context_length = context_length
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.prompt = prompt

        try:
            self.model = Llama(
                model_path=model_path,
                n_ctx=context_length,
                verbose=False
            )
        except Exception as e:
            raise FileNotFoundError(f"Failed to load model: {e}")

    def build_prompt(self, document_text: str, chunk_text: str) -> str:
        return self.prompt.format(document=document_text, chunk=chunk_text)

    def generate(self, prompt: str, max_tokens: Optional[int] = None) -> Dict[str, Any]:
        """
        Generate text from prompt.

        Returns:
            Dict with 'text', 'tokens', 'time_ms'
        """
        start_time = time.time()

        response = self.model(
            prompt,
            max_tokens=max_tokens or self.max_tokens,
            temperature=self.temperature,
            top_p=0.95,
            stop=["</chunk>", "<document>"]
        )

        return {
            'text': response['choices'][0]['text'].strip(),
            'tokens': response['usage']['total_tokens'],
            'time_ms': (time.time() - start_time) * 1000
        }


def get_context_model(config: dict) -> Optional[LlamaCppContextModel]:
    """Configured context model, or None when no model path is set."""
    model_path = config.get('model_path')
    if not model_path:
        return None
    return LlamaCppContextModel(
        model_path=model_path,
        context_length=config.get('context_length', 4096),
        temperature=config.get('temperature', 0.1),
        max_tokens=config.get('max_tokens', 100),
        prompt=config.get('prompt') or DEFAULT_CONTEXT_PROMPT,
    )
