"""
Configuration management for the ingestion pipeline.

Loads config.yaml over built-in defaults, with an environment override for
the file location and validation of every value the pipeline depends on.
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional
import yaml

from rag_ingest.chunking.chunker import STRATEGIES
from rag_ingest.errors import ConfigurationError

DEFAULT_CONFIG_PATH = "./configs/config.yaml"
CONFIG_ENV_VAR = "RAG_INGEST_CONFIG"

DEFAULT_CONFIG: Dict[str, Any] = {
    'chunking': {
        'strategy': 'sentence',
        'chunk_size': 1000,
        'overlap': 200,
    },
    'processing': {
        'max_parallel_chunks': 5,
        'max_retries': 3,
        'base_delay': 1.0,
        'retry_delay': 1.0,
    },
    'resolver': {
        'cache_size': 10,
    },
    'embedding': {
        'model': 'sentence-transformers/all-MiniLM-L6-v2',
        'backend': 'auto',
        'fallback_dim': 384,
        'batch_size': 32,
        'normalize': True,
    },
    'llm': {
        'model_path': None,
        'context_length': 4096,
        'temperature': 0.1,
        'max_tokens': 100,
        'max_document_tokens': 3000,
        'prompt': None,
    },
    'store': {
        'backend': 'local',
        'path': './data/rag_ingest.json',
        'vector_path': './data/vectors',
        'collection': 'chunks',
        'flush_interval': 1.0,
    },
    'audit_log': {
        'enabled': True,
        'file': './logs/audit.log',
        'level': 'INFO',
    },
    'logging': {
        'level': 'INFO',
    },
}

EMBEDDING_BACKENDS = ('auto', 'sentence_transformers', 'hash')
STORE_BACKENDS = ('local', 'memory')


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class IngestConfig:
    """
    Configuration manager with strict validation.

    Enforces:
    - Chunking parameters the segmenter accepts
    - Parallelism within 1..20 and a sane retry budget
    - Known embedding and store backends
    """

    def __init__(self, config_path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None):
        """
        Load and validate configuration.

        Args:
            config_path: Path to config.yaml. Defaults to $RAG_INGEST_CONFIG,
                then ./configs/config.yaml
            overrides: Values merged over the file (used by the CLI and tests)

        Raises:
            ConfigurationError: If the requested file is missing or any value is invalid
        """
        explicit = config_path is not None or CONFIG_ENV_VAR in os.environ
        if config_path is None:
            config_path = os.getenv(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH)

        self.config_path = Path(config_path)
        file_data: Dict[str, Any] = {}

        if self.config_path.exists():
            try:
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    file_data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML: {e}")
            if not isinstance(file_data, dict):
                raise ConfigurationError(f"Config file must contain a mapping: {self.config_path}")
        elif explicit:
            raise ConfigurationError(f"Config file not found: {self.config_path}")

        self.data = _deep_merge(DEFAULT_CONFIG, file_data)
        if overrides:
            self.data = _deep_merge(self.data, overrides)

        self._validate()

    def _validate(self):
        """Validate configuration values."""
        chunking = self.data['chunking']
        if chunking.get('strategy') not in STRATEGIES:
            raise ConfigurationError(f"Invalid chunking strategy: {chunking.get('strategy')}")
        chunk_size, overlap = chunking.get('chunk_size'), chunking.get('overlap')
        if not isinstance(chunk_size, int) or chunk_size <= 0:
            raise ConfigurationError(f"chunking.chunk_size must be a positive integer, got {chunk_size!r}")
        if not isinstance(overlap, int) or overlap < 0:
            raise ConfigurationError(f"chunking.overlap must be a non-negative integer, got {overlap!r}")
        if overlap >= chunk_size:
            raise ConfigurationError("chunking.overlap must be smaller than chunking.chunk_size")

        processing = self.data['processing']
        parallel = processing.get('max_parallel_chunks')
        if not isinstance(parallel, int) or not 1 <= parallel <= 20:
            raise ConfigurationError(f"processing.max_parallel_chunks must be between 1 and 20, got {parallel!r}")
        retries = processing.get('max_retries')
        if not isinstance(retries, int) or not 1 <= retries <= 10:
            raise ConfigurationError(f"processing.max_retries must be between 1 and 10, got {retries!r}")
        for key in ('base_delay', 'retry_delay'):
            value = processing.get(key)
            if not isinstance(value, (int, float)) or value < 0:
                raise ConfigurationError(f"processing.{key} must be a non-negative number, got {value!r}")

        cache_size = self.data['resolver'].get('cache_size')
        if not isinstance(cache_size, int) or cache_size < 1:
            raise ConfigurationError(f"resolver.cache_size must be at least 1, got {cache_size!r}")

        backend = self.data['embedding'].get('backend')
        if backend not in EMBEDDING_BACKENDS:
            raise ConfigurationError(f"Invalid embedding backend: {backend}")

        store_backend = self.data['store'].get('backend')
        if store_backend not in STORE_BACKENDS:
            raise ConfigurationError(f"Invalid store backend: {store_backend}")

        flush_interval = self.data['store'].get('flush_interval')
        if not isinstance(flush_interval, (int, float)) or flush_interval < 0:
            raise ConfigurationError(f"store.flush_interval must be a non-negative number, got {flush_interval!r}")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get config value by dot-notation path.

        Args:
            key: Key path (e.g., 'chunking.strategy', 'processing.max_retries')
            default: Default value if not found

        Returns:
            Configuration value
        """
        value = self.data
        for k in key.split('.'):
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default
        return value

    def get_chunking_config(self) -> Dict[str, Any]:
        return self.data['chunking']

    def get_processing_config(self) -> Dict[str, Any]:
        return self.data['processing']

    def get_resolver_config(self) -> Dict[str, Any]:
        return self.data['resolver']

    def get_embedding_config(self) -> Dict[str, Any]:
        return self.data['embedding']

    def get_llm_config(self) -> Dict[str, Any]:
        return self.data['llm']

    def get_store_config(self) -> Dict[str, Any]:
        return self.data['store']

    def get_audit_config(self) -> Dict[str, Any]:
        return self.data['audit_log']

    def get_log_level(self) -> str:
        return str(self.get('logging.level', 'INFO')).upper()


# Global config instance (lazy-loaded)
_config_instance: Optional[IngestConfig] = None


def load_config(config_path: Optional[str] = None) -> IngestConfig:
    """
    Load or retrieve cached configuration.

    Args:
        config_path: Optional override path

    Returns:
        IngestConfig instance
    """
    global _config_instance
    if _config_instance is None or config_path is not None:
        _config_instance = IngestConfig(config_path)
    return _config_instance


def get_config() -> IngestConfig:
    """Get currently loaded config (must be initialized)."""
    if _config_instance is None:
        raise RuntimeError("Config not loaded. Call load_config() first.")
    return _config_instance
