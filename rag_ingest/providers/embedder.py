"""
Chunk embeddings for the embedding stage.

sentence-transformers is used when it can be loaded; otherwise chunks are
embedded with signed feature hashing over their word tokens. Hashed vectors
are deterministic and unit-length, and chunks sharing words land near each
other in cosine space, which keeps the Chroma collection usable offline.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence
import hashlib
import logging
import math
import re

logger = logging.getLogger(__name__)

BACKENDS = ("auto", "sentence_transformers", "hash")

_TOKEN = re.compile(r"\w+", re.UNICODE)
# Each token is spread over several slots so single collisions don't merge words
_SLOTS_PER_TOKEN = 4


def hash_embedding(text: str, dim: int) -> List[float]:
    """
    Feature-hashed bag-of-words vector of size ``dim``, L2-normalized.

    Text without word characters is hashed as a single token.
    """
    vector = [0.0] * dim
    tokens = _TOKEN.findall(text.lower()) or [text]
    for token in tokens:
        digest = hashlib.sha256(token.encode("utf-8", errors="ignore")).digest()
        for slot in range(_SLOTS_PER_TOKEN):
            chunk = digest[slot * 5:slot * 5 + 5]
            index = int.from_bytes(chunk[:4], "big") % dim
            vector[index] += 1.0 if chunk[4] & 1 else -1.0

    norm = math.sqrt(sum(x * x for x in vector)) or 1.0
    return [x / norm for x in vector]


@dataclass
class EmbeddingConfig:
    model: str = "sentence-transformers/all-MiniLM-L6-v2"
    backend: str = "auto"
    fallback_dim: int = 384  # dimension of the vector collection when hashing
    batch_size: int = 32
    normalize: bool = True  # the Chroma collection uses cosine space


class EmbeddingManager:
    """Embeds chunk text with the configured backend."""

    def __init__(self, cfg: Optional[EmbeddingConfig] = None):
        self.cfg = cfg or EmbeddingConfig()
        if self.cfg.backend not in BACKENDS:
            raise ValueError(f"Unknown embeddings backend: {self.cfg.backend}")

        self._model = None
        self.backend_active = "hash"
        self.embedding_dim = int(self.cfg.fallback_dim)

        if self.cfg.backend != "hash":
            self._model = self._open_model()

        if self._model is not None:
            self.backend_active = "sentence_transformers"
            self.embedding_dim = int(self._model.get_sentence_embedding_dimension())
        elif self.cfg.backend == "sentence_transformers":
            logger.warning("sentence-transformers requested but unavailable; "
                           "embedding chunks with feature hashing (dim=%s)", self.embedding_dim)
        elif self.cfg.backend == "auto":
            logger.warning("Embedding chunks with feature hashing (dim=%s); "
                           "install sentence-transformers for semantic vectors", self.embedding_dim)

    @property
    def model_name(self) -> str:
        """Recorded on every stored embedding as ``model_used``."""
        if self.backend_active == "hash":
            return f"hash-{self.embedding_dim}"
        return self.cfg.model

    @staticmethod
    def _load_sentence_transformer():
        from sentence_transformers import SentenceTransformer  # heavy, loaded on demand
        return SentenceTransformer

    def _open_model(self):
        try:
            model_class = self._load_sentence_transformer()
        except Exception as e:
            logger.info("sentence-transformers unavailable: %s", e)
            return None

        try:
            return model_class(self.cfg.model)
        except Exception as e:
            logger.info("Could not load embedding model %s: %s", self.cfg.model, e)
            return None

    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        if self._model is None:
            return [hash_embedding(text, self.embedding_dim) for text in texts]

        vectors = self._model.encode(
            list(texts),
            batch_size=self.cfg.batch_size,
            normalize_embeddings=self.cfg.normalize,
            convert_to_numpy=True,
        )
        return [[float(x) for x in vector] for vector in vectors]

    def embed_single(self, text: str) -> List[float]:
        return self.embed_texts([text])[0]


def get_embedding_manager(embedding_cfg: dict) -> EmbeddingManager:
    """EmbeddingManager for the ``embedding`` config section."""
    defaults = EmbeddingConfig()
    return EmbeddingManager(EmbeddingConfig(
        model=embedding_cfg.get("model") or defaults.model,
        backend=embedding_cfg.get("backend", defaults.backend),
        fallback_dim=int(embedding_cfg.get("fallback_dim", defaults.fallback_dim)),
        batch_size=int(embedding_cfg.get("batch_size", defaults.batch_size)),
        normalize=bool(embedding_cfg.get("normalize", defaults.normalize)),
    ))
