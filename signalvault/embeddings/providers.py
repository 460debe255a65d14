"""
Embedding Providers
===================

Capabilities that map text to a fixed-length, L2-normalized vector.

ML FENCE POST:
==============
Providers compute GEOMETRY, not understanding. They return raw vectors
and never apply thresholds. Every failure is raised as
ProviderUnavailable; deciding what to do about it is the scorer's job.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Optional
import hashlib
import logging
import re

import httpx
import numpy as np

from ..config import EmbeddingConfig
from ..contracts import ProviderUnavailable


logger = logging.getLogger(__name__)


def normalize(vector: np.ndarray) -> np.ndarray:
    """Unit-length copy of vector; a zero vector is returned unchanged."""
    norm = float(np.linalg.norm(vector))
    if norm == 0.0:
        return vector
    return vector / norm


class EmbeddingProvider(ABC):
    """Abstract embedding provider."""

    @property
    @abstractmethod
    def provider_id(self) -> str:
        ...

    @abstractmethod
    def embed(self, text: str) -> np.ndarray:
        """
        Embed text as a 1-D float vector of fixed dimension.

        MUST raise ProviderUnavailable on failure, never return garbage.
        """


class SentenceTransformerProvider(EmbeddingProvider):
    """
    Local sentence-transformers model.

    The model is lazy-loaded on first use; a failed load is remembered so
    later calls fail fast with the same reason.
    """

    def __init__(self, config: Optional[EmbeddingConfig] = None):
        self._config = config or EmbeddingConfig()
        self._model = None
        self._load_error: Optional[str] = None

    @property
    def provider_id(self) -> str:
        return f"sentence-transformers:{self._config.model_id}"

    def _ensure_model_loaded(self):
        """Lazy load the embedding model."""
        if self._model is not None:
            return self._model
        if self._load_error is not None:
            raise ProviderUnavailable(self.provider_id, self._load_error)

        try:
            from sentence_transformers import SentenceTransformer
            self._model = SentenceTransformer(
                self._config.model_id,
                device='cuda' if self._config.use_gpu else 'cpu'
            )
        except ImportError:
            self._load_error = "sentence-transformers not installed"
            raise ProviderUnavailable(self.provider_id, self._load_error)
        except Exception as exc:
            self._load_error = f"model load failed: {exc}"
            raise ProviderUnavailable(self.provider_id, self._load_error) from exc

        logger.info("Loaded embedding model %s", self._config.model_id)
        return self._model

    def is_available(self) -> bool:
        try:
            self._ensure_model_loaded()
        except ProviderUnavailable:
            return False
        return True

    def embed(self, text: str) -> np.ndarray:
        model = self._ensure_model_loaded()

        # Truncate to max sequence length (rough char estimate)
        truncated = text[:self._config.max_sequence_length * 4]
        try:
            embedding = model.encode(
                truncated,
                convert_to_numpy=True,
                normalize_embeddings=True  # Unit vectors for cosine similarity
            )
        except Exception as exc:
            raise ProviderUnavailable(self.provider_id, f"encode failed: {exc}") from exc

        return np.asarray(embedding, dtype=np.float64)


class HttpEmbeddingProvider(EmbeddingProvider):
    """
    Remote embedding API over HTTP.

    Sends {"input": text, "model": model_id} and accepts either an
    OpenAI-style {"data": [{"embedding": [...]}]} or a bare
    {"embedding": [...]} response.
    """

    def __init__(
        self,
        config: Optional[EmbeddingConfig] = None,
        client: Optional[httpx.Client] = None
    ):
        self._config = config or EmbeddingConfig()
        if not self._config.endpoint:
            raise ValueError("HttpEmbeddingProvider requires an endpoint")

        headers = {"Content-Type": "application/json"}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"

        self._client = client or httpx.Client(
            timeout=self._config.timeout_seconds,
            headers=headers
        )

    @property
    def provider_id(self) -> str:
        return f"http:{self._config.model_id}"

    def embed(self, text: str) -> np.ndarray:
        try:
            response = self._client.post(
                self._config.endpoint,
                json={"input": text, "model": self._config.model_id}
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderUnavailable(self.provider_id, str(exc)) from exc

        try:
            if "data" in payload:
                values = payload["data"][0]["embedding"]
            else:
                values = payload["embedding"]
            vector = np.asarray(values, dtype=np.float64)
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise ProviderUnavailable(self.provider_id, f"invalid response: {exc}") from exc

        if vector.ndim != 1 or vector.size == 0:
            raise ProviderUnavailable(self.provider_id, "invalid response: empty vector")

        return normalize(vector)

    def close(self) -> None:
        self._client.close()


class HashingEmbeddingProvider(EmbeddingProvider):
    """
    Deterministic offline embeddings from hashed word counts.

    Same text, same vector, in every process. Captures lexical overlap
    only; used for development runs and tests where no model is present.
    """

    _WORD = re.compile(r'\b[a-zA-Z]+\b')

    def __init__(self, dimension: int = 384):
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self._dimension = dimension

    @property
    def provider_id(self) -> str:
        return f"hashing:{self._dimension}"

    def embed(self, text: str) -> np.ndarray:
        vector = np.zeros(self._dimension, dtype=np.float64)

        for word in self._WORD.findall(text.lower()):
            word_hash = hashlib.sha256(word.encode()).hexdigest()

            # Use hash to set vector positions
            for i in range(0, 16, 2):
                idx = int(word_hash[i:i + 2], 16) % self._dimension
                vector[idx] += 1.0

        return normalize(vector)


def build_provider(config: Optional[EmbeddingConfig] = None) -> EmbeddingProvider:
    """Remote provider when an endpoint is configured, local model otherwise."""
    config = config or EmbeddingConfig()
    if config.endpoint:
        return HttpEmbeddingProvider(config)
    return SentenceTransformerProvider(config)
