"""
Embedding Scorer
================

Cosine similarity between texts and mission resonance scoring.

FAILURE POLICY:
===============
Resonance scoring degrades, it never blocks the pipeline. When the
provider is unavailable or errors, similarity is reported as 0.0 and
resonance as the neutral 50.0 (score_mission returns None instead, so
callers can keep placeholders out of averages); the fallback is logged
and reported to the optional listener.
"""

from __future__ import annotations
from collections import OrderedDict
from typing import Callable, Optional
import logging
import threading

import numpy as np

from ..contracts import ProviderUnavailable
from .providers import (
    EmbeddingProvider, SentenceTransformerProvider, HttpEmbeddingProvider,
    HashingEmbeddingProvider, build_provider, normalize,
)


logger = logging.getLogger(__name__)

NEUTRAL_RESONANCE = 50.0
NEUTRAL_SIMILARITY = 0.0


def cosine_similarity(vec1: np.ndarray, vec2: np.ndarray) -> float:
    """Cosine of the angle between two vectors, clipped to [-1, 1]."""
    if vec1.shape != vec2.shape:
        raise ValueError(f"dimension mismatch: {vec1.shape} vs {vec2.shape}")

    denom = float(np.linalg.norm(vec1)) * float(np.linalg.norm(vec2))
    if denom == 0.0:
        return NEUTRAL_SIMILARITY
    return float(np.clip(np.dot(vec1, vec2) / denom, -1.0, 1.0))


def resonance_from_similarity(similarity: float) -> float:
    """Linear remap of cosine [-1, 1] onto [0, 100]."""
    return max(0.0, min(100.0, (similarity + 1.0) * 50.0))


class EmbeddingScorer:
    """
    Similarity scoring over an injected embedding provider.

    Mission embeddings are cached by text: the mission is scored against
    every message of every unit in a cycle.
    """

    MISSION_CACHE_SIZE = 16

    def __init__(
        self,
        provider: EmbeddingProvider,
        on_fallback: Optional[Callable[[str, str], None]] = None
    ):
        self._provider = provider
        self._on_fallback = on_fallback
        self._mission_cache: "OrderedDict[str, np.ndarray]" = OrderedDict()
        self._cache_lock = threading.Lock()

    @property
    def provider(self) -> EmbeddingProvider:
        return self._provider

    def similarity(self, text_a: str, text_b: str) -> float:
        """Cosine similarity in [-1, 1]; 0.0 when either side cannot be embedded."""
        try:
            return self._compare(self._embed(text_a), self._embed(text_b))
        except ProviderUnavailable as exc:
            self._fallback(exc)
            return NEUTRAL_SIMILARITY

    def mission_resonance(self, text: str, mission: str) -> float:
        """Resonance in [0, 100]; 50.0 when the provider fails."""
        score = self.score_mission(text, mission)
        return NEUTRAL_RESONANCE if score is None else score

    def score_mission(self, text: str, mission: str) -> Optional[float]:
        """
        Resonance in [0, 100], or None when no real score exists.

        None covers empty input and provider fallback, so callers can tell
        a measured 50.0 from a neutral placeholder.
        """
        if not text or not text.strip() or not mission or not mission.strip():
            return None

        try:
            similarity = self._compare(self._embed(text), self._mission_vector(mission))
        except ProviderUnavailable as exc:
            self._fallback(exc)
            return None

        return resonance_from_similarity(similarity)

    def _compare(self, vec1: np.ndarray, vec2: np.ndarray) -> float:
        if vec1.shape != vec2.shape:
            raise ProviderUnavailable(
                self._provider.provider_id,
                f"dimension mismatch: {vec1.shape} vs {vec2.shape}"
            )
        return cosine_similarity(vec1, vec2)

    def _mission_vector(self, mission: str) -> np.ndarray:
        with self._cache_lock:
            cached = self._mission_cache.get(mission)
            if cached is not None:
                self._mission_cache.move_to_end(mission)
                return cached

        vector = self._embed(mission)
        with self._cache_lock:
            self._mission_cache[mission] = vector
            if len(self._mission_cache) > self.MISSION_CACHE_SIZE:
                self._mission_cache.popitem(last=False)
        return vector

    def _embed(self, text: str) -> np.ndarray:
        """Provider call with every failure mapped to ProviderUnavailable."""
        try:
            vector = self._provider.embed(text)
        except ProviderUnavailable:
            raise
        except Exception as exc:
            raise ProviderUnavailable(self._provider.provider_id, str(exc)) from exc

        vector = np.asarray(vector, dtype=np.float64)
        if vector.ndim != 1 or not np.all(np.isfinite(vector)):
            raise ProviderUnavailable(self._provider.provider_id, "non-finite or non-vector embedding")
        return vector

    def _fallback(self, exc: ProviderUnavailable) -> None:
        logger.warning("Embedding fallback to neutral score: %s", exc)
        if self._on_fallback is not None:
            self._on_fallback(exc.provider, exc.reason)


__all__ = [
    'EmbeddingScorer', 'EmbeddingProvider', 'SentenceTransformerProvider',
    'HttpEmbeddingProvider', 'HashingEmbeddingProvider', 'build_provider',
    'cosine_similarity', 'resonance_from_similarity', 'normalize',
    'NEUTRAL_RESONANCE', 'NEUTRAL_SIMILARITY',
]
