"""
Shared fixtures: deterministic embedding providers and an engine factory.
"""

import math

import numpy as np
import pytest

from signalvault import DriftEngine, EngineConfig
from signalvault.contracts import ProviderUnavailable
from signalvault.embeddings import EmbeddingProvider, HashingEmbeddingProvider


MISSION = "We empower customers together"

# cos(mission, off_mission) == -0.2 -> resonance 40.0
MISSION_VECTOR = (1.0, 0.0)
OFF_MISSION_VECTOR = (-0.2, math.sqrt(0.96))


class StaticEmbeddingProvider(EmbeddingProvider):
    """Looks vectors up by exact text; counts calls per text."""

    def __init__(self, vectors, default=OFF_MISSION_VECTOR):
        self._vectors = dict(vectors)
        self._default = default
        self.calls = []

    @property
    def provider_id(self) -> str:
        return "static"

    def embed(self, text: str) -> np.ndarray:
        self.calls.append(text)
        return np.asarray(self._vectors.get(text, self._default), dtype=np.float64)


class FailingEmbeddingProvider(EmbeddingProvider):
    """Always unavailable."""

    def __init__(self, exc=None):
        self._exc = exc or ProviderUnavailable("failing", "offline")

    @property
    def provider_id(self) -> str:
        return "failing"

    def embed(self, text: str) -> np.ndarray:
        raise self._exc


@pytest.fixture
def mission():
    return MISSION


@pytest.fixture
def static_provider():
    return StaticEmbeddingProvider({MISSION: MISSION_VECTOR})


@pytest.fixture
def make_static():
    return StaticEmbeddingProvider


@pytest.fixture
def failing_provider():
    return FailingEmbeddingProvider()


@pytest.fixture
def hashing_provider():
    return HashingEmbeddingProvider(dimension=64)


@pytest.fixture
def make_engine(hashing_provider):
    """Engine factory; every engine gets an offline embedding provider by default."""
    def _make(**kwargs):
        kwargs.setdefault("embedding_provider", hashing_provider)
        config = kwargs.pop("config", None) or EngineConfig()
        return DriftEngine(config=config, **kwargs)
    return _make
