"""
Engine Configuration

One dataclass per component, composed by EngineConfig. Defaults are the
documented constants; from_env() lets a deployment override the
storage and embedding settings without code changes.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, Tuple
import os


DEFAULT_COMMON_NAMES: Tuple[str, ...] = (
    'john', 'jane', 'mike', 'sarah', 'david', 'emily', 'chris', 'lisa'
)


@dataclass(frozen=True)
class AnonymizerConfig:
    """Placeholder tokens and the first-name list used for redaction."""
    common_names: Tuple[str, ...] = DEFAULT_COMMON_NAMES
    email_token: str = "[EMAIL]"
    phone_token: str = "[PHONE]"
    name_token: str = "[NAME]"
    anonymous_id: str = "anonymous"


@dataclass(frozen=True)
class FeatureConfig:
    """Configuration for linguistic feature extraction."""
    ideal_sentence_length: float = 15.0
    coherence_penalty: float = 2.0  # points lost per token of deviation
    neutral_score: float = 50.0


@dataclass(frozen=True)
class EmbeddingConfig:
    """Configuration for embedding providers."""
    model_id: str = "all-MiniLM-L6-v2"  # Default sentence-transformers model
    use_gpu: bool = False
    max_sequence_length: int = 256
    endpoint: Optional[str] = None  # Remote embedding API; None means local model
    api_key: Optional[str] = None
    timeout_seconds: float = 15.0
    dimension: int = 384  # Hashing provider only


@dataclass(frozen=True)
class DriftThresholds:
    """
    Severity thresholds for drift detection.

    Deviation thresholds apply to |current - baseline|; level thresholds
    apply to the current value. All comparisons are strict (>).
    """
    symbol_critical: float = 40.0
    symbol_high: float = 30.0
    symbol_medium: float = 20.0

    metaphor_high: float = 30.0
    metaphor_medium: float = 15.0

    pronoun_ratio_high: float = 3.0
    pronoun_ratio_medium: float = 2.0

    fragmentation_critical: float = 80.0
    fragmentation_high: float = 60.0


@dataclass(frozen=True)
class ResonanceConfig:
    """Configuration for mission resonance scoring."""
    alert_threshold: float = 60.0
    critical_below: float = 30.0
    high_below: float = 45.0
    medium_below: float = 55.0
    aligned_at: float = 70.0
    drifting_at: float = 50.0
    ideal_score: float = 75.0
    trend_tolerance: float = 0.5
    max_texts_per_unit: int = 10  # Most recent texts scored per unit per cycle


@dataclass(frozen=True)
class StorageConfig:
    """Baseline persistence configuration."""
    backend: str = "memory"  # "memory", "json", "sqlite"
    path: Optional[str] = None
    max_samples: Optional[int] = None  # None keeps the full history


@dataclass
class EngineConfig:
    """Unified configuration for the drift engine."""
    anonymizer: AnonymizerConfig = None
    features: FeatureConfig = None
    embedding: EmbeddingConfig = None
    drift: DriftThresholds = None
    resonance: ResonanceConfig = None
    storage: StorageConfig = None

    strip_html: bool = True
    max_workers: int = 1  # >1 processes units in parallel

    def __post_init__(self):
        self.anonymizer = self.anonymizer or AnonymizerConfig()
        self.features = self.features or FeatureConfig()
        self.embedding = self.embedding or EmbeddingConfig()
        self.drift = self.drift or DriftThresholds()
        self.resonance = self.resonance or ResonanceConfig()
        self.storage = self.storage or StorageConfig()

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> EngineConfig:
        """Build a config from SIGNALVAULT_* environment variables."""
        env = os.environ if environ is None else environ

        max_samples = env.get("SIGNALVAULT_MAX_SAMPLES")
        storage = StorageConfig(
            backend=env.get("SIGNALVAULT_STORAGE_BACKEND", "memory"),
            path=env.get("SIGNALVAULT_STORAGE_PATH"),
            max_samples=int(max_samples) if max_samples else None
        )
        embedding = EmbeddingConfig(
            model_id=env.get("SIGNALVAULT_EMBEDDING_MODEL", EmbeddingConfig.model_id),
            endpoint=env.get("SIGNALVAULT_EMBEDDING_ENDPOINT"),
            api_key=env.get("SIGNALVAULT_EMBEDDING_API_KEY")
        )
        return cls(
            embedding=embedding,
            storage=storage,
            max_workers=int(env.get("SIGNALVAULT_MAX_WORKERS", "1"))
        )
