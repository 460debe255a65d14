"""
Sentiment Providers

Optional capability injected into the feature extractor.

GUARANTEES:
- classify() returns a SentimentResult or raises ProviderUnavailable
- Model loading is lazy; constructing a provider never touches the network
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
import logging

from ..contracts import ProviderUnavailable


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SentimentResult:
    """Label plus confidence in [0, 1]."""
    label: str
    score: float


class SentimentProvider(ABC):
    """Abstract sentiment classifier."""

    @property
    @abstractmethod
    def provider_id(self) -> str:
        ...

    @abstractmethod
    def classify(self, text: str) -> SentimentResult:
        """Classify text. MUST raise ProviderUnavailable on any failure."""


class TransformersSentimentProvider(SentimentProvider):
    """
    Hugging Face transformers sentiment pipeline.

    The pipeline is built on first use. A load failure is remembered so a
    missing model costs one attempt per process, not one per message.
    """

    DEFAULT_MODEL = "distilbert-base-uncased-finetuned-sst-2-english"

    def __init__(self, model_id: str = DEFAULT_MODEL, max_chars: int = 2048):
        self._model_id = model_id
        self._max_chars = max_chars
        self._pipeline = None
        self._load_error: Optional[str] = None

    @property
    def provider_id(self) -> str:
        return f"transformers:{self._model_id}"

    def _ensure_pipeline(self):
        if self._pipeline is not None:
            return self._pipeline
        if self._load_error is not None:
            raise ProviderUnavailable(self.provider_id, self._load_error)

        try:
            from transformers import pipeline
            self._pipeline = pipeline("sentiment-analysis", model=self._model_id)
        except ImportError:
            self._load_error = "transformers not installed"
            raise ProviderUnavailable(self.provider_id, self._load_error)
        except Exception as exc:
            self._load_error = f"model load failed: {exc}"
            raise ProviderUnavailable(self.provider_id, self._load_error) from exc

        logger.info("Loaded sentiment model %s", self._model_id)
        return self._pipeline

    def classify(self, text: str) -> SentimentResult:
        classifier = self._ensure_pipeline()
        try:
            result = classifier(text[:self._max_chars])
        except Exception as exc:
            raise ProviderUnavailable(self.provider_id, f"inference failed: {exc}") from exc

        top = result[0] if isinstance(result, list) else result
        return SentimentResult(label=str(top["label"]), score=float(top["score"]))
