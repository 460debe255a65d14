"""
Feature Extraction

Converts one message's text into a fixed-shape FeatureVector.

BOUNDARY ENFORCEMENT:
- Consumes anonymized text
- Produces FeatureVector
- NO network, NO storage, NO state (the optional sentiment provider is
  the only collaborator and its failures become neutral values)

The feature set is fixed and versioned. Every feature is a named function
over TextStats; adding a feature means adding a function and a field, not
changing the others.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, FrozenSet, List, Optional, Sequence, Tuple
import logging
import re
import string

from ..config import FeatureConfig
from ..contracts import (
    FeatureVector, ProviderUnavailable,
    NEUTRAL_SENTIMENT_LABEL, NEUTRAL_SENTIMENT_SCORE,
)
from .sentiment import SentimentProvider, SentimentResult, TransformersSentimentProvider


logger = logging.getLogger(__name__)

FEATURE_SET_VERSION = "1.0.0"


# =============================================================================
# LEXICONS
# =============================================================================

METAPHOR_CUES: FrozenSet[str] = frozenset({
    'like', 'as', 'bridge', 'journey', 'path', 'mountain',
    'ocean', 'storm', 'light', 'darkness',
})

# Words that anchor a message to shared identity and purpose
SYMBOL_WORDS: FrozenSet[str] = frozenset({
    'mission', 'vision', 'purpose', 'values', 'value', 'together',
    'customer', 'customers', 'team', 'impact', 'trust', 'community',
    'commitment', 'culture', 'goal', 'goals', 'align', 'aligned',
    'empower', 'collaborate', 'collaboration',
})

MODAL_VERBS: FrozenSet[str] = frozenset({
    'might', 'could', 'should', 'would', 'may', 'can', 'will', 'must',
})

INDIVIDUAL_PRONOUNS: FrozenSet[str] = frozenset({'i', 'me', 'my', 'mine', 'myself'})
COLLECTIVE_PRONOUNS: FrozenSet[str] = frozenset({'we', 'us', 'our', 'ours', 'ourselves'})

NEGATION_CUES: FrozenSet[str] = frozenset({
    'not', 'no', 'never', 'nothing', 'nobody',
    'difficult', 'problem', 'issue', 'concern',
})

_SENTENCE_SPLIT = re.compile(r'[.!?]+')
_PUNCTUATION = string.punctuation + '“”‘’'


# =============================================================================
# TEXT STATISTICS
# =============================================================================

def _normalize_token(token: str) -> str:
    return token.strip(_PUNCTUATION)


@dataclass(frozen=True)
class TextStats:
    """
    Tokenized view of one text.

    tokens: lowercased whitespace tokens with surrounding punctuation
    removed (empty strings kept so the token count matches the split).
    sentences: token lists of each non-empty sentence.
    """
    tokens: Tuple[str, ...]
    sentences: Tuple[Tuple[str, ...], ...]

    @staticmethod
    def from_text(text: Optional[str]) -> TextStats:
        text = text or ""
        tokens = tuple(_normalize_token(t) for t in text.lower().split())
        sentences = tuple(
            tuple(_normalize_token(t) for t in piece.lower().split())
            for piece in _SENTENCE_SPLIT.split(text)
            if piece.strip()
        )
        return TextStats(tokens=tokens, sentences=sentences)

    @property
    def token_count(self) -> int:
        return len(self.tokens)

    @property
    def sentence_count(self) -> int:
        return len(self.sentences)

    def count(self, lexicon: FrozenSet[str]) -> int:
        return sum(1 for t in self.tokens if t in lexicon)


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


# =============================================================================
# FEATURE FUNCTIONS
# =============================================================================

def metaphor_density(stats: TextStats, config: FeatureConfig) -> float:
    """Metaphor cue words per hundred tokens."""
    if not stats.token_count:
        return config.neutral_score
    return clamp(stats.count(METAPHOR_CUES) / stats.token_count * 100)


def symbol_alignment(stats: TextStats, config: FeatureConfig) -> float:
    """Share of sentences that reference at least one identity/purpose symbol."""
    if not stats.token_count or not stats.sentence_count:
        return config.neutral_score
    anchored = sum(1 for s in stats.sentences if SYMBOL_WORDS.intersection(s))
    return clamp(anchored / stats.sentence_count * 100)


def modal_compression(stats: TextStats, config: FeatureConfig) -> float:
    """100 means fully assertive; each modal verb lowers certainty."""
    if not stats.token_count:
        return config.neutral_score
    return clamp(100 - stats.count(MODAL_VERBS) / stats.token_count * 100)


def narrative_coherence(stats: TextStats, config: FeatureConfig) -> float:
    """Penalizes average sentence length away from the ideal length."""
    if not stats.token_count or not stats.sentence_count:
        return config.neutral_score
    avg_length = stats.token_count / stats.sentence_count
    deviation = abs(avg_length - config.ideal_sentence_length)
    return clamp(100 - deviation * config.coherence_penalty)


def pronoun_distribution(stats: TextStats) -> Tuple[float, float, float]:
    """(individual count, collective count, individual/collective ratio)."""
    individual = stats.count(INDIVIDUAL_PRONOUNS)
    collective = stats.count(COLLECTIVE_PRONOUNS)
    ratio = individual / collective if collective > 0 else float(individual)
    return float(individual), float(collective), ratio


def emotional_tone(stats: TextStats, config: FeatureConfig) -> Tuple[float, float]:
    """
    (stability, fragmentation).

    INVARIANT: stability + fragmentation == 100 exactly. Fragmentation is
    derived by subtraction from a stability in [0, 100], and that sum
    always rounds back to 100.0 in binary floating point.
    """
    if not stats.token_count:
        stability = config.neutral_score
    else:
        negation_ratio = stats.count(NEGATION_CUES) / stats.token_count
        stability = clamp(100 - negation_ratio * 200)
    return stability, 100.0 - stability


# =============================================================================
# FEATURE EXTRACTOR (Main class)
# =============================================================================

FallbackListener = Callable[[str, str], None]


class FeatureExtractor:
    """
    Main feature extraction engine.

    Deterministic for a fixed feature set: same text, same vector. With no
    sentiment provider the function is pure.
    """

    version = FEATURE_SET_VERSION

    def __init__(
        self,
        config: Optional[FeatureConfig] = None,
        sentiment_provider: Optional[SentimentProvider] = None,
        on_fallback: Optional[FallbackListener] = None
    ):
        self._config = config or FeatureConfig()
        self._sentiment = sentiment_provider
        self._on_fallback = on_fallback

    def extract(self, text: Optional[str]) -> FeatureVector:
        """Extract all features from one text. Never raises."""
        stats = TextStats.from_text(text)

        individual, collective, ratio = pronoun_distribution(stats)
        stability, fragmentation = emotional_tone(stats, self._config)
        sentiment = self._classify(text or "", stats)

        return FeatureVector(
            symbol_alignment=symbol_alignment(stats, self._config),
            metaphor_density=metaphor_density(stats, self._config),
            narrative_coherence=narrative_coherence(stats, self._config),
            modal_compression=modal_compression(stats, self._config),
            pronoun_individual=individual,
            pronoun_collective=collective,
            pronoun_ratio=ratio,
            emotional_stability=stability,
            emotional_fragmentation=fragmentation,
            sentiment_label=sentiment.label,
            sentiment_score=sentiment.score
        )

    def extract_batch(self, texts: Sequence[str]) -> List[FeatureVector]:
        """Extract features for each text, preserving order."""
        return [self.extract(text) for text in texts]

    def _classify(self, text: str, stats: TextStats) -> SentimentResult:
        neutral = SentimentResult(NEUTRAL_SENTIMENT_LABEL, NEUTRAL_SENTIMENT_SCORE)
        if self._sentiment is None or not stats.token_count:
            return neutral

        try:
            result = self._call_provider(text)
        except ProviderUnavailable as exc:
            logger.warning("Sentiment fallback to neutral: %s", exc)
            if self._on_fallback is not None:
                self._on_fallback(exc.provider, exc.reason)
            return neutral

        return result

    def _call_provider(self, text: str) -> SentimentResult:
        """Provider call with every failure, bad payloads included, mapped to ProviderUnavailable."""
        provider_id = getattr(self._sentiment, "provider_id", "sentiment")
        try:
            result = self._sentiment.classify(text)
        except ProviderUnavailable:
            raise
        except Exception as exc:
            raise ProviderUnavailable(str(provider_id), f"{type(exc).__name__}: {exc}") from exc

        try:
            label = str(result.label)
            score = float(result.score)
        except (AttributeError, TypeError, ValueError) as exc:
            raise ProviderUnavailable(str(provider_id), f"invalid result: {exc}") from exc
        if not label or score != score:
            raise ProviderUnavailable(str(provider_id), "invalid result: empty label or NaN score")

        return SentimentResult(label, clamp(score, 0.0, 1.0))


__all__ = [
    'FeatureExtractor', 'TextStats', 'FEATURE_SET_VERSION',
    'METAPHOR_CUES', 'SYMBOL_WORDS', 'MODAL_VERBS',
    'INDIVIDUAL_PRONOUNS', 'COLLECTIVE_PRONOUNS', 'NEGATION_CUES',
    'metaphor_density', 'symbol_alignment', 'modal_compression',
    'narrative_coherence', 'pronoun_distribution', 'emotional_tone', 'clamp',
    'SentimentProvider', 'SentimentResult', 'TransformersSentimentProvider',
]
