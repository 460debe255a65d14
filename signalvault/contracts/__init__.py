"""
Contracts Package

Immutable records and the error taxonomy shared by every component.
Components import from here, never from each other's implementations.
"""

from .base import ErrorCode, Error, utc_now
from .errors import (
    SignalVaultError, ProviderUnavailable, MalformedMessage, PersistenceFailure
)
from .records import (
    AlertType, Severity, Trend, ResonanceStatus,
    Message, FeatureVector, Baseline, DriftAlert, ResonanceScore,
    MetricDrift, UnitReport, BatchResult,
    NUMERIC_FIELDS, NEUTRAL_SENTIMENT_LABEL, NEUTRAL_SENTIMENT_SCORE,
    sort_alerts,
)

__all__ = [
    'ErrorCode', 'Error', 'utc_now',
    'SignalVaultError', 'ProviderUnavailable', 'MalformedMessage', 'PersistenceFailure',
    'AlertType', 'Severity', 'Trend', 'ResonanceStatus',
    'Message', 'FeatureVector', 'Baseline', 'DriftAlert', 'ResonanceScore',
    'MetricDrift', 'UnitReport', 'BatchResult',
    'NUMERIC_FIELDS', 'NEUTRAL_SENTIMENT_LABEL', 'NEUTRAL_SENTIMENT_SCORE',
    'sort_alerts',
]
