"""
SignalVault - Temporal Linguistic Drift Engine

Tracks whether an organizational unit's communication style is drifting
from its own historical norm, and how closely its language resonates
with the mission statement.

COMPONENT STRUCTURE:
====================

1. ANONYMIZATION (signalvault/anonymization/)
   - Markup stripping, PII redaction, user pseudonyms
   - MUST run before any feature is computed or stored

2. FEATURES (signalvault/features/)
   - Fixed, versioned lexical feature set
   - Optional sentiment provider
   - MUST NOT: touch storage or the network

3. EMBEDDINGS (signalvault/embeddings/)
   - Injected embedding providers, cosine similarity
   - Degrades to neutral scores on provider failure

4. STORAGE (signalvault/storage/)
   - Key-value boundary, per-unit baselines (append only)

5. DRIFT & RESONANCE (signalvault/drift/, signalvault/resonance/)
   - Threshold-based alerts, mission resonance index

6. ENGINE (signalvault/engine.py)
   - DriftEngine.process_batch: the only call surface

CROSS-CUTTING:
==============
- contracts/ - immutable records and the error taxonomy
- observability/ - audit log and metrics
- config.py - dataclass configuration
"""

from .config import EngineConfig
from .contracts import (
    Message, FeatureVector, Baseline, DriftAlert, ResonanceScore, BatchResult,
    AlertType, Severity, Trend, ResonanceStatus,
)
from .engine import DriftEngine

__version__ = "0.1.0"

__all__ = [
    'DriftEngine', 'EngineConfig',
    'Message', 'FeatureVector', 'Baseline', 'DriftAlert', 'ResonanceScore', 'BatchResult',
    'AlertType', 'Severity', 'Trend', 'ResonanceStatus',
]
