"""
Base Contracts and Shared Types

Foundational types used across all components of the drift engine.
All types here are IMMUTABLE and represent pure data.

BOUNDARY ENFORCEMENT:
=====================
- This module is READ-ONLY from all components
- No behavior beyond construction helpers
- All types are frozen dataclasses or enums
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Tuple
from enum import Enum, auto


def utc_now() -> datetime:
    """Timezone-aware current time. Every timestamp in the engine uses UTC."""
    return datetime.now(timezone.utc)


# =============================================================================
# ERROR STATES (Explicit, never silent)
# =============================================================================

class ErrorCode(Enum):
    """
    Explicit error codes for failures that are reported as data.

    Recovered failures (provider fallbacks) are not reported here; they
    surface through observability only.
    """
    # Message errors
    MALFORMED_MESSAGE = auto()

    # Provider errors
    PROVIDER_UNAVAILABLE = auto()

    # Persistence errors
    PERSISTENCE_FAILURE = auto()

    # Anything a unit cycle raised that is not classified above
    UNIT_CYCLE_FAILED = auto()


@dataclass(frozen=True)
class Error:
    """
    Immutable error representation with full context.
    Errors are data, not exceptions - they can be returned and logged.
    """
    code: ErrorCode
    message: str
    timestamp: datetime
    unit_id: str = ""
    context: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def with_context(self, key: str, value: str) -> Error:
        """Return new Error with additional context (immutable)."""
        return Error(
            code=self.code,
            message=self.message,
            timestamp=self.timestamp,
            unit_id=self.unit_id,
            context=self.context + ((key, value),)
        )
