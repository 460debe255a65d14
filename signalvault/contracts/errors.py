"""
Exception taxonomy.

Exceptions are raised at the component that detects the failure and
handled at the seam that owns recovery:

- ProviderUnavailable: caught by the feature extractor / embedding scorer,
  replaced with neutral values.
- MalformedMessage: caught by the engine, counted as skipped.
- PersistenceFailure: caught by the engine per unit, reported as an Error.
"""

from __future__ import annotations


class SignalVaultError(Exception):
    """Base class for all engine errors."""


class ProviderUnavailable(SignalVaultError):
    """An embedding or sentiment provider failed, timed out or is not installed."""

    def __init__(self, provider: str, reason: str):
        super().__init__(f"{provider} unavailable: {reason}")
        self.provider = provider
        self.reason = reason


class MalformedMessage(SignalVaultError):
    """Message has no analysable text."""

    def __init__(self, message_id: str, reason: str = "empty text"):
        super().__init__(f"message {message_id!r} is malformed: {reason}")
        self.message_id = message_id
        self.reason = reason


class PersistenceFailure(SignalVaultError):
    """The key-value backend could not read or write a record."""

    def __init__(self, key: str, operation: str, reason: str):
        super().__init__(f"{operation} failed for {key!r}: {reason}")
        self.key = key
        self.operation = operation
        self.reason = reason
