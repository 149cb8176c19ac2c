"""Error taxonomy for the state exporter.

Per-key errors (TransientFetchError, DecodeError) are captured by the shard
worker and recorded as unresolved keys. Everything else is fatal and stops
the run.
"""

from __future__ import annotations

from typing import Any


class ExporterError(Exception):
    """Base class for all exporter errors."""


class TransientFetchError(ExporterError):
    """A single key could not be fetched from the ledger."""


class DecodeError(ExporterError):
    """A fetched payload does not match the expected schema."""


class LedgerUnavailable(ExporterError):
    """The ledger transport failed after exhausting its retries."""


class CorruptArtifact(ExporterError):
    """An existing persisted artifact cannot be parsed."""

    def __init__(self, name: str, reason: str):
        super().__init__(f"corrupt artifact {name}: {reason}")
        self.name = name
        self.reason = reason


class InvariantViolation(ExporterError):
    """Partition, merge or verification invariant broken."""

    def __init__(self, message: str, details: list[Any] | None = None):
        super().__init__(message)
        self.details = details or []


class InvalidHeight(ExporterError, ValueError):
    """Weight requested at a height before its checkpoint."""


class WeightOverflow(ExporterError, OverflowError):
    """Accrued weight does not fit the u128 range."""


__all__ = [
    "CorruptArtifact",
    "DecodeError",
    "ExporterError",
    "InvalidHeight",
    "InvariantViolation",
    "LedgerUnavailable",
    "TransientFetchError",
    "WeightOverflow",
]
