"""Exception hierarchy for proxyperf.

Setup and parse errors abort the current measurement run.  Per-request
transfer errors are absorbed by the benchmark workers and never escape
the engine.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from proxyperf.models import Stage


class MeasurementError(Exception):
    """Base class for every failure of a measurement run."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        # Filled in by the runner with the stage that was active.
        self.stage: Optional[Stage] = None


class FetchError(MeasurementError):
    """A provider document could not be downloaded."""


class ConfigParseError(MeasurementError):
    """The provider configuration document is malformed."""

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"Invalid configuration field {field!r}: {reason}")
        self.field = field
        self.reason = reason


class CandidateParseError(MeasurementError):
    """A catalog entry, or the whole catalog, could not be used."""


class NoReachableCandidate(MeasurementError):
    """Every probed candidate failed its latency probes."""


class TransferError(MeasurementError):
    """A single benchmark request failed on the network."""


class ThreadPoolError(MeasurementError):
    """The sized worker pool could not be built or refused work."""


class ProxySelectionError(MeasurementError):
    """A control-plane call failed."""
