"""
Error types and per-frame conditions for the measurement pipeline.
"""

from enum import Enum


class RomError(Exception):
    """Base class for measurement errors."""


class ConfigurationError(RomError):
    """A joint/movement combination or setting the pipeline does not support."""


class SaveFailure(RomError):
    """The persistence collaborator failed to store a confirmed measurement."""


class SessionStateError(RomError):
    """A user action was requested in a state that does not allow it."""


class Condition(str, Enum):
    """
    Transient per-frame conditions.

    These are reported to the UI through the session snapshot and are
    never raised.
    """
    LOW_CONFIDENCE = "low_confidence"
    DEGENERATE_GEOMETRY = "degenerate_geometry"
    DRIFT_EXCEEDED = "drift_exceeded"
    COMPENSATION_DETECTED = "compensation_detected"
