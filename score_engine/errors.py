"""Error taxonomy for the transcription engine.

Every error carries a human-readable message and a machine-checkable
``kind`` string so callers can branch without parsing messages.
"""

from typing import Optional


class EngineError(Exception):
    """Base class for all engine errors."""

    kind = "engine"

    def __init__(self, message: str, *, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message, "stage": self.stage}


class DecodeError(EngineError):
    """Input bytes are not a recognized or parseable audio container."""

    kind = "decode"


class EmptyInputError(EngineError):
    """Zero bytes of input were supplied."""

    kind = "empty_input"


class SeparationError(EngineError):
    """Separation backend unavailable or crashed."""

    kind = "separation"


class DetectionError(EngineError):
    """Pitch/onset detection failed for a stem."""

    kind = "detection"


class StageTimeoutError(EngineError, TimeoutError):
    """A network-bound or long-running stage exceeded its time budget."""

    kind = "timeout"


class AssemblyError(EngineError):
    """An internal result invariant was violated (a defect, not user error)."""

    kind = "assembly"


class AnalysisCancelled(EngineError):
    """The caller cancelled the analysis run."""

    kind = "cancelled"


class ConfigError(EngineError, ValueError):
    """Invalid or unknown configuration value."""

    kind = "config"


class FetchError(EngineError):
    """The URL collaborator could not produce audio bytes."""

    kind = "fetch"


def error_kind(exc: BaseException) -> str:
    """Machine-checkable kind for any exception."""
    if isinstance(exc, EngineError):
        return exc.kind
    if isinstance(exc, TimeoutError):
        return StageTimeoutError.kind
    return "internal"
