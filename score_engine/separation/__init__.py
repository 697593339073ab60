"""Source separation module for multi-instrument transcription.

Splits a mix into stems:
- vocals
- piano
- bass
- guitar
- drums
- other

This enables per-instrument transcription for multi-instrument audio.
"""

from .backends import (
    BACKENDS,
    DemucsBackend,
    SeparationBackend,
    SpectralMaskBackend,
    create_backend,
)
from .separator import SourceSeparator

__all__ = [
    "SourceSeparator",
    "SeparationBackend",
    "SpectralMaskBackend",
    "DemucsBackend",
    "BACKENDS",
    "create_backend",
]
