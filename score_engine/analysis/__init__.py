"""Analysis layer - Signal-level analysis of stems and mixes.

This layer extracts timing and pitch from audio:
- Onset detection with an adaptive noise-floor threshold
- Pitch detection (pYIN for monophonic, CQT peaks for polyphonic)
- Tempo and time signature estimation
"""

from .onset import OnsetAnalysis, OnsetDetector
from .pitch import PitchAnalyzer
from .detector import PitchOnsetDetector
from .tempo import TempoEstimate, TempoEstimator, clamp_tempo

__all__ = [
    "OnsetAnalysis",
    "OnsetDetector",
    "PitchAnalyzer",
    "PitchOnsetDetector",
    "TempoEstimate",
    "TempoEstimator",
    "clamp_tempo",
]
