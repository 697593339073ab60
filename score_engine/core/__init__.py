"""Core types and constants for score-engine."""

from .note import NoteEvent, RawEvent
from .waveform import WaveformBuffer, Stem
from .result import AnalysisResult, StemFailure, TimeSignature, Track
from .instruments import InstrumentClass, InstrumentProfile, INSTRUMENT_PROFILES, get_profile
from .cancellation import CancellationToken
from .pitch import freq_to_midi, freq_to_name, midi_to_freq, midi_to_name, pitch_to_midi
from .constants import (
    PITCH_NAMES,
    DEFAULT_SR,
    ANALYSIS_SR,
    DEFAULT_HOP_LENGTH,
    DEFAULT_TEMPO,
)

__all__ = [
    "NoteEvent",
    "RawEvent",
    "WaveformBuffer",
    "Stem",
    "AnalysisResult",
    "StemFailure",
    "TimeSignature",
    "Track",
    "InstrumentClass",
    "InstrumentProfile",
    "INSTRUMENT_PROFILES",
    "get_profile",
    "CancellationToken",
    "freq_to_midi",
    "freq_to_name",
    "midi_to_freq",
    "midi_to_name",
    "pitch_to_midi",
    "PITCH_NAMES",
    "DEFAULT_SR",
    "ANALYSIS_SR",
    "DEFAULT_HOP_LENGTH",
    "DEFAULT_TEMPO",
]
