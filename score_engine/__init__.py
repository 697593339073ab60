"""score-engine - Audio to Score Transcription Engine.

Architecture Layers:
    1. input/         - Audio decoding and URL fetching
    2. separation/    - Source separation into per-instrument stems
    3. analysis/      - Onset, pitch and tempo analysis
    4. processing/    - Quantization to a rhythmic grid
    5. transcription/ - Pipeline orchestration and result assembly
    6. output/        - Export (JSON, MIDI, ABC, MusicXML, text summary)
"""

__version__ = "0.1.0"

# Core types
from .core import (
    AnalysisResult,
    CancellationToken,
    InstrumentClass,
    NoteEvent,
    RawEvent,
    Stem,
    StemFailure,
    TimeSignature,
    Track,
    WaveformBuffer,
)

# Configuration and errors
from .config import EngineConfig
from .errors import (
    AnalysisCancelled,
    AssemblyError,
    ConfigError,
    DecodeError,
    DetectionError,
    EmptyInputError,
    EngineError,
    FetchError,
    SeparationError,
    StageTimeoutError,
)

# Input layer
from .input import VideoAudioFetcher, WaveformLoader

# Separation layer
from .separation import SourceSeparator

# Analysis layer
from .analysis import PitchOnsetDetector, TempoEstimator

# Processing layer
from .processing import NoteQuantizer

# Transcription layer
from .transcription import TranscriptionAssembler, TranscriptionPipeline

# Output layer
from .output import to_dict, to_json

__all__ = [
    # Core
    "AnalysisResult",
    "CancellationToken",
    "InstrumentClass",
    "NoteEvent",
    "RawEvent",
    "Stem",
    "StemFailure",
    "TimeSignature",
    "Track",
    "WaveformBuffer",
    # Config / errors
    "EngineConfig",
    "EngineError",
    "DecodeError",
    "EmptyInputError",
    "SeparationError",
    "DetectionError",
    "StageTimeoutError",
    "AssemblyError",
    "AnalysisCancelled",
    "ConfigError",
    "FetchError",
    # Input
    "WaveformLoader",
    "VideoAudioFetcher",
    # Separation
    "SourceSeparator",
    # Analysis
    "PitchOnsetDetector",
    "TempoEstimator",
    # Processing
    "NoteQuantizer",
    # Transcription
    "TranscriptionPipeline",
    "TranscriptionAssembler",
    # Output
    "to_dict",
    "to_json",
]
