"""Transcription layer - Orchestration from audio bytes to AnalysisResult.

- TranscriptionPipeline: load, separate, detect, quantize, assemble
- TranscriptionAssembler: combine per-stem notes and validate invariants
- ResultCache: optional content-addressed result cache
"""

from .assembler import TranscriptionAssembler
from .cache import ResultCache
from .pipeline import StageTimings, TranscriptionPipeline

__all__ = [
    "TranscriptionPipeline",
    "TranscriptionAssembler",
    "ResultCache",
    "StageTimings",
]
