"""End-to-end transcription pipeline.

Pipeline:
1. Decode the input bytes into a WaveformBuffer
2. Estimate tempo and separate stems concurrently
3. Detect raw events in each stem in parallel
4. Quantize each stem's events once tempo is known
5. Assemble and validate the AnalysisResult
"""

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from ..analysis import PitchOnsetDetector, TempoEstimate, TempoEstimator
from ..config import EngineConfig
from ..core import AnalysisResult, CancellationToken, InstrumentClass, NoteEvent, Stem, StemFailure, WaveformBuffer
from ..core.cancellation import LinkedCancellationToken, check_cancelled
from ..errors import AnalysisCancelled, DetectionError, EngineError, StageTimeoutError, error_kind
from ..input import WaveformLoader
from ..processing import NoteQuantizer
from ..separation import SeparationBackend, SourceSeparator
from .assembler import TranscriptionAssembler
from .cache import ResultCache

logger = logging.getLogger(__name__)


@dataclass
class StageTimings:
    """Track timing of processing stages."""

    stages: Dict[str, float] = field(default_factory=dict)
    _current_stage: Optional[str] = field(default=None, repr=False)
    _start_time: float = field(default=0.0, repr=False)

    def start(self, stage: str) -> None:
        """Start timing a stage."""
        self._current_stage = stage
        self._start_time = time.time()

    def stop(self) -> float:
        """Stop timing the current stage, return duration."""
        if self._current_stage is None:
            return 0.0
        duration = time.time() - self._start_time
        self.stages[self._current_stage] = duration
        logger.debug("Stage %s took %.2fs", self._current_stage, duration)
        self._current_stage = None
        return duration

    @property
    def total_time(self) -> float:
        """Get total time across all stages."""
        return sum(self.stages.values())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "stages": dict(self.stages),
            "total_time": self.total_time,
        }


class TranscriptionPipeline:
    """
    Audio-to-score transcription.

    Components are constructed fresh for every run, so one pipeline can
    serve concurrent ``analyze`` calls.

    Usage:
        pipeline = TranscriptionPipeline()
        result = pipeline.analyze(audio_bytes)
        for track in result.tracks:
            print(track.name, track.note_count)
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        backend: Optional[SeparationBackend] = None,
    ):
        """
        Initialize TranscriptionPipeline.

        Args:
            config: Engine configuration (validated here)
            backend: Explicit separation backend (default: built from config)
        """
        self.config = (config or EngineConfig()).validate()
        self.backend = backend
        self.last_timings = StageTimings()

    def analyze_file(
        self,
        path: Union[str, Path],
        cancel: Optional[CancellationToken] = None,
    ) -> AnalysisResult:
        """Read an audio file and analyze its bytes."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Audio file not found: {path}")
        return self.analyze(path.read_bytes(), cancel=cancel)

    def analyze(
        self,
        data: bytes,
        cancel: Optional[CancellationToken] = None,
    ) -> AnalysisResult:
        """
        Transcribe encoded audio bytes into an AnalysisResult.

        Args:
            data: Encoded audio (WAV/MP3/OGG/M4A/FLAC)
            cancel: Optional cancellation token

        Returns:
            AnalysisResult; stems that failed are listed in ``failures``

        Raises:
            EmptyInputError: If data is empty
            DecodeError: If data is not a parseable audio container
            StageTimeoutError: If decoding exceeds its budget
            SeparationError: If the separation backend is unavailable or fails
            AnalysisCancelled: If cancelled
        """
        timings = StageTimings()
        self.last_timings = timings
        separator = SourceSeparator(self.config.separation, backend=self.backend)

        cache, cache_key = self._open_cache(data, separator)
        if cache is not None:
            cached = cache.get(cache_key)
            if cached is not None:
                logger.info("Using cached result for input %s", cache_key[:12])
                return cached

        check_cancelled(cancel, "load")
        timings.start("load")
        buffer = WaveformLoader(self.config.loader).load_bytes(data)
        timings.stop()

        result = self._run(buffer, separator, cancel, timings)

        if cache is not None:
            cache.put(cache_key, result)
        logger.debug("Total analysis time %.2fs", timings.total_time)
        return result

    def _open_cache(
        self,
        data: bytes,
        separator: SourceSeparator,
    ) -> Tuple[Optional[ResultCache], Optional[str]]:
        settings = self.config.pipeline
        if not settings.enable_cache or not data:
            return None, None
        cache = ResultCache(settings.cache_dir, ttl_hours=settings.cache_ttl_hours)
        key = ResultCache.make_key(data, self.config.fingerprint(), separator.version)
        return cache, key

    def _workers(self) -> int:
        if self.config.pipeline.max_workers:
            return self.config.pipeline.max_workers
        return len(self.config.separation.instruments) + 2

    def _run(
        self,
        buffer: WaveformBuffer,
        separator: SourceSeparator,
        cancel: Optional[CancellationToken],
        timings: StageTimings,
    ) -> AnalysisResult:
        pool = ThreadPoolExecutor(max_workers=self._workers(), thread_name_prefix="score-engine")
        stem_tokens: List[LinkedCancellationToken] = []
        try:
            estimator = TempoEstimator(self.config.tempo)
            tempo_future = pool.submit(estimator.estimate, buffer)

            timings.start("separation")
            stems = pool.submit(separator.separate, buffer, cancel).result()
            timings.stop()

            timings.start("detection")
            detector = PitchOnsetDetector(self.config.detection)
            futures: Dict[InstrumentClass, Future] = {}
            for instrument, stem in stems.items():
                token = LinkedCancellationToken(cancel)
                stem_tokens.append(token)
                futures[instrument] = pool.submit(self._detect_stem, detector, stem, token)

            tempo = self._tempo_result(tempo_future, estimator)
            events, failures = self._collect(futures, stem_tokens)
            timings.stop()

            timings.start("quantize")
            stem_notes: Dict[InstrumentClass, List[NoteEvent]] = {}
            quantizer = NoteQuantizer(tempo.bpm, tempo.time_signature, self.config.quantize)
            for instrument, stem_events in events.items():
                check_cancelled(cancel, "quantize")
                try:
                    stem_notes[instrument] = quantizer.quantize(stem_events, buffer.duration)
                except (EngineError, ValueError) as e:
                    failures.append(self._failure(instrument, e))
            timings.stop()
        finally:
            for token in stem_tokens:
                token.cancel()
            pool.shutdown(wait=False, cancel_futures=True)

        timings.start("assembly")
        result = TranscriptionAssembler(self.config.pipeline.embed_note_data).assemble(
            stem_notes,
            duration=buffer.duration,
            tempo=tempo.bpm,
            time_signature=tempo.time_signature,
            failures=failures,
        )
        timings.stop()
        return result

    @staticmethod
    def _detect_stem(
        detector: PitchOnsetDetector,
        stem: Stem,
        cancel: CancellationToken,
    ):
        try:
            return detector.detect(stem, cancel)
        except EngineError:
            raise
        except Exception as e:
            raise DetectionError(f"{stem.instrument.value} detection failed: {e}", stage="detection") from e

    def _tempo_result(self, future: Future, estimator: TempoEstimator) -> TempoEstimate:
        try:
            return future.result()
        except Exception as e:
            logger.warning("Tempo estimation failed (%s); using default %.0f BPM", e, estimator.config.default_tempo)
            return estimator.default

    def _collect(
        self,
        futures: Dict[InstrumentClass, Future],
        tokens: List[LinkedCancellationToken],
    ) -> Tuple[Dict[InstrumentClass, list], List[StemFailure]]:
        """Join detection results; per-stem errors become StemFailures."""
        timeout = self.config.pipeline.detection_timeout
        deadline = None if timeout is None else time.monotonic() + timeout

        events: Dict[InstrumentClass, list] = {}
        failures: List[StemFailure] = []
        for (instrument, future), token in zip(futures.items(), tokens):
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            try:
                events[instrument] = future.result(timeout=remaining)
            except FutureTimeout:
                token.cancel()
                error = StageTimeoutError(
                    f"{instrument.value} detection exceeded {timeout:.1f}s",
                    stage="detection",
                )
                failures.append(self._failure(instrument, error))
            except AnalysisCancelled:
                if token.parent is not None and token.parent.cancelled:
                    raise
                failures.append(self._failure(
                    instrument,
                    StageTimeoutError(f"{instrument.value} detection was stopped", stage="detection"),
                ))
            except EngineError as e:
                failures.append(self._failure(instrument, e))
        return events, failures

    @staticmethod
    def _failure(instrument: InstrumentClass, error: Exception) -> StemFailure:
        kind = error_kind(error)
        logger.warning("%s stem failed (%s): %s; track omitted", instrument.value, kind, error)
        return StemFailure(instrument=instrument, kind=kind, message=str(error))
