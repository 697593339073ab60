"""Per-stem onset, offset, pitch and amplitude detection.

Detection mode follows the stem's instrument class:
- percussion: onsets only, frequency None, attack centroid recorded
- monophonic: one pYIN pitch per onset segment
- polyphonic: CQT peak picking, several overlapping pitches per onset
"""

import logging
from typing import List, Optional, Tuple

import librosa
import numpy as np

from ..config import DetectionConfig
from ..core import CancellationToken, InstrumentProfile, RawEvent, Stem
from ..core.cancellation import check_cancelled
from ..core.pitch import freq_to_midi_float, midi_to_freq
from .onset import OnsetAnalysis, OnsetDetector
from .pitch import PitchAnalyzer

logger = logging.getLogger(__name__)


class PitchOnsetDetector:
    """Detects raw (unquantized) note events in a single stem."""

    ATTACK_SECONDS = 0.1

    def __init__(self, config: Optional[DetectionConfig] = None):
        """
        Initialize PitchOnsetDetector.

        Args:
            config: Detection thresholds and analysis resolution
        """
        self.config = config or DetectionConfig()
        self.onset_detector = OnsetDetector(self.config)

    def detect(
        self,
        stem: Stem,
        cancel: Optional[CancellationToken] = None,
    ) -> List[RawEvent]:
        """
        Detect events in a stem.

        Args:
            stem: Separated stem
            cancel: Optional cancellation token, checked between segments

        Returns:
            Events sorted by (onset, frequency); unpitched events have frequency None
        """
        check_cancelled(cancel, "detection")
        duration = stem.duration
        audio, sr = self._prepare(stem)

        if len(audio) == 0 or float(np.max(np.abs(audio))) < self.config.silence_rms:
            logger.debug("%s stem is silent", stem.instrument.value)
            return []

        onsets = self.onset_detector.detect(audio, sr)
        if len(onsets.onset_frames) == 0:
            logger.debug("%s stem: no onsets above threshold", stem.instrument.value)
            return []

        profile = stem.profile
        mode = profile.detection_mode
        if mode == "percussion":
            events = self._detect_percussion(audio, sr, onsets, duration, cancel)
        elif mode == "polyphonic":
            events = self._detect_polyphonic(audio, sr, onsets, profile, duration, cancel)
        else:
            events = self._detect_monophonic(audio, sr, onsets, profile, duration, cancel)

        events = [e for e in events if e.duration >= self.config.min_note_duration]
        events.sort(key=lambda e: (e.onset, e.frequency or 0.0, e.offset))
        logger.debug(
            "%s stem: %d onset(s), %d event(s) (%s)",
            stem.instrument.value,
            len(onsets.onset_frames),
            len(events),
            mode,
        )
        return events

    def _prepare(self, stem: Stem) -> Tuple[np.ndarray, int]:
        """Mono downmix at the analysis rate."""
        audio = stem.waveform.to_mono()
        sr = stem.sample_rate
        if sr != self.config.analysis_sr and len(audio) > 0:
            audio = librosa.resample(audio, orig_sr=sr, target_sr=self.config.analysis_sr)
            sr = self.config.analysis_sr
        return audio.astype(np.float32), sr

    def _segments(self, onsets: OnsetAnalysis) -> List[Tuple[int, int]]:
        """(start_frame, end_frame) spans from each onset to the next."""
        frames = list(onsets.onset_frames)
        bounds = frames[1:] + [onsets.n_frames]
        return [(int(s), int(e)) for s, e in zip(frames, bounds) if e > s]

    def _release_frame(self, curve: np.ndarray, start: int, end: int) -> int:
        """First frame after the peak where the curve decays below release_ratio x peak."""
        segment = curve[start:end]
        if len(segment) == 0:
            return end
        peak_idx = int(np.argmax(segment))
        peak = float(segment[peak_idx])
        floor = max(self.config.release_ratio * peak, 0.0)
        below = np.nonzero(segment[peak_idx:] < floor)[0]
        if len(below) == 0:
            return end
        return start + peak_idx + int(below[0])

    def _frame_time(self, frame: int, onsets: OnsetAnalysis, duration: float) -> float:
        if frame >= onsets.n_frames:
            return duration
        t = float(librosa.frames_to_time(frame, sr=onsets.sr, hop_length=onsets.hop_length))
        return min(t, duration)

    def _span_peak(self, audio: np.ndarray, sr: int, onset: float, offset: float) -> float:
        start = int(onset * sr)
        end = max(start + 1, int(offset * sr))
        segment = audio[start:end]
        if len(segment) == 0:
            return 0.0
        return float(np.max(np.abs(segment)))

    def _detect_percussion(
        self,
        audio: np.ndarray,
        sr: int,
        onsets: OnsetAnalysis,
        duration: float,
        cancel: Optional[CancellationToken],
    ) -> List[RawEvent]:
        events = []
        for start, end in self._segments(onsets):
            check_cancelled(cancel, "detection")
            release = self._release_frame(onsets.rms, start, end)
            onset = self._frame_time(start, onsets, duration)
            offset = self._frame_time(max(release, start + 1), onsets, duration)
            if offset <= onset:
                continue

            events.append(RawEvent(
                onset=onset,
                offset=offset,
                frequency=None,
                amplitude=self._span_peak(audio, sr, onset, offset),
                confidence=1.0,
                centroid=self._attack_centroid(audio, sr, onset),
            ))
        return events

    def _attack_centroid(self, audio: np.ndarray, sr: int, onset: float) -> float:
        """Spectral centroid (Hz) of the first ATTACK_SECONDS after an onset."""
        start = int(onset * sr)
        segment = audio[start:start + int(self.ATTACK_SECONDS * sr)]
        if len(segment) < 2:
            return 0.0
        spectrum = np.abs(np.fft.rfft(segment * np.hanning(len(segment))))
        total = float(spectrum.sum())
        if total <= 0:
            return 0.0
        freqs = np.fft.rfftfreq(len(segment), d=1.0 / sr)
        return float(np.sum(freqs * spectrum) / total)

    def _detect_monophonic(
        self,
        audio: np.ndarray,
        sr: int,
        onsets: OnsetAnalysis,
        profile: InstrumentProfile,
        duration: float,
        cancel: Optional[CancellationToken],
    ) -> List[RawEvent]:
        analyzer = PitchAnalyzer.for_profile(profile, sr=sr, hop_length=self.config.hop_length)
        f0, _, voiced_prob = analyzer.detect_f0(audio)
        check_cancelled(cancel, "detection")

        events = []
        for start, end in self._segments(onsets):
            check_cancelled(cancel, "detection")
            release = self._release_frame(onsets.rms, start, end)
            stop = max(release, start + 1)

            estimate = analyzer.segment_f0(f0, voiced_prob, start, stop)
            if estimate is None:
                continue
            freq, confidence = estimate

            weight = profile.prior_weight(freq_to_midi_float(freq), self.config.prior_falloff)
            if confidence * weight < self.config.min_confidence:
                continue

            onset = self._frame_time(start, onsets, duration)
            offset = self._frame_time(stop, onsets, duration)
            if offset <= onset:
                continue

            events.append(RawEvent(
                onset=onset,
                offset=offset,
                frequency=freq,
                amplitude=self._span_peak(audio, sr, onset, offset),
                confidence=confidence * weight,
            ))
        return events

    def _detect_polyphonic(
        self,
        audio: np.ndarray,
        sr: int,
        onsets: OnsetAnalysis,
        profile: InstrumentProfile,
        duration: float,
        cancel: Optional[CancellationToken],
    ) -> List[RawEvent]:
        analyzer = PitchAnalyzer(sr=sr, hop_length=self.config.hop_length)
        cqt = analyzer.cqt_magnitude(audio)
        check_cancelled(cancel, "detection")
        n_frames = min(cqt.shape[1], onsets.n_frames)

        events = []
        for start, end in self._segments(onsets):
            check_cancelled(cancel, "detection")
            end = min(end, n_frames)
            if start >= end:
                continue

            spectrum = cqt[:, start:end].mean(axis=1)
            pitches = analyzer.pick_pitches(
                spectrum,
                peak_ratio=self.config.peak_ratio,
                max_pitches=self.config.max_polyphony,
            )
            if not pitches:
                continue

            onset = self._frame_time(start, onsets, duration)
            segment_peak = self._span_peak(
                audio, sr, onset, self._frame_time(end, onsets, duration)
            )

            for bin_idx, strength in pitches:
                midi = analyzer.bin_to_midi(bin_idx)
                confidence = strength * profile.prior_weight(midi, self.config.prior_falloff)
                if confidence < self.config.min_confidence:
                    continue

                release = self._release_frame(cqt[bin_idx], start, end)
                offset = self._frame_time(max(release, start + 1), onsets, duration)
                if offset <= onset:
                    continue

                events.append(RawEvent(
                    onset=onset,
                    offset=offset,
                    frequency=midi_to_freq(midi),
                    amplitude=segment_peak * strength,
                    confidence=confidence,
                ))
        return events
