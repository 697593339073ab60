"""Tempo and meter estimation."""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import librosa
import numpy as np

from ..config import TempoConfig
from ..core import TimeSignature, WaveformBuffer

logger = logging.getLogger(__name__)

# Peak level below which a mix is treated as having no rhythm at all
SILENCE_PEAK = 1e-4


@dataclass(frozen=True)
class TempoEstimate:
    """Container for tempo analysis results."""

    bpm: float
    time_signature: TimeSignature = TimeSignature()
    confidence: float = 0.0
    fallback: bool = False  # True when defaults were used

    @property
    def beat_duration(self) -> float:
        return 60.0 / self.bpm


def clamp_tempo(bpm: float, min_bpm: float, max_bpm: float) -> float:
    """Clamp a BPM value into [min_bpm, max_bpm]."""
    return float(min(max(bpm, min_bpm), max_bpm))


class TempoEstimator:
    """
    Estimate tempo and time signature of a mix.

    Tempo is the dominant periodicity of the onset-strength envelope's
    autocorrelation, weighted by a log-Gaussian prior. The estimate never
    fails: silent or aperiodic input yields the configured default tempo
    with ``fallback=True``.
    """

    def __init__(self, config: Optional[TempoConfig] = None):
        self.config = config or TempoConfig()

    @property
    def default(self) -> TempoEstimate:
        num, den = self.config.default_time_signature
        return TempoEstimate(
            bpm=float(self.config.default_tempo),
            time_signature=TimeSignature(num, den),
            confidence=0.0,
            fallback=True,
        )

    def estimate(self, buffer: WaveformBuffer) -> TempoEstimate:
        """
        Estimate tempo and time signature.

        Args:
            buffer: Full mixed waveform

        Returns:
            TempoEstimate; BPM always within [min_bpm, max_bpm]
        """
        if buffer.n_samples == 0 or buffer.peak < SILENCE_PEAK:
            logger.info("Mix is silent; tempo falls back to %.0f BPM", self.config.default_tempo)
            return self.default

        audio, sr = self._prepare(buffer)
        hop = self.config.hop_length
        envelope = librosa.onset.onset_strength(y=audio, sr=sr, hop_length=hop)
        acf = self.autocorrelation(envelope)
        if acf is None:
            logger.info("No onset periodicity; tempo falls back to %.0f BPM", self.config.default_tempo)
            return self.default

        frame_rate = sr / hop
        found = self._best_period(acf, frame_rate)
        if found is None:
            logger.info("Input too short for tempo search; using default")
            return self.default
        period, confidence = found

        if confidence < self.config.min_confidence:
            logger.info(
                "Tempo confidence %.2f below %.2f; using default %.0f BPM",
                confidence,
                self.config.min_confidence,
                self.config.default_tempo,
            )
            return self.default

        raw_bpm = 60.0 * frame_rate / period
        bpm = clamp_tempo(raw_bpm, self.config.min_bpm, self.config.max_bpm)
        if bpm != raw_bpm:
            logger.debug("Raw tempo %.1f BPM clamped to %.1f", raw_bpm, bpm)

        time_signature = self.time_signature(acf, period)
        logger.info(
            "Tempo %.1f BPM, %s (confidence %.2f)",
            bpm,
            time_signature,
            confidence,
        )
        return TempoEstimate(
            bpm=bpm,
            time_signature=time_signature,
            confidence=confidence,
            fallback=False,
        )

    def _prepare(self, buffer: WaveformBuffer) -> Tuple[np.ndarray, int]:
        audio = buffer.to_mono()
        sr = buffer.sample_rate
        if sr != self.config.analysis_sr:
            audio = librosa.resample(audio, orig_sr=sr, target_sr=self.config.analysis_sr)
            sr = self.config.analysis_sr
        return audio, sr

    @staticmethod
    def autocorrelation(envelope: np.ndarray) -> Optional[np.ndarray]:
        """
        Unbiased autocorrelation of a mean-removed envelope, normalized so lag 0 = 1.

        Only lags up to half the envelope length are returned; None if the
        envelope has no variance.
        """
        n = len(envelope)
        if n < 4:
            return None
        centered = envelope.astype(np.float64) - float(np.mean(envelope))
        max_lag = n // 2
        acf = librosa.autocorrelate(centered, max_size=max_lag)
        acf = acf / (n - np.arange(len(acf)))
        if acf[0] <= 0:
            return None
        return acf / acf[0]

    def _best_period(self, acf: np.ndarray, frame_rate: float) -> Optional[Tuple[float, float]]:
        """Prior-weighted autocorrelation peak, refined to sub-frame precision."""
        min_lag = max(1, int(np.floor(60.0 * frame_rate / self.config.search_max_bpm)))
        max_lag = min(len(acf) - 1, int(np.ceil(60.0 * frame_rate / self.config.search_min_bpm)))
        if max_lag <= min_lag:
            return None

        lags = np.arange(min_lag, max_lag + 1)
        bpms = 60.0 * frame_rate / lags
        prior = np.exp(-0.5 * (np.log2(bpms / self.config.prior_center) / self.config.prior_octaves) ** 2)
        scores = np.clip(acf[lags], 0.0, None) * prior
        best = int(lags[int(np.argmax(scores))])
        confidence = float(np.clip(acf[best], 0.0, 1.0))

        period = float(best)
        if min_lag < best < max_lag:
            y0, y1, y2 = acf[best - 1], acf[best], acf[best + 1]
            denom = y0 - 2.0 * y1 + y2
            if denom < 0:
                shift = 0.5 * (y0 - y2) / denom
                period += float(np.clip(shift, -0.5, 0.5))
        return period, confidence

    def time_signature(self, acf: np.ndarray, period: float) -> TimeSignature:
        """3/4 when the 3-beat periodicity clearly beats the 4-beat one, else the default."""
        num, den = self.config.default_time_signature
        default = TimeSignature(num, den)
        lag3 = int(round(3 * period))
        lag4 = int(round(4 * period))
        if lag4 >= len(acf):
            return default
        triple = float(acf[lag3])
        quad = float(acf[lag4])
        if triple > 0 and triple > quad * self.config.triple_margin:
            return TimeSignature(3, 4)
        return default
