"""Pitch analysis utilities."""

from typing import List, Optional, Tuple

import librosa
import numpy as np
from scipy.signal import find_peaks

from ..core import InstrumentProfile, midi_to_freq

# Semitone offsets of harmonics 2..6 above a fundamental
HARMONIC_OFFSETS = (12, 19, 24, 28, 31)


class PitchAnalyzer:
    """Low-level pitch detection and analysis."""

    CQT_MIN_MIDI = 24  # C1
    CQT_BINS = 84  # 7 octaves

    def __init__(
        self,
        sr: int = 22050,
        hop_length: int = 512,
        fmin: float = 65.0,  # C2
        fmax: float = 2093.0,  # C7
        frame_length: int = 2048,
    ):
        self.sr = sr
        self.hop_length = hop_length
        self.fmin = fmin
        self.fmax = fmax
        self.frame_length = frame_length

    @classmethod
    def for_profile(
        cls,
        profile: InstrumentProfile,
        sr: int,
        hop_length: int,
        margin: int = 12,
    ) -> "PitchAnalyzer":
        """Search range covering an instrument's prior range plus a margin."""
        if profile.pitch_range is None:
            return cls(sr=sr, hop_length=hop_length)
        low, high = profile.pitch_range
        fmin = max(midi_to_freq(low - margin), midi_to_freq(cls.CQT_MIN_MIDI))
        fmax = min(midi_to_freq(high + margin), sr / 4.0)
        return cls(sr=sr, hop_length=hop_length, fmin=fmin, fmax=fmax)

    def detect_f0(self, audio: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Detect fundamental frequency (f0) over time with pYIN.

        Args:
            audio: Mono audio array at self.sr

        Returns:
            Tuple of (f0 in Hz with NaN when unvoiced, voiced_flag, voiced_prob)
        """
        f0, voiced_flag, voiced_prob = librosa.pyin(
            audio,
            fmin=self.fmin,
            fmax=self.fmax,
            sr=self.sr,
            frame_length=self.frame_length,
            hop_length=self.hop_length,
        )
        return f0, voiced_flag, voiced_prob

    def segment_f0(
        self,
        f0: np.ndarray,
        voiced_prob: np.ndarray,
        start_frame: int,
        end_frame: int,
        min_frames: int = 2,
    ) -> Optional[Tuple[float, float]]:
        """
        Median voiced f0 within a frame range.

        Returns:
            (frequency, mean voiced probability), or None if too few voiced frames
        """
        seg_f0 = f0[start_frame:end_frame]
        seg_prob = voiced_prob[start_frame:end_frame]
        voiced = np.isfinite(seg_f0) & (seg_f0 > 0)
        if int(voiced.sum()) < min_frames:
            return None
        freq = float(np.median(seg_f0[voiced]))
        confidence = float(np.mean(seg_prob[voiced]))
        return freq, confidence

    def cqt_magnitude(self, audio: np.ndarray) -> np.ndarray:
        """Semitone-resolution CQT magnitude (bins x frames), bin 0 = C1."""
        return np.abs(librosa.cqt(
            audio,
            sr=self.sr,
            hop_length=self.hop_length,
            fmin=midi_to_freq(self.CQT_MIN_MIDI),
            n_bins=self.CQT_BINS,
            bins_per_octave=12,
        ))

    def bin_to_midi(self, bin_idx: int) -> int:
        return self.CQT_MIN_MIDI + int(bin_idx)

    def pick_pitches(
        self,
        spectrum: np.ndarray,
        peak_ratio: float,
        max_pitches: int,
    ) -> List[Tuple[int, float]]:
        """
        Find simultaneous pitches in a segment's CQT spectrum.

        Peaks lying on a harmonic of a stronger, lower peak are suppressed.

        Args:
            spectrum: Mean CQT magnitude per bin for the segment
            peak_ratio: Minimum peak height relative to the strongest bin
            max_pitches: Maximum number of pitches returned

        Returns:
            List of (bin index, relative strength 0-1), strongest first
        """
        max_energy = float(spectrum.max()) if len(spectrum) else 0.0
        if max_energy <= 0:
            return []

        padded = np.concatenate([[0.0], spectrum, [0.0]])
        peaks, _ = find_peaks(padded, height=peak_ratio * max_energy, distance=2)
        peaks = peaks - 1

        order = sorted(peaks, key=lambda b: (-spectrum[b], b))
        accepted: List[int] = []
        for bin_idx in order:
            if self._is_harmonic(bin_idx, accepted):
                continue
            accepted.append(int(bin_idx))
            if len(accepted) >= max_pitches:
                break

        return [(b, float(spectrum[b] / max_energy)) for b in accepted]

    @staticmethod
    def _is_harmonic(bin_idx: int, fundamentals: List[int]) -> bool:
        for fundamental in fundamentals:
            if fundamental >= bin_idx:
                continue
            if bin_idx - fundamental in HARMONIC_OFFSETS:
                return True
        return False
