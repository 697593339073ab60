"""Onset detection with an adaptive, noise-floor-relative threshold."""

from dataclasses import dataclass

import librosa
import numpy as np
from scipy.ndimage import median_filter
from scipy.signal import find_peaks

from ..config import DetectionConfig


@dataclass
class OnsetAnalysis:
    """Frame-level onset analysis of one signal."""

    envelope: np.ndarray  # Onset strength per frame
    threshold: np.ndarray  # Adaptive threshold per frame
    rms: np.ndarray  # Frame RMS energy
    onset_frames: np.ndarray  # Accepted onset frame indices
    sr: int
    hop_length: int

    @property
    def n_frames(self) -> int:
        return len(self.envelope)

    @property
    def onset_times(self) -> np.ndarray:
        return librosa.frames_to_time(self.onset_frames, sr=self.sr, hop_length=self.hop_length)


class OnsetDetector:
    """
    Detects note onsets from spectral flux.

    The threshold follows the local noise floor: a moving median of the
    onset envelope plus ``threshold_k`` moving median absolute deviations,
    plus a small fraction of the strongest onset. A frame-RMS gate then
    rejects peaks that do not rise above the energy floor of the frames
    preceding them.
    """

    FRAME_LENGTH = 2048
    ATTACK_FRAMES = 3

    def __init__(self, config: DetectionConfig = None):
        self.config = config or DetectionConfig()

    def envelope(self, audio: np.ndarray, sr: int) -> np.ndarray:
        """Spectral-flux onset strength envelope."""
        return librosa.onset.onset_strength(y=audio, sr=sr, hop_length=self.config.hop_length)

    def frame_rms(self, audio: np.ndarray) -> np.ndarray:
        return librosa.feature.rms(
            y=audio,
            frame_length=self.FRAME_LENGTH,
            hop_length=self.config.hop_length,
        )[0]

    def window_frames(self, sr: int) -> int:
        """Odd number of frames spanning the threshold window."""
        frames = max(3, int(round(self.config.threshold_window * sr / self.config.hop_length)))
        return frames | 1

    def adaptive_threshold(self, envelope: np.ndarray, sr: int) -> np.ndarray:
        """Per-frame threshold from the local median and median absolute deviation."""
        size = self.window_frames(sr)
        floor = median_filter(envelope, size=size, mode="nearest")
        spread = median_filter(np.abs(envelope - floor), size=size, mode="nearest")
        peak = float(envelope.max()) if len(envelope) else 0.0
        return floor + self.config.threshold_k * spread + self.config.relative_floor * peak

    def preceding_floor(self, rms: np.ndarray, frame: int, sr: int) -> float:
        """Low-percentile RMS of the frames before an onset's attack."""
        end = max(0, frame - self.ATTACK_FRAMES + 1)
        start = max(0, frame - self.window_frames(sr))
        if end <= start:
            return 0.0
        return float(np.percentile(rms[start:end], self.config.noise_floor_percentile))

    def detect(self, audio: np.ndarray, sr: int) -> OnsetAnalysis:
        """
        Detect onsets.

        Args:
            audio: Mono audio array
            sr: Sample rate

        Returns:
            OnsetAnalysis with envelope, threshold, RMS and accepted onsets
        """
        hop = self.config.hop_length
        envelope = self.envelope(audio, sr)
        rms = self.frame_rms(audio)

        n = min(len(envelope), len(rms))
        envelope = envelope[:n]
        rms = rms[:n]
        threshold = self.adaptive_threshold(envelope, sr)

        # Pad so a peak in the first frame can still be found
        padded = np.concatenate([[0.0], envelope, [0.0]])
        padded_threshold = np.concatenate([[np.inf], threshold, [np.inf]])
        distance = max(1, int(round(self.config.min_onset_gap * sr / hop)))
        peaks, _ = find_peaks(padded, height=padded_threshold, distance=distance)
        peaks = peaks - 1

        accepted = []
        for frame in peaks:
            if accepted and frame - accepted[-1] <= self.ATTACK_FRAMES and rms[frame] >= rms[accepted[-1]]:
                # Still rising within the previous attack
                continue
            attack = float(rms[frame:frame + self.ATTACK_FRAMES + 1].max())
            floor = self.preceding_floor(rms, int(frame), sr)
            if attack < self.config.silence_rms:
                continue
            if attack < self.config.gate_ratio * floor:
                continue
            accepted.append(int(frame))

        # Sound already present at the first frame has no flux peak of its own
        if n and float(rms[: self.ATTACK_FRAMES + 1].max()) >= self.config.silence_rms:
            if not accepted or accepted[0] >= distance:
                accepted.insert(0, 0)

        return OnsetAnalysis(
            envelope=envelope,
            threshold=threshold,
            rms=rms,
            onset_frames=np.asarray(accepted, dtype=int),
            sr=sr,
            hop_length=hop,
        )
