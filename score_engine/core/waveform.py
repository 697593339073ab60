"""Waveform buffers and separated stems."""

from dataclasses import dataclass, field

import numpy as np

from .instruments import InstrumentClass, InstrumentProfile, get_profile


@dataclass(frozen=True, eq=False)
class WaveformBuffer:
    """
    Immutable multi-channel sample buffer.

    Samples are stored as a read-only float32 array shaped
    (channels, n_samples); 1-D input is treated as mono.
    """

    samples: np.ndarray
    sample_rate: int

    def __post_init__(self):
        if not isinstance(self.sample_rate, (int, np.integer)) or self.sample_rate <= 0:
            raise ValueError(f"Sample rate must be a positive integer, got {self.sample_rate!r}")

        samples = np.array(self.samples, dtype=np.float32, copy=True)
        if samples.ndim == 1:
            samples = samples[np.newaxis, :]
        if samples.ndim != 2 or samples.shape[0] == 0:
            raise ValueError(f"Samples must be (channels, n_samples), got shape {samples.shape}")
        samples.flags.writeable = False

        object.__setattr__(self, "samples", samples)
        object.__setattr__(self, "sample_rate", int(self.sample_rate))

    @property
    def channels(self) -> int:
        return int(self.samples.shape[0])

    @property
    def n_samples(self) -> int:
        return int(self.samples.shape[1])

    @property
    def duration(self) -> float:
        """Duration in seconds."""
        return self.n_samples / self.sample_rate

    def to_mono(self) -> np.ndarray:
        """Downmix to a 1-D float32 array (a copy)."""
        if self.channels == 1:
            return self.samples[0].copy()
        return self.samples.mean(axis=0).astype(np.float32)

    @property
    def peak(self) -> float:
        if self.n_samples == 0:
            return 0.0
        return float(np.max(np.abs(self.samples)))

    @property
    def rms(self) -> float:
        """RMS energy over all channels."""
        if self.n_samples == 0:
            return 0.0
        return float(np.sqrt(np.mean(self.samples.astype(np.float64) ** 2)))

    def is_silent(self, threshold: float = 0.0) -> bool:
        """Check if buffer is silent (RMS at or below threshold)."""
        return self.rms <= threshold


@dataclass(frozen=True, eq=False)
class Stem:
    """Isolated single-instrument waveform extracted from a mix."""

    instrument: InstrumentClass
    waveform: WaveformBuffer
    energy_ratio: float = field(default=1.0)  # Share of mix energy

    @property
    def profile(self) -> InstrumentProfile:
        return get_profile(self.instrument)

    @property
    def duration(self) -> float:
        return self.waveform.duration

    @property
    def sample_rate(self) -> int:
        return self.waveform.sample_rate
