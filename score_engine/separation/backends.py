"""Separation backends.

A backend turns a mix into per-instrument sample arrays. Two are provided:

- ``SpectralMaskBackend``: STFT soft masks built from a harmonic/percussive
  split and instrument band priors. The masks form a partition of unity in
  every time-frequency bin, so the stems sum back to the mix.
- ``DemucsBackend``: the Demucs neural model (optional dependency).

Reference: https://github.com/facebookresearch/demucs
"""

import logging
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Dict, List, Optional

import librosa
import numpy as np

from ..config import SeparationConfig
from ..core import CancellationToken, InstrumentClass, WaveformBuffer, get_profile
from ..core.cancellation import check_cancelled
from ..errors import SeparationError

logger = logging.getLogger(__name__)


class SeparationBackend(ABC):
    """Abstract base class for source separation backends."""

    name = "base"
    version = "0"

    def __init__(self, config: SeparationConfig):
        self.config = config

    @abstractmethod
    def separate(
        self,
        mix: WaveformBuffer,
        instruments: List[InstrumentClass],
        cancel: Optional[CancellationToken] = None,
    ) -> Dict[InstrumentClass, np.ndarray]:
        """
        Split a mix into per-instrument sample arrays.

        Args:
            mix: Input waveform
            instruments: Requested instrument classes
            cancel: Optional cancellation token

        Returns:
            Mapping of instrument class to (channels, n_samples) arrays
        """

    @property
    def is_available(self) -> bool:
        return True


class SpectralMaskBackend(SeparationBackend):
    """Deterministic time-frequency mask separation."""

    name = "spectral"
    version = "1"

    def separate(
        self,
        mix: WaveformBuffer,
        instruments: List[InstrumentClass],
        cancel: Optional[CancellationToken] = None,
    ) -> Dict[InstrumentClass, np.ndarray]:
        n_fft = self.config.n_fft
        hop = self.config.hop_length
        n = mix.n_samples

        # Complex STFT per channel: (channels, freq, frames)
        spec = librosa.stft(mix.samples, n_fft=n_fft, hop_length=hop)
        magnitude = np.abs(spec).mean(axis=0)
        check_cancelled(cancel, "separation")

        weights = self._weights(magnitude, mix.sample_rate, instruments)
        check_cancelled(cancel, "separation")

        total = np.zeros_like(magnitude)
        for w in weights.values():
            total += w

        # Bins with no weight at all go to the catch-all class
        fallback = self._fallback_class(instruments)
        empty = total <= 0
        if np.any(empty):
            weights[fallback] = np.where(empty, 1.0, weights[fallback])
            total = np.where(empty, 1.0, total)

        stems = OrderedDict()
        for instrument in instruments:
            check_cancelled(cancel, "separation")
            mask = weights[instrument] / total
            stem = librosa.istft(spec * mask[np.newaxis, :, :], hop_length=hop, n_fft=n_fft, length=n)
            stems[instrument] = stem.astype(np.float32)
        return stems

    def _weights(
        self,
        magnitude: np.ndarray,
        sr: int,
        instruments: List[InstrumentClass],
    ) -> Dict[InstrumentClass, np.ndarray]:
        """Non-negative per-instrument weights summing to the magnitude."""
        pitched = [i for i in instruments if not get_profile(i).is_percussive]
        percussive = [i for i in instruments if get_profile(i).is_percussive]

        if percussive and pitched:
            kernel = self.config.hpss_kernel
            harmonic, perc = librosa.decompose.hpss(magnitude, kernel_size=kernel, mask=True)
            harmonic = harmonic * magnitude
            perc = perc * magnitude
        elif percussive:
            harmonic, perc = np.zeros_like(magnitude), magnitude
        else:
            harmonic, perc = magnitude, np.zeros_like(magnitude)

        weights = OrderedDict()
        for instrument in percussive:
            weights[instrument] = perc / len(percussive)

        if pitched:
            freqs = np.maximum(librosa.fft_frequencies(sr=sr, n_fft=self.config.n_fft), 1.0)
            bands = np.stack([self._band_weight(i, freqs) for i in pitched])
            bands /= bands.sum(axis=0, keepdims=True)
            for idx, instrument in enumerate(pitched):
                weights[instrument] = harmonic * bands[idx][:, np.newaxis]
        return weights

    @staticmethod
    def _band_weight(instrument: InstrumentClass, freqs: np.ndarray) -> np.ndarray:
        """Log-frequency Gaussian around an instrument's band, with a small floor."""
        profile = get_profile(instrument)
        if profile.band_hz is None:
            return np.full_like(freqs, 0.1)
        low, high = profile.band_hz
        center = 0.5 * (np.log2(low) + np.log2(high))
        width = max(0.5 * (np.log2(high) - np.log2(low)), 0.25)
        curve = np.exp(-0.5 * ((np.log2(freqs) - center) / width) ** 2)
        return profile.band_gain * curve + 1e-3

    @staticmethod
    def _fallback_class(instruments: List[InstrumentClass]) -> InstrumentClass:
        if InstrumentClass.OTHER in instruments:
            return InstrumentClass.OTHER
        return instruments[-1]


class DemucsBackend(SeparationBackend):
    """
    Neural separation with Demucs.

    htdemucs_6s separates drums, bass, vocals, guitar, piano and other;
    4-stem models leave piano and guitar inside 'other'.
    """

    name = "demucs"

    MODELS = {
        "htdemucs": "4-stem: drums, bass, vocals, other",
        "htdemucs_ft": "4-stem fine-tuned (highest quality, slower)",
        "htdemucs_6s": "6-stem: drums, bass, vocals, guitar, piano, other",
        "mdx_extra": "4-stem MDX-Net (good quality, faster)",
    }

    def __init__(self, config: SeparationConfig):
        super().__init__(config)
        self._model = None
        self._device = "cpu"

    @property
    def version(self) -> str:
        return f"demucs:{self.config.demucs_model}"

    @property
    def is_available(self) -> bool:
        try:
            import torch  # noqa: F401
            import demucs  # noqa: F401
            return True
        except ImportError:
            return False

    def _get_device(self) -> str:
        """Determine the device to use."""
        if self.config.device != "auto":
            return self.config.device

        import torch

        if torch.cuda.is_available():
            return "cuda"
        if hasattr(torch.backends, "mps") and torch.backends.mps.is_available():
            return "mps"
        return "cpu"

    def _load_model(self):
        """Load Demucs model lazily."""
        if self._model is not None:
            return

        if not self.is_available:
            raise SeparationError(
                "Demucs backend unavailable. Install with: pip install score-engine[separation]",
                stage="separation",
            )

        from demucs.pretrained import get_model

        try:
            self._model = get_model(self.config.demucs_model)
        except Exception as e:
            raise SeparationError(f"Failed to load Demucs model {self.config.demucs_model!r}: {e}", stage="separation") from e

        self._device = self._get_device()
        if self._device != "cpu":
            self._model.to(self._device)
        self._model.eval()

    def separate(
        self,
        mix: WaveformBuffer,
        instruments: List[InstrumentClass],
        cancel: Optional[CancellationToken] = None,
    ) -> Dict[InstrumentClass, np.ndarray]:
        self._load_model()
        check_cancelled(cancel, "separation")

        import torch
        import torchaudio
        from demucs.apply import apply_model

        # Demucs expects exactly 2 channels
        audio_tensor = torch.tensor(mix.samples, dtype=torch.float32)
        if audio_tensor.shape[0] == 1:
            audio_tensor = audio_tensor.repeat(2, 1)
        elif audio_tensor.shape[0] > 2:
            audio_tensor = audio_tensor[:2, :]

        model_sr = self._model.samplerate
        if mix.sample_rate != model_sr:
            audio_tensor = torchaudio.functional.resample(audio_tensor, mix.sample_rate, model_sr)

        ref = audio_tensor.mean(0)
        scale = ref.std() + 1e-8
        audio_tensor = ((audio_tensor - ref.mean()) / scale).unsqueeze(0)

        try:
            with torch.no_grad():
                sources = apply_model(
                    self._model,
                    audio_tensor,
                    shifts=0,
                    split=True,
                    overlap=0.25,
                    device=self._device,
                )
        except Exception as e:
            raise SeparationError(f"Demucs inference failed: {e}", stage="separation") from e

        sources = (sources * scale + ref.mean())[0].cpu()
        check_cancelled(cancel, "separation")

        by_name = {}
        for idx, name in enumerate(self._model.sources):
            stem = sources[idx]
            if mix.sample_rate != model_sr:
                stem = torchaudio.functional.resample(stem, model_sr, mix.sample_rate)
            stem = stem.numpy()[:, : mix.n_samples]
            if mix.channels == 1:
                stem = stem.mean(axis=0, keepdims=True)
            by_name[name] = stem.astype(np.float32)

        stems = OrderedDict()
        for instrument in instruments:
            if instrument.value in by_name:
                stems[instrument] = by_name.pop(instrument.value)

        # Sources the caller did not ask for are folded into the catch-all
        if by_name and stems:
            fallback = InstrumentClass.OTHER if InstrumentClass.OTHER in stems else next(reversed(stems))
            for leftover in by_name.values():
                stems[fallback] = stems[fallback] + leftover
        return stems


BACKENDS = {
    SpectralMaskBackend.name: SpectralMaskBackend,
    DemucsBackend.name: DemucsBackend,
}


def create_backend(config: SeparationConfig) -> SeparationBackend:
    """Instantiate the configured separation backend."""
    try:
        backend_cls = BACKENDS[config.backend]
    except KeyError:
        raise SeparationError(f"Unknown separation backend: {config.backend!r}", stage="separation")
    return backend_cls(config)
