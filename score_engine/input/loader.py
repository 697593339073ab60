"""Waveform loading: decode audio bytes into a normalized sample buffer."""

import io
import logging
import tempfile
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import Optional, Tuple, Union

import librosa
import numpy as np
import soundfile as sf

from ..config import LoaderConfig
from ..core import WaveformBuffer
from ..errors import DecodeError, EmptyInputError, StageTimeoutError

logger = logging.getLogger(__name__)

# Containers soundfile reads from memory; the rest go through librosa/audioread
_SOUNDFILE_FORMATS = {"wav", "ogg", "flac"}
_SUFFIXES = {"wav": ".wav", "ogg": ".ogg", "flac": ".flac", "mp3": ".mp3", "m4a": ".m4a", "webm": ".webm"}


def sniff_format(data: bytes) -> Optional[str]:
    """
    Identify the audio container from its leading bytes.

    Returns:
        One of 'wav', 'ogg', 'flac', 'mp3', 'm4a', 'webm', or None if unrecognized
    """
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WAVE":
        return "wav"
    if data[:4] == b"OggS":
        return "ogg"
    if data[:4] == b"fLaC":
        return "flac"
    if data[:3] == b"ID3":
        return "mp3"
    if len(data) >= 2 and data[0] == 0xFF and (data[1] & 0xE0) == 0xE0 and (data[1] & 0x06) != 0:
        # MPEG audio frame sync with a valid layer
        return "mp3"
    if len(data) >= 12 and data[4:8] == b"ftyp":
        return "m4a"
    if data[:4] == b"\x1a\x45\xdf\xa3":
        return "webm"
    return None


class WaveformLoader:
    """Decodes audio byte streams into WaveformBuffers."""

    SUPPORTED_FORMATS = {"wav", "mp3", "ogg", "m4a", "flac", "webm"}

    def __init__(self, config: Optional[LoaderConfig] = None):
        """
        Initialize WaveformLoader.

        Args:
            config: Loader settings (target rate, mono, normalization, timeout)
        """
        self.config = config or LoaderConfig()

    def load_bytes(
        self,
        data: bytes,
        target_sr: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> WaveformBuffer:
        """
        Decode, resample and normalize an encoded audio byte stream.

        Args:
            data: Encoded audio (MP3/WAV/OGG/M4A/FLAC)
            target_sr: Output sample rate (default: config.target_sr)
            timeout: Decode budget in seconds (default: config.timeout)

        Returns:
            WaveformBuffer at the target rate, peak-normalized

        Raises:
            EmptyInputError: If zero bytes are supplied
            DecodeError: If the bytes are not a parseable audio container
            StageTimeoutError: If decoding exceeds the timeout
        """
        if not data:
            raise EmptyInputError("No audio data supplied (0 bytes)", stage="load")

        fmt = sniff_format(data)
        if fmt is None:
            raise DecodeError(
                f"Unrecognized audio container ({len(data)} bytes). "
                f"Supported: {sorted(self.SUPPORTED_FORMATS)}",
                stage="load",
            )

        target_sr = target_sr or self.config.target_sr
        timeout = self.config.timeout if timeout is None else timeout

        samples, sr = self._decode_with_timeout(data, fmt, timeout)
        logger.debug("Decoded %s: %d channel(s), %d samples at %d Hz", fmt, samples.shape[0], samples.shape[1], sr)

        if self.config.mono and samples.shape[0] > 1:
            samples = samples.mean(axis=0, keepdims=True)

        if sr != target_sr and samples.shape[1] > 0:
            samples = librosa.resample(samples, orig_sr=sr, target_sr=target_sr, axis=-1)

        if self.config.normalize:
            samples = self._normalize(samples)

        buffer = WaveformBuffer(samples=samples, sample_rate=target_sr)
        logger.info("Loaded %.2fs of %s audio (%d channel(s), %d Hz)", buffer.duration, fmt, buffer.channels, target_sr)
        return buffer

    def load_file(self, path: Union[str, Path], **kwargs) -> WaveformBuffer:
        """Read a file and decode its bytes."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Audio file not found: {path}")
        return self.load_bytes(path.read_bytes(), **kwargs)

    def _decode_with_timeout(
        self,
        data: bytes,
        fmt: str,
        timeout: Optional[float],
    ) -> Tuple[np.ndarray, int]:
        if timeout is None:
            return self._decode(data, fmt)

        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="decode")
        try:
            future = executor.submit(self._decode, data, fmt)
            try:
                return future.result(timeout=timeout)
            except FutureTimeoutError:
                future.cancel()
                raise StageTimeoutError(f"Decoding exceeded {timeout:.1f}s", stage="load")
        finally:
            executor.shutdown(wait=False)

    def _decode(self, data: bytes, fmt: str) -> Tuple[np.ndarray, int]:
        """Decode to (channels, samples) float32 at the native rate."""
        if fmt in _SOUNDFILE_FORMATS:
            try:
                audio, sr = sf.read(io.BytesIO(data), dtype="float32", always_2d=True)
                return audio.T, int(sr)
            except (sf.LibsndfileError, RuntimeError, TypeError) as e:
                logger.debug("soundfile could not decode %s: %s", fmt, e)
        return self._decode_via_librosa(data, fmt)

    def _decode_via_librosa(self, data: bytes, fmt: str) -> Tuple[np.ndarray, int]:
        # audioread backends need a real file path
        with tempfile.TemporaryDirectory(prefix="score_engine_") as tmp_dir:
            tmp_path = Path(tmp_dir) / f"input{_SUFFIXES[fmt]}"
            tmp_path.write_bytes(data)
            try:
                audio, sr = librosa.load(str(tmp_path), sr=None, mono=False)
            except Exception as e:
                raise DecodeError(f"Failed to decode {fmt} audio: {e}", stage="load") from e

        audio = np.asarray(audio, dtype=np.float32)
        if audio.ndim == 1:
            audio = audio[np.newaxis, :]
        return audio, int(sr)

    def _normalize(self, samples: np.ndarray) -> np.ndarray:
        """Normalize audio to [-1, 1] range using peak normalization."""
        peak = np.abs(samples).max() if samples.size else 0.0
        if peak > 0:
            samples = samples / peak
        return samples.astype(np.float32)
