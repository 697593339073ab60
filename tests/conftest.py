"""Shared fixtures: synthetic audio encoded to container bytes."""

import io

import numpy as np
import pytest
import soundfile as sf


def make_tone(
    freq: float,
    duration: float,
    sr: int,
    amplitude: float = 0.5,
    start: float = 0.0,
    total: float = None,
) -> np.ndarray:
    """Sine tone with short fades, optionally placed inside a longer silence."""
    total = duration + start if total is None else total
    out = np.zeros(int(round(total * sr)), dtype=np.float32)
    n = int(round(duration * sr))
    t = np.arange(n) / sr
    tone = amplitude * np.sin(2 * np.pi * freq * t)
    fade = min(n // 2, int(0.005 * sr))
    if fade:
        ramp = np.linspace(0.0, 1.0, fade)
        tone[:fade] *= ramp
        tone[-fade:] *= ramp[::-1]
    begin = int(round(start * sr))
    out[begin:begin + n] = tone[: len(out) - begin]
    return out


def make_clicks(bpm: float, duration: float, sr: int, amplitude: float = 0.8) -> np.ndarray:
    """Decaying noise bursts on every beat; deterministic."""
    rng = np.random.default_rng(0)
    out = np.zeros(int(round(duration * sr)), dtype=np.float32)
    burst_len = int(0.03 * sr)
    burst = rng.standard_normal(burst_len).astype(np.float32)
    burst *= np.exp(-np.linspace(0.0, 8.0, burst_len)).astype(np.float32)
    burst *= amplitude / np.max(np.abs(burst))
    period = 60.0 / bpm
    t = 0.0
    while t < duration:
        i = int(round(t * sr))
        chunk = burst[: len(out) - i]
        out[i:i + len(chunk)] += chunk
        t += period
    return out


def encode(samples: np.ndarray, sr: int, fmt: str = "WAV") -> bytes:
    """Encode samples (1-D or (n, channels)) to container bytes."""
    buf = io.BytesIO()
    sf.write(buf, samples, sr, format=fmt, subtype="PCM_16")
    return buf.getvalue()


@pytest.fixture
def sample_rate():
    return 22050


@pytest.fixture
def silent_wav(sample_rate):
    """10 seconds of mono digital silence."""
    return encode(np.zeros(10 * sample_rate, dtype=np.float32), sample_rate)


@pytest.fixture
def tone_wav(sample_rate):
    """A4 (440 Hz) from 0.5 s to 1.5 s inside 2.5 s."""
    return encode(make_tone(440.0, 1.0, sample_rate, start=0.5, total=2.5), sample_rate)


@pytest.fixture
def click_wav(sample_rate):
    """Click track at 120 BPM, 8 seconds."""
    return encode(make_clicks(120.0, 8.0, sample_rate), sample_rate)
