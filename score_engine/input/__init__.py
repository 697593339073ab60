"""Input layer - waveform decoding and URL resolution."""

from .loader import WaveformLoader, sniff_format
from .url import VideoAudioFetcher

__all__ = [
    "WaveformLoader",
    "sniff_format",
    "VideoAudioFetcher",
]
