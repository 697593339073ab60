"""Note events - the fundamental units of musical transcription."""

from dataclasses import dataclass
from typing import Optional

from .pitch import freq_to_midi, is_valid_pitch, pitch_to_midi


@dataclass(frozen=True)
class RawEvent:
    """Unquantized event produced by onset/pitch detection."""

    onset: float  # Start time in seconds
    offset: float  # End time in seconds
    frequency: Optional[float]  # Fundamental in Hz, None for unpitched hits
    amplitude: float  # Peak absolute amplitude in the event window
    confidence: float = 1.0
    centroid: Optional[float] = None  # Spectral centroid of the attack (Hz)

    @property
    def duration(self) -> float:
        return self.offset - self.onset

    @property
    def is_pitched(self) -> bool:
        return self.frequency is not None

    @property
    def midi(self) -> Optional[int]:
        if self.frequency is None:
            return None
        return freq_to_midi(self.frequency)


@dataclass(frozen=True)
class NoteEvent:
    """A notated note: pitch name, timing in seconds and MIDI velocity."""

    pitch: str  # e.g. 'C4', 'F#2', 'Bb3'
    onset: float
    duration: float
    velocity: int = 64

    def __post_init__(self):
        if not is_valid_pitch(self.pitch):
            raise ValueError(f"Invalid pitch name: {self.pitch!r}")
        if self.onset < 0:
            raise ValueError(f"Onset must be >= 0, got {self.onset}")
        if self.duration <= 0:
            raise ValueError(f"Duration must be > 0, got {self.duration}")
        if not 0 <= self.velocity <= 127:
            raise ValueError(f"Velocity must be in 0-127, got {self.velocity}")

    @property
    def offset(self) -> float:
        """End time in seconds."""
        return self.onset + self.duration

    @property
    def midi(self) -> int:
        """MIDI number of the pitch."""
        return pitch_to_midi(self.pitch)

    def sort_key(self):
        return (self.onset, self.midi, self.duration, self.velocity)
