"""Transcription result types crossing the engine boundary."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .constants import DEFAULT_TIME_SIGNATURE
from .instruments import InstrumentClass
from .note import NoteEvent


@dataclass(frozen=True)
class TimeSignature:
    """Notated beats per measure over the beat note value."""

    numerator: int = DEFAULT_TIME_SIGNATURE[0]
    denominator: int = DEFAULT_TIME_SIGNATURE[1]

    def __post_init__(self):
        if self.numerator <= 0:
            raise ValueError(f"Numerator must be positive, got {self.numerator}")
        if self.denominator <= 0 or self.denominator & (self.denominator - 1):
            raise ValueError(f"Denominator must be a power of two, got {self.denominator}")

    def __str__(self) -> str:
        return f"{self.numerator}/{self.denominator}"

    @classmethod
    def parse(cls, text: str) -> "TimeSignature":
        """Parse '3/4' style strings."""
        try:
            num, den = text.split("/")
            return cls(int(num), int(den))
        except ValueError:
            raise ValueError(f"Invalid time signature: {text!r}")

    def as_tuple(self) -> Tuple[int, int]:
        return (self.numerator, self.denominator)


@dataclass(frozen=True)
class Track:
    """Transcribed notes for one instrument."""

    name: str
    instrument: InstrumentClass
    notes: Tuple[NoteEvent, ...] = ()
    raw_data: Optional[str] = None  # Serialized note data for caching

    @property
    def note_count(self) -> int:
        return len(self.notes)

    @property
    def is_empty(self) -> bool:
        return not self.notes

    def pitch_names(self, limit: Optional[int] = None) -> List[str]:
        notes = self.notes if limit is None else self.notes[:limit]
        return [n.pitch for n in notes]


@dataclass(frozen=True)
class StemFailure:
    """A stem whose processing failed and whose track was omitted."""

    instrument: InstrumentClass
    kind: str
    message: str


@dataclass(frozen=True)
class AnalysisResult:
    """Complete transcription of one recording."""

    tracks: Tuple[Track, ...]
    duration: float
    tempo: float
    time_signature: TimeSignature = field(default_factory=TimeSignature)
    failures: Tuple[StemFailure, ...] = ()

    @property
    def total_notes(self) -> int:
        return sum(t.note_count for t in self.tracks)

    @property
    def is_partial(self) -> bool:
        """True when at least one stem failed."""
        return bool(self.failures)

    @property
    def failed_instruments(self) -> List[InstrumentClass]:
        return [f.instrument for f in self.failures]

    def get_track(self, instrument: InstrumentClass) -> Optional[Track]:
        for track in self.tracks:
            if track.instrument == instrument:
                return track
        return None

    def summary(self) -> Dict:
        """Get summary statistics."""
        return {
            "duration": self.duration,
            "tempo": self.tempo,
            "time_signature": str(self.time_signature),
            "total_notes": self.total_notes,
            "tracks": {t.instrument.value: t.note_count for t in self.tracks},
            "failed": [f.instrument.value for f in self.failures],
        }
