"""Instrument classes and their detection priors.

Pitch ranges here are priors: they bias detection confidence and the
separation band layout, they never force notes into existence.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple


class InstrumentClass(Enum):
    """Instrument classes a mix can be separated into."""
    VOCALS = "vocals"
    PIANO = "piano"
    BASS = "bass"
    GUITAR = "guitar"
    DRUMS = "drums"
    OTHER = "other"
    UNKNOWN = "unknown"

    @classmethod
    def priority_order(cls) -> List["InstrumentClass"]:
        """Canonical ordering of instrument classes in results."""
        return [
            cls.VOCALS,
            cls.PIANO,
            cls.BASS,
            cls.GUITAR,
            cls.DRUMS,
            cls.OTHER,
            cls.UNKNOWN,
        ]

    @property
    def priority(self) -> int:
        return InstrumentClass.priority_order().index(self)

    @property
    def display_name(self) -> str:
        return self.value.title()


@dataclass(frozen=True)
class InstrumentProfile:
    """Detection priors for one instrument class."""
    pitch_range: Optional[Tuple[int, int]]  # MIDI pitch range
    band_hz: Optional[Tuple[float, float]]  # Dominant spectral band
    is_percussive: bool = False
    is_polyphonic: bool = False
    band_gain: float = 1.0

    @property
    def detection_mode(self) -> str:
        """Suggested detection mode for this instrument."""
        if self.is_percussive:
            return "percussion"
        elif self.is_polyphonic:
            return "polyphonic"
        else:
            return "monophonic"

    def prior_weight(self, midi: float, falloff: float = 0.1) -> float:
        """Confidence weight for a pitch: 1.0 inside the range, decaying outside."""
        if self.pitch_range is None:
            return 1.0
        low, high = self.pitch_range
        if midi < low:
            distance = low - midi
        elif midi > high:
            distance = midi - high
        else:
            return 1.0
        return max(0.0, 1.0 - falloff * distance)


INSTRUMENT_PROFILES = {
    InstrumentClass.VOCALS: InstrumentProfile(
        pitch_range=(40, 84),  # E2 to C6
        band_hz=(180.0, 1100.0),
        band_gain=1.0,
    ),
    InstrumentClass.PIANO: InstrumentProfile(
        pitch_range=(21, 108),  # A0 to C8
        band_hz=(100.0, 4200.0),
        is_polyphonic=True,
        band_gain=0.8,
    ),
    InstrumentClass.BASS: InstrumentProfile(
        pitch_range=(28, 67),  # E1 to G4
        band_hz=(30.0, 250.0),
        band_gain=1.2,
    ),
    InstrumentClass.GUITAR: InstrumentProfile(
        pitch_range=(40, 88),  # E2 to E6
        band_hz=(80.0, 1400.0),
        is_polyphonic=True,
        band_gain=0.8,
    ),
    InstrumentClass.DRUMS: InstrumentProfile(
        pitch_range=None,
        band_hz=None,
        is_percussive=True,
    ),
    InstrumentClass.OTHER: InstrumentProfile(
        pitch_range=(24, 108),
        band_hz=(1000.0, 8000.0),
        band_gain=0.5,
    ),
    InstrumentClass.UNKNOWN: InstrumentProfile(
        pitch_range=None,
        band_hz=None,
    ),
}


def get_profile(instrument: InstrumentClass) -> InstrumentProfile:
    """Look up the detection priors for an instrument class."""
    return INSTRUMENT_PROFILES[instrument]
