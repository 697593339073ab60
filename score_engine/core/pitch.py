"""Pitch math: frequency, MIDI numbers and notated pitch names."""

import math
import re
from typing import Optional

from .constants import (
    A4_FREQUENCY,
    A4_MIDI,
    LETTER_SEMITONES,
    MIDI_MAX,
    MIDI_MIN,
    PITCH_NAMES,
)

_PITCH_RE = re.compile(r"^([A-Ga-g])([#b]*)(-?\d+)$")

# Decimal places kept before rounding so that values which are mathematically
# on a half step do not land a hair below it.
_ROUND_DIGITS = 9


def round_half_up(value: float) -> int:
    """Round to the nearest integer, exact halves toward +inf."""
    return int(math.floor(round(value, _ROUND_DIGITS) + 0.5))


def freq_to_midi_float(freq: float) -> float:
    """Convert frequency (Hz) to a fractional MIDI number."""
    if freq <= 0 or not math.isfinite(freq):
        raise ValueError(f"Frequency must be positive and finite, got {freq}")
    return A4_MIDI + 12.0 * math.log2(freq / A4_FREQUENCY)


def freq_to_midi(freq: float) -> int:
    """Convert frequency (Hz) to the nearest MIDI pitch.

    A frequency exactly between two semitones rounds up.
    """
    return round_half_up(freq_to_midi_float(freq))


def midi_to_freq(midi: float) -> float:
    """Convert MIDI pitch to frequency (Hz)."""
    return A4_FREQUENCY * (2 ** ((midi - A4_MIDI) / 12.0))


def midi_to_name(midi: int) -> str:
    """Get note name for a MIDI number (e.g. 60 -> 'C4', 61 -> 'C#4')."""
    octave = (midi // 12) - 1
    return f"{PITCH_NAMES[midi % 12]}{octave}"


def freq_to_name(freq: float) -> str:
    """Nearest notated pitch name for a frequency, clamped to the MIDI range."""
    midi = max(MIDI_MIN, min(MIDI_MAX, freq_to_midi(freq)))
    return midi_to_name(midi)


def parse_pitch(name: str) -> Optional[tuple]:
    """Split a pitch name into (letter, accidentals, octave), or None."""
    match = _PITCH_RE.match(name.strip())
    if match is None:
        return None
    letter, accidentals, octave = match.groups()
    return letter.upper(), accidentals, int(octave)


def pitch_to_midi(name: str) -> int:
    """
    Convert a pitch name to a MIDI number.

    Uses the letter table C=0, D=2, E=4, F=5, G=7, A=9, B=11, an octave
    offset of (octave + 1) * 12 and +1/-1 per sharp/flat.

    Raises:
        ValueError: If the name is not a valid pitch name
    """
    parsed = parse_pitch(name)
    if parsed is None:
        raise ValueError(f"Invalid pitch name: {name!r}")
    letter, accidentals, octave = parsed
    midi = LETTER_SEMITONES[letter] + (octave + 1) * 12
    midi += accidentals.count("#") - accidentals.count("b")
    return midi


def is_valid_pitch(name: str) -> bool:
    """Check whether a string is a notated pitch name."""
    return parse_pitch(name) is not None
