"""Note quantization - Snap detected events to a rhythmic grid."""

import logging
import math
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

from ..config import QuantizeConfig
from ..core import NoteEvent, RawEvent, TimeSignature
from ..core.constants import (
    GM_CLOSED_HIHAT,
    GM_KICK,
    GM_SNARE,
    VELOCITY_MAX,
    VELOCITY_MIN,
)
from ..core.pitch import freq_to_name, midi_to_name, round_half_up

logger = logging.getLogger(__name__)

# Attack centroid bands (Hz) for mapping unpitched hits to GM drums
KICK_MAX_CENTROID = 200.0
SNARE_MAX_CENTROID = 1000.0

# Dynamic range mapped onto MIDI velocity
VELOCITY_FLOOR_DB = -60.0

# Offsets this close to the track end are treated as ending at the end
END_EPSILON = 1e-9


def amplitude_to_velocity(amplitude: float) -> int:
    """Map peak amplitude (0-1 full scale) to MIDI velocity on a -60..0 dBFS scale."""
    if amplitude <= 0 or not math.isfinite(amplitude):
        return VELOCITY_MIN
    db = 20.0 * math.log10(amplitude)
    scaled = (db - VELOCITY_FLOOR_DB) / -VELOCITY_FLOOR_DB
    scaled = min(max(scaled, 0.0), 1.0)
    return int(min(max(round_half_up(VELOCITY_MAX * scaled), VELOCITY_MIN), VELOCITY_MAX))


def drum_pitch(centroid: Optional[float]) -> str:
    """General MIDI drum pitch name for an unpitched hit with the given centroid."""
    if centroid is None:
        return midi_to_name(GM_SNARE)
    if centroid < KICK_MAX_CENTROID:
        return midi_to_name(GM_KICK)
    if centroid < SNARE_MAX_CENTROID:
        return midi_to_name(GM_SNARE)
    return midi_to_name(GM_CLOSED_HIHAT)


class NoteQuantizer:
    """Quantize note timings to a rhythmic grid."""

    def __init__(
        self,
        tempo: float = 120.0,
        time_signature: Optional[TimeSignature] = None,
        config: Optional[QuantizeConfig] = None,
    ):
        """
        Initialize NoteQuantizer.

        Args:
            tempo: Tempo in BPM
            time_signature: Time signature (default 4/4)
            config: Grid resolution and duplicate handling
        """
        if tempo <= 0:
            raise ValueError(f"Tempo must be positive, got {tempo}")
        self.tempo = tempo
        self.time_signature = time_signature or TimeSignature()
        self.config = config or QuantizeConfig()

    @property
    def beat_duration(self) -> float:
        """Duration of one beat in seconds."""
        return 60.0 / self.tempo

    @property
    def grid_duration(self) -> float:
        """Duration of one grid unit in seconds."""
        return self.beat_duration * (4 / self.config.resolution)

    def snap_units(self, time: float) -> int:
        """Nearest grid index; exact ties go to the later grid point."""
        return round_half_up(time / self.grid_duration)

    def snap(self, time: float) -> float:
        """Snap time to nearest grid position."""
        return self.snap_units(time) * self.grid_duration

    def quantize(self, events: Iterable[RawEvent], track_duration: float) -> List[NoteEvent]:
        """
        Quantize raw detected events.

        Args:
            events: Raw events for one stem
            track_duration: Total duration every note must fit within

        Returns:
            NoteEvents sorted by onset, then MIDI number
        """
        notes = []
        dropped = 0
        for event in events:
            if event.is_pitched:
                pitch = freq_to_name(event.frequency)
            else:
                pitch = drum_pitch(event.centroid)
            note = self._place(
                pitch,
                event.onset,
                event.offset,
                amplitude_to_velocity(event.amplitude),
                track_duration,
            )
            if note is None:
                dropped += 1
                continue
            notes.append(note)

        result = self._finish(notes)
        logger.debug(
            "Quantized %d event(s) to %d note(s) at %.4fs grid (%d dropped at track end)",
            len(notes) + dropped,
            len(result),
            self.grid_duration,
            dropped,
        )
        return result

    def quantize_notes(self, notes: Iterable[NoteEvent], track_duration: float) -> List[NoteEvent]:
        """
        Re-quantize existing NoteEvents at this grid.

        Already-quantized input at the same grid comes back unchanged.
        """
        placed = []
        for note in notes:
            result = self._place(note.pitch, note.onset, note.offset, note.velocity, track_duration)
            if result is not None:
                placed.append(result)
        return self._finish(placed)

    def _place(
        self,
        pitch: str,
        onset: float,
        offset: float,
        velocity: int,
        track_duration: float,
    ) -> Optional[NoteEvent]:
        """Snap one note and clip it into [0, track_duration]."""
        grid = self.grid_duration
        onset_units = self.snap_units(onset)
        q_onset = onset_units * grid
        if q_onset >= track_duration:
            onset_units -= 1
            q_onset = onset_units * grid
        if onset_units < 0 or q_onset >= track_duration:
            return None

        offset_units = self.snap_units(offset)
        ends_at_track_end = (
            offset >= track_duration - END_EPSILON
            or offset_units * grid >= track_duration - END_EPSILON
        )
        if ends_at_track_end:
            duration = track_duration - q_onset
        else:
            # Ensure minimum duration
            duration = max(1, offset_units - onset_units) * grid

        if q_onset + duration > track_duration:
            duration = track_duration - q_onset
        while duration > 0 and q_onset + duration > track_duration:
            duration = float(np.nextafter(duration, 0.0))
        if duration <= 0:
            return None

        return NoteEvent(pitch=pitch, onset=q_onset, duration=duration, velocity=velocity)

    def _finish(self, notes: List[NoteEvent]) -> List[NoteEvent]:
        if self.config.merge_duplicates:
            notes = self._merge_duplicates(notes)
        return sorted(notes, key=lambda n: n.sort_key())

    @staticmethod
    def _merge_duplicates(notes: List[NoteEvent]) -> List[NoteEvent]:
        """Merge same-pitch notes sharing an onset (longest duration, loudest velocity)."""
        merged: Dict[Tuple[float, int], NoteEvent] = {}
        for note in notes:
            key = (note.onset, note.midi)
            existing = merged.get(key)
            if existing is None:
                merged[key] = note
                continue
            merged[key] = NoteEvent(
                pitch=existing.pitch,
                onset=existing.onset,
                duration=max(existing.duration, note.duration),
                velocity=max(existing.velocity, note.velocity),
            )
        return list(merged.values())
