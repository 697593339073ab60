"""ABC notation export for staff rendering."""

from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple, Union

from ..core import AnalysisResult, NoteEvent, TimeSignature, Track
from ..core.constants import DEFAULT_QUANTIZE_RESOLUTION, PITCH_NAMES
from ..core.pitch import round_half_up

BARS_PER_LINE = 4


def is_sharp(midi: int) -> bool:
    return PITCH_NAMES[midi % 12].endswith("#")


def midi_to_abc(midi: int, natural: bool = False) -> str:
    """
    ABC pitch for a MIDI number: C4 = 'C', C5 = 'c', C6 = "c'", C3 = 'C,'.

    Sharps are written with '^'. ``natural`` prefixes a natural note with
    '=' to cancel an earlier sharp in the same bar.
    """
    name = PITCH_NAMES[midi % 12]
    octave = midi // 12 - 1
    if is_sharp(midi):
        accidental = "^"
    else:
        accidental = "=" if natural else ""
    letter = name[0]

    if octave >= 5:
        return accidental + letter.lower() + "'" * (octave - 5)
    return accidental + letter + "," * (4 - octave)


def _length(units: int) -> str:
    return "" if units == 1 else str(units)


class ABCExporter:
    """
    Render tracks as ABC notation.

    Note lengths are counted in grid units (``L:1/resolution``). Notes
    sharing an onset become chords, gaps become rests, and notes crossing
    a bar line are split and tied.
    """

    def __init__(self, resolution: int = DEFAULT_QUANTIZE_RESOLUTION):
        self.resolution = resolution

    def track_to_abc(
        self,
        track: Track,
        tempo: float,
        time_signature: Optional[TimeSignature] = None,
        index: int = 1,
    ) -> str:
        """
        Convert one track to an ABC tune.

        Args:
            track: Track to render
            tempo: Tempo in BPM (quarter-note beats)
            time_signature: Time signature (default 4/4)
            index: Tune reference number (X: field)

        Returns:
            ABC notation string
        """
        time_signature = time_signature or TimeSignature()
        bar_units = self._bar_units(time_signature)
        header = [
            f"X:{index}",
            f"T:{track.name}",
            f"M:{time_signature}",
            f"L:1/{self.resolution}",
            f"Q:1/4={round_half_up(tempo)}",
            "K:C",
        ]

        if track.is_empty:
            body = f"z{_length(bar_units)}|"
        else:
            body = self._body(track.notes, tempo, bar_units)
        return "\n".join(header) + "\n" + body + "\n"

    def to_abc(self, result: AnalysisResult) -> str:
        """All tracks of a result, one tune per track."""
        tunes = [
            self.track_to_abc(track, result.tempo, result.time_signature, index=i)
            for i, track in enumerate(result.tracks, start=1)
        ]
        return "\n".join(tunes)

    def export(self, result: AnalysisResult, output_path: Union[str, Path]) -> None:
        """Write all tracks to an .abc file."""
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        Path(output_path).write_text(self.to_abc(result), encoding="utf-8")

    def _bar_units(self, time_signature: TimeSignature) -> int:
        return max(1, time_signature.numerator * self.resolution // time_signature.denominator)

    def _to_units(self, seconds: float, tempo: float) -> int:
        unit_seconds = (60.0 / tempo) * 4 / self.resolution
        return round_half_up(seconds / unit_seconds)

    def _groups(self, notes, tempo: float) -> List[Tuple[int, int, List[int]]]:
        """(start, length, midi numbers) per distinct onset, in time order."""
        by_onset: Dict[int, List[NoteEvent]] = {}
        for note in notes:
            by_onset.setdefault(self._to_units(note.onset, tempo), []).append(note)

        starts = sorted(by_onset)
        groups = []
        for i, start in enumerate(starts):
            chord = by_onset[start]
            length = max(1, max(self._to_units(n.duration, tempo) for n in chord))
            if i + 1 < len(starts):
                length = min(length, starts[i + 1] - start)
            pitches = sorted({n.midi for n in chord})
            groups.append((start, length, pitches))
        return groups

    def _body(self, notes, tempo: float, bar_units: int) -> str:
        tokens: List[str] = []
        cursor = 0
        bars = 0
        # Natural MIDI numbers raised by a sharp earlier in the current bar
        raised: Set[int] = set()

        def spell(midi: int) -> str:
            if is_sharp(midi):
                raised.add(midi - 1)
                return midi_to_abc(midi)
            if midi in raised:
                raised.discard(midi)
                return midi_to_abc(midi, natural=True)
            return midi_to_abc(midi)

        def symbol_for(pitches: Optional[List[int]]) -> str:
            if pitches is None:
                return "z"
            if len(pitches) == 1:
                return spell(pitches[0])
            return "[" + "".join(spell(p) for p in pitches) + "]"

        def emit(pitches: Optional[List[int]], length: int) -> None:
            nonlocal cursor, bars
            while length > 0:
                room = bar_units - cursor % bar_units
                piece = min(length, room)
                length -= piece
                token = symbol_for(pitches) + _length(piece)
                if pitches is not None and length > 0:
                    token += "-"
                tokens.append(token)
                cursor += piece
                if cursor % bar_units == 0:
                    bars += 1
                    raised.clear()
                    tokens.append("|\n" if bars % BARS_PER_LINE == 0 else "|")

        for start, length, pitches in self._groups(notes, tempo):
            if start > cursor:
                emit(None, start - cursor)
            emit(pitches, length)

        # Complete the final bar
        if cursor % bar_units:
            emit(None, bar_units - cursor % bar_units)

        return self._join(tokens).rstrip("\n")

    @staticmethod
    def _join(tokens: List[str]) -> str:
        text = ""
        for token in tokens:
            if token.startswith("|") or not text or text.endswith("\n"):
                text += token
            else:
                text += " " + token
        return text
