"""MusicXML export functionality.

One part per track; notes sharing an onset become chords. Durations are
snapped to the quantization grid in quarter lengths so music21 can build
measures and ties.
"""

from pathlib import Path
from typing import Dict, List, Union

from music21 import chord as m21_chord
from music21 import metadata, meter, stream
from music21 import note as m21_note
from music21 import tempo as m21_tempo

from ..core import AnalysisResult, NoteEvent, Track
from ..core.constants import DEFAULT_QUANTIZE_RESOLUTION
from ..core.pitch import round_half_up


class MusicXMLExporter:
    """Export an AnalysisResult to MusicXML via music21."""

    def __init__(
        self,
        title: str = "Transcribed Music",
        resolution: int = DEFAULT_QUANTIZE_RESOLUTION,
    ):
        """
        Initialize MusicXMLExporter.

        Args:
            title: Score title
            resolution: Grid subdivisions per whole note used for durations
        """
        self.title = title
        self.resolution = resolution

    def to_score(self, result: AnalysisResult) -> stream.Score:
        """Build a music21 Score with one Part per track."""
        score = stream.Score()
        score.metadata = metadata.Metadata()
        score.metadata.title = self.title

        for track in result.tracks:
            score.insert(0, self._part(track, result))
        return score

    def _part(self, track: Track, result: AnalysisResult) -> stream.Part:
        part = stream.Part()
        part.id = track.instrument.value
        part.partName = track.name

        part.insert(0, m21_tempo.MetronomeMark(number=result.tempo))
        part.insert(0, meter.TimeSignature(str(result.time_signature)))

        by_onset: Dict[float, List[NoteEvent]] = {}
        for n in track.notes:
            by_onset.setdefault(self._quarters(n.onset, result.tempo, allow_zero=True), []).append(n)

        offsets = sorted(by_onset)
        for i, offset in enumerate(offsets):
            notes = by_onset[offset]
            length = max(self._quarters(n.duration, result.tempo) for n in notes)
            # Single voice per part
            if i + 1 < len(offsets):
                length = min(length, offsets[i + 1] - offset)
            midis = sorted({n.midi for n in notes})
            if len(midis) == 1:
                element = m21_note.Note()
                element.pitch.midi = midis[0]
            else:
                element = m21_chord.Chord(midis)
            element.duration.quarterLength = length
            element.volume.velocity = max(n.velocity for n in notes)
            part.insert(offset, element)

        return part

    def _quarters(self, seconds: float, tempo: float, allow_zero: bool = False) -> float:
        """Seconds to quarter lengths, snapped to the grid."""
        per_quarter = self.resolution / 4
        units = round_half_up(seconds * tempo / 60.0 * per_quarter)
        if not allow_zero:
            units = max(1, units)
        return units / per_quarter

    def export(self, result: AnalysisResult, output_path: Union[str, Path]) -> None:
        """
        Export a result to a MusicXML file.

        Args:
            result: Analysis result
            output_path: Path to output MusicXML file
        """
        score = self.to_score(result)

        # Ensure output directory exists
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)

        score.write("musicxml", fp=str(output_path))
