"""MIDI export functionality."""

from pathlib import Path
from typing import Union

import pretty_midi

from ..core import AnalysisResult, InstrumentClass, Track

# General MIDI program per instrument class
GM_PROGRAMS = {
    InstrumentClass.VOCALS: 53,  # Voice Oohs
    InstrumentClass.PIANO: 0,  # Acoustic Grand Piano
    InstrumentClass.BASS: 33,  # Electric Bass (finger)
    InstrumentClass.GUITAR: 25,  # Acoustic Guitar (steel)
    InstrumentClass.DRUMS: 0,
    InstrumentClass.OTHER: 48,  # String Ensemble 1
    InstrumentClass.UNKNOWN: 0,
}


class MIDIExporter:
    """Export an AnalysisResult to a multi-track MIDI file."""

    def to_pretty_midi(self, result: AnalysisResult) -> pretty_midi.PrettyMIDI:
        """
        Build a PrettyMIDI object with one instrument per track.

        Args:
            result: Analysis result

        Returns:
            PrettyMIDI at the result's tempo; the drum track is flagged as drums
        """
        midi = pretty_midi.PrettyMIDI(initial_tempo=result.tempo)
        numerator, denominator = result.time_signature.as_tuple()
        midi.time_signature_changes.append(pretty_midi.TimeSignature(numerator, denominator, 0.0))

        for track in result.tracks:
            midi.instruments.append(self._instrument(track))
        return midi

    def _instrument(self, track: Track) -> pretty_midi.Instrument:
        instrument = pretty_midi.Instrument(
            program=GM_PROGRAMS.get(track.instrument, 0),
            is_drum=track.instrument == InstrumentClass.DRUMS,
            name=track.name,
        )
        for note in track.notes:
            # Millisecond precision
            start = round(note.onset, 3)
            end = max(round(note.offset, 3), start + 0.001)
            instrument.notes.append(pretty_midi.Note(
                velocity=max(1, note.velocity),
                pitch=note.midi,
                start=start,
                end=end,
            ))
        return instrument

    def export(self, result: AnalysisResult, output_path: Union[str, Path]) -> None:
        """
        Export a result to a MIDI file.

        Args:
            result: Analysis result
            output_path: Path to output MIDI file
        """
        midi = self.to_pretty_midi(result)

        # Ensure output directory exists
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)

        midi.write(str(output_path))
