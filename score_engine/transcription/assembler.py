"""Assemble per-stem notes into one validated AnalysisResult."""

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from ..core import AnalysisResult, InstrumentClass, NoteEvent, StemFailure, TimeSignature, Track
from ..errors import AssemblyError
from ..output.serialize import notes_to_json

logger = logging.getLogger(__name__)


class TranscriptionAssembler:
    """
    Combine quantized per-stem notes into an AnalysisResult.

    Pure aggregation: tracks are ordered by instrument priority and every
    result invariant is checked before the result is returned.
    """

    def __init__(self, embed_note_data: bool = False):
        """
        Initialize TranscriptionAssembler.

        Args:
            embed_note_data: Store serialized notes in Track.raw_data
        """
        self.embed_note_data = embed_note_data

    def assemble(
        self,
        stem_notes: Dict[InstrumentClass, Sequence[NoteEvent]],
        duration: float,
        tempo: float,
        time_signature: Optional[TimeSignature] = None,
        failures: Iterable[StemFailure] = (),
    ) -> AnalysisResult:
        """
        Build the result.

        Args:
            stem_notes: Quantized notes per instrument class
            duration: Total duration in seconds (the decoded waveform duration)
            tempo: Tempo in BPM
            time_signature: Time signature (default 4/4)
            failures: Stems whose processing failed

        Returns:
            AnalysisResult with tracks in canonical instrument order

        Raises:
            AssemblyError: If any invariant is violated
        """
        if duration < 0:
            raise AssemblyError(f"Duration must be >= 0, got {duration}", stage="assembly")
        if not tempo > 0:
            raise AssemblyError(f"Tempo must be positive, got {tempo}", stage="assembly")

        failures = tuple(failures)
        failed = {f.instrument for f in failures}
        overlap = failed & set(stem_notes)
        if overlap:
            names = ", ".join(sorted(i.value for i in overlap))
            raise AssemblyError(f"Stem(s) reported both as failed and transcribed: {names}", stage="assembly")

        tracks: List[Track] = []
        for instrument in InstrumentClass.priority_order():
            if instrument not in stem_notes:
                continue
            notes = tuple(stem_notes[instrument])
            self._validate_notes(instrument, notes, duration)
            tracks.append(Track(
                name=instrument.display_name,
                instrument=instrument,
                notes=notes,
                raw_data=notes_to_json(notes) if self.embed_note_data else None,
            ))

        result = AnalysisResult(
            tracks=tuple(tracks),
            duration=duration,
            tempo=float(tempo),
            time_signature=time_signature or TimeSignature(),
            failures=tuple(sorted(failures, key=lambda f: f.instrument.priority)),
        )
        logger.info(
            "Assembled %d track(s), %d note(s)%s",
            len(result.tracks),
            result.total_notes,
            f", {len(failures)} failed stem(s)" if failures else "",
        )
        return result

    @staticmethod
    def _validate_notes(
        instrument: InstrumentClass,
        notes: Sequence[NoteEvent],
        duration: float,
    ) -> None:
        name = instrument.value
        previous = None
        for note in notes:
            if note.onset < 0:
                raise AssemblyError(f"{name}: note onset {note.onset} is negative", stage="assembly")
            if note.duration <= 0:
                raise AssemblyError(f"{name}: note duration {note.duration} is not positive", stage="assembly")
            if note.onset >= duration and duration > 0:
                raise AssemblyError(
                    f"{name}: note onset {note.onset} is not before track end {duration}",
                    stage="assembly",
                )
            if note.onset + note.duration > duration:
                raise AssemblyError(
                    f"{name}: note ending at {note.onset + note.duration} exceeds duration {duration}",
                    stage="assembly",
                )
            if not 0 <= note.velocity <= 127:
                raise AssemblyError(f"{name}: velocity {note.velocity} out of range", stage="assembly")
            key = note.sort_key()
            if previous is not None and key < previous:
                raise AssemblyError(f"{name}: notes are not ordered by onset", stage="assembly")
            previous = key
