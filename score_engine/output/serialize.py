"""Structured record serialization of analysis results.

Times are rounded to millisecond precision and keys are sorted, so the
same result always serializes to the same bytes.
"""

import json
from typing import Any, Dict, Optional

from ..core import AnalysisResult, InstrumentClass, NoteEvent, StemFailure, TimeSignature, Track

# Decimal places kept for times in seconds (1 ms)
TIME_DIGITS = 3


def _ms(value: float) -> float:
    return round(float(value), TIME_DIGITS)


def note_to_dict(note: NoteEvent) -> Dict[str, Any]:
    return {
        "pitch": note.pitch,
        "midi": note.midi,
        "onset": _ms(note.onset),
        "duration": _ms(note.duration),
        "velocity": int(note.velocity),
    }


def notes_to_json(notes) -> str:
    """Compact JSON array of notes, used for embedded raw note data."""
    return json.dumps([note_to_dict(n) for n in notes], sort_keys=True, separators=(",", ":"))


def track_to_dict(track: Track) -> Dict[str, Any]:
    return {
        "name": track.name,
        "instrument": track.instrument.value,
        "note_count": track.note_count,
        "notes": [note_to_dict(n) for n in track.notes],
        "raw_data": track.raw_data,
    }


def to_dict(result: AnalysisResult) -> Dict[str, Any]:
    """
    Convert an AnalysisResult to a JSON-compatible dictionary.

    Args:
        result: Analysis result

    Returns:
        Dictionary with duration, tempo, time_signature, tracks and failures
    """
    return {
        "duration": _ms(result.duration),
        "tempo": round(float(result.tempo), TIME_DIGITS),
        "time_signature": str(result.time_signature),
        "tracks": [track_to_dict(t) for t in result.tracks],
        "failures": [
            {"instrument": f.instrument.value, "kind": f.kind, "message": f.message}
            for f in result.failures
        ],
    }


def to_json(result: AnalysisResult, indent: Optional[int] = 2) -> str:
    """Serialize a result to JSON with sorted keys."""
    return json.dumps(to_dict(result), sort_keys=True, indent=indent)


def from_dict(data: Dict[str, Any]) -> AnalysisResult:
    """
    Rebuild an AnalysisResult from ``to_dict`` output.

    Raises:
        ValueError: If the record is malformed
    """
    try:
        tracks = tuple(
            Track(
                name=t["name"],
                instrument=InstrumentClass(t["instrument"]),
                notes=tuple(
                    NoteEvent(
                        pitch=n["pitch"],
                        onset=float(n["onset"]),
                        duration=float(n["duration"]),
                        velocity=int(n["velocity"]),
                    )
                    for n in t["notes"]
                ),
                raw_data=t.get("raw_data"),
            )
            for t in data["tracks"]
        )
        failures = tuple(
            StemFailure(
                instrument=InstrumentClass(f["instrument"]),
                kind=f["kind"],
                message=f["message"],
            )
            for f in data.get("failures", [])
        )
        return AnalysisResult(
            tracks=tracks,
            duration=float(data["duration"]),
            tempo=float(data["tempo"]),
            time_signature=TimeSignature.parse(data.get("time_signature", "4/4")),
            failures=failures,
        )
    except (KeyError, TypeError) as e:
        raise ValueError(f"Malformed analysis record: {e}") from e


def from_json(text: str) -> AnalysisResult:
    return from_dict(json.loads(text))
