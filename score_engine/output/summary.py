"""Plain-text result summary for document export."""

from pathlib import Path
from typing import List, Union

from ..core import AnalysisResult
from ..core.pitch import round_half_up

PREVIEW_NOTES = 30


def format_duration(seconds: float) -> str:
    """Format seconds as m:ss."""
    total = round_half_up(seconds)
    return f"{total // 60}:{total % 60:02d}"


def summarize(result: AnalysisResult, preview: int = PREVIEW_NOTES) -> str:
    """
    Build a plain-text summary of a result.

    Lists duration, tempo and time signature, then per track its name,
    instrument, note count and the first ``preview`` pitch names.
    Failed stems are listed at the end.
    """
    lines: List[str] = [
        "Music Analysis Results",
        "",
        f"Duration: {format_duration(result.duration)}",
        f"Tempo: {round_half_up(result.tempo)} BPM",
        f"Time Signature: {result.time_signature}",
        "",
    ]

    for track in result.tracks:
        lines.append(f"{track.name} ({track.instrument.value})")
        lines.append(f"Notes: {track.note_count}")
        if track.notes:
            lines.append(" ".join(track.pitch_names(preview)))
        lines.append("")

    if result.failures:
        lines.append("Failed stems:")
        for failure in result.failures:
            lines.append(f"  {failure.instrument.value}: {failure.kind} - {failure.message}")
        lines.append("")

    return "\n".join(lines).rstrip("\n") + "\n"


def export_summary(result: AnalysisResult, output_path: Union[str, Path]) -> None:
    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    Path(output_path).write_text(summarize(result), encoding="utf-8")
