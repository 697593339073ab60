"""Command-line interface for score-engine.

Provides commands for:
- transcribe: Convert audio (file or video URL) to a multi-track score
- info: Show audio file information and estimated tempo
"""

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import EngineConfig
from .errors import EngineError

app = typer.Typer(
    name="score-engine",
    help="Audio to Score Transcription Engine",
    rich_markup_mode="markdown",
)
console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=verbose, show_path=verbose)],
        force=True,
    )


def _load_config(
    config_path: Optional[Path],
    backend: Optional[str],
    resolution: Optional[int],
) -> EngineConfig:
    config = EngineConfig.load(config_path) if config_path else EngineConfig()
    if backend:
        config.separation.backend = backend
    if resolution:
        config.quantize.resolution = resolution
    return config.validate()


def _read_input(input_path: str, fetch_timeout: float) -> bytes:
    from .input import VideoAudioFetcher

    if VideoAudioFetcher.is_video_url(input_path):
        console.print("[cyan]Downloading audio from URL...[/cyan]")
        return VideoAudioFetcher(timeout=fetch_timeout).fetch(input_path)

    path = Path(input_path)
    if not path.exists():
        console.print(f"[red]Error: File not found: {path}[/red]")
        raise typer.Exit(1)
    return path.read_bytes()


@app.command()
def transcribe(
    input_path: str = typer.Argument(..., help="Input audio file (WAV, MP3, OGG, M4A, FLAC) or video URL"),
    output: Optional[Path] = typer.Option(
        None, "-o", "--output", help="Write the result as JSON to this path"
    ),
    midi: Optional[Path] = typer.Option(None, "--midi", help="Export a MIDI file"),
    abc: Optional[Path] = typer.Option(None, "--abc", help="Export ABC notation"),
    musicxml: Optional[Path] = typer.Option(None, "--musicxml", help="Export MusicXML"),
    summary: Optional[Path] = typer.Option(None, "--summary", help="Export a plain-text summary"),
    config_path: Optional[Path] = typer.Option(
        None, "-c", "--config", help="JSON configuration file"
    ),
    backend: Optional[str] = typer.Option(
        None, "-b", "--backend", help="Separation backend: spectral/demucs"
    ),
    resolution: Optional[int] = typer.Option(
        None, "-r", "--resolution", help="Grid subdivisions per whole note (16 = sixteenths)"
    ),
    fetch_timeout: float = typer.Option(
        30.0, "--fetch-timeout", help="Network timeout in seconds for URL input"
    ),
    json_output: bool = typer.Option(
        False, "--json", help="Print the result as JSON (for scripting)"
    ),
    verbose: bool = typer.Option(
        False, "-v", "--verbose", help="Verbose output"
    ),
):
    """Transcribe audio into per-instrument tracks of notes.

    **Examples:**

        score-engine transcribe song.wav

        score-engine transcribe song.mp3 -o result.json --midi song.mid --abc song.abc

        score-engine transcribe "https://youtube.com/watch?v=..." --backend demucs
    """
    from .output import ABCExporter, MIDIExporter, MusicXMLExporter, export_summary, to_json
    from .transcription import TranscriptionPipeline

    _setup_logging(verbose)

    try:
        config = _load_config(config_path, backend, resolution)
        data = _read_input(input_path, fetch_timeout)
        pipeline = TranscriptionPipeline(config)
        result = pipeline.analyze(data)
    except EngineError as e:
        console.print(f"[red]Error ({e.kind}): {e.message}[/red]")
        raise typer.Exit(1)

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(to_json(result), encoding="utf-8")
    if midi:
        MIDIExporter().export(result, midi)
    if abc:
        ABCExporter(config.quantize.resolution).export(result, abc)
    if musicxml:
        MusicXMLExporter(title=Path(input_path).stem, resolution=config.quantize.resolution).export(result, musicxml)
    if summary:
        export_summary(result, summary)

    if json_output:
        console.print_json(to_json(result))
        return

    _show_result_table(result)
    for failure in result.failures:
        console.print(f"[yellow]{failure.instrument.value} failed ({failure.kind}): {failure.message}[/yellow]")
    for label, path in (("JSON", output), ("MIDI", midi), ("ABC", abc), ("MusicXML", musicxml), ("Summary", summary)):
        if path:
            console.print(f"[blue]{label}:[/blue] {path}")
    if verbose:
        console.print_json(json.dumps(pipeline.last_timings.to_dict()))
    console.print("[green]Transcription complete![/green]")


@app.command()
def info(
    input_file: Path = typer.Argument(..., help="Input audio file"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose output"),
):
    """Show information about an audio file."""
    from .analysis import TempoEstimator
    from .input import WaveformLoader, sniff_format

    _setup_logging(verbose)

    if not input_file.exists():
        console.print(f"[red]Error: File not found: {input_file}[/red]")
        raise typer.Exit(1)

    data = input_file.read_bytes()
    try:
        buffer = WaveformLoader().load_bytes(data)
    except EngineError as e:
        console.print(f"[red]Error ({e.kind}): {e.message}[/red]")
        raise typer.Exit(1)

    estimate = TempoEstimator().estimate(buffer)

    console.print(f"\n[bold]Audio Info:[/bold] {input_file.name}")
    console.print(f"  Format: {sniff_format(data)}")
    console.print(f"  Duration: {buffer.duration:.2f} seconds")
    console.print(f"  Sample rate: {buffer.sample_rate} Hz")
    console.print(f"  Channels: {buffer.channels}")
    console.print(f"  Samples: {buffer.n_samples:,}")
    fallback = " (default)" if estimate.fallback else ""
    console.print(f"  Estimated tempo: {estimate.bpm:.1f} BPM{fallback}")
    console.print(f"  Time signature: {estimate.time_signature}")


def _show_result_table(result) -> None:
    """Display tracks in a table."""
    from .output import format_duration

    console.print(
        f"\n[bold]Duration:[/bold] {format_duration(result.duration)}  "
        f"[bold]Tempo:[/bold] {result.tempo:.1f} BPM  "
        f"[bold]Time Signature:[/bold] {result.time_signature}"
    )

    table = Table(title="Tracks")
    table.add_column("Track", style="cyan")
    table.add_column("Notes", style="green", justify="right")
    table.add_column("First notes", style="yellow")

    for track in result.tracks:
        table.add_row(track.name, str(track.note_count), " ".join(track.pitch_names(8)))

    console.print(table)


def main():
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
