"""Output layer - Export to various formats.

This layer handles exporting analysis results to:
- Structured records (dict / JSON)
- MIDI files
- ABC notation (for staff rendering)
- MusicXML (for notation software)
- Plain-text summaries
"""

from .serialize import from_dict, from_json, to_dict, to_json
from .midi import MIDIExporter
from .abc import ABCExporter, midi_to_abc
from .musicxml import MusicXMLExporter
from .summary import export_summary, format_duration, summarize

__all__ = [
    "to_dict",
    "to_json",
    "from_dict",
    "from_json",
    "MIDIExporter",
    "ABCExporter",
    "midi_to_abc",
    "MusicXMLExporter",
    "summarize",
    "format_duration",
    "export_summary",
]
