"""Processing layer - Note-level post-processing.

This layer turns raw detected events into notated notes:
- Quantization (snap to grid, clip to track duration)
- Pitch naming and GM drum mapping for unpitched hits
- Velocity from peak amplitude
- Duplicate merging
"""

from .quantize import NoteQuantizer, amplitude_to_velocity, drum_pitch

__all__ = [
    "NoteQuantizer",
    "amplitude_to_velocity",
    "drum_pitch",
]
