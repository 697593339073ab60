"""Global constants for score-engine."""

# Pitch names (sharps only; flats are accepted on input)
PITCH_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]

# Letter-to-semitone base table for pitch name parsing
LETTER_SEMITONES = {"C": 0, "D": 2, "E": 4, "F": 5, "G": 7, "A": 9, "B": 11}

# Tuning reference
A4_FREQUENCY = 440.0
A4_MIDI = 69

# Audio processing defaults
DEFAULT_SR = 44100
ANALYSIS_SR = 22050
DEFAULT_HOP_LENGTH = 512
DEFAULT_N_FFT = 2048

# Musical defaults
DEFAULT_TEMPO = 120.0
DEFAULT_TIME_SIGNATURE = (4, 4)
DEFAULT_QUANTIZE_RESOLUTION = 16  # 16th notes
MIN_TEMPO = 40.0
MAX_TEMPO = 240.0

# MIDI ranges
MIDI_MIN = 0
MIDI_MAX = 127
VELOCITY_MIN = 0
VELOCITY_MAX = 127

# General MIDI percussion (channel 10) pitches
GM_KICK = 36  # C2
GM_SNARE = 38  # D2
GM_CLOSED_HIHAT = 42  # F#2
