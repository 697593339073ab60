"""Tests for grid quantization, drum mapping and velocity scaling."""

import pytest

from score_engine.config import QuantizeConfig
from score_engine.core import NoteEvent, RawEvent
from score_engine.processing import NoteQuantizer, amplitude_to_velocity, drum_pitch


def pitched(onset, offset, freq=440.0, amplitude=0.5):
    return RawEvent(onset=onset, offset=offset, frequency=freq, amplitude=amplitude)


def hit(onset, centroid, amplitude=0.5):
    return RawEvent(onset=onset, offset=onset + 0.1, frequency=None, amplitude=amplitude, centroid=centroid)


@pytest.fixture
def quantizer():
    """120 BPM, sixteenth-note grid (0.125 s)."""
    return NoteQuantizer(tempo=120.0)


class TestGrid:
    def test_grid_duration(self, quantizer):
        assert quantizer.beat_duration == pytest.approx(0.5)
        assert quantizer.grid_duration == pytest.approx(0.125)

    def test_eighth_grid(self):
        q = NoteQuantizer(tempo=120.0, config=QuantizeConfig(resolution=8))
        assert q.grid_duration == pytest.approx(0.25)

    def test_snap(self, quantizer):
        assert quantizer.snap(0.11) == pytest.approx(0.125)
        assert quantizer.snap(0.05) == pytest.approx(0.0)

    def test_tie_goes_to_later_point(self, quantizer):
        assert quantizer.snap(0.0625) == pytest.approx(0.125)
        assert quantizer.snap_units(0.1875) == 2

    def test_invalid_tempo(self):
        with pytest.raises(ValueError):
            NoteQuantizer(tempo=0)


class TestQuantize:
    def test_on_grid_event(self):
        q = NoteQuantizer(tempo=120.0, config=QuantizeConfig(resolution=8))
        notes = q.quantize([pitched(1.0, 1.5, amplitude=1.0)], track_duration=4.0)
        assert len(notes) == 1
        note = notes[0]
        assert note.pitch == "A4"
        assert note.onset == pytest.approx(1.0)
        assert note.duration == pytest.approx(0.5)
        assert note.velocity == 127

    def test_nearest_semitone_pitch(self, quantizer):
        notes = quantizer.quantize([pitched(0.0, 0.5, freq=445.0)], track_duration=2.0)
        assert notes[0].pitch == "A4"

    def test_minimum_one_grid_unit(self, quantizer):
        notes = quantizer.quantize([pitched(1.0, 1.01)], track_duration=4.0)
        assert notes[0].duration == pytest.approx(0.125)

    def test_clipped_to_track_end(self, quantizer):
        notes = quantizer.quantize([pitched(1.9, 2.3)], track_duration=2.0)
        note = notes[0]
        assert note.onset == pytest.approx(1.875)
        assert note.onset + note.duration <= 2.0

    def test_onset_at_end_moves_back(self, quantizer):
        notes = quantizer.quantize([pitched(1.99, 2.0)], track_duration=2.0)
        assert len(notes) == 1
        assert notes[0].onset == pytest.approx(1.875)
        assert notes[0].onset + notes[0].duration <= 2.0

    def test_off_grid_track_end(self, quantizer):
        notes = quantizer.quantize([pitched(1.2, 1.3)], track_duration=1.3)
        note = notes[0]
        assert note.onset == pytest.approx(1.25)
        assert note.duration == pytest.approx(0.05)
        assert note.onset + note.duration <= 1.3

    def test_nothing_fits_empty_track(self, quantizer):
        assert quantizer.quantize([pitched(0.0, 0.5)], track_duration=0.0) == []

    def test_merges_duplicates(self, quantizer):
        events = [
            pitched(1.0, 1.5, amplitude=0.1),
            pitched(1.02, 2.0, amplitude=0.5),
        ]
        notes = quantizer.quantize(events, track_duration=4.0)
        assert len(notes) == 1
        assert notes[0].duration == pytest.approx(1.0)
        assert notes[0].velocity == amplitude_to_velocity(0.5)

    def test_duplicates_kept_when_disabled(self):
        q = NoteQuantizer(tempo=120.0, config=QuantizeConfig(merge_duplicates=False))
        events = [pitched(1.0, 1.5), pitched(1.02, 2.0)]
        assert len(q.quantize(events, track_duration=4.0)) == 2

    def test_sorted_by_onset_then_pitch(self, quantizer):
        events = [
            pitched(1.0, 1.5, freq=440.0),
            pitched(0.5, 1.0, freq=523.25),
            pitched(1.0, 1.5, freq=261.63),
        ]
        notes = quantizer.quantize(events, track_duration=4.0)
        assert [n.pitch for n in notes] == ["C5", "C4", "A4"]

    def test_unpitched_hits_map_to_drums(self, quantizer):
        events = [hit(0.0, 120.0), hit(0.5, 600.0), hit(1.0, 6000.0)]
        notes = quantizer.quantize(events, track_duration=2.0)
        assert [n.pitch for n in notes] == ["C2", "D2", "F#2"]

    def test_within_track(self, quantizer):
        events = [pitched(t, t + 0.3) for t in (0.0, 0.37, 0.81, 1.22, 1.61)]
        for note in quantizer.quantize(events, track_duration=1.7):
            assert 0.0 <= note.onset
            assert note.onset + note.duration <= 1.7


class TestRequantize:
    def test_idempotent(self, quantizer):
        events = [pitched(t, t + 0.2) for t in (0.03, 0.41, 0.77, 1.18)]
        notes = quantizer.quantize(events, track_duration=4.0)
        assert quantizer.quantize_notes(notes, track_duration=4.0) == notes

    def test_idempotent_with_clipped_notes(self, quantizer):
        events = [pitched(0.3, 0.6), pitched(1.2, 1.3, freq=330.0), pitched(1.28, 1.3, freq=220.0)]
        notes = quantizer.quantize(events, track_duration=1.3)
        once = quantizer.quantize_notes(notes, track_duration=1.3)
        assert once == notes
        assert quantizer.quantize_notes(once, track_duration=1.3) == once

    def test_requantize_note_events(self, quantizer):
        notes = [NoteEvent(pitch="E4", onset=0.51, duration=0.2, velocity=90)]
        result = quantizer.quantize_notes(notes, track_duration=2.0)
        assert result[0].onset == pytest.approx(0.5)
        assert result[0].velocity == 90


class TestDrumPitch:
    def test_bands(self):
        assert drum_pitch(150.0) == "C2"
        assert drum_pitch(199.9) == "C2"
        assert drum_pitch(200.0) == "D2"
        assert drum_pitch(999.0) == "D2"
        assert drum_pitch(1000.0) == "F#2"

    def test_unknown_centroid(self):
        assert drum_pitch(None) == "D2"


class TestVelocity:
    def test_full_scale(self):
        assert amplitude_to_velocity(1.0) == 127
        assert amplitude_to_velocity(2.0) == 127

    def test_floor(self):
        assert amplitude_to_velocity(0.0) == 0
        assert amplitude_to_velocity(0.0001) == 0

    def test_minus_twenty_db(self):
        assert amplitude_to_velocity(0.1) == 85

    def test_monotonic(self):
        levels = [amplitude_to_velocity(a) for a in (0.01, 0.05, 0.2, 0.6, 1.0)]
        assert levels == sorted(levels)
