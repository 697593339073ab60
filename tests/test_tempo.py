"""Tests for tempo and meter estimation."""

import numpy as np
import pytest

from score_engine.analysis import TempoEstimator, clamp_tempo
from score_engine.config import TempoConfig
from score_engine.core import TimeSignature, WaveformBuffer

from conftest import make_clicks, make_tone


def buffer_of(samples, sr):
    return WaveformBuffer(samples=samples, sample_rate=sr)


class TestClampTempo:
    def test_bounds(self):
        assert clamp_tempo(300.0, 40.0, 240.0) == 240.0
        assert clamp_tempo(20.0, 40.0, 240.0) == 40.0
        assert clamp_tempo(97.5, 40.0, 240.0) == 97.5


class TestAutocorrelation:
    def test_periodic_impulses(self):
        envelope = np.zeros(200)
        envelope[::20] = 1.0
        acf = TempoEstimator.autocorrelation(envelope)
        assert acf[0] == pytest.approx(1.0)
        assert int(np.argmax(acf[5:40])) + 5 == 20

    def test_constant_envelope(self):
        assert TempoEstimator.autocorrelation(np.ones(100)) is None

    def test_too_short(self):
        assert TempoEstimator.autocorrelation(np.array([0.0, 1.0, 0.0])) is None


class TestTimeSignature:
    def test_triple_when_three_beats_dominate(self):
        acf = np.zeros(60)
        acf[30] = 0.9
        acf[40] = 0.3
        assert TempoEstimator().time_signature(acf, 10.0) == TimeSignature(3, 4)

    def test_default_when_comparable(self):
        acf = np.zeros(60)
        acf[30] = 0.5
        acf[40] = 0.5
        assert TempoEstimator().time_signature(acf, 10.0) == TimeSignature(4, 4)

    def test_default_when_too_short(self):
        assert TempoEstimator().time_signature(np.ones(30), 10.0) == TimeSignature(4, 4)


class TestTempoEstimator:
    def test_click_track(self, sample_rate):
        estimate = TempoEstimator().estimate(buffer_of(make_clicks(120.0, 8.0, sample_rate), sample_rate))
        assert not estimate.fallback
        assert estimate.bpm == pytest.approx(120.0, abs=5.0)
        assert estimate.time_signature == TimeSignature(4, 4)
        assert 0.0 < estimate.confidence <= 1.0

    def test_slower_click_track(self, sample_rate):
        estimate = TempoEstimator().estimate(buffer_of(make_clicks(90.0, 10.0, sample_rate), sample_rate))
        assert estimate.bpm == pytest.approx(90.0, abs=5.0)

    def test_silence_falls_back(self, sample_rate):
        estimate = TempoEstimator().estimate(buffer_of(np.zeros(5 * sample_rate), sample_rate))
        assert estimate.fallback
        assert estimate.bpm == 120.0
        assert estimate.time_signature == TimeSignature(4, 4)
        assert estimate.beat_duration == pytest.approx(0.5)

    def test_steady_tone_falls_back(self, sample_rate):
        # A single sustained note has no periodicity
        audio = make_tone(440.0, 4.0, sample_rate, start=0.5, total=5.0)
        estimate = TempoEstimator().estimate(buffer_of(audio, sample_rate))
        assert 40.0 <= estimate.bpm <= 240.0

    def test_very_short_input(self, sample_rate):
        audio = make_clicks(120.0, 0.2, sample_rate)
        estimate = TempoEstimator().estimate(buffer_of(audio, sample_rate))
        assert estimate.fallback
        assert estimate.bpm == 120.0

    def test_result_always_clamped(self, sample_rate):
        config = TempoConfig(search_min_bpm=10.0, search_max_bpm=600.0, prior_center=400.0)
        audio = make_clicks(300.0, 6.0, sample_rate)
        estimate = TempoEstimator(config).estimate(buffer_of(audio, sample_rate))
        assert 40.0 <= estimate.bpm <= 240.0

    def test_resamples_input(self):
        sr = 44100
        estimate = TempoEstimator().estimate(buffer_of(make_clicks(120.0, 8.0, sr), sr))
        assert estimate.bpm == pytest.approx(120.0, abs=5.0)

    def test_deterministic(self, sample_rate):
        buffer = buffer_of(make_clicks(120.0, 6.0, sample_rate), sample_rate)
        estimator = TempoEstimator()
        assert estimator.estimate(buffer) == estimator.estimate(buffer)
