"""Tests for core types, pitch math, configuration and errors."""

import json

import numpy as np
import pytest

from score_engine.config import EngineConfig
from score_engine.core import (
    AnalysisResult,
    CancellationToken,
    InstrumentClass,
    NoteEvent,
    RawEvent,
    Stem,
    StemFailure,
    TimeSignature,
    Track,
    WaveformBuffer,
    get_profile,
)
from score_engine.core.cancellation import LinkedCancellationToken
from score_engine.core.pitch import (
    freq_to_midi,
    freq_to_name,
    is_valid_pitch,
    midi_to_freq,
    midi_to_name,
    pitch_to_midi,
    round_half_up,
)
from score_engine.errors import (
    AnalysisCancelled,
    ConfigError,
    DecodeError,
    EngineError,
    StageTimeoutError,
    error_kind,
)


class TestPitchMath:
    def test_a4_reference(self):
        assert freq_to_midi(440.0) == 69
        assert freq_to_name(440.0) == "A4"
        assert midi_to_freq(69) == pytest.approx(440.0)

    def test_midi_to_name(self):
        assert midi_to_name(60) == "C4"
        assert midi_to_name(61) == "C#4"
        assert midi_to_name(21) == "A0"
        assert midi_to_name(36) == "C2"

    def test_nearest_semitone(self):
        # 450 Hz is closer to A4 than A#4
        assert freq_to_midi(450.0) == 69
        assert freq_to_midi(460.0) == 70

    def test_half_semitone_rounds_up(self):
        assert freq_to_midi(midi_to_freq(69.5)) == 70
        assert freq_to_midi(midi_to_freq(59.5)) == 60

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(3.5) == 4
        assert round_half_up(-0.5) == 0
        assert round_half_up(2.4999) == 2

    def test_pitch_to_midi_table(self):
        assert pitch_to_midi("C4") == 60
        assert pitch_to_midi("D4") == 62
        assert pitch_to_midi("E4") == 64
        assert pitch_to_midi("F4") == 65
        assert pitch_to_midi("G4") == 67
        assert pitch_to_midi("A4") == 69
        assert pitch_to_midi("B4") == 71

    def test_accidentals(self):
        assert pitch_to_midi("C#4") == 61
        assert pitch_to_midi("Bb3") == 58
        assert pitch_to_midi("F##2") == 43
        assert pitch_to_midi("C-1") == 0

    def test_invalid_pitch(self):
        assert not is_valid_pitch("H4")
        assert not is_valid_pitch("C")
        with pytest.raises(ValueError):
            pitch_to_midi("X9")

    def test_freq_to_name_clamps(self):
        assert freq_to_name(1.0) == midi_to_name(0)
        assert freq_to_name(50000.0) == midi_to_name(127)

    def test_invalid_frequency(self):
        with pytest.raises(ValueError):
            freq_to_midi(0.0)


class TestNoteEvent:
    def test_creation(self):
        note = NoteEvent(pitch="A4", onset=1.0, duration=0.5, velocity=100)
        assert note.midi == 69
        assert note.offset == 1.5

    def test_negative_onset(self):
        with pytest.raises(ValueError):
            NoteEvent(pitch="A4", onset=-0.1, duration=0.5)

    def test_zero_duration(self):
        with pytest.raises(ValueError):
            NoteEvent(pitch="A4", onset=0.0, duration=0.0)

    def test_velocity_range(self):
        with pytest.raises(ValueError):
            NoteEvent(pitch="A4", onset=0.0, duration=0.5, velocity=128)

    def test_invalid_pitch_name(self):
        with pytest.raises(ValueError):
            NoteEvent(pitch="440Hz", onset=0.0, duration=0.5)

    def test_immutable(self):
        note = NoteEvent(pitch="A4", onset=0.0, duration=0.5)
        with pytest.raises(Exception):
            note.onset = 1.0


class TestRawEvent:
    def test_pitched(self):
        event = RawEvent(onset=1.0, offset=1.5, frequency=440.0, amplitude=0.5)
        assert event.is_pitched
        assert event.midi == 69
        assert event.duration == pytest.approx(0.5)

    def test_unpitched(self):
        event = RawEvent(onset=1.0, offset=1.1, frequency=None, amplitude=0.5, centroid=150.0)
        assert not event.is_pitched
        assert event.midi is None


class TestTimeSignature:
    def test_default(self):
        assert str(TimeSignature()) == "4/4"

    def test_parse(self):
        ts = TimeSignature.parse("3/4")
        assert ts.as_tuple() == (3, 4)

    def test_invalid_denominator(self):
        with pytest.raises(ValueError):
            TimeSignature(4, 3)

    def test_invalid_text(self):
        with pytest.raises(ValueError):
            TimeSignature.parse("four")


class TestWaveformBuffer:
    def test_mono_reshape(self):
        buffer = WaveformBuffer(samples=np.zeros(100), sample_rate=100)
        assert buffer.channels == 1
        assert buffer.n_samples == 100
        assert buffer.duration == pytest.approx(1.0)

    def test_read_only(self):
        buffer = WaveformBuffer(samples=np.zeros(10), sample_rate=10)
        with pytest.raises(ValueError):
            buffer.samples[0] = 1.0

    def test_copy_on_create(self):
        data = np.zeros(10, dtype=np.float32)
        buffer = WaveformBuffer(samples=data, sample_rate=10)
        data[0] = 1.0
        assert buffer.samples[0, 0] == 0.0

    def test_to_mono(self):
        stereo = np.stack([np.ones(10), np.zeros(10)])
        buffer = WaveformBuffer(samples=stereo, sample_rate=10)
        assert np.allclose(buffer.to_mono(), 0.5)

    def test_silence(self):
        buffer = WaveformBuffer(samples=np.zeros(10), sample_rate=10)
        assert buffer.is_silent()
        assert buffer.peak == 0.0

    def test_invalid_sample_rate(self):
        with pytest.raises(ValueError):
            WaveformBuffer(samples=np.zeros(10), sample_rate=0)

    def test_stem_properties(self):
        buffer = WaveformBuffer(samples=np.zeros(200), sample_rate=100)
        stem = Stem(instrument=InstrumentClass.DRUMS, waveform=buffer)
        assert stem.duration == pytest.approx(2.0)
        assert stem.profile.detection_mode == "percussion"


class TestInstrumentProfiles:
    def test_priority_order(self):
        order = InstrumentClass.priority_order()
        assert order[:6] == [
            InstrumentClass.VOCALS,
            InstrumentClass.PIANO,
            InstrumentClass.BASS,
            InstrumentClass.GUITAR,
            InstrumentClass.DRUMS,
            InstrumentClass.OTHER,
        ]

    def test_detection_modes(self):
        assert get_profile(InstrumentClass.PIANO).detection_mode == "polyphonic"
        assert get_profile(InstrumentClass.GUITAR).detection_mode == "polyphonic"
        assert get_profile(InstrumentClass.VOCALS).detection_mode == "monophonic"
        assert get_profile(InstrumentClass.BASS).detection_mode == "monophonic"

    def test_prior_weight(self):
        bass = get_profile(InstrumentClass.BASS)
        assert bass.prior_weight(40) == 1.0
        assert bass.prior_weight(72, falloff=0.1) == pytest.approx(0.5)
        assert bass.prior_weight(100, falloff=0.1) == 0.0

    def test_display_name(self):
        assert InstrumentClass.VOCALS.display_name == "Vocals"


class TestAnalysisResult:
    def test_summary_and_lookup(self):
        track = Track(
            name="Bass",
            instrument=InstrumentClass.BASS,
            notes=(NoteEvent(pitch="E2", onset=0.0, duration=0.5),),
        )
        failure = StemFailure(instrument=InstrumentClass.DRUMS, kind="detection", message="boom")
        result = AnalysisResult(tracks=(track,), duration=2.0, tempo=120.0, failures=(failure,))

        assert result.total_notes == 1
        assert result.is_partial
        assert result.failed_instruments == [InstrumentClass.DRUMS]
        assert result.get_track(InstrumentClass.BASS) is track
        assert result.get_track(InstrumentClass.PIANO) is None
        assert result.summary()["tracks"] == {"bass": 1}


class TestCancellation:
    def test_cancel(self):
        token = CancellationToken()
        token.raise_if_cancelled("load")
        token.cancel()
        assert token.cancelled
        with pytest.raises(AnalysisCancelled) as exc:
            token.raise_if_cancelled("separation")
        assert exc.value.stage == "separation"
        assert exc.value.kind == "cancelled"

    def test_child_follows_parent(self):
        parent = CancellationToken()
        child = LinkedCancellationToken(parent)
        assert not child.cancelled
        parent.cancel()
        assert child.cancelled

    def test_child_cancel_does_not_propagate(self):
        parent = CancellationToken()
        child = LinkedCancellationToken(parent)
        child.cancel()
        assert child.cancelled
        assert not parent.cancelled


class TestErrors:
    def test_kinds(self):
        assert DecodeError("x").kind == "decode"
        assert error_kind(DecodeError("x")) == "decode"
        assert error_kind(RuntimeError("x")) == "internal"

    def test_timeout_is_builtin_timeout(self):
        error = StageTimeoutError("slow", stage="load")
        assert isinstance(error, TimeoutError)
        assert isinstance(error, EngineError)
        assert error_kind(TimeoutError()) == "timeout"

    def test_to_dict(self):
        assert DecodeError("bad bytes", stage="load").to_dict() == {
            "kind": "decode",
            "message": "bad bytes",
            "stage": "load",
        }


class TestEngineConfig:
    def test_defaults_validate(self):
        config = EngineConfig().validate()
        assert config.separation.backend == "spectral"
        assert config.quantize.resolution == 16
        assert config.tempo.default_tempo == 120.0

    def test_from_dict(self):
        config = EngineConfig.from_dict({
            "quantize": {"resolution": 8},
            "separation": {"instruments": ["bass", "drums"]},
        })
        assert config.quantize.resolution == 8
        assert config.separation.instruments == ("bass", "drums")

    def test_unknown_key(self):
        with pytest.raises(ConfigError, match="quantize.grid"):
            EngineConfig.from_dict({"quantize": {"grid": 8}})

    def test_unknown_section(self):
        with pytest.raises(ConfigError):
            EngineConfig.from_dict({"mixer": {}})

    def test_invalid_values(self):
        with pytest.raises(ConfigError):
            EngineConfig.from_dict({"separation": {"backend": "magic"}})
        with pytest.raises(ConfigError):
            EngineConfig.from_dict({"separation": {"instruments": ["kazoo"]}})
        with pytest.raises(ConfigError):
            EngineConfig.from_dict({"tempo": {"min_bpm": 300}})

    @pytest.mark.parametrize("data, path", [
        ({"loader": {"target_sr": "44100"}}, "loader.target_sr"),
        ({"quantize": {"resolution": "16"}}, "quantize.resolution"),
        ({"quantize": {"resolution": 8.5}}, "quantize.resolution"),
        ({"quantize": {"merge_duplicates": 1}}, "quantize.merge_duplicates"),
        ({"pipeline": {"max_workers": True}}, "pipeline.max_workers"),
        ({"loader": {"timeout": "slow"}}, "loader.timeout"),
        ({"separation": {"backend": 3}}, "separation.backend"),
        ({"separation": {"instruments": "bass"}}, "separation.instruments"),
        ({"separation": {"instruments": ["bass", 4]}}, r"separation.instruments\[1\]"),
        ({"tempo": {"default_time_signature": [3, 4, 4]}}, "tempo.default_time_signature"),
    ])
    def test_wrong_type(self, data, path):
        with pytest.raises(ConfigError, match=path):
            EngineConfig.from_dict(data)

    def test_numeric_types(self):
        config = EngineConfig.from_dict({
            "loader": {"timeout": None},
            "tempo": {"default_tempo": 100, "default_time_signature": [3, 4]},
        })
        assert config.loader.timeout is None
        assert config.tempo.default_tempo == 100.0
        assert isinstance(config.tempo.default_tempo, float)
        assert config.tempo.default_time_signature == (3, 4)

    def test_invalid_json(self):
        with pytest.raises(ConfigError):
            EngineConfig.from_json("{not json")

    def test_fingerprint(self):
        assert EngineConfig().fingerprint() == EngineConfig().fingerprint()
        other = EngineConfig.from_dict({"quantize": {"resolution": 8}})
        assert other.fingerprint() != EngineConfig().fingerprint()

    def test_load(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"pipeline": {"max_workers": 2}}))
        assert EngineConfig.load(path).pipeline.max_workers == 2

    def test_load_missing(self, tmp_path):
        with pytest.raises(ConfigError):
            EngineConfig.load(tmp_path / "missing.json")
