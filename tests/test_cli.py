"""Tests for the command-line interface."""

import json

import pytest
from typer.testing import CliRunner

from score_engine.cli import app

runner = CliRunner()


@pytest.fixture
def wav_file(tmp_path, tone_wav):
    path = tmp_path / "tone.wav"
    path.write_bytes(tone_wav)
    return path


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"loader": {"target_sr": 22050}}))
    return path


class TestTranscribe:
    def test_writes_outputs(self, tmp_path, wav_file, config_file):
        out_json = tmp_path / "out" / "result.json"
        out_abc = tmp_path / "out" / "result.abc"
        out_summary = tmp_path / "out" / "summary.txt"
        result = runner.invoke(app, [
            "transcribe", str(wav_file),
            "-c", str(config_file),
            "-o", str(out_json),
            "--abc", str(out_abc),
            "--summary", str(out_summary),
        ])
        assert result.exit_code == 0, result.output
        data = json.loads(out_json.read_text(encoding="utf-8"))
        assert data["duration"] == pytest.approx(2.5, abs=1e-3)
        assert out_abc.read_text(encoding="utf-8").startswith("X:1") or data["tracks"] == []
        assert "Music Analysis Results" in out_summary.read_text(encoding="utf-8")
        assert "Transcription complete" in result.output

    def test_midi_export(self, tmp_path, wav_file, config_file):
        out_midi = tmp_path / "song.mid"
        result = runner.invoke(app, ["transcribe", str(wav_file), "-c", str(config_file), "--midi", str(out_midi)])
        assert result.exit_code == 0, result.output
        assert out_midi.exists()

    def test_resolution_option(self, tmp_path, wav_file, config_file):
        out_abc = tmp_path / "eighths.abc"
        result = runner.invoke(app, [
            "transcribe", str(wav_file), "-c", str(config_file), "-r", "8", "--abc", str(out_abc),
        ])
        assert result.exit_code == 0, result.output
        text = out_abc.read_text(encoding="utf-8")
        assert text == "" or "L:1/8" in text

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["transcribe", str(tmp_path / "missing.wav")])
        assert result.exit_code == 1
        assert "File not found" in result.output

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "broken.wav"
        path.write_bytes(bytes(range(10)))
        result = runner.invoke(app, ["transcribe", str(path)])
        assert result.exit_code == 1
        assert "decode" in result.output

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.wav"
        path.write_bytes(b"")
        result = runner.invoke(app, ["transcribe", str(path)])
        assert result.exit_code == 1
        assert "empty_input" in result.output

    def test_invalid_config(self, tmp_path, wav_file):
        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps({"quantize": {"grid": 8}}))
        result = runner.invoke(app, ["transcribe", str(wav_file), "-c", str(bad)])
        assert result.exit_code == 1
        assert "config" in result.output

    def test_wrong_config_type(self, tmp_path, wav_file):
        bad = tmp_path / "typed.json"
        bad.write_text(json.dumps({"quantize": {"resolution": "16"}}))
        result = runner.invoke(app, ["transcribe", str(wav_file), "-c", str(bad)])
        assert result.exit_code == 1
        assert not isinstance(result.exception, TypeError)
        assert "Error (config)" in result.output
        assert "quantize.resolution" in result.output

    def test_unknown_backend(self, wav_file):
        result = runner.invoke(app, ["transcribe", str(wav_file), "-b", "magic"])
        assert result.exit_code == 1


class TestInfo:
    def test_info(self, wav_file):
        result = runner.invoke(app, ["info", str(wav_file)])
        assert result.exit_code == 0, result.output
        assert "Format: wav" in result.output
        assert "Duration: 2.50 seconds" in result.output
        assert "Sample rate: 44100 Hz" in result.output

    def test_info_silence(self, tmp_path, silent_wav):
        path = tmp_path / "silence.wav"
        path.write_bytes(silent_wav)
        result = runner.invoke(app, ["info", str(path)])
        assert result.exit_code == 0, result.output
        assert "120.0 BPM (default)" in result.output

    def test_info_missing(self, tmp_path):
        result = runner.invoke(app, ["info", str(tmp_path / "missing.wav")])
        assert result.exit_code == 1
