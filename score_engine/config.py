"""Engine configuration.

Each stage has its own dataclass; ``EngineConfig`` groups them and can be
loaded from a JSON file or a nested dict. Unknown keys are rejected so a
typo never silently falls back to a default.
"""

import hashlib
import json
from dataclasses import asdict, dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union, get_args, get_origin

from .core.constants import (
    ANALYSIS_SR,
    DEFAULT_HOP_LENGTH,
    DEFAULT_N_FFT,
    DEFAULT_QUANTIZE_RESOLUTION,
    DEFAULT_SR,
    DEFAULT_TEMPO,
    DEFAULT_TIME_SIGNATURE,
    MAX_TEMPO,
    MIN_TEMPO,
)
from .errors import ConfigError


@dataclass
class LoaderConfig:
    """Configuration for waveform loading.

    Attributes:
        target_sr: Sample rate of the decoded buffer (default: 44100)
        mono: Downmix to one channel (default: False, channels are kept)
        normalize: Peak-normalize to 1.0 (default: True)
        timeout: Decode time budget in seconds, None = unbounded (default: 60)
    """

    target_sr: int = DEFAULT_SR
    mono: bool = False
    normalize: bool = True
    timeout: Optional[float] = 60.0


@dataclass
class SeparationConfig:
    """Configuration for source separation.

    Attributes:
        backend: 'spectral' (STFT masks) or 'demucs' (neural model)
        instruments: Instrument class values to separate into
        n_fft: STFT size for the spectral backend
        hop_length: STFT hop for the spectral backend
        hpss_kernel: Median filter size for harmonic/percussive split
        min_energy_ratio: Stems below this share of mix energy are folded into 'other'
        demucs_model: Demucs model name for the 'demucs' backend
        device: Torch device for the 'demucs' backend ('auto', 'cpu', 'cuda', 'mps')
    """

    backend: str = "spectral"
    instruments: Tuple[str, ...] = ("vocals", "piano", "bass", "guitar", "drums", "other")
    n_fft: int = DEFAULT_N_FFT
    hop_length: int = DEFAULT_HOP_LENGTH
    hpss_kernel: int = 31
    min_energy_ratio: float = 0.01
    demucs_model: str = "htdemucs_6s"
    device: str = "auto"


@dataclass
class DetectionConfig:
    """Configuration for onset and pitch detection.

    Attributes:
        analysis_sr: Rate stems are resampled to before analysis
        hop_length: Samples between analysis frames
        threshold_window: Seconds of context for the adaptive onset threshold
        threshold_k: Deviations above the local noise floor an onset must reach
        relative_floor: Fraction of the stem's peak onset strength always required
        min_onset_gap: Minimum seconds between onsets
        silence_rms: Absolute RMS below which frames count as silent
        noise_floor_percentile: Rolling RMS percentile used as the noise floor
        gate_ratio: RMS at an onset must exceed noise floor times this
        release_ratio: Note ends when RMS decays below this fraction of its peak
        min_note_duration: Events shorter than this are dropped (seconds)
        min_confidence: Minimum prior-weighted pitch confidence
        prior_falloff: Prior weight lost per semitone outside an instrument range
        max_polyphony: Maximum simultaneous pitches per onset for polyphonic stems
        peak_ratio: CQT peaks must reach this fraction of the segment maximum
    """

    analysis_sr: int = ANALYSIS_SR
    hop_length: int = DEFAULT_HOP_LENGTH
    threshold_window: float = 1.0
    threshold_k: float = 3.0
    relative_floor: float = 0.05
    min_onset_gap: float = 0.05
    silence_rms: float = 1e-4
    noise_floor_percentile: float = 10.0
    gate_ratio: float = 2.0
    release_ratio: float = 0.1
    min_note_duration: float = 0.03
    min_confidence: float = 0.3
    prior_falloff: float = 0.1
    max_polyphony: int = 6
    peak_ratio: float = 0.35


@dataclass
class TempoConfig:
    """Configuration for tempo and meter estimation.

    Attributes:
        default_tempo: Fallback BPM when no periodicity is found
        min_bpm: Lower clamp bound
        max_bpm: Upper clamp bound
        search_min_bpm: Lowest BPM considered by the autocorrelation search
        search_max_bpm: Highest BPM considered by the autocorrelation search
        prior_center: Center of the log-Gaussian tempo prior
        prior_octaves: Width of the tempo prior in octaves
        min_confidence: Normalized autocorrelation needed to trust an estimate
        triple_margin: How much stronger 3-beat periodicity must be to report 3/4
        hop_length: Onset envelope hop
        analysis_sr: Rate the mix is resampled to before analysis
    """

    default_tempo: float = DEFAULT_TEMPO
    min_bpm: float = MIN_TEMPO
    max_bpm: float = MAX_TEMPO
    search_min_bpm: float = 30.0
    search_max_bpm: float = 300.0
    prior_center: float = DEFAULT_TEMPO
    prior_octaves: float = 1.0
    min_confidence: float = 0.2
    triple_margin: float = 1.15
    hop_length: int = DEFAULT_HOP_LENGTH
    analysis_sr: int = ANALYSIS_SR
    default_time_signature: Tuple[int, int] = DEFAULT_TIME_SIGNATURE


@dataclass
class QuantizeConfig:
    """Configuration for rhythmic quantization.

    Attributes:
        resolution: Grid subdivisions per whole note (16 = sixteenth notes)
        merge_duplicates: Merge same-pitch notes sharing a quantized onset
    """

    resolution: int = DEFAULT_QUANTIZE_RESOLUTION
    merge_duplicates: bool = True


@dataclass
class PipelineConfig:
    """Configuration for orchestration.

    Attributes:
        max_workers: Worker threads for tempo/separation/detection (0 = auto)
        detection_timeout: Per-stem detection budget in seconds, None = unbounded
        embed_note_data: Fill Track.raw_data with serialized notes
        cache_dir: Directory for the content-addressed result cache
        enable_cache: Use the result cache (default: False)
        cache_ttl_hours: Cache entries expire after this many hours
    """

    max_workers: int = 0
    detection_timeout: Optional[float] = None
    embed_note_data: bool = False
    cache_dir: Optional[str] = None
    enable_cache: bool = False
    cache_ttl_hours: float = 24.0


@dataclass
class EngineConfig:
    """All stage configurations for one analysis run."""

    loader: LoaderConfig = field(default_factory=LoaderConfig)
    separation: SeparationConfig = field(default_factory=SeparationConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    tempo: TempoConfig = field(default_factory=TempoConfig)
    quantize: QuantizeConfig = field(default_factory=QuantizeConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)

    def validate(self) -> "EngineConfig":
        """Check value ranges, raising ConfigError on the first problem."""
        if self.loader.target_sr <= 0:
            raise ConfigError(f"loader.target_sr must be positive, got {self.loader.target_sr}")
        if self.loader.timeout is not None and self.loader.timeout <= 0:
            raise ConfigError("loader.timeout must be positive or null")
        if self.separation.backend not in ("spectral", "demucs"):
            raise ConfigError(f"Unknown separation backend: {self.separation.backend!r}")
        if not 0.0 <= self.separation.min_energy_ratio < 1.0:
            raise ConfigError("separation.min_energy_ratio must be in [0, 1)")
        if self.detection.hop_length <= 0 or self.detection.analysis_sr <= 0:
            raise ConfigError("detection.hop_length and detection.analysis_sr must be positive")
        if not 0.0 < self.detection.release_ratio < 1.0:
            raise ConfigError("detection.release_ratio must be in (0, 1)")
        if self.detection.max_polyphony < 1:
            raise ConfigError("detection.max_polyphony must be at least 1")
        if not 0 < self.tempo.min_bpm < self.tempo.max_bpm:
            raise ConfigError("tempo.min_bpm must be positive and below tempo.max_bpm")
        if not self.tempo.min_bpm <= self.tempo.default_tempo <= self.tempo.max_bpm:
            raise ConfigError("tempo.default_tempo must lie within [min_bpm, max_bpm]")
        if self.quantize.resolution <= 0:
            raise ConfigError(f"quantize.resolution must be positive, got {self.quantize.resolution}")
        if self.pipeline.max_workers < 0:
            raise ConfigError("pipeline.max_workers must be >= 0")
        if self.pipeline.detection_timeout is not None and self.pipeline.detection_timeout <= 0:
            raise ConfigError("pipeline.detection_timeout must be positive or null")

        from .core.instruments import InstrumentClass
        seen = set()
        for name in self.separation.instruments:
            try:
                instrument = InstrumentClass(name)
            except ValueError:
                raise ConfigError(f"Unknown instrument class: {name!r}")
            if instrument in seen:
                raise ConfigError(f"Duplicate instrument class: {name!r}")
            seen.add(instrument)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def fingerprint(self) -> str:
        """Stable hash of every setting; identical configs hash identically."""
        payload = json.dumps(self.to_dict(), sort_keys=True, default=list)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        """Build a config from nested sections, rejecting unknown keys."""
        config = cls()
        _apply_layer(config, data)
        return config.validate()

    @classmethod
    def from_json(cls, text: str) -> "EngineConfig":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON config: {e}")
        if not isinstance(data, dict):
            raise ConfigError("Config root must be a JSON object")
        return cls.from_dict(data)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "EngineConfig":
        """Load a JSON config file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        return cls.from_json(path.read_text(encoding="utf-8"))


def _apply_layer(target: Any, data: Dict[str, Any], prefix: str = "") -> None:
    known = {f.name: f for f in fields(target)}
    for key, value in data.items():
        path = f"{prefix}.{key}" if prefix else key
        if key not in known:
            raise ConfigError(f"Unknown config key: {path}")
        existing = getattr(target, key)
        if is_dataclass(existing):
            if not isinstance(value, dict):
                raise ConfigError(f"Expected mapping at {path}")
            _apply_layer(existing, value, prefix=path)
        else:
            setattr(target, key, _check_value(value, known[key].type, path))


def _check_value(value: Any, annotation: Any, path: str) -> Any:
    """Return ``value`` converted to ``annotation``, or raise ConfigError."""
    if get_origin(annotation) is Union:
        if value is None:
            return None
        inner = [arg for arg in get_args(annotation) if arg is not type(None)]
        return _check_value(value, inner[0], path)

    if get_origin(annotation) is tuple:
        if not isinstance(value, (list, tuple)):
            raise ConfigError(f"Expected list at {path}, got {value!r}")
        args = get_args(annotation)
        if len(args) == 2 and args[1] is Ellipsis:
            item_types = [args[0]] * len(value)
        elif len(value) != len(args):
            raise ConfigError(f"Expected {len(args)} items at {path}, got {len(value)}")
        else:
            item_types = list(args)
        return tuple(
            _check_value(item, item_type, f"{path}[{i}]")
            for i, (item, item_type) in enumerate(zip(value, item_types))
        )

    # bool is a subclass of int, so it is only accepted for bool fields
    if annotation is bool:
        ok = isinstance(value, bool)
    elif annotation is int:
        ok = isinstance(value, int) and not isinstance(value, bool)
    elif annotation is float:
        ok = isinstance(value, (int, float)) and not isinstance(value, bool)
        if ok:
            value = float(value)
    elif annotation is str:
        ok = isinstance(value, str)
    else:
        ok = True
    if not ok:
        raise ConfigError(f"Expected {annotation.__name__} at {path}, got {value!r}")
    return value
