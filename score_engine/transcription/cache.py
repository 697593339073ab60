"""Content-addressed on-disk cache of analysis results."""

import hashlib
import json
import logging
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..core import AnalysisResult, InstrumentClass, NoteEvent, StemFailure, TimeSignature, Track

logger = logging.getLogger(__name__)


def _encode(result: AnalysisResult) -> Dict[str, Any]:
    """Full-precision record; floats survive a JSON round trip exactly."""
    return {
        "duration": result.duration,
        "tempo": result.tempo,
        "time_signature": [result.time_signature.numerator, result.time_signature.denominator],
        "tracks": [
            {
                "name": t.name,
                "instrument": t.instrument.value,
                "raw_data": t.raw_data,
                "notes": [[n.pitch, n.onset, n.duration, n.velocity] for n in t.notes],
            }
            for t in result.tracks
        ],
        "failures": [[f.instrument.value, f.kind, f.message] for f in result.failures],
    }


def _decode(data: Dict[str, Any]) -> AnalysisResult:
    return AnalysisResult(
        tracks=tuple(
            Track(
                name=t["name"],
                instrument=InstrumentClass(t["instrument"]),
                notes=tuple(
                    NoteEvent(pitch=p, onset=o, duration=d, velocity=v)
                    for p, o, d, v in t["notes"]
                ),
                raw_data=t["raw_data"],
            )
            for t in data["tracks"]
        ),
        duration=data["duration"],
        tempo=data["tempo"],
        time_signature=TimeSignature(*data["time_signature"]),
        failures=tuple(
            StemFailure(instrument=InstrumentClass(i), kind=k, message=m)
            for i, k, m in data["failures"]
        ),
    )


class ResultCache:
    """
    Disk cache of AnalysisResults keyed by input content.

    The key is the SHA-256 of the input bytes, the configuration
    fingerprint and the separation backend version, so any change to
    settings or model produces a new entry. Partial results (with failed
    stems) are never stored.
    """

    DEFAULT_CACHE_DIR = Path(tempfile.gettempdir()) / "score_engine_cache"

    def __init__(
        self,
        cache_dir: Optional[Union[str, Path]] = None,
        ttl_hours: float = 24.0,
    ):
        """
        Initialize ResultCache.

        Args:
            cache_dir: Directory for cache entries (default: temp dir)
            ttl_hours: Entries older than this are treated as missing
        """
        self.cache_dir = Path(cache_dir) if cache_dir else self.DEFAULT_CACHE_DIR
        self.ttl_hours = ttl_hours
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def make_key(data: bytes, fingerprint: str, backend_version: str) -> str:
        digest = hashlib.sha256()
        digest.update(data)
        digest.update(b"\0")
        digest.update(fingerprint.encode("utf-8"))
        digest.update(b"\0")
        digest.update(backend_version.encode("utf-8"))
        return digest.hexdigest()

    def _path(self, key: str) -> Path:
        return self.cache_dir / f"result_{key}.json"

    def get(self, key: str) -> Optional[AnalysisResult]:
        """Load a cached result if present and not expired."""
        path = self._path(key)
        if not path.exists():
            return None

        age_hours = (time.time() - path.stat().st_mtime) / 3600
        if age_hours > self.ttl_hours:
            path.unlink(missing_ok=True)
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                result = _decode(json.load(f))
        except (OSError, ValueError, KeyError, TypeError) as e:
            # Corrupted entry, remove it
            logger.debug("Discarding unreadable cache entry %s: %s", path.name, e)
            path.unlink(missing_ok=True)
            return None

        logger.debug("Cache hit %s", key[:12])
        return result

    def put(self, key: str, result: AnalysisResult) -> None:
        """Store a result. Write failures are logged, never raised."""
        if result.is_partial:
            return
        path = self._path(key)
        tmp: Optional[Path] = None
        try:
            # One temp file per writer; concurrent puts of a key each replace atomically
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.cache_dir,
                prefix=f"{path.stem}.",
                suffix=".tmp",
                delete=False,
            ) as f:
                tmp = Path(f.name)
                json.dump(_encode(result), f, sort_keys=True)
            tmp.replace(path)
        except OSError as e:
            logger.warning("Failed to save cache entry: %s", e)
            if tmp is not None:
                tmp.unlink(missing_ok=True)

    def clear(self, older_than_hours: Optional[float] = None) -> int:
        """
        Clear the cache directory.

        Args:
            older_than_hours: Only clear entries older than this (default: all)

        Returns:
            Number of cache entries removed
        """
        if not self.cache_dir.exists():
            return 0

        removed = 0
        now = time.time()
        for path in self.cache_dir.glob("result_*.json"):
            if older_than_hours is not None:
                if (now - path.stat().st_mtime) / 3600 < older_than_hours:
                    continue
            path.unlink(missing_ok=True)
            removed += 1
        return removed
