"""Source separation: split a mix into per-instrument stems."""

import logging
import time
from collections import OrderedDict
from typing import Dict, List, Optional

import numpy as np

from ..config import SeparationConfig
from ..core import CancellationToken, InstrumentClass, Stem, WaveformBuffer
from ..core.cancellation import check_cancelled
from ..errors import EngineError, SeparationError
from .backends import SeparationBackend, create_backend

logger = logging.getLogger(__name__)


class SourceSeparator:
    """
    Audio source separator.

    Separates a mix into stems (vocals, piano, bass, guitar, drums, other)
    for per-instrument transcription. Output order follows the canonical
    instrument priority and keys are unique.

    Usage:
        separator = SourceSeparator()
        stems = separator.separate(buffer)
        bass = stems[InstrumentClass.BASS].waveform.to_mono()
    """

    def __init__(
        self,
        config: Optional[SeparationConfig] = None,
        backend: Optional[SeparationBackend] = None,
    ):
        """
        Initialize SourceSeparator.

        Args:
            config: Separation settings
            backend: Explicit backend instance (default: built from config.backend)
        """
        self.config = config or SeparationConfig()
        self.backend = backend or create_backend(self.config)
        self.last_separation_time = 0.0

    @property
    def version(self) -> str:
        """Backend identity used for determinism and cache keys."""
        return f"{self.backend.name}:{self.backend.version}"

    @property
    def instruments(self) -> List[InstrumentClass]:
        """Requested instrument classes in canonical priority order."""
        requested = {InstrumentClass(name) for name in self.config.instruments}
        return [i for i in InstrumentClass.priority_order() if i in requested]

    def separate(
        self,
        mix: WaveformBuffer,
        cancel: Optional[CancellationToken] = None,
    ) -> Dict[InstrumentClass, Stem]:
        """
        Separate a mix into stems.

        Args:
            mix: Mixed waveform
            cancel: Optional cancellation token, checked between stems

        Returns:
            Ordered mapping of instrument class to Stem; empty for pure silence

        Raises:
            SeparationError: If the backend is unavailable or fails
        """
        start_time = time.time()
        check_cancelled(cancel, "separation")

        instruments = self.instruments
        if not instruments:
            return OrderedDict()

        if not self.backend.is_available:
            raise SeparationError(
                f"Separation backend {self.backend.name!r} is unavailable",
                stage="separation",
            )

        if mix.is_silent():
            logger.info("Mix is silent; no stems produced")
            return OrderedDict()

        try:
            arrays = self.backend.separate(mix, instruments, cancel)
        except EngineError:
            raise
        except Exception as e:
            raise SeparationError(f"Separation backend {self.backend.name!r} crashed: {e}", stage="separation") from e

        stems = self._build_stems(mix, arrays)
        self.last_separation_time = time.time() - start_time
        logger.info(
            "Separated into %d stem(s) with %s in %.2fs: %s",
            len(stems),
            self.version,
            self.last_separation_time,
            ", ".join(i.value for i in stems),
        )
        return stems

    def _build_stems(
        self,
        mix: WaveformBuffer,
        arrays: Dict[InstrumentClass, np.ndarray],
    ) -> Dict[InstrumentClass, Stem]:
        """Fold near-silent stems into the catch-all and wrap the rest."""
        ordered = [i for i in InstrumentClass.priority_order() if i in arrays]
        energies = {i: float(np.sum(arrays[i].astype(np.float64) ** 2)) for i in ordered}
        total_energy = sum(energies.values())
        if total_energy <= 0:
            return OrderedDict()

        threshold = self.config.min_energy_ratio * total_energy
        kept = [i for i in ordered if energies[i] > threshold]
        dropped = [i for i in ordered if i not in kept]

        if not kept:
            return OrderedDict()

        if dropped:
            if InstrumentClass.OTHER in kept:
                target = InstrumentClass.OTHER
            else:
                target = max(kept, key=lambda i: energies[i])
            merged = arrays[target].copy()
            for instrument in dropped:
                merged = merged + arrays[instrument]
            arrays = dict(arrays)
            arrays[target] = merged
            logger.debug("Folded quiet stem(s) %s into %s", [i.value for i in dropped], target.value)

        stems = OrderedDict()
        for instrument in kept:
            samples = arrays[instrument]
            energy = float(np.sum(samples.astype(np.float64) ** 2))
            stems[instrument] = Stem(
                instrument=instrument,
                waveform=WaveformBuffer(samples=samples, sample_rate=mix.sample_rate),
                energy_ratio=energy / total_energy,
            )
        return stems
