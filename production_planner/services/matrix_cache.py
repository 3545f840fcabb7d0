# production_planner/services/matrix_cache.py
import hashlib
import threading
from collections import OrderedDict
from dataclasses import replace
from datetime import date
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from production_planner.core.entities import ProductSeries, SeasonalityMatrix
from production_planner.logging_setup import get_logger

logger = get_logger(__name__)

CacheKey = Tuple[str, date, str, str]

def history_hash(series: ProductSeries) -> str:
    """SHA-256 fingerprint of every observation that feeds the decomposition."""
    digest = hashlib.sha256()
    for obs in series.observations:
        digest.update(
            f"{obs.date.isoformat()}|{obs.quantity_sold}|{obs.weather or ''}|{int(obs.is_rainy)}\n".encode('utf-8')
        )
    return digest.hexdigest()

def settings_fingerprint(settings: Optional[Mapping[str, Any]]) -> str:
    """SHA-256 fingerprint of the settings a matrix was decomposed with."""
    if not settings:
        return ''
    canonical = '\n'.join(f"{key}={settings[key]!r}" for key in sorted(settings))
    return hashlib.sha256(canonical.encode('utf-8')).hexdigest()

def _detached(matrix: SeasonalityMatrix) -> SeasonalityMatrix:
    return replace(matrix, weather_multipliers=dict(matrix.weather_multipliers))

class MatrixCache:
    """Bounded LRU cache of seasonality matrices.

    Entries are keyed by series key, as-of date, history fingerprint and
    settings fingerprint, so a changed history or a service with other
    thresholds never gets a stale matrix. Callers receive their own copy.
    """

    def __init__(self, max_entries: int = 256):
        self.max_entries = max_entries
        self._entries: Dict[CacheKey, SeasonalityMatrix] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def __len__(self):
        return len(self._entries)

    def get_or_compute(
        self,
        series: ProductSeries,
        as_of: date,
        compute: Callable[[ProductSeries, date], SeasonalityMatrix],
        fingerprint: str = ''
    ) -> SeasonalityMatrix:
        """Return the cached matrix for the series, computing it on a miss.

        Args:
            series: Daily series
            as_of: Anchor date of the baseline
            compute: Function building the matrix from (series, as_of)
            fingerprint: Settings fingerprint of the caller

        Returns:
            SeasonalityMatrix
        """
        key = (series.key, as_of, history_hash(series), fingerprint)

        with self._lock:
            matrix = self._entries.get(key)
            if matrix is not None:
                self._entries.move_to_end(key)
                self.hits += 1
                return _detached(matrix)
            self.misses += 1

        matrix = compute(series, as_of)

        with self._lock:
            self._entries[key] = _detached(matrix)
            self._entries.move_to_end(key)
            while len(self._entries) > max(1, self.max_entries):
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Evicted seasonality matrix for {evicted[0]}")

        return matrix

    def clear(self):
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0
