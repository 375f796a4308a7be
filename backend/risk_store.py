"""Municipal crime-statistics store.

Loads the SESNSP-derived dataset (``datasets/municipal_risk_db.json``) once
and exposes it as an immutable name → CrimeRecord mapping:

    {
      "municipalities": {
        "Guadalajara": {"secuestro": 12, "robo": 14250, "homicidio_doloso": 310,
                        "despojo": 240, "population": 1385629,
                        "risk_level": "High", "coordinates": [20.6597, -103.3496]},
        ...
      },
      "metadata": {"lastUpdated": "2026-01", "source": "...", ...}
    }

Records without coordinates are kept (they can still be looked up by name)
but are excluded from spatial queries.
"""

import json
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Iterator, Mapping, Optional

import numpy as np

from config import DEFAULT_POPULATION, RISK_DB_PATH, RISK_THRESHOLDS

logger = logging.getLogger("rutasegura.risk_store")

COUNT_FIELDS = (
    "secuestro", "robo", "homicidio_doloso", "despojo",
    "violencia_familiar", "lesiones_dolosas",
)


class Tier(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class RiskThresholds:
    """Cutoffs turning a raw yearly count into a tier."""

    medium: float
    high: float

    def __post_init__(self):
        if self.medium < 0 or self.high < 0:
            raise ValueError(f"Thresholds must be non-negative: {self.medium}, {self.high}")
        if self.medium >= self.high:
            raise ValueError(f"Medium cutoff must be below high cutoff: {self.medium} >= {self.high}")

    def classify(self, value: float) -> Tier:
        if value >= self.high:
            return Tier.HIGH
        if value >= self.medium:
            return Tier.MEDIUM
        return Tier.LOW


CATEGORY_THRESHOLDS: dict[str, RiskThresholds] = {
    category: RiskThresholds(medium, high)
    for category, (medium, high) in RISK_THRESHOLDS.items()
}


@dataclass(frozen=True)
class CrimeRecord:
    name: str
    secuestro: int = 0
    robo: int = 0
    homicidio_doloso: int = 0
    despojo: int = 0
    violencia_familiar: int = 0
    lesiones_dolosas: int = 0
    population: int = DEFAULT_POPULATION
    risk_level: Tier = Tier.LOW
    coordinates: Optional[tuple[float, float]] = None

    @property
    def safe_population(self) -> int:
        """Population usable as a divisor."""
        return self.population if self.population > 0 else DEFAULT_POPULATION

    def rate_per_100k(self, count: int) -> float:
        return count / self.safe_population * 100_000

    def counts(self) -> dict[str, int]:
        return {f: getattr(self, f) for f in COUNT_FIELDS}

    @classmethod
    def from_dict(cls, name: str, data: Mapping) -> "CrimeRecord":
        """Build a record from one dataset entry.

        Raises ValueError when a crime count is negative or not an integer,
        or when the tier label is unknown.
        """
        counts = {}
        for f in COUNT_FIELDS:
            raw = data.get(f) or 0
            if (isinstance(raw, bool) or not isinstance(raw, (int, float))
                    or not math.isfinite(raw) or raw != int(raw)):
                raise ValueError(f"{name}: {f} must be an integer, got {raw!r}")
            if raw < 0:
                raise ValueError(f"{name}: {f} must be non-negative, got {raw}")
            counts[f] = int(raw)

        population = data.get("population")
        if (isinstance(population, bool) or not isinstance(population, (int, float))
                or not math.isfinite(population) or population <= 0):
            population = DEFAULT_POPULATION

        risk_level = Tier(data.get("risk_level", "Low"))
        if risk_level is Tier.UNKNOWN:
            raise ValueError(f"{name}: stored records cannot have tier Unknown")

        return cls(
            name=name,
            population=int(population),
            risk_level=risk_level,
            coordinates=_parse_coordinates(data.get("coordinates")),
            **counts,
        )


def _parse_coordinates(raw) -> Optional[tuple[float, float]]:
    if not isinstance(raw, (list, tuple)) or len(raw) < 2:
        return None
    try:
        lat, lon = float(raw[0]), float(raw[1])
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return None
    return lat, lon


def classify_overall_tier(counts: Mapping[str, int]) -> Tier:
    """High if any category is High, else Medium if any is Medium, else Low."""
    levels = [
        thresholds.classify(counts.get(category, 0) or 0)
        for category, thresholds in CATEGORY_THRESHOLDS.items()
    ]
    if Tier.HIGH in levels:
        return Tier.HIGH
    if Tier.MEDIUM in levels:
        return Tier.MEDIUM
    return Tier.LOW


@dataclass(frozen=True, eq=False)
class GeoIndex:
    """Records with coordinates, in store order, with parallel numpy arrays."""

    records: tuple[CrimeRecord, ...]
    lats: np.ndarray = field(repr=False)
    lons: np.ndarray = field(repr=False)


class MunicipalityRiskStore:
    """Read-only name → CrimeRecord mapping.

    Iteration order is the dataset's insertion order; spatial tie-breaks
    depend on it.
    """

    def __init__(self, records: Mapping[str, CrimeRecord], metadata: Optional[Mapping] = None):
        self._records = MappingProxyType(dict(records))
        self.metadata = MappingProxyType(dict(metadata or {}))

        located = tuple(r for r in self._records.values() if r.coordinates is not None)
        lats = np.array([r.coordinates[0] for r in located], dtype=float)
        lons = np.array([r.coordinates[1] for r in located], dtype=float)
        lats.setflags(write=False)
        lons.setflags(write=False)
        self.geo_index = GeoIndex(located, lats, lons)

    def get(self, name: str) -> Optional[CrimeRecord]:
        return self._records.get(name)

    def names(self) -> list[str]:
        return list(self._records)

    def records(self):
        return self._records.values()

    def __contains__(self, name) -> bool:
        return name in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    @classmethod
    def from_dict(cls, data: Mapping) -> "MunicipalityRiskStore":
        records = {}
        for name, entry in (data.get("municipalities") or {}).items():
            if not isinstance(entry, Mapping):
                logger.warning(f"Skipping {name}: entry is not an object")
                continue
            try:
                records[name] = CrimeRecord.from_dict(name, entry)
            except ValueError as e:
                logger.warning(f"Skipping malformed record: {e}")
        return cls(records, data.get("metadata"))

    @classmethod
    def from_json(cls, path: Path) -> "MunicipalityRiskStore":
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return cls.from_dict(data)


@lru_cache(maxsize=4)
def load_risk_store(path: str = str(RISK_DB_PATH)) -> MunicipalityRiskStore:
    """Load the dataset once per path; an unreadable file yields an empty store."""
    try:
        store = MunicipalityRiskStore.from_json(Path(path))
        located = len(store.geo_index.records)
        logger.info(f"Loaded {len(store)} municipalities ({located} with coordinates) from {Path(path).name}")
        return store
    except FileNotFoundError:
        logger.warning(f"Risk dataset not found: {path}")
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning(f"Failed to parse risk dataset {path}: {e}")
    return MunicipalityRiskStore({})
