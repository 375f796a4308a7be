"""Ruta Segura Backend — Nearest-municipality search"""

import logging
from dataclasses import dataclass

import numpy as np

from config import NEARBY_LIMIT, NEARBY_RADIUS_KM
from geo import haversine_km_many
from risk_store import CrimeRecord, MunicipalityRiskStore

logger = logging.getLogger("rutasegura.nearby")


@dataclass(frozen=True)
class NearbyMunicipality:
    record: CrimeRecord
    distance_km: float

    @property
    def name(self) -> str:
        return self.record.name


def find_nearby_municipalities(
    store: MunicipalityRiskStore,
    point,
    radius_km: float = NEARBY_RADIUS_KM,
    limit: int = NEARBY_LIMIT,
) -> list[NearbyMunicipality]:
    """Up to ``limit`` located records within ``radius_km`` of ``point``.

    Sorted by distance; equal distances keep dataset order. An empty list
    means there is no local data around the point.
    """
    index = store.geo_index
    if limit <= 0 or not index.records:
        return []

    distances = haversine_km_many(point, index.lats, index.lons)
    # NaN distances (non-finite query) compare False and drop out here
    within = np.flatnonzero(distances <= radius_km)
    if within.size == 0:
        return []

    order = within[np.argsort(distances[within], kind="stable")][:limit]
    return [NearbyMunicipality(index.records[i], float(distances[i])) for i in order]
