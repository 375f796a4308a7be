"""Ruta Segura Backend — External Data Fetchers (OSRM routing, Nominatim geocoding)

These are the only functions that touch the network. They hand plain
data to the scoring core and never raise into the API layer: failures
come back as ``{}`` or an ``UnresolvedLocation``.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Union

import httpx

from config import (
    BAJA_CITIES, GEOCODE_BACKOFF_BASE, GEOCODE_MAX_RETRIES, GEOCODE_RATE_LIMIT_WAIT, HTTP_TIMEOUT,
    MEXICO_BOUNDS, NOMINATIM_URL, NOMINATIM_USER_AGENT, OSRM_BASE_URL,
)
from cache import geocode_cache, route_cache, route_cache_key
from name_normalizer import NameNormalizer, normalize_text

logger = logging.getLogger("rutasegura.fetchers")

# Shared async HTTP client
client = httpx.AsyncClient(timeout=HTTP_TIMEOUT)

_PLACE_TYPES = {"city", "town", "village", "municipality"}


@dataclass(frozen=True)
class ResolvedLocation:
    name: str
    lat: float
    lon: float
    source: str  # "dataset" | "geocoder" | "cache"

    @property
    def point(self) -> tuple[float, float]:
        return self.lat, self.lon


@dataclass(frozen=True)
class UnresolvedLocation:
    """A place that could not be located. Never replaced by a default city."""

    name: str
    reason: str


Location = Union[ResolvedLocation, UnresolvedLocation]


# ─────────────────────────── OSRM ───────────────────────────────

def _copy_route(route: dict) -> dict:
    # Callers get their own lists; the cached entry stays untouched
    return {**route, "points": [list(p) for p in route["points"]]}


async def fetch_osrm_route(
    start: tuple[float, float],
    end: tuple[float, float],
    http_client: Optional[httpx.AsyncClient] = None,
) -> dict:
    """Driving route between two (lat, lon) points.

    Returns {"points": [[lat, lon], ...], "distance_m", "duration_s"} or {}.
    """
    key = route_cache_key(start, end)
    cached = route_cache.get(key)
    if cached is not None:
        return _copy_route(cached)

    http = http_client or client
    # OSRM expects lon,lat
    url = f"{OSRM_BASE_URL}/route/v1/driving/{start[1]},{start[0]};{end[1]},{end[0]}"
    try:
        r = await http.get(url, params={"overview": "full", "geometries": "geojson"})
        if r.status_code != 200:
            logger.warning(f"OSRM HTTP error {r.status_code}: {r.text[:200]}")
            return {}
        routes = r.json().get("routes") or []
        if not routes:
            logger.warning("OSRM returned no routes")
            return {}
        route = routes[0]
        coords = route.get("geometry", {}).get("coordinates", [])
        result = {
            "points": [[c[1], c[0]] for c in coords],
            "distance_m": float(route.get("distance", 0)),
            "duration_s": float(route.get("duration", 0)),
        }
        if not result["points"]:
            return {}
        logger.info(
            f"Route calculated: {round(result['distance_m'] / 1000)}km, "
            f"{round(result['duration_s'] / 60)}min"
        )
        route_cache.set(key, result)
        return _copy_route(result)
    except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as e:
        logger.warning(f"OSRM routing error: {e}")
        return {}


# ─────────────────────────── Nominatim ──────────────────────────

def is_within_mexico(lat: float, lon: float) -> bool:
    return (MEXICO_BOUNDS["min_lat"] <= lat <= MEXICO_BOUNDS["max_lat"]
            and MEXICO_BOUNDS["min_lon"] <= lon <= MEXICO_BOUNDS["max_lon"])


async def _get_with_retry(
    http: httpx.AsyncClient,
    url: str,
    params: dict,
    max_retries: int = GEOCODE_MAX_RETRIES,
) -> Optional[list]:
    """GET with exponential backoff; longer wait on 429."""
    last_error = None
    for attempt in range(max_retries + 1):
        if attempt > 0:
            delay = GEOCODE_BACKOFF_BASE * 2 ** (attempt - 1)
            logger.info(f"Geocode retry {attempt} after {delay:.0f}s")
            await asyncio.sleep(delay)
        try:
            r = await http.get(url, params=params, headers={"User-Agent": NOMINATIM_USER_AGENT})
            if r.status_code == 200:
                return r.json()
            if r.status_code == 429:
                logger.warning("Rate limited by Nominatim")
                await asyncio.sleep(GEOCODE_RATE_LIMIT_WAIT)
                continue
            last_error = f"HTTP {r.status_code}"
        except (httpx.HTTPError, ValueError) as e:
            last_error = str(e) or type(e).__name__
    logger.warning(f"Geocoding failed after {max_retries + 1} attempts: {last_error}")
    return None


async def geocode_place(
    name: str,
    normalizer: NameNormalizer,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Location:
    """Coordinates for a Mexican place via Nominatim, cached for 30 days."""
    cache_key = normalize_text(name)
    if not cache_key:
        return UnresolvedLocation(name, "empty place name")

    cached = geocode_cache.get(cache_key)
    if cached is not None:
        return ResolvedLocation(name, cached[0], cached[1], "cache")

    query = normalizer.display_name(name)
    data = await _get_with_retry(
        http_client or client,
        NOMINATIM_URL,
        {"q": f"{query}, Mexico", "format": "json", "limit": 3, "countrycodes": "mx"},
    )
    if data is None:
        return UnresolvedLocation(name, "geocoding service unavailable")
    if not data:
        logger.warning(f"No geocoding results for {name}")
        return UnresolvedLocation(name, "no results")

    best = next((d for d in data if d.get("type") in _PLACE_TYPES), data[0])
    try:
        lat, lon = float(best["lat"]), float(best["lon"])
    except (KeyError, TypeError, ValueError):
        return UnresolvedLocation(name, "malformed geocoding result")

    if not is_within_mexico(lat, lon):
        logger.warning(f"Coordinates for {name} are outside Mexico bounds")
        return UnresolvedLocation(name, "outside Mexico")

    geocode_cache.set(cache_key, (lat, lon))
    return ResolvedLocation(name, lat, lon, "geocoder")


async def resolve_location(
    name: str,
    normalizer: NameNormalizer,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Location:
    """Dataset coordinates first, geocoder second."""
    record = normalizer.lookup(name)
    if record is not None and record.coordinates is not None:
        return ResolvedLocation(record.name, record.coordinates[0], record.coordinates[1], "dataset")
    logger.info(f"{name} not located in dataset, geocoding...")
    return await geocode_place(name, normalizer, http_client)


# ─────────────────────────── Route validation ───────────────────

_BAJA_NAMES = frozenset(normalize_text(city) for city in BAJA_CITIES)


def _on_baja_peninsula(place: str, normalizer: NameNormalizer) -> bool:
    return normalize_text(normalizer.display_name(place)) in _BAJA_NAMES


def requires_ferry(origin: str, destination: str, normalizer: NameNormalizer) -> bool:
    """True when exactly one endpoint is on the Baja California peninsula."""
    return _on_baja_peninsula(origin, normalizer) != _on_baja_peninsula(destination, normalizer)
