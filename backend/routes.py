"""Ruta Segura Backend — FastAPI Routes"""

import logging
import time
from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import DATA_DESCRIPTION, RATE_EVICT_INTERVAL, RATE_LIMIT, RATE_WINDOW, RISK_DB_PATH
from data_fetchers import (
    UnresolvedLocation, client, fetch_osrm_route, geocode_place,
    requires_ferry, resolve_location,
)
from models import (
    AutocompleteResponse, CityCrimeStats, CityStatsResponse, CrimeRatesOut,
    GeocodeResponse, HazardMarkerOut, NearbyMunicipalityOut, NearbyResponse,
    RouteRequest, RouteResponse, RouteScoreRequest, RouteScoreResponse,
    RouteSegmentOut, RouteStats, SegmentRequest, SegmentRiskResponse,
)
from name_normalizer import NameNormalizer
from nearby import NearbyMunicipality, find_nearby_municipalities
from risk_store import MunicipalityRiskStore, Tier, load_risk_store
from scoring import (
    CityStats, CrimeRates, HazardMarker, Segment,
    build_hazard_markers, classify_segment, lookup_city, round_half_up,
    safety_recommendations, score_route, segment_route,
)

logger = logging.getLogger("rutasegura")


# ─────────────────────────── Dependencies ───────────────────────

def get_risk_store() -> MunicipalityRiskStore:
    return load_risk_store(str(RISK_DB_PATH))


@lru_cache(maxsize=4)
def _normalizer_for(store: MunicipalityRiskStore) -> NameNormalizer:
    return NameNormalizer(store)


def get_normalizer(store: MunicipalityRiskStore = Depends(get_risk_store)) -> NameNormalizer:
    return _normalizer_for(store)


# ─────────────────────────── App Setup ──────────────────────────

app = FastAPI(title="Ruta Segura API", version="1.0.0")

_allowed_origins = [
    f"http://localhost:{p}" for p in range(5173, 5180)
] + [
    f"http://127.0.0.1:{p}" for p in range(5173, 5180)
] + [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    store = get_risk_store()
    logger.info(f"Risk store ready: {len(store)} municipalities")


@app.on_event("shutdown")
async def shutdown_event():
    await client.aclose()


# ─────────────────────────── Rate Limiting ──────────────────────

_rate_store: dict[str, list[float]] = {}
_last_rate_evict = 0.0


def _evict_stale_ips(now: float):
    stale_ips = [ip for ip, timestamps in _rate_store.items()
                 if not timestamps or now - timestamps[-1] > RATE_WINDOW * 2]
    for ip in stale_ips:
        del _rate_store[ip]
    if stale_ips:
        logger.debug(f"Evicted {len(stale_ips)} stale rate-limit entries")


@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    client_ip = request.client.host if request.client else "unknown"
    now = time.time()

    # Periodically evict stale IPs to prevent memory leak
    global _last_rate_evict
    if now - _last_rate_evict > RATE_EVICT_INTERVAL:
        _evict_stale_ips(now)
        _last_rate_evict = now

    recent = [t for t in _rate_store.get(client_ip, []) if now - t < RATE_WINDOW]
    if len(recent) >= RATE_LIMIT:
        _rate_store[client_ip] = recent
        return JSONResponse(
            status_code=429,
            content={"detail": "Rate limit exceeded. Try again in a minute."},
        )
    recent.append(now)
    _rate_store[client_ip] = recent
    return await call_next(request)


# ─────────────────────────── Serializers ────────────────────────

def _nearby_out(nearby: tuple[NearbyMunicipality, ...] | list[NearbyMunicipality]) -> list[NearbyMunicipalityOut]:
    return [
        NearbyMunicipalityOut(
            name=m.name,
            distanceKm=round_half_up(m.distance_km),
            tier=m.record.risk_level.value,
        )
        for m in nearby
    ]


def _segment_out(segment: Segment) -> RouteSegmentOut:
    return RouteSegmentOut(
        id=segment.id,
        tier=segment.tier.value,
        score=segment.score,
        coordinates=[list(c) for c in segment.coordinates],
        nearby=_nearby_out(segment.nearby),
    )


def _rates_out(rates: CrimeRates | None) -> CrimeRatesOut | None:
    if rates is None:
        return None
    return CrimeRatesOut(
        robberies=rates.robberies,
        homicides=rates.homicides,
        kidnappings=rates.kidnappings,
    )


def _city_out(city: CityStats) -> CityStatsResponse:
    if not city.found:
        return CityStatsResponse(
            found=False,
            canonicalName=city.canonical_name,
            tier=Tier.UNKNOWN.value,
            stats=CityCrimeStats(),
            description=city.description,
            recommendations=safety_recommendations(city),
        )

    record = city.record
    levels = city.category_levels()
    return CityStatsResponse(
        found=True,
        canonicalName=city.canonical_name,
        tier=city.tier.value,
        stats=CityCrimeStats(
            kidnapping=record.secuestro,
            robbery=record.robo,
            homicide=record.homicidio_doloso,
            despojo=record.despojo,
            kidnappingLevel=levels["secuestro"].value,
            robberyLevel=levels["robo"].value,
            homicideLevel=levels["homicidio_doloso"].value,
            despojoLevel=levels["despojo"].value,
            raw=city.raw_counts,
        ),
        population=record.safe_population,
        description=city.description,
        lastUpdated=city.last_updated,
        dataPeriod=DATA_DESCRIPTION,
        recommendations=safety_recommendations(city),
    )


def _hazard_out(marker: HazardMarker) -> HazardMarkerOut:
    return HazardMarkerOut(
        segmentId=marker.segment_id,
        tier=marker.tier.value,
        title=marker.title,
        position=list(marker.position),
        municipality=marker.municipality,
        distanceKm=marker.distance_km,
        assaults=marker.assaults,
        disappearances=marker.disappearances,
        period=marker.period,
    )


def _format_distance(meters: float) -> str:
    return f"{round_half_up(meters / 1000)} km"


def _format_duration(seconds: float) -> str:
    hours = int(seconds // 3600)
    minutes = round_half_up((seconds % 3600) / 60)
    return f"{hours}h {minutes}m"


# ─────────────────────────── Route Endpoints ────────────────────

@app.post("/api/route", response_model=RouteResponse)
async def get_route_safety(
    req: RouteRequest,
    store: MunicipalityRiskStore = Depends(get_risk_store),
    normalizer: NameNormalizer = Depends(get_normalizer),
):
    """Fetch a road route between two named places and score it."""
    if requires_ferry(req.origin, req.destination, normalizer):
        raise HTTPException(
            status_code=422,
            detail="This route requires crossing the Gulf of California by ferry. "
                   "Pick two places on the same landmass.",
        )

    origin_loc = await resolve_location(req.origin, normalizer)
    dest_loc = await resolve_location(req.destination, normalizer)
    for loc in (origin_loc, dest_loc):
        if isinstance(loc, UnresolvedLocation):
            raise HTTPException(status_code=404, detail=f"Could not locate '{loc.name}': {loc.reason}")

    directions = await fetch_osrm_route(origin_loc.point, dest_loc.point)
    if not directions or not directions.get("points"):
        raise HTTPException(
            status_code=503,
            detail=f"Could not calculate a road route between {req.origin} and {req.destination}. "
                   "The routing service is unavailable or no road route exists.",
        )

    segments = segment_route(store, directions["points"])
    summary = score_route(normalizer, req.origin, req.destination, segments)

    warnings = []
    for city in (summary.origin, summary.destination):
        if not city.found:
            warnings.append(f"No crime statistics for {city.query}; scored without endpoint data.")
    if any(s.tier is Tier.HIGH for s in segments):
        warnings.append("Route passes through high-risk areas.")

    return RouteResponse(
        origin=_city_out(summary.origin),
        destination=_city_out(summary.destination),
        segments=[_segment_out(s) for s in summary.segments],
        stats=RouteStats(
            distance=_format_distance(directions.get("distance_m", 0)),
            duration=_format_duration(directions.get("duration_s", 0)),
            safetyScore=summary.overall_score,
            incidentEstimate=summary.incident_estimate,
            crimeRates=_rates_out(summary.crime_rates),
        ),
        hazards=[_hazard_out(m) for m in build_hazard_markers(summary.segments)],
        warnings=warnings,
    )


@app.post("/api/route/score", response_model=RouteScoreResponse)
async def score_route_segments(
    req: RouteScoreRequest,
    store: MunicipalityRiskStore = Depends(get_risk_store),
    normalizer: NameNormalizer = Depends(get_normalizer),
):
    """Score caller-supplied segment polylines; no upstream calls."""
    segments = []
    for i, coords in enumerate(req.segments):
        risk = classify_segment(store, coords)
        segments.append(Segment(
            id=f"seg-{i}",
            coordinates=tuple(coords),
            tier=risk.tier,
            score=risk.score,
            nearby=risk.nearby,
        ))
    summary = score_route(normalizer, req.origin, req.destination, segments)
    return RouteScoreResponse(
        overallScore=summary.overall_score,
        incidentEstimate=summary.incident_estimate,
        crimeRates=_rates_out(summary.crime_rates),
        segments=[_segment_out(s) for s in summary.segments],
    )


@app.post("/api/segment", response_model=SegmentRiskResponse)
async def classify_route_segment(
    req: SegmentRequest,
    store: MunicipalityRiskStore = Depends(get_risk_store),
):
    risk = classify_segment(store, req.coordinates)
    return SegmentRiskResponse(tier=risk.tier.value, score=risk.score, nearby=_nearby_out(risk.nearby))


# ─────────────────────────── Lookup Endpoints ───────────────────

@app.get("/api/city", response_model=CityStatsResponse)
async def get_city_stats(name: str, normalizer: NameNormalizer = Depends(get_normalizer)):
    return _city_out(lookup_city(normalizer, name))


@app.get("/api/nearby", response_model=NearbyResponse)
async def get_nearby(
    lat: float,
    lng: float,
    radius: float = Query(100.0, gt=0, le=500),
    limit: int = Query(3, ge=1, le=20),
    store: MunicipalityRiskStore = Depends(get_risk_store),
):
    found = find_nearby_municipalities(store, (lat, lng), radius, limit)
    return NearbyResponse(municipalities=_nearby_out(found))


@app.get("/api/autocomplete", response_model=AutocompleteResponse)
async def autocomplete(query: str, normalizer: NameNormalizer = Depends(get_normalizer)):
    return AutocompleteResponse(suggestions=normalizer.suggest(query))


@app.get("/api/geocode", response_model=GeocodeResponse)
async def geocode(query: str, normalizer: NameNormalizer = Depends(get_normalizer)):
    loc = await geocode_place(query, normalizer)
    if isinstance(loc, UnresolvedLocation):
        raise HTTPException(status_code=404, detail=f"Location not found: {loc.reason}")
    return GeocodeResponse(name=loc.name, lat=loc.lat, lng=loc.lon, source=loc.source)


@app.get("/api/health")
async def health(store: MunicipalityRiskStore = Depends(get_risk_store)):
    return {"status": "ok", "municipalities": len(store), "version": "1.0.0"}
