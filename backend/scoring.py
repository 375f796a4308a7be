"""Ruta Segura Backend — Risk Scoring Logic

Pipeline for one route:
  polyline → segment_route() → classify_segment() per chunk
           → find_nearby_municipalities() → compute_risk_score() per candidate
           → inverse-distance weighted average → tier
  score_route() then folds endpoint lookups and segment tiers into the
  overall 0-100 safety score, an incident estimate and per-100k rates.

Everything here is pure: inputs are already-resolved coordinates and an
immutable store, so nothing in this module performs I/O.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence

from config import (
    DATA_DESCRIPTION, DATA_PERIOD,
    ENDPOINT_TIER_PENALTY, HAZARD_SCALE_FACTOR, INCIDENT_SCALE_DIVISOR,
    KIDNAPPING_PENALTIES, MAX_HAZARD_MARKERS, MAX_SEVERITY_SCORE,
    NEARBY_LIMIT, NEARBY_RADIUS_KM, NO_LOCAL_DATA_SCORE,
    ROUTE_BASE_SCORE, SEGMENT_HIGH_CUTOFF, SEGMENT_MEDIUM_CUTOFF,
    SEGMENTS_PER_ROUTE, SEVERITY_WEIGHTS, CDMX_AGGREGATE_KEY, CDMX_BOROUGHS,
)
from geo import as_point, is_finite_point
from name_normalizer import NameNormalizer
from nearby import NearbyMunicipality, find_nearby_municipalities
from risk_store import CATEGORY_THRESHOLDS, CrimeRecord, MunicipalityRiskStore, Tier

logger = logging.getLogger("rutasegura.scoring")


def round_half_up(value: float) -> int:
    """Nearest integer with halves rounded up (2.5 → 3), unlike round()."""
    return math.floor(value + 0.5)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Severity score for a single municipality
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def compute_risk_score(record: CrimeRecord) -> float:
    """Severity-adjusted per-capita incidence, clamped to [0, 100].

    Each count is turned into a rate per 100,000 inhabitants and weighted:

        score = 2.0  * homicide_rate
              + 10.0 * kidnapping_rate
              + 0.01 * robbery_rate

    Homicide carries the most weight per incident among common crimes.
    Kidnapping is far rarer, so its rate is amplified further to keep a
    handful of cases visible. Robbery is two orders of magnitude more
    frequent and individually less severe, so it only contributes once
    rates reach the thousands.
    """
    homicide_rate = record.rate_per_100k(record.homicidio_doloso)
    kidnapping_rate = record.rate_per_100k(record.secuestro)
    robbery_rate = record.rate_per_100k(record.robo)

    score = (homicide_rate * SEVERITY_WEIGHTS["homicide"]
             + kidnapping_rate * SEVERITY_WEIGHTS["kidnapping"]
             + robbery_rate * SEVERITY_WEIGHTS["robbery"])
    return min(MAX_SEVERITY_SCORE, max(0.0, score))


def classify_score(score: float) -> Tier:
    """Tier for an aggregate segment score."""
    if score >= SEGMENT_HIGH_CUTOFF:
        return Tier.HIGH
    if score >= SEGMENT_MEDIUM_CUTOFF:
        return Tier.MEDIUM
    return Tier.LOW


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Segment classification
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class SegmentRisk:
    tier: Tier
    score: int
    nearby: tuple[NearbyMunicipality, ...] = ()


@dataclass(frozen=True)
class Segment:
    id: str
    coordinates: tuple[tuple[float, float], ...]
    tier: Tier
    score: int
    nearby: tuple[NearbyMunicipality, ...] = ()

    @property
    def midpoint(self) -> Optional[tuple[float, float]]:
        if not self.coordinates:
            return None
        return self.coordinates[len(self.coordinates) // 2]


def classify_segment(store: MunicipalityRiskStore, coordinates: Sequence) -> SegmentRisk:
    """Classify one polyline chunk from the municipalities around its midpoint.

    Empty or non-finite input → Low/0. No municipality within range →
    Low with the no-data floor score. Otherwise an inverse-distance
    weighted average of the candidates' severity scores, weight
    1 / (distance_km + 1).
    """
    if not coordinates:
        return SegmentRisk(Tier.LOW, 0)

    midpoint = as_point(coordinates[len(coordinates) // 2])
    if not is_finite_point(midpoint):
        logger.debug(f"Non-finite segment midpoint {midpoint}")
        return SegmentRisk(Tier.LOW, 0)

    nearby = find_nearby_municipalities(store, midpoint, NEARBY_RADIUS_KM, NEARBY_LIMIT)
    if not nearby:
        return SegmentRisk(Tier.LOW, NO_LOCAL_DATA_SCORE)

    total_weight = 0.0
    weighted = 0.0
    for m in nearby:
        weight = 1.0 / (m.distance_km + 1.0)
        weighted += compute_risk_score(m.record) * weight
        total_weight += weight
    final_score = weighted / total_weight if total_weight > 0 else 0.0

    tier = classify_score(final_score)
    logger.debug(
        f"Segment at {midpoint}: score={final_score:.2f} tier={tier.value} "
        f"nearby={[(m.name, round(m.distance_km, 1)) for m in nearby]}"
    )
    return SegmentRisk(tier, round_half_up(final_score), tuple(nearby))


def segment_route(
    store: MunicipalityRiskStore,
    coordinates: Sequence,
    segment_count: int = SEGMENTS_PER_ROUTE,
) -> list[Segment]:
    """Slice a polyline into ``segment_count`` chunks and classify each.

    Each chunk also takes the first point of the next one so the drawn
    segments meet without gaps.
    """
    points = [as_point(c) for c in coordinates]
    total = len(points)
    if total == 0 or segment_count <= 0:
        return []

    chunk_size = math.ceil(total / segment_count)
    segments = []
    for i in range(segment_count):
        start = i * chunk_size
        if start >= total:
            break
        end = min((i + 1) * chunk_size + 1, total)
        chunk = tuple(points[start:end])
        risk = classify_segment(store, chunk)
        segments.append(Segment(
            id=f"seg-{i}",
            coordinates=chunk,
            tier=risk.tier,
            score=risk.score,
            nearby=risk.nearby,
        ))
    return segments


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  City lookup
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class CityStats:
    found: bool
    query: str
    canonical_name: str
    tier: Tier
    record: Optional[CrimeRecord] = None
    description: str = "Data not available for this municipality."
    last_updated: str = "N/A"

    @property
    def raw_counts(self) -> Optional[dict[str, int]]:
        return self.record.counts() if self.record else None

    @property
    def kidnappings(self) -> int:
        return self.record.secuestro if self.record else 0

    def category_levels(self) -> Optional[dict[str, Tier]]:
        if self.record is None:
            return None
        return {
            category: thresholds.classify(getattr(self.record, category))
            for category, thresholds in CATEGORY_THRESHOLDS.items()
        }


def lookup_city(normalizer: NameNormalizer, name: str) -> CityStats:
    """Resolve a free-text city name to its crime statistics.

    Unresolvable names are not an error: they come back with
    ``found=False`` and tier Unknown.
    """
    record = normalizer.lookup(name)
    if record is None:
        return CityStats(found=False, query=name, canonical_name=name, tier=Tier.UNKNOWN)

    millions = record.safe_population / 1_000_000
    if normalizer.resolve(name) == CDMX_AGGREGATE_KEY:
        description = f"Population: {millions:.1f}M ({len(CDMX_BOROUGHS)} boroughs). Source: SESNSP."
    else:
        description = f"Population: {millions:.1f}M. Source: SESNSP."

    return CityStats(
        found=True,
        query=name,
        canonical_name=record.name,
        tier=record.risk_level,
        record=record,
        description=description,
        last_updated=DATA_PERIOD,
    )


def safety_recommendations(city: CityStats) -> list[str]:
    if not city.found:
        return ["No data available for this location."]

    tips = []
    levels = city.category_levels() or {}
    if city.tier is Tier.HIGH:
        tips.append("High-risk area. Take extreme precautions.")
    if city.kidnappings > 10:
        tips.append("High kidnapping rate. Avoid travelling alone or at night.")
    if levels.get("robo") is Tier.HIGH:
        tips.append("High robbery rate. Use guarded parking.")
    if levels.get("homicidio_doloso") is Tier.HIGH:
        tips.append("High homicide rate. Stay in busy areas.")
    if levels.get("despojo") is Tier.HIGH:
        tips.append("High property-seizure rate. Keep an eye on your property.")
    if not tips:
        tips.append("Relatively safe area. Keep normal precautions.")
    return tips


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Route aggregation
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class CrimeRates:
    robberies: int
    homicides: int
    kidnappings: int


@dataclass(frozen=True)
class RouteSafetySummary:
    origin: CityStats
    destination: CityStats
    segments: tuple[Segment, ...]
    overall_score: int
    incident_estimate: int
    crime_rates: Optional[CrimeRates] = None


def endpoint_penalty(city: CityStats) -> int:
    penalty = ENDPOINT_TIER_PENALTY.get(city.tier.value, 0)
    if city.found:
        for above, points in KIDNAPPING_PENALTIES:
            if city.kidnappings > above:
                penalty += points
    return penalty


def compute_endpoint_score(origin: CityStats, destination: CityStats) -> int:
    score = ROUTE_BASE_SCORE - endpoint_penalty(origin) - endpoint_penalty(destination)
    return max(0, min(100, score))


def estimate_incidents(segments: Sequence[Segment]) -> int:
    """Rough count of recent events: Medium/High segment scores, scaled down."""
    total = sum(s.score for s in segments if s.tier in (Tier.MEDIUM, Tier.HIGH))
    return round_half_up(total / INCIDENT_SCALE_DIVISOR)


def compute_route_crime_rates(segments: Sequence[Segment]) -> Optional[CrimeRates]:
    """Per-100k rates over every distinct municipality near the route."""
    seen: dict[str, CrimeRecord] = {}
    for segment in segments:
        for m in segment.nearby:
            seen.setdefault(m.name, m.record)

    population = sum(r.safe_population for r in seen.values())
    if population <= 0:
        return None

    def per_100k(total: int) -> int:
        return round_half_up(total / population * 100_000)

    return CrimeRates(
        robberies=per_100k(sum(r.robo for r in seen.values())),
        homicides=per_100k(sum(r.homicidio_doloso for r in seen.values())),
        kidnappings=per_100k(sum(r.secuestro for r in seen.values())),
    )


def score_route(
    normalizer: NameNormalizer,
    origin_name: str,
    destination_name: str,
    segments: Sequence[Segment],
) -> RouteSafetySummary:
    origin = lookup_city(normalizer, origin_name)
    destination = lookup_city(normalizer, destination_name)
    overall = compute_endpoint_score(origin, destination)
    incidents = estimate_incidents(segments)
    rates = compute_route_crime_rates(segments)
    logger.info(
        f"Route {origin.canonical_name} → {destination.canonical_name}: "
        f"score={overall} incidents≈{incidents} segments={len(segments)}"
    )
    return RouteSafetySummary(
        origin=origin,
        destination=destination,
        segments=tuple(segments),
        overall_score=overall,
        incident_estimate=incidents,
        crime_rates=rates,
    )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Hazard markers
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class HazardMarker:
    segment_id: str
    tier: Tier
    title: str
    position: tuple[float, float]
    municipality: str
    distance_km: int
    assaults: int
    disappearances: int
    period: str = f"{DATA_DESCRIPTION} (SESNSP)"


_HAZARD_TITLES = {
    Tier.HIGH: "High-danger zone near {}",
    Tier.MEDIUM: "Caution zone, {} area",
    Tier.LOW: "Safe zone, {} region",
}


def segment_hazard(segment: Segment) -> Optional[HazardMarker]:
    """Marker built from the municipality nearest to the segment midpoint."""
    if not segment.nearby or segment.midpoint is None:
        return None
    nearest = segment.nearby[0]
    record = nearest.record
    return HazardMarker(
        segment_id=segment.id,
        tier=segment.tier,
        title=_HAZARD_TITLES[segment.tier].format(nearest.name),
        position=segment.midpoint,
        municipality=nearest.name,
        distance_km=round_half_up(nearest.distance_km),
        assaults=round_half_up(record.robo * HAZARD_SCALE_FACTOR),
        disappearances=max(0, round_half_up(record.secuestro * HAZARD_SCALE_FACTOR)),
    )


def build_hazard_markers(segments: Sequence[Segment]) -> list[HazardMarker]:
    """Markers for High segments, or for Medium ones when no High exists.

    At most MAX_HAZARD_MARKERS, spread evenly over the qualifying segments.
    """
    high = [s for s in segments if s.tier is Tier.HIGH]
    chosen = high or [s for s in segments if s.tier is Tier.MEDIUM]
    if not chosen:
        return []

    count = min(len(chosen), MAX_HAZARD_MARKERS)
    markers = []
    for i in range(count):
        marker = segment_hazard(chosen[(i * len(chosen)) // count])
        if marker is not None:
            markers.append(marker)
    return markers
