"""Ruta Segura Backend — Pydantic Models"""

from typing import Optional
from pydantic import BaseModel, Field

Coordinate = tuple[float, float]  # (lat, lon)


class RouteRequest(BaseModel):
    origin: str = Field(min_length=1)
    destination: str = Field(min_length=1)


class RouteScoreRequest(BaseModel):
    origin: str
    destination: str
    segments: list[list[Coordinate]] = []


class SegmentRequest(BaseModel):
    coordinates: list[Coordinate] = []


class NearbyMunicipalityOut(BaseModel):
    name: str
    distanceKm: int
    tier: str


class SegmentRiskResponse(BaseModel):
    tier: str
    score: int
    nearby: list[NearbyMunicipalityOut]


class NearbyResponse(BaseModel):
    municipalities: list[NearbyMunicipalityOut]


class CrimeRatesOut(BaseModel):
    robberies: int
    homicides: int
    kidnappings: int


class CityCrimeStats(BaseModel):
    kidnapping: int | str = "N/A"
    robbery: int | str = "N/A"
    homicide: int | str = "N/A"
    despojo: int | str = "N/A"
    kidnappingLevel: Optional[str] = None
    robberyLevel: Optional[str] = None
    homicideLevel: Optional[str] = None
    despojoLevel: Optional[str] = None
    raw: Optional[dict[str, int]] = None


class CityStatsResponse(BaseModel):
    found: bool
    canonicalName: str
    tier: str
    stats: CityCrimeStats
    population: Optional[int] = None
    description: str = ""
    lastUpdated: str = "N/A"
    dataPeriod: str = ""
    recommendations: list[str] = []


class RouteSegmentOut(BaseModel):
    id: str
    tier: str
    score: int
    coordinates: list[list[float]]  # [[lat, lon], ...]
    nearby: list[NearbyMunicipalityOut]


class HazardMarkerOut(BaseModel):
    segmentId: str
    tier: str
    title: str
    position: list[float]
    municipality: str
    distanceKm: int
    assaults: int
    disappearances: int
    period: str


class RouteStats(BaseModel):
    distance: str
    duration: str
    safetyScore: int
    incidentEstimate: int
    crimeRates: Optional[CrimeRatesOut] = None


class RouteResponse(BaseModel):
    origin: CityStatsResponse
    destination: CityStatsResponse
    segments: list[RouteSegmentOut]
    stats: RouteStats
    hazards: list[HazardMarkerOut] = []
    warnings: list[str] = []


class RouteScoreResponse(BaseModel):
    overallScore: int
    incidentEstimate: int
    crimeRates: Optional[CrimeRatesOut] = None
    segments: list[RouteSegmentOut] = []


class Suggestion(BaseModel):
    city: str
    score: float
    type: str


class AutocompleteResponse(BaseModel):
    suggestions: list[Suggestion]


class GeocodeResponse(BaseModel):
    name: str
    lat: float
    lng: float
    source: str
