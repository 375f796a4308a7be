"""Ruta Segura Backend — Configuration & Constants"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env from project root (one level up from backend/)
_ROOT = Path(__file__).resolve().parent.parent
_env_path = _ROOT / ".env"
load_dotenv(_env_path)

# ── Data ──
DATASETS_DIR = Path(os.environ.get("RUTA_SEGURA_DATASETS", _ROOT / "datasets"))
RISK_DB_PATH = Path(os.environ.get("RISK_DB_PATH", DATASETS_DIR / "municipal_risk_db.json"))
DATA_PERIOD = os.environ.get("SESNSP_DATA_PERIOD", "Enero 2026")
DATA_DESCRIPTION = "Datos de los últimos 12 meses"
DATA_SOURCE = "SESNSP - datos.gob.mx"

# ── External services ──
OSRM_BASE_URL = os.environ.get("OSRM_BASE_URL", "https://router.project-osrm.org")
NOMINATIM_URL = os.environ.get("NOMINATIM_URL", "https://nominatim.openstreetmap.org/search")
# Nominatim usage policy requires an identifying User-Agent
NOMINATIM_USER_AGENT = os.environ.get("NOMINATIM_USER_AGENT", "RutaSeguraApp/1.0 (Educational Project)")
HTTP_TIMEOUT = float(os.environ.get("HTTP_TIMEOUT", "8.0"))
GEOCODE_MAX_RETRIES = int(os.environ.get("GEOCODE_MAX_RETRIES", "2"))
GEOCODE_RATE_LIMIT_WAIT = 3.0  # seconds to wait after a 429
GEOCODE_BACKOFF_BASE = 1.0  # seconds; doubles on every retry

# ── Cache TTLs (seconds) ──
GEOCODE_CACHE_TTL = 30 * 24 * 3600
ROUTE_CACHE_TTL = 3600

# ── Rate limiting ──
RATE_LIMIT = int(os.environ.get("RATE_LIMIT", "30"))  # requests per minute per IP
RATE_WINDOW = 60
RATE_EVICT_INTERVAL = 300  # evict stale IPs every 5 minutes

# ── Geometry ──
EARTH_RADIUS_KM = 6371.0

# Mexico's approximate bounding box, used to reject geocoder hits abroad
MEXICO_BOUNDS = {
    "min_lat": 14.5,
    "max_lat": 32.7,
    "min_lon": -118.4,
    "max_lon": -86.7,
}

# ── Severity scoring ──
# Per-100k rates are multiplied by these weights and summed.
#   homicide   x2.0:  most severe per incident
#   kidnapping x10.0: rare, so each incident is amplified
#   robbery    x0.01: frequent, low severity per incident
SEVERITY_WEIGHTS = {
    "homicide": 2.0,
    "kidnapping": 10.0,
    "robbery": 0.01,
}
MAX_SEVERITY_SCORE = 100.0
DEFAULT_POPULATION = 100_000

# Aggregate segment score → tier
SEGMENT_MEDIUM_CUTOFF = 12.0
SEGMENT_HIGH_CUTOFF = 25.0

NEARBY_RADIUS_KM = 100.0
NEARBY_LIMIT = 3
NO_LOCAL_DATA_SCORE = 10
SEGMENTS_PER_ROUTE = 5

# ── Route safety score ──
ROUTE_BASE_SCORE = 90
ENDPOINT_TIER_PENALTY = {"High": 20, "Medium": 10}
# (kidnapping count strictly above, points deducted); deductions stack
KIDNAPPING_PENALTIES = [(10, 5), (50, 10)]
INCIDENT_SCALE_DIVISOR = 10

# Hazard markers: segment-level incident estimates are a fraction of the
# municipality's yearly totals
HAZARD_SCALE_FACTOR = 0.01
MAX_HAZARD_MARKERS = 3

# ── Per-category thresholds on raw yearly counts: (medium, high) ──
RISK_THRESHOLDS = {
    "robo": (1000, 5000),
    "homicidio_doloso": (50, 200),
    "secuestro": (5, 20),
    "despojo": (100, 500),
}

# ── Mexico City ──
CDMX_AGGREGATE_KEY = "CDMX_AGGREGATE"
CDMX_DISPLAY_NAME = "Ciudad de México"
CDMX_POPULATION = 9_200_000
CDMX_BOROUGHS = [
    "Azcapotzalco", "Coyoacán", "Cuajimalpa de Morelos", "Gustavo A. Madero",
    "Iztacalco", "Iztapalapa", "La Magdalena Contreras", "Milpa Alta",
    "Álvaro Obregón", "Tláhuac", "Tlalpan", "Xochimilco", "Benito Juárez",
    "Cuauhtémoc", "Miguel Hidalgo", "Venustiano Carranza",
]

# Places on the Baja California peninsula, no road link to the mainland
BAJA_CITIES = [
    "Tijuana", "Mexicali", "Ensenada", "Tecate", "La Paz", "Los Cabos",
    "Cabo San Lucas", "San José del Cabo", "Rosarito", "Comondú", "Mulegé",
]
