"""Ruta Segura Backend — Place-name resolution

Single place where free-text city names are mapped onto dataset keys.
Handles accents ("Queretaro" → "Querétaro"), common abbreviations
("GDL", "CDMX") and the Mexico City composite record, which sums the
sixteen boroughs into one entry.
"""

import logging
import unicodedata
from difflib import SequenceMatcher
from typing import Optional

from config import (
    CDMX_AGGREGATE_KEY, CDMX_BOROUGHS, CDMX_DISPLAY_NAME, CDMX_POPULATION,
)
from risk_store import CATEGORY_THRESHOLDS, CrimeRecord, MunicipalityRiskStore

logger = logging.getLogger("rutasegura.names")

# Normalized alias → canonical dataset key
CITY_ALIASES: dict[str, str] = {
    "cdmx": CDMX_AGGREGATE_KEY,
    "df": CDMX_AGGREGATE_KEY,
    "mexico": CDMX_AGGREGATE_KEY,
    "mexico city": CDMX_AGGREGATE_KEY,
    "ciudad de mexico": CDMX_AGGREGATE_KEY,
    "gdl": "Guadalajara",
    "mty": "Monterrey",
    "qro": "Querétaro",
    "slp": "San Luis Potosí",
    "tj": "Tijuana",
    "ciudad juarez": "Juárez",
    "ciudad obregon": "Cajeme",
    "obregon": "Cajeme",
    "vallarta": "Puerto Vallarta",
    "tuxtla": "Tuxtla Gutiérrez",
    "san pedro": "San Pedro Garza García",
    "jalapa": "Xalapa",
    "acapulco": "Acapulco de Juárez",
    "oaxaca": "Oaxaca de Juárez",
    "cabo": "Los Cabos",
    "cabo san lucas": "Los Cabos",
    "san jose del cabo": "Los Cabos",
}


def normalize_text(text: Optional[str]) -> str:
    """Lowercase, trim and strip diacritics (NFD, drop combining marks)."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.lower().strip()


class NameNormalizer:
    def __init__(self, store: MunicipalityRiskStore, aliases: Optional[dict[str, str]] = None):
        self.store = store
        self.aliases = {normalize_text(k): v for k, v in (aliases or CITY_ALIASES).items()}
        # First key wins, matching a scan in dataset order
        self._keys: dict[str, str] = {}
        for key in store:
            self._keys.setdefault(normalize_text(key), key)
        self._metro = _build_metro_record(store)

    def resolve(self, name: Optional[str]) -> Optional[str]:
        """Canonical dataset key for ``name``, or ``name`` unchanged."""
        norm = normalize_text(name)
        if not norm:
            return name
        if norm in self.aliases:
            return self.aliases[norm]
        return self._keys.get(norm, name)

    def display_name(self, name: str) -> str:
        key = self.resolve(name)
        if key == CDMX_AGGREGATE_KEY:
            return CDMX_DISPLAY_NAME
        return key

    def lookup(self, name: str) -> Optional[CrimeRecord]:
        """Resolve and fetch; the metro sentinel yields the composite record."""
        key = self.resolve(name)
        if key == CDMX_AGGREGATE_KEY:
            return self._metro
        return self.store.get(key)

    def suggest(self, query: str, limit: int = 5, threshold: float = 0.6) -> list[dict]:
        """Ranked name suggestions: exact, prefix, substring, then fuzzy."""
        norm = normalize_text(query)
        if not norm:
            return []

        candidates = list(self.store)
        if self._metro is not None:
            candidates.append(CDMX_DISPLAY_NAME)

        matches = []
        for city in candidates:
            city_norm = normalize_text(city)
            if city_norm == norm:
                matches.append({"city": city, "score": 1.0, "type": "exact"})
            elif city_norm.startswith(norm):
                matches.append({"city": city, "score": 0.95, "type": "prefix"})
            elif norm in city_norm:
                matches.append({"city": city, "score": 0.85, "type": "contains"})
            else:
                ratio = SequenceMatcher(None, norm, city_norm).ratio()
                if ratio >= threshold:
                    matches.append({"city": city, "score": round(ratio, 3), "type": "fuzzy"})

        # Aliases point straight at a city; surface it first
        alias_target = self.aliases.get(norm)
        if alias_target:
            target = CDMX_DISPLAY_NAME if alias_target == CDMX_AGGREGATE_KEY else alias_target
            matches = [m for m in matches if m["city"] != target]
            matches.insert(0, {"city": target, "score": 1.0, "type": "alias"})

        matches.sort(key=lambda m: m["score"], reverse=True)
        return matches[:limit]


def _build_metro_record(store: MunicipalityRiskStore) -> Optional[CrimeRecord]:
    """Sum the borough counts into one Mexico City record.

    The tier is re-derived from the homicide count alone.
    """
    boroughs = [store.get(b) for b in CDMX_BOROUGHS]
    boroughs = [b for b in boroughs if b is not None]
    if not boroughs:
        return None

    totals = {
        f: sum(getattr(b, f) for b in boroughs)
        for f in ("secuestro", "robo", "homicidio_doloso", "despojo",
                  "violencia_familiar", "lesiones_dolosas")
    }
    located = [b.coordinates for b in boroughs if b.coordinates is not None]
    centroid = None
    if located:
        centroid = (
            sum(c[0] for c in located) / len(located),
            sum(c[1] for c in located) / len(located),
        )

    logger.debug(f"Built {CDMX_DISPLAY_NAME} composite from {len(boroughs)} boroughs")
    return CrimeRecord(
        name=CDMX_DISPLAY_NAME,
        population=CDMX_POPULATION,
        risk_level=CATEGORY_THRESHOLDS["homicidio_doloso"].classify(totals["homicidio_doloso"]),
        coordinates=centroid,
        **totals,
    )
