"""Shared fixtures: a small hand-built store around Guadalajara, Bajío and CDMX."""

import pytest

from cache import geocode_cache, route_cache
from name_normalizer import NameNormalizer
from risk_store import CrimeRecord, MunicipalityRiskStore, Tier


def make_store(*records: CrimeRecord) -> MunicipalityRiskStore:
    return MunicipalityRiskStore({r.name: r for r in records})


GUADALAJARA = CrimeRecord(
    name="Guadalajara",
    secuestro=5, robo=1200, homicidio_doloso=80, despojo=30,
    population=1_500_000, risk_level=Tier.MEDIUM, coordinates=(20.67, -103.35),
)
ZAPOPAN = CrimeRecord(
    name="Zapopan",
    secuestro=2, robo=900, homicidio_doloso=60, despojo=20,
    population=1_400_000, risk_level=Tier.MEDIUM, coordinates=(20.72, -103.39),
)
QUERETARO = CrimeRecord(
    name="Querétaro",
    secuestro=1, robo=700, homicidio_doloso=20, despojo=10,
    population=1_000_000, risk_level=Tier.LOW, coordinates=(20.59, -100.39),
)
CULIACAN = CrimeRecord(
    name="Culiacán",
    secuestro=21, robo=3800, homicidio_doloso=610, despojo=90,
    population=1_000_000, risk_level=Tier.HIGH, coordinates=(24.81, -107.39),
)
SANTA_MARIA = CrimeRecord(
    name="Santa María del Oro",
    secuestro=0, robo=15, homicidio_doloso=2, despojo=1,
    population=24_000, risk_level=Tier.LOW, coordinates=None,
)
IZTAPALAPA = CrimeRecord(
    name="Iztapalapa",
    secuestro=5, robo=14200, homicidio_doloso=260, despojo=300,
    population=1_835_486, risk_level=Tier.HIGH, coordinates=(19.3551, -99.0622),
)
COYOACAN = CrimeRecord(
    name="Coyoacán",
    secuestro=2, robo=6100, homicidio_doloso=55, despojo=140,
    population=614_447, risk_level=Tier.HIGH, coordinates=(19.3467, -99.1617),
)
CUAUHTEMOC = CrimeRecord(
    name="Cuauhtémoc",
    secuestro=3, robo=12800, homicidio_doloso=150, despojo=240,
    population=545_884, risk_level=Tier.HIGH, coordinates=(19.4326, -99.1537),
)


@pytest.fixture
def sample_store() -> MunicipalityRiskStore:
    return make_store(
        GUADALAJARA, ZAPOPAN, QUERETARO, CULIACAN, SANTA_MARIA,
        IZTAPALAPA, COYOACAN, CUAUHTEMOC,
    )


@pytest.fixture
def normalizer(sample_store) -> NameNormalizer:
    return NameNormalizer(sample_store)


@pytest.fixture(autouse=True)
def _clear_caches():
    geocode_cache.clear()
    route_cache.clear()
    yield
    geocode_cache.clear()
    route_cache.clear()
