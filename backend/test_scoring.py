import math

import pytest

from config import CDMX_DISPLAY_NAME, NO_LOCAL_DATA_SCORE
from conftest import CULIACAN, GUADALAJARA, QUERETARO, ZAPOPAN, make_store
from name_normalizer import NameNormalizer
from nearby import NearbyMunicipality
from risk_store import CrimeRecord, Tier
from scoring import (
    Segment, build_hazard_markers, classify_score, classify_segment,
    compute_endpoint_score, compute_risk_score, compute_route_crime_rates,
    estimate_incidents, lookup_city, safety_recommendations, score_route,
    round_half_up, segment_route,
)

KM_PER_DEGREE_LAT = 111.195


def make_segment(i, tier, score=0, nearby=(), coords=((20.0, -100.0), (20.1, -100.1))):
    return Segment(id=f"seg-{i}", coordinates=coords, tier=tier, score=score, nearby=tuple(nearby))


class TestComputeRiskScore:
    def test_guadalajara_fixture(self):
        # 2*5.33 + 10*0.333 + 0.01*80
        assert compute_risk_score(GUADALAJARA) == pytest.approx(14.8, abs=0.01)

    def test_classified_medium(self):
        assert classify_score(compute_risk_score(GUADALAJARA)) is Tier.MEDIUM

    def test_clamped_to_100(self):
        assert compute_risk_score(CULIACAN) == 100.0

    def test_zero_counts(self):
        assert compute_risk_score(CrimeRecord(name="X")) == 0.0

    def test_monotonic_in_each_count(self):
        base = CrimeRecord(name="X", secuestro=1, robo=100, homicidio_doloso=5, population=200_000)
        score = compute_risk_score(base)
        for field in ("secuestro", "robo", "homicidio_doloso"):
            bumped = CrimeRecord(**{**base.__dict__, field: getattr(base, field) + 1})
            assert compute_risk_score(bumped) >= score

    def test_zero_population_uses_default(self):
        r = CrimeRecord(name="X", homicidio_doloso=1, population=0)
        assert compute_risk_score(r) == pytest.approx(2.0)


class TestRoundHalfUp:
    @pytest.mark.parametrize("value,expected", [
        (0.5, 1), (1.5, 2), (2.5, 3), (2.4999, 2), (-2.5, -2), (0.0, 0), (14.33, 14),
    ])
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected


class TestClassifyScore:
    @pytest.mark.parametrize("score,tier", [
        (0, Tier.LOW), (11.99, Tier.LOW), (12, Tier.MEDIUM),
        (24.99, Tier.MEDIUM), (25, Tier.HIGH), (100, Tier.HIGH),
    ])
    def test_cutoffs(self, score, tier):
        assert classify_score(score) is tier


class TestClassifySegment:
    def test_empty(self, sample_store):
        risk = classify_segment(sample_store, [])
        assert (risk.tier, risk.score) == (Tier.LOW, 0)

    def test_no_local_data(self, sample_store):
        risk = classify_segment(sample_store, [(24.0, -90.0), (24.1, -90.1)])
        assert risk.tier is Tier.LOW
        assert risk.score == NO_LOCAL_DATA_SCORE
        assert risk.nearby == ()

    def test_non_finite_midpoint(self, sample_store):
        risk = classify_segment(sample_store, [(math.nan, -103.0)])
        assert (risk.tier, risk.score) == (Tier.LOW, 0)

    def test_non_numeric_midpoint_raises(self, sample_store):
        with pytest.raises(TypeError):
            classify_segment(sample_store, [("a", "b")])

    def test_guadalajara_area(self, sample_store):
        risk = classify_segment(sample_store, [(20.6, -103.3), (20.67, -103.35), (20.7, -103.4)])
        assert risk.tier is Tier.MEDIUM
        # Weighted between Zapopan (~10.6) and Guadalajara (14.8)
        assert 11 <= risk.score <= 15
        assert [m.name for m in risk.nearby] == ["Guadalajara", "Zapopan"]

    def test_midpoint_decides(self, sample_store):
        # Only the middle point sits near Culiacán
        risk = classify_segment(sample_store, [(24.0, -90.0), (24.81, -107.39), (24.0, -90.0)])
        assert risk.tier is Tier.HIGH

    def test_distant_low_records_average_low(self):
        origin = (20.0, -100.0)
        store = make_store(*[
            CrimeRecord(name=f"L{km}", homicidio_doloso=1, population=1_000_000,
                        coordinates=(origin[0] + km / KM_PER_DEGREE_LAT, origin[1]))
            for km in (80, 90, 99)
        ])
        risk = classify_segment(store, [origin])
        assert risk.tier is Tier.LOW
        assert len(risk.nearby) == 3


class TestSegmentRoute:
    def test_chunks_overlap_by_one_point(self, sample_store):
        points = [(20.0 + i * 0.01, -100.0) for i in range(11)]
        segments = segment_route(sample_store, points)
        assert [s.id for s in segments] == ["seg-0", "seg-1", "seg-2", "seg-3"]
        for a, b in zip(segments, segments[1:]):
            assert a.coordinates[-1] == b.coordinates[0]
        assert segments[0].coordinates[0] == points[0]
        assert segments[-1].coordinates[-1] == points[-1]

    def test_five_segments_for_long_route(self, sample_store):
        points = [(20.0 + i * 0.01, -100.0) for i in range(100)]
        assert len(segment_route(sample_store, points)) == 5

    def test_short_route(self, sample_store):
        segments = segment_route(sample_store, [(20.0, -100.0), (20.1, -100.1)])
        assert len(segments) == 2

    def test_empty(self, sample_store):
        assert segment_route(sample_store, []) == []


class TestLookupCity:
    def test_found(self, normalizer):
        city = lookup_city(normalizer, "gdl")
        assert city.found
        assert city.canonical_name == "Guadalajara"
        assert city.tier is Tier.MEDIUM
        assert city.description == "Population: 1.5M. Source: SESNSP."
        assert city.raw_counts["robo"] == 1200

    def test_cdmx(self, normalizer):
        city = lookup_city(normalizer, "CDMX")
        assert city.canonical_name == CDMX_DISPLAY_NAME
        assert "16 boroughs" in city.description
        assert city.tier is Tier.HIGH

    def test_not_found(self, normalizer):
        city = lookup_city(normalizer, "Atlantis")
        assert not city.found
        assert city.tier is Tier.UNKNOWN
        assert city.raw_counts is None
        assert city.last_updated == "N/A"

    def test_recommendations(self, normalizer):
        tips = safety_recommendations(lookup_city(normalizer, "Culiacán"))
        assert tips[0].startswith("High-risk area")
        assert any("kidnapping" in t for t in tips)
        assert safety_recommendations(lookup_city(normalizer, "Querétaro")) == [
            "Relatively safe area. Keep normal precautions."
        ]
        assert safety_recommendations(lookup_city(normalizer, "Atlantis")) == [
            "No data available for this location."
        ]


class TestRouteScore:
    def test_endpoint_penalties(self, normalizer):
        # Medium -10; High -20 and >10 kidnappings -5
        origin = lookup_city(normalizer, "Guadalajara")
        destination = lookup_city(normalizer, "Culiacán")
        assert compute_endpoint_score(origin, destination) == 55

    def test_unknown_endpoints(self, normalizer):
        summary = score_route(normalizer, "Atlantis", "El Dorado", [])
        assert summary.overall_score == 90
        assert summary.incident_estimate == 0
        assert summary.crime_rates is None

    def test_stacked_kidnapping_penalty(self):
        heavy = CrimeRecord(name="Heavy", secuestro=60, risk_level=Tier.HIGH)
        n = NameNormalizer(make_store(heavy))
        # 90 - 2 * (20 + 5 + 10)
        assert compute_endpoint_score(lookup_city(n, "Heavy"), lookup_city(n, "Heavy")) == 20

    def test_score_stays_in_range(self, normalizer):
        for a in ("Culiacán", "Querétaro", "Atlantis", "cdmx"):
            for b in ("Culiacán", "Guadalajara", "Atlantis"):
                score = compute_endpoint_score(lookup_city(normalizer, a), lookup_city(normalizer, b))
                assert 0 <= score <= 100

    def test_incident_estimate(self):
        segments = [
            make_segment(0, Tier.MEDIUM, 14),
            make_segment(1, Tier.HIGH, 30),
            make_segment(2, Tier.LOW, 8),
        ]
        assert estimate_incidents(segments) == 4

    def test_incident_estimate_rounds_halves_up(self):
        assert estimate_incidents([make_segment(0, Tier.MEDIUM, 25)]) == 3
        assert estimate_incidents([make_segment(0, Tier.HIGH, 15)]) == 2

    def test_crime_rates_count_each_municipality_once(self):
        near_gdl = [NearbyMunicipality(GUADALAJARA, 0.0), NearbyMunicipality(ZAPOPAN, 6.9)]
        segments = [
            make_segment(0, Tier.MEDIUM, 14, near_gdl),
            make_segment(1, Tier.MEDIUM, 14, near_gdl),
        ]
        rates = compute_route_crime_rates(segments)
        # 2.9M people across both municipalities
        assert rates.robberies == 72
        assert rates.homicides == 5
        assert rates.kidnappings == 0

    def test_score_route_end_to_end(self, sample_store, normalizer):
        points = [(20.67 + i * 0.001, -103.35) for i in range(20)]
        segments = segment_route(sample_store, points)
        summary = score_route(normalizer, "Guadalajara", "Zapopan", segments)
        assert summary.overall_score == 70
        assert summary.incident_estimate >= 1
        assert summary.crime_rates is not None


class TestHazardMarkers:
    def test_high_segments_spread_evenly(self):
        near = [NearbyMunicipality(CULIACAN, 12.4)]
        segments = [make_segment(i, Tier.HIGH, 40, near) for i in range(5)]
        markers = build_hazard_markers(segments)
        assert [m.segment_id for m in markers] == ["seg-0", "seg-1", "seg-3"]
        assert markers[0].municipality == "Culiacán"
        assert markers[0].distance_km == 12
        assert markers[0].assaults == 38
        assert markers[0].disappearances == 0
        assert markers[0].title == "High-danger zone near Culiacán"

    def test_medium_fallback(self):
        near = [NearbyMunicipality(GUADALAJARA, 1.0)]
        segments = [
            make_segment(0, Tier.LOW, 5, near),
            make_segment(1, Tier.MEDIUM, 14, near),
        ]
        markers = build_hazard_markers(segments)
        assert [m.segment_id for m in markers] == ["seg-1"]
        assert markers[0].tier is Tier.MEDIUM

    def test_high_takes_precedence(self):
        segments = [
            make_segment(0, Tier.MEDIUM, 14, [NearbyMunicipality(GUADALAJARA, 1.0)]),
            make_segment(1, Tier.HIGH, 40, [NearbyMunicipality(CULIACAN, 1.0)]),
        ]
        assert [m.segment_id for m in build_hazard_markers(segments)] == ["seg-1"]

    def test_marker_values_round_halves_up(self):
        record = CrimeRecord(name="Mid", robo=250, secuestro=50, coordinates=(20.0, -100.0))
        markers = build_hazard_markers([make_segment(0, Tier.HIGH, 40, [NearbyMunicipality(record, 12.5)])])
        assert markers[0].distance_km == 13
        assert markers[0].assaults == 3
        assert markers[0].disappearances == 1

    def test_all_low(self):
        segments = [make_segment(i, Tier.LOW, 5, [NearbyMunicipality(QUERETARO, 1.0)]) for i in range(3)]
        assert build_hazard_markers(segments) == []

    def test_segment_without_nearby_skipped(self):
        assert build_hazard_markers([make_segment(0, Tier.HIGH, 40)]) == []
