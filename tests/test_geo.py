"""
Pytest tests for the haversine distance and the nearby-duplicate scan. Pure functions, no app needed.
"""

from __future__ import annotations

import pytest

from utils.geo import find_duplicate, haversine_km


def test_haversine_zero_for_same_point():
    assert haversine_km(3.1191, 35.5966, 3.1191, 35.5966) == 0.0


def test_haversine_is_symmetric():
    forward = haversine_km(-1.2921, 36.8219, -0.0917, 34.7680)
    backward = haversine_km(-0.0917, 34.7680, -1.2921, 36.8219)
    assert forward == pytest.approx(backward)


def test_haversine_one_degree_of_latitude():
    # One degree along a meridian is R * pi / 180 with R = 6371 km.
    assert haversine_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(111.195, abs=0.01)


def test_haversine_nairobi_to_kisumu():
    assert haversine_km(-1.2921, 36.8219, -0.0917, 34.7680) == pytest.approx(264.5, abs=1.0)


def test_find_duplicate_none_without_candidates():
    assert find_duplicate(3.1191, 35.5966, []) is None


def test_find_duplicate_first_hit_wins_over_closer_later_candidate():
    candidates = [
        ("newest-far", 3.2000, 35.5966),
        ("newer-near", 3.1210, 35.5966),
        ("older-nearest", 3.1192, 35.5966),
    ]
    assert find_duplicate(3.1191, 35.5966, candidates) == "newer-near"


def test_find_duplicate_radius_is_strict():
    # ~0.3 km north is inside the default radius, ~0.56 km is outside.
    assert find_duplicate(3.1191, 35.5966, [("near", 3.1218, 35.5966)]) == "near"
    assert find_duplicate(3.1191, 35.5966, [("far", 3.1241, 35.5966)]) is None


def test_find_duplicate_excludes_point_exactly_on_radius():
    distance = haversine_km(3.1191, 35.5966, 3.1241, 35.5966)
    assert find_duplicate(3.1191, 35.5966, [("edge", 3.1241, 35.5966)], radius_km=distance) is None
