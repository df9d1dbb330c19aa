import numpy as np
import pandas as pd
import pytest

from nearest_city import (
    City,
    CityMatch,
    InvalidInput,
    NearestCityMatcher,
    attach_nearest_city,
    cities_from_frame,
    geodesic_km,
    haversine_km,
    match_nearest_cities,
)


@pytest.fixture
def two_cities():
    return [City("A", 0.0, 0.0, 1000), City("B", 10.0, 0.0, 500)]


@pytest.fixture
def us_cities():
    """A handful of real cities, most populous first."""
    return [
        City("New York, NY", -73.9387, 40.6943, 18832416),
        City("Los Angeles, CA", -118.4068, 34.1141, 11885717),
        City("Chicago, IL", -87.6866, 41.8375, 8489066),
        City("Houston, TX", -95.3885, 29.7860, 6113578),
        City("Denver, CO", -104.8758, 39.7621, 2876625),
        City("Oklahoma City, OK", -97.5137, 35.4676, 1006741),
    ]


@pytest.fixture
def random_events():
    rng = np.random.default_rng(42)
    return np.column_stack([rng.uniform(-125, -66, 200), rng.uniform(24, 50, 200)])


def test_haversine_one_degree_on_equator():
    """One degree of longitude on the equator is about 111 km."""
    assert np.isclose(haversine_km(0.0, 0.0, 1.0, 0.0), 111.19, atol=0.05)


def test_haversine_is_symmetric_and_zero_on_itself():
    assert np.isclose(haversine_km(-97.5, 35.5, -73.9, 40.7), haversine_km(-73.9, 40.7, -97.5, 35.5))
    assert haversine_km(-97.5, 35.5, -97.5, 35.5) == 0.0


def test_geodesic_close_to_haversine():
    """The ellipsoidal and spherical distances agree to within half a percent."""
    sphere = haversine_km(-97.5, 35.5, -73.9, 40.7)
    ellipsoid = geodesic_km(-97.5, 35.5, -73.9, 40.7)
    assert np.isclose(sphere, ellipsoid, rtol=0.005)


def test_nearest_scenario_closer_city(two_cities):
    result = match_nearest_cities([(1.0, 0.0)], two_cities)
    assert len(result) == 1
    assert result[0].name == "A"
    assert result[0].population == 1000
    assert np.isclose(result[0].distance_km, 111.19, atol=0.05)


@pytest.mark.parametrize("method", ["haversine", "geodesic"])
def test_tie_goes_to_first_city(method):
    cities = [City("A", 0.0, 0.0, 100), City("B", 0.0, 0.0, 200)]
    result = match_nearest_cities([(5.0, 5.0)], cities, method=method)
    assert result[0].name == "A"
    assert result[0].population == 100


@pytest.mark.parametrize("index", ["brute", "balltree"])
def test_three_events_two_cities(index):
    cities = [City("origin", 0.0, 0.0, 1), City("corner", 10.0, 10.0, 2)]
    events = [(0.0, 0.0), (0.0, 10.0), (10.0, 0.0)]

    result = match_nearest_cities(events, cities, index=index)

    assert len(result) == 3
    for (lon, lat), match in zip(events, result):
        distances = {c.name: haversine_km(lon, lat, c.lon, c.lat) for c in cities}
        assert np.isclose(match.distance_km, min(distances.values()))
    assert result[0].name == "origin"
    # 10 degrees of longitude at 10N is shorter than 10 degrees of latitude
    assert result[1].name == "corner"
    # (10, 0) is equidistant from both cities, so the first one listed wins
    assert np.isclose(haversine_km(10.0, 0.0, 0.0, 0.0), haversine_km(10.0, 0.0, 10.0, 10.0))
    assert result[2].name == "origin"


def test_matched_city_is_never_farther_than_any_other(us_cities, random_events):
    result = match_nearest_cities(random_events, us_cities)
    for (lon, lat), match in zip(random_events, result):
        for city in us_cities:
            assert match.distance_km <= haversine_km(lon, lat, city.lon, city.lat) + 1e-9


def test_geodesic_method_minimises_geodesic_distance(us_cities, random_events):
    events = random_events[:20]
    result = match_nearest_cities(events, us_cities, method="geodesic")
    for (lon, lat), match in zip(events, result):
        best = min(geodesic_km(lon, lat, c.lon, c.lat) for c in us_cities)
        assert np.isclose(match.distance_km, best)


def test_output_preserves_order_and_length(us_cities):
    events = [(-118.0, 34.0), (-74.0, 40.7), (-87.7, 41.9), (-118.0, 34.0)]
    result = match_nearest_cities(events, us_cities)
    assert [m.name for m in result] == ["Los Angeles, CA", "New York, NY", "Chicago, IL", "Los Angeles, CA"]


def test_matching_is_deterministic(us_cities, random_events):
    first = match_nearest_cities(random_events, us_cities)
    second = match_nearest_cities(random_events, us_cities)
    assert first == second


def test_workers_give_same_result(us_cities, random_events):
    serial = match_nearest_cities(random_events, us_cities)
    parallel = match_nearest_cities(random_events, us_cities, workers=4)
    assert [m.name for m in serial] == [m.name for m in parallel]
    assert np.allclose([m.distance_km for m in serial], [m.distance_km for m in parallel])


def test_balltree_matches_brute_force(us_cities, random_events):
    brute = match_nearest_cities(random_events, us_cities, index="brute")
    tree = match_nearest_cities(random_events, us_cities, index="balltree")
    assert [m.name for m in brute] == [m.name for m in tree]
    assert np.allclose([m.distance_km for m in brute], [m.distance_km for m in tree])


def test_balltree_keeps_first_city_on_tie():
    cities = [City("C", 20.0, 20.0, 1), City("A", 0.0, 0.0, 100), City("B", 0.0, 0.0, 200)]
    result = match_nearest_cities([(5.0, 5.0), (1.0, 1.0)], cities, index="balltree")
    assert [m.name for m in result] == ["A", "A"]


def test_empty_candidate_set_is_rejected():
    with pytest.raises(InvalidInput):
        match_nearest_cities([(1.0, 0.0)], [])


@pytest.mark.parametrize("event", [(np.nan, 0.0), (0.0, np.inf), (None, 1.0)])
def test_non_finite_event_is_rejected(two_cities, event):
    with pytest.raises(InvalidInput):
        match_nearest_cities([(1.0, 0.0), event], two_cities)


def test_non_finite_city_is_rejected():
    with pytest.raises(InvalidInput):
        NearestCityMatcher([City("A", 0.0, 0.0, 1), City("B", float("nan"), 0.0, 1)])


def test_malformed_events_are_rejected(two_cities):
    with pytest.raises(InvalidInput):
        match_nearest_cities([(1.0, 0.0, 3.0)], two_cities)


def test_no_events_gives_no_matches(two_cities):
    assert match_nearest_cities([], two_cities) == []


def test_unknown_settings_raise_value_error(two_cities):
    with pytest.raises(ValueError):
        NearestCityMatcher(two_cities, method="manhattan")
    with pytest.raises(ValueError):
        NearestCityMatcher(two_cities, index="kdtree")
    with pytest.raises(ValueError):
        NearestCityMatcher(two_cities, method="geodesic", index="balltree")


def test_matcher_does_not_mutate_candidates(two_cities):
    matcher = NearestCityMatcher(two_cities)
    matcher.match([(1.0, 0.0), (9.0, 0.0)])
    assert list(matcher.cities) == two_cities
    assert len(matcher) == 2
    nearest = matcher.nearest(9.0, 0.0)
    assert isinstance(nearest, CityMatch)
    assert (nearest.name, nearest.population) == ("B", 500)
    assert np.isclose(nearest.distance_km, 111.19, atol=0.05)


def test_cities_from_frame_keeps_row_order():
    df = pd.DataFrame({
        "name": ["Z", "A"], "state": ["TX", "NY"],
        "lat": [30.0, 40.0], "lon": [-95.0, -74.0], "population": [10, 20],
    })
    cities = cities_from_frame(df)
    assert cities == (City("Z", -95.0, 30.0, 10), City("A", -74.0, 40.0, 20))


def test_cities_from_frame_requires_columns():
    with pytest.raises(ValueError):
        cities_from_frame(pd.DataFrame({"name": ["A"], "lat": [0.0]}))


def test_attach_nearest_city_appends_columns_without_mutating():
    events = pd.DataFrame(
        {"EVENT_ID": [1, 2], "LON": [1.0, 9.0], "LAT": [0.0, 0.0]},
        index=[10, 20],
    )
    cities = pd.DataFrame({"name": ["A", "B"], "lon": [0.0, 10.0], "lat": [0.0, 0.0], "population": [1000, 500]})
    original = events.copy()

    matched = attach_nearest_city(events, cities)

    pd.testing.assert_frame_equal(events, original)
    assert list(matched.index) == [10, 20]
    assert matched["NEAREST_CITY"].tolist() == ["A", "B"]
    assert matched["CITY_POPULATION"].tolist() == [1000, 500]
    assert np.allclose(matched["CITY_DISTANCE_KM"], [111.19, 111.19], atol=0.05)


def test_attach_nearest_city_rejects_nan_coordinates():
    events = pd.DataFrame({"LON": [1.0, np.nan], "LAT": [0.0, 0.0]})
    cities = pd.DataFrame({"name": ["A"], "lon": [0.0], "lat": [0.0], "population": [1]})
    with pytest.raises(InvalidInput):
        attach_nearest_city(events, cities)
