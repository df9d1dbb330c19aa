# nearest_city.py
"""
Nearest-city matching for storm events.

Every event point is assigned the closest city of a fixed candidate set (the
top cities by population) by great-circle distance. Each event is matched
independently; the candidate set is read-only for the whole run, so chunks of
events can be processed on worker threads and collected back in input order.

Exact ties go to the first equidistant city in candidate order.
"""
from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

import numpy as np
import pandas as pd
from geopy.distance import geodesic
from sklearn.neighbors import BallTree

from config import DEFAULT_DISTANCE_METHOD

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0088  # Mean Earth radius
INDEX_TYPES = ("brute", "balltree")

# Upper bound on events per distance matrix (rows x candidate cities)
_CHUNK_SIZE = 10_000


class InvalidInput(ValueError):
    """Raised for an empty candidate set or a non-finite coordinate."""


@dataclass(frozen=True)
class City:
    name: str
    lon: float
    lat: float
    population: int


@dataclass(frozen=True)
class CityMatch:
    name: str
    population: int
    distance_km: float


def haversine_km(lon1, lat1, lon2, lat2):
    """
    Vectorized haversine distance in kilometers. Inputs are in degrees and may
    be scalars or broadcastable numpy arrays.
    """
    lon1, lat1, lon2, lat2 = map(np.radians, (lon1, lat1, lon2, lat2))
    dlon = lon2 - lon1
    dlat = lat2 - lat1
    a = np.sin(dlat / 2.0) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(dlon / 2.0) ** 2
    return 2 * EARTH_RADIUS_KM * np.arcsin(np.sqrt(np.clip(a, 0.0, 1.0)))


def geodesic_km(lon1: float, lat1: float, lon2: float, lat2: float) -> float:
    """WGS-84 ellipsoidal distance in kilometers."""
    # geopy takes (lat, lon)
    return geodesic((lat1, lon1), (lat2, lon2)).km


def _haversine_matrix(coords: np.ndarray, city_lons: np.ndarray, city_lats: np.ndarray) -> np.ndarray:
    return haversine_km(coords[:, :1], coords[:, 1:], city_lons[np.newaxis, :], city_lats[np.newaxis, :])


def _geodesic_matrix(coords: np.ndarray, city_lons: np.ndarray, city_lats: np.ndarray) -> np.ndarray:
    return np.array([
        [geodesic_km(lon, lat, c_lon, c_lat) for c_lon, c_lat in zip(city_lons, city_lats)]
        for lon, lat in coords
    ]).reshape(len(coords), len(city_lons))


DISTANCE_METHODS = {
    "haversine": _haversine_matrix,
    "geodesic": _geodesic_matrix,
}


def _check_finite(values: np.ndarray, what: str) -> None:
    bad = ~np.isfinite(values)
    if bad.any():
        rows = np.flatnonzero(bad.any(axis=-1) if values.ndim > 1 else bad)
        raise InvalidInput(
            f"{len(rows)} {what} coordinate(s) are not finite (first at position {rows[0]})"
        )


class NearestCityMatcher:
    """
    Matches event coordinates to the nearest city of a fixed candidate set.

    Args:
        cities: Candidate cities in tie-break order.
        method: Distance formula, "haversine" (spherical) or "geodesic" (WGS-84).
        index: "brute" scans every city for every event. "balltree" answers the
            same question with a haversine BallTree; it requires method="haversine".
    """

    def __init__(self, cities: Iterable[City], method: str = DEFAULT_DISTANCE_METHOD, index: str = "brute"):
        if method not in DISTANCE_METHODS:
            raise ValueError(f"Unknown distance method '{method}'. Expected one of {sorted(DISTANCE_METHODS)}.")
        if index not in INDEX_TYPES:
            raise ValueError(f"Unknown index '{index}'. Expected one of {list(INDEX_TYPES)}.")
        if index == "balltree" and method != "haversine":
            raise ValueError("The balltree index only supports the haversine distance method.")

        self.cities: Tuple[City, ...] = tuple(cities)
        if not self.cities:
            raise InvalidInput("The candidate city set is empty; there is no nearest city.")

        self.method = method
        self.index = index

        self._lons = np.array([c.lon for c in self.cities], dtype=float)
        self._lats = np.array([c.lat for c in self.cities], dtype=float)
        _check_finite(np.column_stack([self._lons, self._lats]), "city")
        self._lons.flags.writeable = False
        self._lats.flags.writeable = False

        self._tree = None
        if index == "balltree":
            self._tree = BallTree(np.radians(np.column_stack([self._lats, self._lons])), metric="haversine")

    def __len__(self) -> int:
        return len(self.cities)

    def match(self, events, workers: int = 1) -> List[CityMatch]:
        """
        Returns one CityMatch per (lon, lat) event, in input order.

        Raises InvalidInput if any event coordinate is not finite. Nothing is
        returned for a call that fails.
        """
        coords = np.asarray(events, dtype=float)
        if coords.size == 0:
            return []
        if coords.ndim != 2 or coords.shape[1] != 2:
            raise InvalidInput(f"Events must be (lon, lat) pairs, got an array of shape {coords.shape}.")
        _check_finite(coords, "event")

        n_events = len(coords)
        chunk_size = min(_CHUNK_SIZE, max(1, math.ceil(n_events / max(1, workers))))
        chunks = [coords[i:i + chunk_size] for i in range(0, n_events, chunk_size)]

        if workers > 1 and len(chunks) > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                results = list(executor.map(self._match_chunk, chunks))
        else:
            results = [self._match_chunk(chunk) for chunk in chunks]

        indices = np.concatenate([r[0] for r in results])
        distances = np.concatenate([r[1] for r in results])

        logger.debug(
            "Matched %d events against %d cities (method=%s, index=%s, workers=%d)",
            n_events, len(self.cities), self.method, self.index, workers,
        )
        return [
            CityMatch(self.cities[i].name, self.cities[i].population, float(d))
            for i, d in zip(indices, distances)
        ]

    def nearest(self, lon: float, lat: float) -> CityMatch:
        """Returns the nearest city to a single point."""
        return self.match([(lon, lat)])[0]

    def _match_chunk(self, coords: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        if self._tree is not None:
            return self._match_chunk_tree(coords)
        distances = DISTANCE_METHODS[self.method](coords, self._lons, self._lats)
        # argmin returns the first occurrence, which is the tie-break rule
        best = np.argmin(distances, axis=1)
        return best, distances[np.arange(len(coords)), best]

    def _match_chunk_tree(self, coords: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        points = np.radians(coords[:, ::-1])
        dist, _ = self._tree.query(points, k=1)
        # The tree does not order equidistant neighbours, so collect every city
        # within the nearest radius and resolve the tie by candidate order.
        radius = dist[:, 0] * (1.0 + 1e-9) + 1e-12
        neighbours = self._tree.query_radius(points, r=radius)

        best = np.empty(len(coords), dtype=int)
        best_km = np.empty(len(coords), dtype=float)
        for row, candidates in enumerate(neighbours):
            candidates = np.sort(candidates)
            d = haversine_km(coords[row, 0], coords[row, 1], self._lons[candidates], self._lats[candidates])
            pick = int(np.argmin(d))
            best[row] = candidates[pick]
            best_km[row] = d[pick]
        return best, best_km


def match_nearest_cities(
    events,
    cities: Sequence[City],
    method: str = DEFAULT_DISTANCE_METHOD,
    index: str = "brute",
    workers: int = 1,
) -> List[CityMatch]:
    """Matches each (lon, lat) event to its nearest city. See NearestCityMatcher."""
    return NearestCityMatcher(cities, method=method, index=index).match(events, workers=workers)


def cities_from_frame(cities_df: pd.DataFrame) -> Tuple[City, ...]:
    """Builds the candidate tuple from a DataFrame with name, lon, lat and population columns."""
    missing = [col for col in ("name", "lon", "lat", "population") if col not in cities_df.columns]
    if missing:
        raise ValueError(f"City table is missing required columns: {missing}")

    return tuple(
        City(str(name), float(lon), float(lat), int(population))
        for name, lon, lat, population in cities_df[["name", "lon", "lat", "population"]].itertuples(index=False)
    )


def attach_nearest_city(
    events_df: pd.DataFrame,
    cities_df: pd.DataFrame,
    lon_col: str = "LON",
    lat_col: str = "LAT",
    method: str = DEFAULT_DISTANCE_METHOD,
    index: str = "brute",
    workers: int = 1,
) -> pd.DataFrame:
    """
    Returns a copy of events_df with NEAREST_CITY, CITY_POPULATION and
    CITY_DISTANCE_KM columns appended. The input frame is left untouched.
    """
    matcher = NearestCityMatcher(cities_from_frame(cities_df), method=method, index=index)
    matches = matcher.match(events_df[[lon_col, lat_col]].to_numpy(dtype=float), workers=workers)

    matched_df = events_df.copy()
    matched_df["NEAREST_CITY"] = pd.Series([m.name for m in matches], index=events_df.index, dtype=object)
    matched_df["CITY_POPULATION"] = pd.Series([m.population for m in matches], index=events_df.index, dtype="int64")
    matched_df["CITY_DISTANCE_KM"] = pd.Series([m.distance_km for m in matches], index=events_df.index, dtype=float)
    return matched_df
