import glob
import logging
import math
import os

import geopandas as gpd
import pandas as pd
import streamlit as st
import us
from pandera.errors import SchemaError, SchemaErrors

from config import CITIES_PATH, CONUS_BOUNDS, GEOJSON_PATH, MATCHED_EVENTS_PATH, STORM_EVENTS_GLOB, TOP_N_CITIES
from schemas import CitySchema, MatchedEventSchema, StormEventSchema

logger = logging.getLogger(__name__)

REQUIRED_EVENT_COLUMNS = [
    "EVENT_ID", "EVENT_TYPE", "STATE", "BEGIN_YEARMONTH", "BEGIN_TIME",
    "BEGIN_LAT", "BEGIN_LON", "DAMAGE_PROPERTY", "DAMAGE_CROPS",
    "INJURIES_DIRECT", "INJURIES_INDIRECT", "DEATHS_DIRECT", "DEATHS_INDIRECT",
]

DAMAGE_MULTIPLIERS = {"K": 1e3, "M": 1e6, "B": 1e9}

# NOAA spells state names in upper case, e.g. "TEXAS"
_STATES = {state.name.upper(): state for state in us.states.STATES_AND_TERRITORIES + [us.states.DC]}


def parse_damage(value) -> float:
    """Converts NOAA damage strings like "25.00K" or "1.5M" to dollars."""
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return 0.0
    text = str(value).strip().upper()
    if not text:
        return 0.0
    multiplier = DAMAGE_MULTIPLIERS.get(text[-1], 1.0)
    if text[-1] in DAMAGE_MULTIPLIERS:
        text = text[:-1]
    try:
        amount = float(text) * multiplier
    except ValueError:
        return 0.0
    return amount if math.isfinite(amount) and amount >= 0 else 0.0


def prepare_storm_events(raw_df: pd.DataFrame, bounds=CONUS_BOUNDS) -> pd.DataFrame:
    """
    Cleans raw NOAA Storm Events "details" rows into the report's event table.

    The event point is the midpoint of the begin and end coordinates, or the
    begin point when no end point was recorded. Rows without a point or outside
    `bounds` (min_lon, min_lat, max_lon, max_lat) are dropped.
    """
    missing = [col for col in REQUIRED_EVENT_COLUMNS if col not in raw_df.columns]
    if missing:
        raise ValueError(f"Storm events data is missing required columns: {missing}")

    df = raw_df.copy()

    # --- Dates ---
    yearmonth = df["BEGIN_YEARMONTH"].astype(str)
    df["YEAR"] = yearmonth.str[:4].astype(int)
    df["MONTH"] = yearmonth.str[4:6].astype(int)
    # BEGIN_TIME is an hhmm integer with leading zeros dropped, e.g. 230
    df["HOUR"] = df["BEGIN_TIME"].astype(str).str.zfill(4).str[:2].astype(int)
    if "BEGIN_DATE_TIME" in df.columns:
        df["BEGIN_DATE"] = pd.to_datetime(df["BEGIN_DATE_TIME"], format="%d-%b-%y %H:%M:%S", errors="coerce")
    else:
        df["BEGIN_DATE"] = pd.to_datetime(yearmonth, format="%Y%m", errors="coerce")

    # --- Impacts ---
    df["DAMAGE_PROPERTY_PARSED"] = df["DAMAGE_PROPERTY"].apply(parse_damage)
    df["DAMAGE_CROPS_PARSED"] = df["DAMAGE_CROPS"].apply(parse_damage)
    df["DAMAGE_TOTAL"] = df["DAMAGE_PROPERTY_PARSED"] + df["DAMAGE_CROPS_PARSED"]
    for col in ["INJURIES_DIRECT", "INJURIES_INDIRECT", "DEATHS_DIRECT", "DEATHS_INDIRECT"]:
        df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0).astype(int)
    df["INJURIES"] = df["INJURIES_DIRECT"] + df["INJURIES_INDIRECT"]
    df["DEATHS"] = df["DEATHS_DIRECT"] + df["DEATHS_INDIRECT"]

    # --- Geography ---
    df["STATE"] = df["STATE"].astype(str).str.strip().str.upper()
    df["STATE_ABBR"] = df["STATE"].map(lambda name: _STATES[name].abbr if name in _STATES else None)
    if "STATE_FIPS" in df.columns:
        state_fips = pd.to_numeric(df["STATE_FIPS"], errors="coerce")
        df["STATE_FIPS"] = state_fips.map(lambda v: f"{int(v):02d}" if pd.notna(v) else None)
    else:
        df["STATE_FIPS"] = df["STATE"].map(lambda name: _STATES[name].fips if name in _STATES else None)

    # Forecast-zone ("Z") and marine ("M") rows have no county
    if "CZ_TYPE" in df.columns and "CZ_FIPS" in df.columns:
        cz_fips = pd.to_numeric(df["CZ_FIPS"], errors="coerce")
        is_county = (df["CZ_TYPE"] == "C") & cz_fips.notna() & df["STATE_FIPS"].notna()
        df["COUNTY_FIPS"] = None
        df.loc[is_county, "COUNTY_FIPS"] = (
            df.loc[is_county, "STATE_FIPS"] + cz_fips[is_county].astype(int).map("{:03d}".format)
        )
    else:
        df["COUNTY_FIPS"] = None

    for col in ["BEGIN_LAT", "BEGIN_LON", "END_LAT", "END_LON"]:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce")
    lat_cols = [c for c in ["BEGIN_LAT", "END_LAT"] if c in df.columns]
    lon_cols = [c for c in ["BEGIN_LON", "END_LON"] if c in df.columns]
    df["LAT"] = df[lat_cols].mean(axis=1, skipna=True)
    df["LON"] = df[lon_cols].mean(axis=1, skipna=True)

    n_raw = len(df)
    df = df.dropna(subset=["LAT", "LON"])
    min_lon, min_lat, max_lon, max_lat = bounds
    df = df[df["LON"].between(min_lon, max_lon) & df["LAT"].between(min_lat, max_lat)]
    logger.info("Kept %d of %d storm events with a location inside %s", len(df), n_raw, bounds)

    df = df.reset_index(drop=True)
    return StormEventSchema.validate(df)


@st.cache_data(show_spinner=False)
def load_storm_events(pattern: str = STORM_EVENTS_GLOB) -> pd.DataFrame:
    """
    Loads every NOAA Storm Events details file matching `pattern`.
    Cached as the yearly files are static.
    """
    files = sorted(glob.glob(pattern))
    if not files:
        st.error(f"Fatal Error: No storm events files were found matching {pattern}")
        return pd.DataFrame()

    dfs = []
    for file in files:
        try:
            dfs.append(pd.read_csv(file, encoding="latin1", on_bad_lines="skip", low_memory=False))
        except (OSError, pd.errors.ParserError) as e:
            st.warning(f"Could not read {os.path.basename(file)}: {e}")

    if not dfs:
        st.warning("Could not load any storm events data.")
        return pd.DataFrame()

    try:
        return prepare_storm_events(pd.concat(dfs, ignore_index=True))
    except (ValueError, SchemaError, SchemaErrors) as e:
        st.error(f"Storm events data validation failed: {e}")
        return pd.DataFrame()


def select_top_cities(cities_df: pd.DataFrame, n: int = TOP_N_CITIES) -> pd.DataFrame:
    """
    Normalises a city reference table and keeps the `n` most populous cities.

    Accepts the simplemaps layout (city, state_id, lat, lng, population). Rows
    with equal population keep their file order.
    """
    if n < 1:
        raise ValueError(f"The candidate city count must be positive, got {n}")

    df = cities_df.rename(columns={"lng": "lon", "state_id": "state"}).copy()
    if "state" not in df.columns:
        df["state"] = None
    if "name" not in df.columns:
        df["name"] = df["city"].astype(str)
        has_state = df["state"].notna()
        df.loc[has_state, "name"] = df.loc[has_state, "name"] + ", " + df.loc[has_state, "state"].astype(str)

    df["population"] = pd.to_numeric(df["population"], errors="coerce")
    df = df.dropna(subset=["lat", "lon", "population"])

    top = (
        df.sort_values("population", ascending=False, kind="mergesort")
        .head(n)
        .reset_index(drop=True)
    )
    return CitySchema.validate(top[["name", "state", "lat", "lon", "population"]])


@st.cache_data(show_spinner=False)
def load_top_cities(path: str = CITIES_PATH, n: int = TOP_N_CITIES) -> pd.DataFrame:
    """Loads the city reference list and returns the top `n` cities by population."""
    if not os.path.exists(path):
        st.error(f"Fatal Error: The city reference file was not found at {path}")
        return pd.DataFrame(columns=["name", "state", "lat", "lon", "population"])

    return select_top_cities(pd.read_csv(path), n)


@st.cache_data(show_spinner=False)
def get_county_geojson() -> gpd.GeoDataFrame | None:
    """
    Loads the GeoJSON file for county boundaries.
    Cached indefinitely as it's a static file.
    """
    if not os.path.exists(GEOJSON_PATH):
        st.error(f"Fatal Error: The GeoJSON file was not found at {GEOJSON_PATH}")
        return None
    gdf = gpd.read_file(GEOJSON_PATH)
    gdf.rename(columns={"id": "COUNTY_FIPS"}, inplace=True)
    gdf["COUNTY_FIPS"] = gdf["COUNTY_FIPS"].astype(str).str.zfill(5)
    return gdf


@st.cache_data(show_spinner=False)
def load_matched_events(path: str = MATCHED_EVENTS_PATH) -> pd.DataFrame | None:
    """
    Loads the pre-computed matched events written by build_matched_events.py.
    Returns None when the file has not been built yet.
    """
    if not os.path.exists(path):
        return None

    try:
        return MatchedEventSchema.validate(pd.read_parquet(path))
    except (OSError, SchemaError, SchemaErrors) as e:
        st.warning(f"Could not use the pre-computed matched events file. Matching on the fly. Error: {e}")
        return None
