# config.py

"""
Central configuration file for the U.S. Severe Weather Events report.
This file stores constants and settings to make the application more maintainable.
"""

import os
from typing import Dict, Final, Tuple

# Root of the local data assets. Override with STORM_REPORT_DATA_DIR.
DATA_DIR: Final[str] = os.environ.get("STORM_REPORT_DATA_DIR", "data")

# NOAA NCEI Storm Events bulk CSV directory
NOAA_STORM_EVENTS_URL: Final[str] = "https://www.ncei.noaa.gov/pub/data/swdi/stormevents/csvfiles/"

# File paths for local data assets
STORM_EVENTS_GLOB: Final[str] = os.path.join(DATA_DIR, "StormEvents_details-ftp_v1.0_d*.csv*")
CITIES_PATH: Final[str] = os.path.join(DATA_DIR, "uscities.csv")
GEOJSON_PATH: Final[str] = os.path.join(DATA_DIR, "counties.geojson")
# Output of build_matched_events.py
MATCHED_EVENTS_PATH: Final[str] = os.path.join(DATA_DIR, "matched_events.parquet")

# Candidate set size for nearest-city matching
TOP_N_CITIES: Final[int] = 100

# Distance formula used when none is requested: "haversine" or "geodesic"
DEFAULT_DISTANCE_METHOD: Final[str] = "haversine"

# Contiguous United States as (min_lon, min_lat, max_lon, max_lat)
CONUS_BOUNDS: Final[Tuple[float, float, float, float]] = (-125.0, 24.0, -66.0, 50.0)

# Map defaults
DEFAULT_MAP_LOCATION: Final[Tuple[float, float]] = (39.8283, -98.5795)
DEFAULT_ZOOM: Final[int] = 4

# Metrics available in every view, with display labels
METRICS: Final[Dict[str, str]] = {
    "EVENT_COUNT": "Number of Events",
    "DAMAGE_TOTAL": "Total Damage (USD)",
    "DAMAGE_PROPERTY": "Property Damage (USD)",
    "DAMAGE_CROPS": "Crop Damage (USD)",
    "INJURIES": "Injuries",
    "DEATHS": "Deaths",
}
