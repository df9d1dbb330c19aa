import numpy as np
import pandas as pd
import pytest


def _make_raw_events(**overrides):
    """A few rows in the NOAA Storm Events details layout."""
    data = {
        "EVENT_ID": [101, 102, 103, 104],
        "EVENT_TYPE": ["Tornado", "Hail", "Flash Flood", "Tornado"],
        "STATE": ["OKLAHOMA", "TEXAS", "ALASKA", "KANSAS"],
        "STATE_FIPS": [40, 48, 2, 20],
        "CZ_TYPE": ["C", "Z", "C", "C"],
        "CZ_FIPS": [109, 45, 20, 173],
        "BEGIN_YEARMONTH": [202305, 202306, 202307, 202212],
        "BEGIN_TIME": [1530, 230, 900, 0],
        "BEGIN_DATE_TIME": ["19-MAY-23 15:30:00", "02-JUN-23 02:30:00", "10-JUL-23 09:00:00", "01-DEC-22 00:00:00"],
        "BEGIN_LAT": [35.40, 32.70, 61.20, 37.60],
        "BEGIN_LON": [-97.60, -96.80, -149.90, -97.30],
        "END_LAT": [35.60, np.nan, 61.20, 37.80],
        "END_LON": [-97.40, np.nan, -149.90, -97.10],
        "DAMAGE_PROPERTY": ["1.5M", "25.00K", None, "0.00K"],
        "DAMAGE_CROPS": ["0.00K", "", "2B", None],
        "INJURIES_DIRECT": [3, 0, 0, 1],
        "INJURIES_INDIRECT": [1, 0, 0, 0],
        "DEATHS_DIRECT": [1, 0, 0, 0],
        "DEATHS_INDIRECT": [0, 0, 0, 0],
    }
    data.update(overrides)
    return pd.DataFrame(data)


@pytest.fixture
def make_raw_events():
    """Factory for raw Storm Events rows; keyword arguments replace columns."""
    return _make_raw_events
