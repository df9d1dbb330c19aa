# aggregations.py
"""
Single-pass aggregations of the storm events table by state, county, event
type and nearest city.
"""
from typing import Iterable, Optional, Tuple

import pandas as pd

IMPACT_AGGREGATIONS = {
    "EVENT_COUNT": ("EVENT_ID", "count"),
    "DAMAGE_PROPERTY": ("DAMAGE_PROPERTY_PARSED", "sum"),
    "DAMAGE_CROPS": ("DAMAGE_CROPS_PARSED", "sum"),
    "INJURIES": ("INJURIES", "sum"),
    "DEATHS": ("DEATHS", "sum"),
}


def _aggregate(events: pd.DataFrame, keys: list, **extra) -> pd.DataFrame:
    grouped = events.groupby(keys, dropna=True).agg(**IMPACT_AGGREGATIONS, **extra).reset_index()
    grouped["DAMAGE_TOTAL"] = grouped["DAMAGE_PROPERTY"] + grouped["DAMAGE_CROPS"]
    return grouped


def filter_events(
    events: pd.DataFrame,
    event_types: Optional[Iterable[str]] = None,
    years: Optional[Tuple[int, int]] = None,
) -> pd.DataFrame:
    """Restricts the events to the selected event types and inclusive year range."""
    mask = pd.Series(True, index=events.index)
    if event_types:
        mask &= events["EVENT_TYPE"].isin(list(event_types))
    if years:
        mask &= events["YEAR"].between(years[0], years[1])
    return events[mask]


def aggregate_by_state(events: pd.DataFrame) -> pd.DataFrame:
    """Totals per state. Rows whose state has no postal abbreviation are dropped."""
    return _aggregate(events, ["STATE", "STATE_ABBR", "STATE_FIPS"]).sort_values("STATE", ignore_index=True)


def aggregate_by_county(events: pd.DataFrame) -> pd.DataFrame:
    """Totals per 5-digit county FIPS code. Zone and marine events are excluded."""
    return _aggregate(events, ["COUNTY_FIPS"]).sort_values("COUNTY_FIPS", ignore_index=True)


def aggregate_by_city(matched: pd.DataFrame) -> pd.DataFrame:
    """
    Totals per nearest city, with the city population and the number of events
    per 100,000 residents.
    """
    by_city = _aggregate(
        matched,
        ["NEAREST_CITY", "CITY_POPULATION"],
        MEAN_DISTANCE_KM=("CITY_DISTANCE_KM", "mean"),
    )
    by_city["EVENTS_PER_100K"] = by_city["EVENT_COUNT"] / by_city["CITY_POPULATION"].where(
        by_city["CITY_POPULATION"] > 0
    ) * 100_000
    return by_city.sort_values(["EVENT_COUNT", "NEAREST_CITY"], ascending=[False, True], ignore_index=True)


def summarize_event_types(events: pd.DataFrame, metric: str = "EVENT_COUNT", top_n: int = 15) -> pd.DataFrame:
    """Ranks event types by `metric`, largest first."""
    by_type = _aggregate(events, ["EVENT_TYPE"])
    return by_type.sort_values([metric, "EVENT_TYPE"], ascending=[False, True]).head(top_n).reset_index(drop=True)


def monthly_counts(events: pd.DataFrame) -> pd.DataFrame:
    """Events and total damage per calendar month across all years."""
    by_month = _aggregate(events, ["YEAR", "MONTH"])
    by_month["date"] = pd.to_datetime(pd.DataFrame({"year": by_month["YEAR"], "month": by_month["MONTH"], "day": 1}))
    return by_month.sort_values("date", ignore_index=True)
