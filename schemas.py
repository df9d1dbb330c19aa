# schemas.py
"""Data validation schemas for the storm events report."""

import pandera.pandas as pa
from pandera.typing import Series


class StormEventSchema(pa.DataFrameModel):
    """Schema for the cleaned storm events DataFrame."""
    EVENT_ID: Series[int] = pa.Field(nullable=False)
    EVENT_TYPE: Series[str] = pa.Field(nullable=False)
    STATE: Series[str] = pa.Field(nullable=False)
    STATE_ABBR: Series[str] = pa.Field(nullable=True)
    STATE_FIPS: Series[str] = pa.Field(nullable=True)
    COUNTY_FIPS: Series[str] = pa.Field(nullable=True)
    BEGIN_DATE: Series[pa.DateTime] = pa.Field(nullable=True)
    YEAR: Series[int] = pa.Field(ge=1950)
    MONTH: Series[int] = pa.Field(ge=1, le=12)
    HOUR: Series[int] = pa.Field(ge=0, le=23)
    LAT: Series[float] = pa.Field(ge=-90, le=90)
    LON: Series[float] = pa.Field(ge=-180, le=180)
    DAMAGE_PROPERTY_PARSED: Series[float] = pa.Field(ge=0)
    DAMAGE_CROPS_PARSED: Series[float] = pa.Field(ge=0)
    INJURIES: Series[int] = pa.Field(ge=0)
    DEATHS: Series[int] = pa.Field(ge=0)

    class Config:
        coerce = True


class CitySchema(pa.DataFrameModel):
    """Schema for the candidate city DataFrame."""
    name: Series[str] = pa.Field(nullable=False)
    state: Series[str] = pa.Field(nullable=True)
    lat: Series[float] = pa.Field(ge=-90, le=90)
    lon: Series[float] = pa.Field(ge=-180, le=180)
    population: Series[int] = pa.Field(ge=0)

    class Config:
        coerce = True


class MatchedEventSchema(StormEventSchema):
    """Storm events with their nearest candidate city attached."""
    NEAREST_CITY: Series[str] = pa.Field(nullable=False)
    CITY_POPULATION: Series[int] = pa.Field(ge=0)
    CITY_DISTANCE_KM: Series[float] = pa.Field(ge=0)
