import pandas as pd
import streamlit as st
import plotly.graph_objects as go
import plotly.express as px
from scipy.stats import percentileofscore

from config import DEFAULT_MAP_LOCATION, METRICS


def _label(metric: str) -> str:
    return METRICS.get(metric, metric)


def plot_state_choropleth(state_data: pd.DataFrame, metric: str) -> go.Figure:
    """
    Generates a national choropleth map of a storm metric per state.
    """
    fig = px.choropleth(
        state_data,
        locations="STATE_ABBR",
        locationmode="USA-states",
        color=metric,
        scope="usa",
        hover_name="STATE",
        hover_data={"STATE_ABBR": False, "EVENT_COUNT": True, "DAMAGE_TOTAL": ":,.0f", "DEATHS": True},
        color_continuous_scale="YlOrRd",
        labels={metric: _label(metric)},
    )
    fig.update_layout(
        margin={"r": 0, "t": 40, "l": 0, "b": 0},
        title=f"{_label(metric)} by State",
        font=dict(size=14),
    )
    return fig


def plot_county_choropleth(county_data: pd.DataFrame, gdf: pd.DataFrame, metric: str) -> go.Figure:
    """
    Generates a county choropleth map of a storm metric.
    """
    merged_gdf = gdf.merge(county_data, on="COUNTY_FIPS", how="inner")

    fig = px.choropleth_mapbox(
        merged_gdf,
        geojson=merged_gdf.geometry,
        locations=merged_gdf.index,
        color=metric,
        hover_name="NAME" if "NAME" in merged_gdf.columns else "COUNTY_FIPS",
        hover_data={metric: ":,.0f", "COUNTY_FIPS": True},
        color_continuous_scale="YlOrRd",
        mapbox_style="carto-positron",
        zoom=3,
        center={"lat": DEFAULT_MAP_LOCATION[0], "lon": DEFAULT_MAP_LOCATION[1]},
        opacity=0.6,
        labels={metric: _label(metric)},
    )
    fig.update_layout(
        margin={"r": 0, "t": 40, "l": 0, "b": 0},
        title=f"{_label(metric)} by County",
    )
    return fig


def plot_event_density(events: pd.DataFrame, weight: str | None = None) -> go.Figure:
    """
    Kernel density heatmap of event locations, optionally weighted by an impact column.
    """
    fig = px.density_mapbox(
        events,
        lat="LAT",
        lon="LON",
        z=weight,
        radius=8,
        hover_name="EVENT_TYPE",
        mapbox_style="carto-positron",
        zoom=3,
        center={"lat": DEFAULT_MAP_LOCATION[0], "lon": DEFAULT_MAP_LOCATION[1]},
        color_continuous_scale="Inferno",
    )
    fig.update_layout(
        margin={"r": 0, "t": 40, "l": 0, "b": 0},
        title="Storm Event Density" + (f" (weighted by {weight.replace('_PARSED', '').title()})" if weight else ""),
    )
    return fig


def plot_city_impact_scatter(city_data: pd.DataFrame, metric: str) -> go.Figure:
    """
    Scatter of city population against the selected metric for events matched to each city.
    """
    fig = px.scatter(
        city_data,
        x="CITY_POPULATION",
        y=metric,
        size="EVENT_COUNT",
        color="MEAN_DISTANCE_KM",
        hover_name="NEAREST_CITY",
        log_x=True,
        log_y=bool((city_data[metric] > 0).all()) if not city_data.empty else False,
        color_continuous_scale="Viridis",
        labels={
            "CITY_POPULATION": "City Population",
            metric: _label(metric),
            "MEAN_DISTANCE_KM": "Mean Distance (km)",
            "EVENT_COUNT": _label("EVENT_COUNT"),
        },
    )
    fig.update_layout(
        title=f"{_label(metric)} vs. Population of the Nearest City",
        template="plotly_white",
        font=dict(size=14),
        height=600,
    )
    return fig


def plot_event_type_bar(type_data: pd.DataFrame, metric: str) -> go.Figure:
    fig = go.Figure(
        go.Bar(
            x=type_data[metric],
            y=type_data["EVENT_TYPE"],
            orientation="h",
            marker=dict(color="firebrick"),
        )
    )
    fig.update_layout(
        title=f"Top Event Types by {_label(metric)}",
        xaxis_title=_label(metric),
        yaxis=dict(autorange="reversed"),
        template="plotly_white",
        font=dict(size=14),
        height=600,
    )
    return fig


def plot_monthly_trend(monthly_data: pd.DataFrame, metric: str) -> go.Figure:
    rolling_avg = monthly_data.set_index("date")[metric].rolling(window=12).mean()
    fig = go.Figure()
    fig.add_trace(
        go.Scatter(
            x=monthly_data["date"],
            y=monthly_data[metric],
            mode="lines",
            name=f"Monthly {_label(metric)}",
            line=dict(color="lightblue"),
        )
    )
    fig.add_trace(
        go.Scatter(
            x=rolling_avg.index,
            y=rolling_avg,
            mode="lines",
            name="12-Month Rolling Average",
            line=dict(color="navy", width=2.5),
        )
    )
    fig.update_layout(
        title=f"Monthly {_label(metric)}",
        xaxis_title="Year",
        yaxis_title=_label(metric),
        legend=dict(x=0.01, y=0.99, bordercolor="Black", borderwidth=1),
        template="plotly_white",
        font=dict(size=14),
        height=600,
    )
    return fig


def display_city_insights(city_data: pd.DataFrame, city_name: str, metric: str):
    """
    Calculates and displays how one city's matched events compare with the other candidate cities.
    """
    st.subheader(f"Insights for {city_name}")

    row = city_data[city_data["NEAREST_CITY"] == city_name]
    if row.empty:
        st.warning(f"No events were matched to {city_name} for the current filters.")
        return
    row = row.iloc[0]

    percentile = percentileofscore(city_data[metric], row[metric], kind="weak")
    rank = int((city_data[metric] > row[metric]).sum()) + 1

    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric(label=_label(metric), value=f"{row[metric]:,.0f}")
    with col2:
        st.metric(
            label="Percentile Among Cities",
            value=f"{percentile:.1f}%",
            help="The percentage of matched cities whose value is less than or equal to this city's.",
        )
    with col3:
        st.metric(label="Rank", value=f"{rank} of {len(city_data)}")

    st.metric(
        label="Mean Distance to Matched Events",
        value=f"{row['MEAN_DISTANCE_KM']:.1f} km",
        help="Average great-circle distance between the city and the events assigned to it.",
    )
