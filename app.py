# -*- coding: utf-8 -*-
import streamlit as st
import warnings
import pandas as pd

# --- Custom Modules ---
from config import DEFAULT_DISTANCE_METHOD, TOP_N_CITIES
from data_loader import load_storm_events, load_top_cities, get_county_geojson, load_matched_events
from aggregations import (
    filter_events,
    aggregate_by_state,
    aggregate_by_county,
    aggregate_by_city,
    summarize_event_types,
    monthly_counts,
)
from nearest_city import InvalidInput, attach_nearest_city
from plotting import (
    plot_state_choropleth,
    plot_county_choropleth,
    plot_event_density,
    plot_city_impact_scatter,
    plot_event_type_bar,
    plot_monthly_trend,
    display_city_insights,
)
from map_view import EVENT_METRIC_COLUMNS, create_interactive_map
from ui import setup_page_config, display_header_and_about, display_sidebar, display_download_button

# Suppress warnings for a cleaner app
warnings.filterwarnings("ignore")


@st.cache_data(show_spinner="Matching events to the nearest city...")
def match_events(events: pd.DataFrame, cities: pd.DataFrame, method: str) -> pd.DataFrame:
    """Attaches the nearest candidate city to every event."""
    index = "balltree" if method == "haversine" else "brute"
    return attach_nearest_city(events, cities, method=method, index=index, workers=4)


def prebuilt_covers(prebuilt: pd.DataFrame, events: pd.DataFrame, cities: pd.DataFrame) -> bool:
    """
    True when every event has a row in the pre-built file and every city in
    the file is one of the current candidates.
    """
    if not events["EVENT_ID"].isin(prebuilt["EVENT_ID"]).all():
        return False
    return bool(prebuilt["NEAREST_CITY"].isin(cities["name"]).all())


def get_matched_events(events: pd.DataFrame, cities: pd.DataFrame, method: str) -> pd.DataFrame | None:
    """
    Uses the pre-built matched events when they were built with the same
    settings and cover the filtered events, otherwise matches on the fly.
    Returns None if matching failed.
    """
    if len(cities) == TOP_N_CITIES and method == DEFAULT_DISTANCE_METHOD:
        prebuilt = load_matched_events()
        if prebuilt is not None and prebuilt_covers(prebuilt, events, cities):
            return prebuilt[prebuilt["EVENT_ID"].isin(events["EVENT_ID"])]
        if prebuilt is not None:
            st.info("The pre-built matched events do not cover the current selection. Matching on the fly.")

    try:
        return match_events(events, cities, method)
    except InvalidInput as e:
        st.error(f"Nearest-city matching failed: {e}")
        return None


def main() -> None:
    """Main function to run the Streamlit application."""
    setup_page_config()
    display_header_and_about()

    events = load_storm_events()
    controls = display_sidebar(events)
    metric = controls["metric"]

    filtered = filter_events(events, controls["event_types"], controls["years"])
    if filtered.empty:
        st.warning("No storm events match the current filters. Please widen the selection.")
        st.stop()

    st.caption(f"{len(filtered):,} events between {controls['years'][0]} and {controls['years'][1]}")

    tabs = st.tabs(["State Overview", "County Map", "Event Density", "Event Types", "Nearest City"])

    with tabs[0]:
        fig = plot_state_choropleth(aggregate_by_state(filtered), metric)
        st.plotly_chart(fig, use_container_width=True)
        fig = plot_monthly_trend(monthly_counts(filtered), metric)
        st.plotly_chart(fig, use_container_width=True)

    with tabs[1]:
        gdf = get_county_geojson()
        if gdf is not None:
            fig = plot_county_choropleth(aggregate_by_county(filtered), gdf, metric)
            st.plotly_chart(fig, use_container_width=True)
        else:
            st.error("Could not load geospatial data for the county map.")

    with tabs[2]:
        fig = plot_event_density(filtered, weight=EVENT_METRIC_COLUMNS.get(metric))
        st.plotly_chart(fig, use_container_width=True)

    with tabs[3]:
        fig = plot_event_type_bar(summarize_event_types(filtered, metric), metric)
        st.plotly_chart(fig, use_container_width=True)

    with tabs[4]:
        handle_nearest_city_view(filtered, controls)


def handle_nearest_city_view(filtered: pd.DataFrame, controls: dict) -> None:
    """Handles the UI and logic for the nearest-city analysis."""
    metric = controls["metric"]
    cities = load_top_cities(n=controls["top_n"])
    if cities.empty:
        st.error("The candidate city list could not be loaded.")
        return

    matched = get_matched_events(filtered, cities, controls["method"])
    if matched is None or matched.empty:
        st.warning("No events could be matched to a city.")
        return

    city_data = aggregate_by_city(matched)

    st.header(f"{controls['top_n']} Largest Cities")
    fig = plot_city_impact_scatter(city_data, metric)
    st.plotly_chart(fig, use_container_width=True)

    st.dataframe(
        city_data.round({"MEAN_DISTANCE_KM": 1, "EVENTS_PER_100K": 2}),
        use_container_width=True,
        hide_index=True,
    )

    st.subheader("Event Map")
    clicked_city = create_interactive_map(matched, cities, metric)
    selected_city = st.selectbox(
        "City:",
        options=city_data["NEAREST_CITY"].tolist(),
        index=city_data["NEAREST_CITY"].tolist().index(clicked_city) if clicked_city in set(city_data["NEAREST_CITY"]) else 0,
        key="city_selectbox",
    )
    display_city_insights(city_data, selected_city, metric)

    display_download_button(matched, metric)
    st.markdown("---")
    st.markdown("Data Source: [NOAA NCEI Storm Events Database](https://www.ncdc.noaa.gov/stormevents/)")


if __name__ == "__main__":
    main()
