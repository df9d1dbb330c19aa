# -*- coding: utf-8 -*-
"""
This module contains the UI components for the Streamlit application.
"""
import streamlit as st

from config import DEFAULT_DISTANCE_METHOD, METRICS, TOP_N_CITIES
from nearest_city import DISTANCE_METHODS


def setup_page_config():
    """Sets the Streamlit page configuration."""
    st.set_page_config(
        page_title="U.S. Severe Weather Events",
        page_icon="🌪️",
        layout="wide",
    )


def display_header_and_about():
    """Displays the main title and the 'About' expander."""
    st.title("U.S. Severe Weather Events")
    st.markdown(
        "Explore where severe weather strikes, what it costs, and which major cities it hits closest to. "
        "Event records come from NOAA's Storm Events Database."
    )
    with st.expander("About the Nearest-City Analysis"):
        st.markdown(
            f"""
            - **Candidate cities:** the {TOP_N_CITIES} most populous U.S. cities by default.
            - **Event location:** the midpoint of an event's begin and end coordinates.
            - **Nearest city:** the candidate with the smallest great-circle distance to the event.
              Equidistant cities are resolved in favour of the more populous one.
            - **Haversine** treats the Earth as a sphere; **geodesic** uses the WGS-84 ellipsoid and is slower.
            """
        )


def display_sidebar(events):
    """
    Renders the sidebar controls.

    Args:
        events (pd.DataFrame): The cleaned storm events.

    Returns:
        dict: The selected event types, year range, metric, city count and distance method.
    """
    with st.sidebar:
        st.header("Report Controls")

        if events.empty:
            st.error("Storm events could not be loaded. The report cannot be displayed.")
            st.stop()

        event_types = st.multiselect(
            "1. Event Types:",
            options=sorted(events["EVENT_TYPE"].unique()),
            key="event_type_multiselect",
            help="Leave empty to include every event type.",
        )

        min_year, max_year = int(events["YEAR"].min()), int(events["YEAR"].max())
        if min_year < max_year:
            years = st.slider("2. Years:", min_year, max_year, (min_year, max_year), key="year_slider")
        else:
            years = (min_year, max_year)

        metric = st.selectbox(
            "3. Metric:",
            options=list(METRICS),
            format_func=lambda key: METRICS[key],
            key="metric_selectbox",
        )

        st.subheader("Nearest-City Matching")
        top_n = st.slider("Candidate Cities:", 10, 300, TOP_N_CITIES, step=10, key="top_n_slider")
        method = st.radio(
            "Distance Formula:",
            options=list(DISTANCE_METHODS),
            index=list(DISTANCE_METHODS).index(DEFAULT_DISTANCE_METHOD),
            key="method_radio",
            horizontal=True,
        )

        return {
            "event_types": event_types,
            "years": years,
            "metric": metric,
            "top_n": top_n,
            "method": method,
        }


def display_download_button(matched, metric):
    """
    Renders the download button in the sidebar.

    Args:
        matched (pd.DataFrame): The filtered events with their nearest city.
        metric (str): The selected metric.
    """
    if not matched.empty:
        st.sidebar.download_button(
            label="Download Matched Events (CSV)",
            data=matched.to_csv(index=False).encode("utf-8"),
            file_name=f"storm_events_{metric.lower()}.csv",
            mime="text/csv",
            key="download_button",
        )
