import streamlit as st
import pandas as pd
import numpy as np
import folium
from folium.plugins import MarkerCluster
import branca.colormap as cm
from streamlit_folium import st_folium
from typing import Optional

from config import DEFAULT_MAP_LOCATION, DEFAULT_ZOOM, METRICS

# --- Constants ---
DEFAULT_MAX_MARKERS = 5000
COLOR_SCALE = ['#ffffb2', '#fecc5c', '#fd8d3c', '#f03b20', '#bd0026']
CITY_COLOR = "#2b8cbe"

EVENT_METRIC_COLUMNS = {
    "DAMAGE_TOTAL": "DAMAGE_TOTAL",
    "DAMAGE_PROPERTY": "DAMAGE_PROPERTY_PARSED",
    "DAMAGE_CROPS": "DAMAGE_CROPS_PARSED",
    "INJURIES": "INJURIES",
    "DEATHS": "DEATHS",
}

# --- Helper Functions ---

def get_colormap(metric: str, vmax: float) -> cm.LinearColormap:
    """Creates a branca colormap for the event markers, scaled on log10(1 + value)."""
    return cm.LinearColormap(
        colors=COLOR_SCALE,
        vmin=0,
        vmax=max(np.log10(1 + vmax), 1.0),
        caption=f"log10(1 + {METRICS.get(metric, metric)})",
    )


def event_popup_html(event: pd.Series) -> str:
    """Builds the popup shown when an event marker is clicked."""
    date = event["BEGIN_DATE"].strftime("%Y-%m-%d") if pd.notna(event.get("BEGIN_DATE")) else "Unknown date"
    return (
        f"<b>{event['EVENT_TYPE'].title()}</b><br>"
        f"{date}, {str(event['STATE']).title()}<br>"
        f"Damage: ${event['DAMAGE_TOTAL']:,.0f}<br>"
        f"Injuries: {event['INJURIES']} &nbsp; Deaths: {event['DEATHS']}<br>"
        f"Nearest city: {event['NEAREST_CITY']} ({event['CITY_DISTANCE_KM']:.0f} km)"
    )

# --- Main Map Creation Functions ---

def build_event_map(
    matched: pd.DataFrame,
    cities: pd.DataFrame,
    metric: str = "DAMAGE_TOTAL",
    max_markers: int = DEFAULT_MAX_MARKERS,
) -> folium.Map:
    """
    Builds a Folium map with clustered event markers and the candidate cities.

    Args:
        matched: Storm events with the nearest-city columns attached.
        cities: The candidate cities (name, lat, lon, population).
        metric: Impact used to colour event markers.
        max_markers: The most damaging `max_markers` events are drawn.

    Returns:
        The folium.Map.
    """
    value_col = EVENT_METRIC_COLUMNS.get(metric, "DAMAGE_TOTAL")

    m = folium.Map(location=list(DEFAULT_MAP_LOCATION), zoom_start=DEFAULT_ZOOM, tiles="cartodbpositron")

    shown = matched.nlargest(max_markers, value_col) if len(matched) > max_markers else matched
    colormap = get_colormap(metric, float(shown[value_col].max()) if not shown.empty else 0.0)
    m.add_child(colormap)

    cluster = MarkerCluster(name="Storm events").add_to(m)
    for _, event in shown.iterrows():
        folium.CircleMarker(
            location=[event["LAT"], event["LON"]],
            radius=5,
            stroke=False,
            fill=True,
            fill_color=colormap(np.log10(1 + event[value_col])),
            fill_opacity=0.8,
            popup=folium.Popup(event_popup_html(event), max_width=300),
        ).add_to(cluster)

    city_layer = folium.FeatureGroup(name="Top cities").add_to(m)
    max_population = cities["population"].max() if not cities.empty else 1
    for city in cities.itertuples(index=False):
        folium.CircleMarker(
            location=[city.lat, city.lon],
            radius=4 + 12 * np.sqrt(city.population / max_population),
            color=CITY_COLOR,
            weight=1,
            fill=True,
            fill_opacity=0.3,
            tooltip=f"{city.name} (pop. {city.population:,})",
            popup=folium.Popup(city.name, max_width=200),
        ).add_to(city_layer)

    folium.LayerControl().add_to(m)
    return m


def create_interactive_map(
    matched: pd.DataFrame,
    cities: pd.DataFrame,
    metric: str = "DAMAGE_TOTAL",
    max_markers: int = DEFAULT_MAX_MARKERS,
) -> Optional[str]:
    """
    Displays the event cluster map and returns the name of the last clicked
    city, or None if no city was clicked.
    """
    if matched.empty:
        st.warning("No data available to display on the map.")
        return None

    m = build_event_map(matched, cities, metric, max_markers)
    map_output = st_folium(m, width='100%', height=600, returned_objects=["last_object_clicked_popup"])

    clicked = map_output.get("last_object_clicked_popup") if map_output else None
    if clicked and clicked in set(cities["name"]):
        return clicked
    return None
