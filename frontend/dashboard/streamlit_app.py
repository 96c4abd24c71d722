from __future__ import annotations

import os
from typing import List, Optional

import pandas as pd
import plotly.graph_objects as go
import requests
import streamlit as st

API_BASE = os.getenv("API_BASE_URL", "http://localhost:4000/api")

st.set_page_config(page_title="NLS Results Dashboard", layout="wide")

st.markdown(
    """
    <style>
    :root {
        --color-border: rgba(249, 200, 70, 0.2);
        --color-highlight: #f9c846;
        --color-text: #f5f5f5;
    }
    .metric-pill {
        background: rgba(8, 9, 12, 0.85);
        border-radius: 22px;
        padding: 16px 18px;
        border: 1px solid var(--color-border);
        color: var(--color-text);
        text-align: center;
    }
    .metric-pill .label {
        font-size: 0.75rem;
        letter-spacing: 0.12em;
        text-transform: uppercase;
        opacity: 0.7;
    }
    .metric-pill .value {
        font-size: 1.4rem;
        font-weight: 700;
        color: var(--color-highlight);
    }
    </style>
    """,
    unsafe_allow_html=True,
)

CHART_LAYOUT = dict(
    template="plotly_dark",
    paper_bgcolor="rgba(8,9,12,0.85)",
    plot_bgcolor="rgba(8,9,12,0.3)",
    margin=dict(t=60, r=24, b=40, l=24),
)


@st.cache_data(ttl=60)
def _get(path: str, params: Optional[dict] = None):
    response = requests.get(f"{API_BASE}{path}", params=params, timeout=15)
    response.raise_for_status()
    return response.json()


def format_time(seconds: Optional[float]) -> str:
    if seconds is None:
        return "-"
    minutes, rest = divmod(seconds, 60)
    return f"{int(minutes)}:{rest:06.3f}"


def render_metric(label: str, value: str) -> None:
    st.markdown(
        f"""
        <div class="metric-pill">
            <div class="label">{label}</div>
            <div class="value">{value}</div>
        </div>
        """,
        unsafe_allow_html=True,
    )


def render_results_table(results: List[dict], show_pits: bool) -> None:
    if not results:
        st.info("No results recorded for this session.")
        return
    df = pd.DataFrame(
        {
            "Pos": [r["position"] for r in results],
            "No.": [r["start_number"] for r in results],
            "Team": [r["team"]["name"] for r in results],
            "Driver": [f"{r['driver']['first_name']} {r['driver']['last_name']}" for r in results],
            "Vehicle": [r["vehicle"]["model"] for r in results],
            "Class": [r["vehicle"]["vehicle_class"] for r in results],
            "Laps": [r["laps"] for r in results],
            "Best lap": [format_time(r["best_lap_time"]) for r in results],
            "Status": [r["classification"] for r in results],
        }
    )
    if show_pits:
        df["Pit stops"] = [r["pit_stop_count"] for r in results]
    st.dataframe(df, use_container_width=True, hide_index=True)


def render_lap_chart(laps: List[dict], weather: Optional[dict]) -> None:
    if not laps:
        return
    df = pd.DataFrame(laps).sort_values("lap_number")
    fig = go.Figure(
        data=[
            go.Scatter(
                x=df["lap_number"],
                y=df["lap_time"],
                mode="lines+markers",
                name="Lap time",
                line=dict(color="#f9c846", shape="spline"),
                marker=dict(size=8, color=["#4fa3ff" if p else "#d63224" for p in df["in_pit"]]),
            )
        ]
    )
    if weather and weather.get("lap_weather"):
        rain = pd.DataFrame(weather["lap_weather"])
        fig.add_trace(
            go.Bar(
                x=rain["lap_number"],
                y=rain["precipitation"],
                name="Precipitation (mm)",
                yaxis="y2",
                marker=dict(color="rgba(79,163,255,0.35)"),
            )
        )
    fig.update_layout(
        title="Lap times",
        xaxis_title="Lap",
        yaxis_title="Seconds",
        yaxis2=dict(overlaying="y", side="right", title="mm", showgrid=False),
        **CHART_LAYOUT,
    )
    st.plotly_chart(fig, use_container_width=True)


def render_position_chart(positions: List[dict]) -> None:
    if not positions:
        return
    df = pd.DataFrame(positions)
    fig = go.Figure(
        data=[go.Scatter(x=df["lap"], y=df["position"], mode="lines+markers", line=dict(color="#d63224"))]
    )
    fig.update_layout(title="Position per lap", xaxis_title="Lap", **CHART_LAYOUT)
    fig.update_yaxes(autorange="reversed", title="Position")
    st.plotly_chart(fig, use_container_width=True)


def render_driver_panel(driver_id: str) -> None:
    stats = _get(f"/drivers/{driver_id}/stats")
    percent = st.slider("Top % of laps", min_value=1, max_value=10, value=3)
    averages = _get(f"/drivers/{driver_id}/avg-laps", {"percent": percent})

    cols = st.columns(5)
    with cols[0]:
        render_metric("Laps", str(stats["total_laps"]))
    with cols[1]:
        render_metric("Best lap", format_time(stats["best_lap"]))
    with cols[2]:
        render_metric("Std dev", f"{stats['std_dev_lap_time']:.2f} s" if stats["std_dev_lap_time"] is not None else "-")
    with cols[3]:
        render_metric(f"Dry top {percent}%", format_time(averages["dry"]["avg_lap_time"]))
    with cols[4]:
        render_metric(f"Wet top {percent}%", format_time(averages["wet"]["avg_lap_time"]))


st.sidebar.title("NLS Results")
sessions = _get("/sessions")
session_map = {f"{s['name']} ({s['date'][:10]})": s for s in sessions}

session_choice = st.sidebar.selectbox("Session", options=list(session_map.keys()))
selected = session_map.get(session_choice)

if not selected:
    st.warning("No sessions imported yet.")
    st.stop()

results = _get(f"/sessions/{selected['id']}/results")

st.title(selected["name"])
cols = st.columns(3)
with cols[0]:
    render_metric("Cars", str(selected["result_count"]))
with cols[1]:
    render_metric("Laps", str(selected["lap_count"]))
with cols[2]:
    best = min((r["best_lap_time"] for r in results if r["best_lap_time"]), default=None)
    render_metric("Fastest lap", format_time(best))

render_results_table(results, show_pits=selected["type"] == "RACE")

if results:
    car_map = {f"#{r['start_number']} {r['team']['name']}": r for r in results}
    car_choice = st.selectbox("Car", options=list(car_map.keys()))
    car = car_map[car_choice]

    try:
        weather = _get(f"/weather/{selected['id']}")
    except requests.RequestException as exc:
        st.sidebar.error(f"Weather unavailable: {exc}")
        weather = None

    laps = _get(f"/sessions/{selected['id']}/laps", {"start_number": car["start_number"]})
    st.subheader(f"{car['team']['name']} - Position #{car['position']}")
    render_lap_chart(laps, weather)
    render_position_chart(_get(f"/sessions/{selected['id']}/positions/{car['start_number']}"))

    st.subheader(f"{car['driver']['first_name']} {car['driver']['last_name']}")
    render_driver_panel(car["driver"]["id"])
