"""Interactive Dash UI for route congestion playback.

Run with:
    python -m course_congestion.visualization.dash_app

Opens at http://127.0.0.1:8050
"""

from __future__ import annotations

import base64
import logging
from typing import Any

import numpy as np
import plotly.graph_objects as go
from plotly.colors import sample_colorscale

import dash
from dash import dcc, html, ctx, dash_table, Input, Output, State, no_update

from course_congestion.core.config import AverageMode, CongestionConfig, StatMode
from course_congestion.core.route import Route
from course_congestion.simulation.clock import SimClock, max_finish_time
from course_congestion.simulation.engine import CongestionEngine, FrameResult
from course_congestion.simulation.waves import (
    Wave,
    default_course_presets,
    default_waves,
    generate_runners,
    new_wave,
    wave_to_row,
    waves_from_rows,
)

logger = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════════════════════════
#  Dark plotly theme
# ═══════════════════════════════════════════════════════════════════════

_LAYOUT_DEFAULTS = dict(
    template="plotly_dark",
    paper_bgcolor="#0a0a0f",
    plot_bgcolor="#0a0a0f",
    font=dict(family="Inter, -apple-system, sans-serif", color="#e8eaed"),
    margin=dict(l=20, r=20, t=50, b=20),
    height=650,
    uirevision="stable",
)

_SEGMENT_SCALE = "YlOrRd"
_RUNNER_SCALE = "Turbo"
_COLOR_LEVELS = 10
_UNSEEN_COLOR = "rgba(120,120,140,0.5)"
_TICK_MS = 100

ROUTES = {
    "Out-and-back 5K": lambda: Route.out_and_back(leg_m=2500.0, lane_offset_m=4.0),
    "Out-and-back 10K": lambda: Route.out_and_back(leg_m=5000.0, lane_offset_m=6.0),
}

# ═══════════════════════════════════════════════════════════════════════
#  Server-side state (single user)
# ═══════════════════════════════════════════════════════════════════════

_engine = CongestionEngine(config=CongestionConfig())
_clock = SimClock()
_rng = np.random.default_rng()
_waves: list[Wave] = default_waves()

PRESETS = {p.id: p for p in default_course_presets()}


def _load_route(route: Route) -> None:
    _engine.set_route(route)
    _clock.reset()
    _clock.max_time = max_finish_time(_engine.runners, route.total)


def _regenerate_runners() -> None:
    _engine.set_runners(generate_runners(_waves, _rng))
    total = _engine.route.total if _engine.route is not None else 0.0
    _clock.max_time = max_finish_time(_engine.runners, total)


def _set_waves(waves: list[Wave]) -> None:
    global _waves
    _waves = list(waves)
    _regenerate_runners()


def _config_from_controls(
    radius: float,
    segment_length: float,
    stat_mode: str,
    average_mode: str,
    window_s: float,
    percentile: float,
    top_fraction: float,
) -> CongestionConfig:
    return CongestionConfig(
        density_radius_m=radius or 5,
        segment_length_m=segment_length or 50,
        stat_mode=stat_mode or StatMode.AVERAGE,
        average_mode=average_mode or AverageMode.ACTIVE,
        window_s=window_s or 180,
        percentile=percentile if percentile is not None else 0.9,
        top_fraction=top_fraction if top_fraction is not None else 0.3,
    ).clamped()


# ═══════════════════════════════════════════════════════════════════════
#  Plotly rendering helpers
# ═══════════════════════════════════════════════════════════════════════


def _segment_traces(frame: FrameResult, vmax: float) -> list[go.Scatter]:
    """Route segments bucketed into a few colour levels, one trace per level."""
    colors = sample_colorscale(_SEGMENT_SCALE, np.linspace(0, 1, _COLOR_LEVELS))
    buckets: dict[int, tuple[list[float | None], list[float | None]]] = {}
    scale = max(vmax, 1e-9)
    for (p0, p1), seen, value in zip(
        frame.segment_endpoints, frame.segment_seen, frame.segment_values,
    ):
        level = -1 if not seen else min(_COLOR_LEVELS - 1, int(value / scale * _COLOR_LEVELS))
        xs, ys = buckets.setdefault(level, ([], []))
        xs += [float(p0[0]), float(p1[0]), None]
        ys += [float(p0[1]), float(p1[1]), None]

    traces = []
    for level in sorted(buckets):
        xs, ys = buckets[level]
        traces.append(go.Scatter(
            x=xs, y=ys, mode="lines",
            line=dict(width=6, color=_UNSEEN_COLOR if level < 0 else colors[level]),
            hoverinfo="skip", showlegend=False,
        ))
    return traces


def _runner_trace(frame: FrameResult, vmax: float) -> go.Scatter:
    return go.Scatter(
        x=frame.positions[:, 0].tolist(),
        y=frame.positions[:, 1].tolist(),
        mode="markers",
        marker=dict(
            size=6,
            color=frame.densities.tolist(),
            colorscale=_RUNNER_SCALE,
            cmin=0.0,
            cmax=vmax,
            showscale=True,
            colorbar=dict(title="Runner density", thickness=15),
        ),
        text=[f"{d:.2f} runners/m" for d in frame.densities],
        hoverinfo="text",
        showlegend=False,
    )


def _build_figure(frame: FrameResult, segment_vmax: float, runner_vmax: float) -> go.Figure:
    fig = go.Figure()
    for trace in _segment_traces(frame, segment_vmax):
        fig.add_trace(trace)
    fig.add_trace(_runner_trace(frame, runner_vmax))
    fig.update_layout(
        title=dict(text=f"t = {frame.sim_time:.0f} s — {frame.runner_count} runners on course",
                   font=dict(size=16)),
        xaxis=dict(scaleanchor="y", constrain="domain", showgrid=False),
        yaxis=dict(constrain="domain", showgrid=False),
        **_LAYOUT_DEFAULTS,
    )
    return fig


def _metrics(frame: FrameResult) -> str:
    peak = float(frame.densities.max()) if frame.runner_count else 0.0
    seen = int(frame.segment_seen.sum())
    return (
        f"Runners on course: {frame.runner_count}  |  "
        f"Peak runner density: {peak:.2f}  |  "
        f"Segments seen: {seen}/{len(frame.segment_seen)}"
    )


def _table_rows(limit: int = 15) -> list[dict[str, Any]]:
    table = _engine.group_table()
    if table.empty:
        return []
    table = table[table["seen"]].sort_values("max", ascending=False).head(limit)
    return table.round(3).to_dict("records")


# ═══════════════════════════════════════════════════════════════════════
#  Dash app
# ═══════════════════════════════════════════════════════════════════════

app = dash.Dash(
    __name__,
    title="Course Congestion",
    suppress_callback_exceptions=True,
)

_TABLE_COLUMNS = [
    "group", "segments", "start_m", "current", "max",
    "active_avg", "window_avg", "percentile", "top_fraction",
]

app.layout = html.Div([
    # ── Sidebar ──────────────────────────────────────────────────────
    html.Div([
        html.H2("Course Congestion"),

        html.Label("Course preset"),
        dcc.Dropdown(id="preset-selector",
                     options=[{"label": p.label, "value": p.id} for p in PRESETS.values()],
                     placeholder="Choose a preset"),

        html.Label("Route"),
        dcc.Dropdown(id="route-selector", options=list(ROUTES),
                     value="Out-and-back 5K", clearable=False),
        dcc.Upload(id="gpx-upload", children=html.Button("Upload GPX"),
                   accept=".gpx,application/gpx+xml"),
        html.Div(id="input-error", style={"color": "#f87171"}),

        html.Label("Density radius (m)"),
        dcc.Slider(id="radius-slider", min=2, max=20, step=1, value=5,
                   marks={2: "2", 5: "5", 10: "10", 20: "20"}),
        html.Label("Segment length (m)"),
        dcc.Slider(id="segment-slider", min=10, max=100, step=5, value=50,
                   marks={10: "10", 50: "50", 100: "100"}),

        html.Label("Route heat map metric"),
        dcc.RadioItems(
            id="stat-mode",
            options=[{"label": "Average density", "value": StatMode.AVERAGE.value},
                     {"label": "Maximum density", "value": StatMode.MAX.value}],
            value=StatMode.AVERAGE.value, inline=True,
        ),
        html.Label("Average"),
        dcc.Dropdown(
            id="average-mode",
            options=[{"label": m.value, "value": m.value} for m in AverageMode],
            value=AverageMode.ACTIVE.value, clearable=False,
        ),
        html.Label("Window (s)"),
        dcc.Slider(id="window-slider", min=30, max=600, step=30, value=180,
                   marks={30: "30", 180: "180", 600: "600"}),
        html.Label("Percentile"),
        dcc.Slider(id="percentile-slider", min=0.5, max=0.99, step=0.01, value=0.9,
                   marks={0.5: "50", 0.9: "90", 0.99: "99"}),
        html.Label("Top fraction"),
        dcc.Slider(id="top-fraction-slider", min=0.05, max=1.0, step=0.05, value=0.3,
                   marks={0.1: "10%", 0.3: "30%", 1.0: "100%"}),
        html.Label("Average threshold segment density (runners/m)"),
        dcc.Slider(id="avg-threshold", min=0.25, max=10, step=0.25, value=1.0,
                   marks={1: "1", 5: "5", 10: "10"}),
        html.Label("Max threshold segment density (runners/m)"),
        dcc.Slider(id="max-threshold", min=0.25, max=10, step=0.25, value=2.0,
                   marks={1: "1", 5: "5", 10: "10"}),
        html.Label("Threshold runner density (runners/m)"),
        dcc.Slider(id="runner-vmax", min=1, max=10, step=1, value=10,
                   marks={1: "1", 5: "5", 10: "10"}),
        html.Label("Playback speed"),
        dcc.Slider(id="speed-slider", min=1, max=120, step=1, value=30,
                   marks={1: "1x", 30: "30x", 60: "60x", 120: "120x"}),
        html.H3("Waves"),
        dash_table.DataTable(
            id="wave-table",
            columns=[
                {"name": "Wave", "id": "id"},
                {"name": "Start (s)", "id": "start_s", "type": "numeric"},
                {"name": "Runners", "id": "runners", "type": "numeric"},
                {"name": "Min pace (min/mi)", "id": "min_pace"},
                {"name": "Max pace (min/mi)", "id": "max_pace"},
            ],
            data=[wave_to_row(w) for w in _waves],
            editable=True,
            row_deletable=True,
            style_cell={"textAlign": "center", "padding": "2px 4px", "fontSize": "0.8em"},
        ),
        html.Button("Add wave", id="btn-add-wave", n_clicks=0),
    ], className="sidebar", style={"width": "320px", "float": "left", "padding": "12px"}),

    # ── Main area ────────────────────────────────────────────────────
    html.Div([
        html.Div([
            html.Button("Play", id="btn-play", n_clicks=0),
            html.Button("Reset", id="btn-reset", n_clicks=0),
            html.Button("New runners", id="btn-runners", n_clicks=0),
        ], className="control-bar"),
        dcc.Slider(id="time-slider", min=0, max=3600, step=1, value=0,
                   marks=None, tooltip={"placement": "bottom"}),
        dcc.Graph(id="main-graph", config={"displayModeBar": True, "scrollZoom": True}),
        html.Div(id="metrics", className="metrics-bar"),
        dash_table.DataTable(
            id="group-table",
            columns=[{"name": c, "id": c} for c in _TABLE_COLUMNS],
            data=[],
            style_cell={"textAlign": "center", "padding": "4px 8px", "fontSize": "0.85em"},
            page_size=15,
        ),
        dcc.Interval(id="play-interval", interval=_TICK_MS, disabled=True),
    ], className="main-area", style={"marginLeft": "340px"}),
])


# ═══════════════════════════════════════════════════════════════════════
#  Callbacks
# ═══════════════════════════════════════════════════════════════════════

# ── CB1: Play / pause ────────────────────────────────────────────────

@app.callback(
    Output("play-interval", "disabled"),
    Output("btn-play", "children"),
    Input("btn-play", "n_clicks"),
    prevent_initial_call=True,
)
def toggle_play(n_clicks):
    if not _clock.playing and _clock.time == 0:
        _regenerate_runners()
    playing = _clock.toggle()
    return (not playing), ("Pause" if playing else "Play")


# ── CB2: Wave editor and presets ─────────────────────────────────────

@app.callback(
    Output("wave-table", "data"),
    Output("route-selector", "value"),
    Input("btn-add-wave", "n_clicks"),
    Input("preset-selector", "value"),
    State("wave-table", "data"),
    prevent_initial_call=True,
)
def edit_waves(add_clicks, preset_id, rows):
    rows = list(rows or [])
    if ctx.triggered_id == "btn-add-wave":
        return rows + [wave_to_row(new_wave(len(rows)))], no_update
    preset = PRESETS.get(preset_id)
    if preset is None:
        return no_update, no_update
    return [wave_to_row(w) for w in preset.waves], preset.route


# ── CB3: Frame ───────────────────────────────────────────────────────

@app.callback(
    Output("main-graph", "figure"),
    Output("time-slider", "value"),
    Output("time-slider", "max"),
    Output("metrics", "children"),
    Output("group-table", "data"),
    Output("input-error", "children"),
    Output("play-interval", "disabled", allow_duplicate=True),
    Output("btn-play", "children", allow_duplicate=True),
    Input("play-interval", "n_intervals"),
    Input("time-slider", "value"),
    Input("btn-reset", "n_clicks"),
    Input("btn-runners", "n_clicks"),
    Input("route-selector", "value"),
    Input("gpx-upload", "contents"),
    Input("radius-slider", "value"),
    Input("segment-slider", "value"),
    Input("stat-mode", "value"),
    Input("average-mode", "value"),
    Input("window-slider", "value"),
    Input("percentile-slider", "value"),
    Input("top-fraction-slider", "value"),
    Input("wave-table", "data"),
    Input("avg-threshold", "value"),
    Input("max-threshold", "value"),
    Input("runner-vmax", "value"),
    State("speed-slider", "value"),
    prevent_initial_call="initial_duplicate",
)
def render_frame(n_intervals, slider_t, reset_clicks, runner_clicks, route_name,
                 upload, radius, segment_length, stat_mode, average_mode,
                 window_s, percentile, top_fraction, wave_rows, avg_threshold,
                 max_threshold, runner_vmax, speed):
    # A preset changes the route and the waves in one update.
    fired = set(ctx.triggered_prop_ids.values())
    error = ""

    if "gpx-upload" in fired and upload:
        try:
            _content_type, payload = upload.split(",", 1)
            text = base64.b64decode(payload).decode("utf-8", errors="replace")
            _load_route(Route.from_gpx_text(text, name="upload"))
        except ValueError as exc:
            logger.warning("Rejected GPX upload: %s", exc)
            error = str(exc)
    elif "route-selector" in fired or _engine.route is None:
        _load_route(ROUTES.get(route_name, ROUTES["Out-and-back 5K"])())

    if "wave-table" in fired:
        try:
            _set_waves(waves_from_rows(wave_rows))
        except ValueError as exc:
            logger.warning("Rejected wave edit: %s", exc)
            error = str(exc)
    elif "btn-runners" in fired or not _engine.runners:
        _regenerate_runners()

    _engine.set_config(_config_from_controls(
        radius, segment_length, stat_mode, average_mode, window_s,
        percentile, top_fraction,
    ))

    # Only clock ticks feed the statistics; the frame that reaches the end still counts.
    ticking = "play-interval" in fired and _clock.playing
    if "btn-reset" in fired:
        _clock.reset()
        _engine.reset(reason="user reset")
    elif "play-interval" in fired:
        _clock.speed = speed or 1
        _clock.tick(_TICK_MS / 1000.0)
    elif "time-slider" in fired and slider_t is not None and slider_t != round(_clock.time):
        _clock.seek(float(slider_t))

    frame = _engine.advance(_clock.time, playing=ticking)
    segment_vmax = max_threshold if stat_mode == StatMode.MAX.value else avg_threshold
    fig = _build_figure(frame, segment_vmax or 1.0, runner_vmax or 10.0)

    stopped = not _clock.playing
    return (
        fig,
        round(_clock.time),
        _clock.max_time,
        _metrics(frame),
        _table_rows(),
        error,
        True if stopped else no_update,
        "Play" if stopped else no_update,
    )


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    app.run(debug=False)
