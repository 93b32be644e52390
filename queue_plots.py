"""
Figures and tables for the kiosk queue dashboard.

Pure functions from core objects to Plotly figures and pandas frames; no
Streamlit calls here so the figures can be built and checked headless.
"""

from typing import Optional, Sequence

import numpy as np
import pandas as pd
import plotly.graph_objects as go
from plotly.subplots import make_subplots

from arrival_curve import POINT_IDS, ArrivalCurve
from kiosk_simulation import MS_PER_MINUTE, SimulationState
from queueing_calculator import CalculatorReport

ARRIVAL_BIN_MINUTES = 15


def arrivals_frame(arrival_times: Sequence[float], max_duration_hours: float = 8,
                   bin_minutes: int = ARRIVAL_BIN_MINUTES) -> pd.DataFrame:
    """Arrival counts per `bin_minutes` window over the whole horizon"""
    horizon_minutes = max_duration_hours * 60
    edges = np.arange(0, horizon_minutes + bin_minutes, bin_minutes)
    minutes = np.asarray(arrival_times, dtype=float) / MS_PER_MINUTE
    counts, _ = np.histogram(minutes, bins=edges)
    return pd.DataFrame({"Minute": edges[:-1], "Arrivals": counts})


def queue_length_frame(state: SimulationState) -> pd.DataFrame:
    """One row per observed tick, one column per kiosk"""
    history = state.queue_length_history()
    frame = pd.DataFrame(history, columns=[f"Kiosk {k.index + 1}" for k in state.kiosks])
    frame.insert(0, "Minute", np.arange(len(frame)))
    return frame


def create_arrival_curve_plot(curve: ArrivalCurve, arrival_times: Optional[Sequence[float]] = None,
                              max_duration_hours: float = 8,
                              current_minute: Optional[int] = None) -> go.Figure:
    """Arrival intensity curve with its control points and, optionally, sampled arrivals"""
    fig = make_subplots(specs=[[{"secondary_y": True}]])

    xs, ys = curve.curve_samples()
    fig.add_trace(
        go.Scatter(x=xs * max_duration_hours, y=ys, mode='lines', name='Arrival Intensity',
                   fill='tozeroy', line=dict(color='#4ECDC4', width=3)),
        secondary_y=False
    )

    fig.add_trace(
        go.Scatter(
            x=[p.x * max_duration_hours for p in curve.points],
            y=[p.y for p in curve.points],
            mode='markers+text',
            text=[point_id.upper() for point_id in POINT_IDS],
            textposition='top center',
            name='Control Points',
            marker=dict(size=[10 if i in (0, 3, 6) else 7 for i in range(len(POINT_IDS))],
                        color=['#45B7D1' if i in (0, 3, 6) else '#FF6B6B' for i in range(len(POINT_IDS))])
        ),
        secondary_y=False
    )

    if arrival_times is not None and len(arrival_times) > 0:
        frame = arrivals_frame(arrival_times, max_duration_hours)
        fig.add_trace(
            go.Bar(x=(frame["Minute"] + ARRIVAL_BIN_MINUTES / 2) / 60, y=frame["Arrivals"],
                   width=ARRIVAL_BIN_MINUTES / 60 * 0.9, name='Sampled Arrivals',
                   marker_color='#DDA0DD', opacity=0.6),
            secondary_y=True
        )

    if current_minute:
        hours, minutes = divmod(current_minute, 60)
        fig.add_vline(x=current_minute / 60, line_dash="dash", line_color="orange",
                      annotation_text=f"{hours}h {minutes}m")

    fig.update_layout(height=350, title_text="Arrival Pattern", showlegend=True)
    fig.update_xaxes(title_text="Time (h)", range=[0, max_duration_hours])
    fig.update_yaxes(title_text="Relative Intensity", range=[0, 1.1], secondary_y=False)
    fig.update_yaxes(title_text=f"Arrivals per {ARRIVAL_BIN_MINUTES} min", secondary_y=True)

    return fig


def create_queue_length_plot(state: SimulationState) -> go.Figure:
    """Queue length per kiosk over simulated time"""
    frame = queue_length_frame(state)

    fig = go.Figure()
    for column in frame.columns[1:]:
        fig.add_trace(go.Scatter(x=frame["Minute"], y=frame[column], mode='lines', name=column))

    if len(frame) > 0:
        fig.add_hline(
            y=float(np.mean(state.observed_queue_lengths)),
            line_dash="dash",
            line_color="#96CEB4",
            annotation_text=f"Avg: {np.mean(state.observed_queue_lengths):.1f}"
        )

    fig.update_layout(height=350, title_text="Queue Length Over Time", showlegend=True)
    fig.update_xaxes(title_text="Simulated Minute")
    fig.update_yaxes(title_text="Attendees in Queue")

    return fig


def create_server_count_plot(report: CalculatorReport, service_goal_seconds: float) -> go.Figure:
    """Utilization and time in system for every evaluated server count"""
    server_counts = [row.server_count for row in report.rows]
    utilizations = [min(row.utilization * 100, 150) for row in report.rows]
    times = [row.avg_time_in_system if row.stable else None for row in report.rows]

    fig = make_subplots(
        rows=1, cols=2,
        subplot_titles=('Utilization', 'Avg Time in System')
    )

    fig.add_trace(
        go.Bar(x=server_counts, y=utilizations, name='Utilization',
               marker_color=['#FF6B6B' if not row.stable else '#96CEB4' for row in report.rows]),
        row=1, col=1
    )
    fig.add_hline(y=100, line_dash="dash", line_color="red", row=1, col=1)

    fig.add_trace(
        go.Bar(x=server_counts, y=times, name='Time in System',
               marker_color=['#96CEB4' if row.meets_goal else '#FFD166' for row in report.rows]),
        row=1, col=2
    )
    fig.add_hline(y=service_goal_seconds, line_dash="dash", line_color="orange",
                  annotation_text=f"Goal: {service_goal_seconds:.0f}s", row=1, col=2)

    if report.recommended_server_count is not None:
        fig.add_vline(x=report.recommended_server_count, line_dash="dash", line_color="green",
                      annotation_text=f"Rec: {report.recommended_server_count}", row=1, col=2)

    fig.update_layout(
        height=400,
        title_text=f"Server Count Analysis (λ={report.arrival_rate:.2f}/min, μ={report.service_rate:.2f}/min)",
        showlegend=False
    )
    fig.update_xaxes(title_text="# Servers")
    fig.update_yaxes(title_text="%", row=1, col=1)
    fig.update_yaxes(title_text="Seconds", row=1, col=2)

    return fig
