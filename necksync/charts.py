"""
Chart builders for the posture dashboard.

Pure functions returning plotly figures, so they can be rendered by streamlit
or exported without a running UI.
"""

from datetime import datetime
from typing import List, Optional, Sequence

import numpy as np
import plotly.graph_objects as go

from .config import PipelineConfig
from .data.models import PipelineSnapshot, PostureLevel, PostureState
from .data.records import PostureSession

LEVEL_COLORS = {
    PostureLevel.GOOD: '#4A9D6F',
    PostureLevel.WARNING: '#E0A030',
    PostureLevel.ALERT: '#D0504A',
}


def posture_label(state: PostureState) -> str:
    """Short human-readable description of a posture state."""
    if state.level == PostureLevel.ALERT:
        return f"Sit up! Head tilted {state.pitch:.0f}° for {state.duration:.0f}s"
    if state.level == PostureLevel.WARNING:
        return f"Head tilted {state.pitch:.0f}°"
    return "Good posture"


def pitch_history_figure(
    snapshot: PipelineSnapshot,
    config: Optional[PipelineConfig] = None,
) -> go.Figure:
    """
    Line chart of recent filtered pitch with both thresholds marked.

    Args:
        snapshot: Latest pipeline snapshot
        config: Thresholds to draw (None for defaults)
    """
    config = config or PipelineConfig()
    history = np.asarray(snapshot.pitch_history, dtype=float)
    color = LEVEL_COLORS[snapshot.posture_state.level]

    fig = go.Figure(data=[
        go.Scatter(
            x=np.arange(len(history)),
            y=history,
            mode='lines',
            line=dict(color=color, width=2),
            name='Pitch',
            hovertemplate='Pitch: %{y:.1f}°<extra></extra>'
        )
    ])

    fig.add_hline(
        y=config.warning_threshold,
        line_dash='dash',
        line_color=LEVEL_COLORS[PostureLevel.WARNING],
        annotation_text='Warning',
    )
    fig.add_hline(
        y=config.poor_posture_threshold,
        line_dash='dot',
        line_color=LEVEL_COLORS[PostureLevel.ALERT],
        annotation_text='Poor',
    )

    fig.update_layout(
        title=None,
        height=300,
        margin=dict(l=60, r=20, t=20, b=40),
        plot_bgcolor='white',
        showlegend=False
    )
    fig.update_xaxes(title_text='Sample', showgrid=False, range=[0, config.history_size])
    fig.update_yaxes(title_text='Pitch (°)', showgrid=True, gridcolor='#E8F0F0', range=[-90, 90])

    return fig


def session_history_figure(sessions: Sequence[PostureSession], max_duration: Optional[float] = None) -> go.Figure:
    """
    Horizontal stacked bars of good vs. poor time per session.

    Args:
        sessions: Closed sessions, most recent first
        max_duration: Axis limit in seconds (None to fit the data)
    """
    closed: List[PostureSession] = [s for s in sessions if s.is_closed]
    labels = [datetime.fromtimestamp(s.start_time).strftime('%m/%d %H:%M') for s in closed]
    poor = [min(s.poor_posture_duration, s.total_duration) for s in closed]
    good = [s.total_duration - p for s, p in zip(closed, poor)]
    percentages = [s.poor_posture_percentage for s in closed]

    fig = go.Figure(data=[
        go.Bar(
            y=labels,
            x=good,
            orientation='h',
            name='Good',
            marker_color=LEVEL_COLORS[PostureLevel.GOOD],
            hovertemplate='<b>%{y}</b><br>Good: %{x:.0f}s<extra></extra>'
        ),
        go.Bar(
            y=labels,
            x=poor,
            orientation='h',
            name='Poor',
            marker_color=LEVEL_COLORS[PostureLevel.ALERT],
            customdata=percentages,
            hovertemplate='<b>%{y}</b><br>Poor: %{x:.0f}s (%{customdata}%)<extra></extra>'
        ),
    ])

    fig.update_layout(
        barmode='stack',
        height=min(len(closed) * 40 + 80, 400),
        margin=dict(l=100, r=20, t=20, b=40),
        plot_bgcolor='white',
    )
    fig.update_xaxes(title_text='Duration (s)', showgrid=True, gridcolor='#E8F0F0')
    if max_duration:
        fig.update_xaxes(range=[0, max_duration])
    fig.update_yaxes(autorange='reversed')

    return fig
