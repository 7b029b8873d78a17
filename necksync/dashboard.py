"""
Live Posture Dashboard
Streamlit front-end for the motion pipeline

Run with:
    streamlit run necksync/dashboard.py -- [--port /dev/ttyUSB0] [--sessions sessions.json]
"""

import argparse
import logging
import time
from typing import Optional

import streamlit as st

from necksync.charts import pitch_history_figure, posture_label, session_history_figure
from necksync.config import PipelineConfig, load_config
from necksync.data.models import PipelineSnapshot, PostureLevel
from necksync.data.records import JsonSessionStore, SessionRecorder
from necksync.history import SessionHistory, Timeframe
from necksync.data.source import SimulatedHeadsetSource
from necksync.pipeline import MotionPipeline, create_serial_pipeline

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def parse_args():
    parser = argparse.ArgumentParser(description="NeckSync live posture dashboard")
    parser.add_argument("--port", help="Serial port of the head tracker (simulated if omitted)")
    parser.add_argument("--baudrate", type=int, default=115200)
    parser.add_argument("--sessions", default="./sessions.json", help="JSON file for finished sessions")
    parser.add_argument("--config", help="JSON file with pipeline config overrides")
    return parser.parse_args()


def build_pipeline(args) -> MotionPipeline:
    config = load_config(args.config) if args.config else PipelineConfig()
    if args.port:
        return create_serial_pipeline(
            args.port, baudrate=args.baudrate, config=config, sessions_path=args.sessions
        )

    source = SimulatedHeadsetSource(sample_rate=config.sample_rate, autostream=True)
    recorder = SessionRecorder(JsonSessionStore(args.sessions))
    return MotionPipeline(source=source, recorder=recorder, config=config)


def render_status(snapshot: PipelineSnapshot):
    """Connection and posture status"""
    col1, col2, col3 = st.columns(3)

    with col1:
        if snapshot.connected:
            st.success(snapshot.connection_status)
        else:
            st.warning(snapshot.connection_status)

    with col2:
        label = posture_label(snapshot.posture_state)
        level = snapshot.posture_state.level
        if level == PostureLevel.ALERT:
            st.error(label)
        elif level == PostureLevel.WARNING:
            st.warning(label)
        else:
            st.success(label)

    with col3:
        st.metric("Poor Posture", f"{snapshot.poor_posture_percentage}%")

    col1, col2, col3 = st.columns(3)
    col1.metric("Pitch", f"{snapshot.pitch:.1f}°")
    col2.metric("Roll", f"{snapshot.roll:.1f}°")
    col3.metric("Yaw", f"{snapshot.yaw:.1f}°")


def render_history(history: SessionHistory):
    """Past sessions chart"""
    st.markdown("### Session History")

    choice = st.selectbox(
        "Timeframe",
        [t.value for t in Timeframe],
        index=[t.value for t in Timeframe].index(history.timeframe.value),
    )
    if choice != history.timeframe.value:
        history.set_timeframe(Timeframe(choice))

    if not history.visible_sessions:
        st.info("No sessions recorded yet")
        return

    st.plotly_chart(
        session_history_figure(history.visible_sessions, history.max_duration),
        use_container_width=True,
        key="session-history",
    )
    st.metric("Average Poor Posture", f"{history.average_poor_posture}%")

    if history.can_load_more and st.button("Load more"):
        history.load_more()


def render_live(pipeline: MotionPipeline, status_placeholder, chart_placeholder, refresh: int):
    """
    Redraw status and pitch chart from the latest snapshot.

    ``refresh`` keys the chart; the snapshot can be unchanged between
    refreshes (stopped, disconnected) and streamlit rejects two charts with
    the same generated id in one run.
    """
    snapshot = pipeline.snapshot()

    with status_placeholder.container():
        render_status(snapshot)

    with chart_placeholder.container():
        st.plotly_chart(
            pitch_history_figure(snapshot, pipeline.config),
            use_container_width=True,
            key=f"pitch-{refresh}",
        )


def render_controls(pipeline: MotionPipeline, history: Optional[SessionHistory]):
    col1, col2, col3, col4 = st.columns(4)

    with col1:
        if st.button("Start"):
            pipeline.start()
    with col2:
        if st.button("Stop"):
            pipeline.stop()
            if history is not None:
                history.refresh()
    with col3:
        if st.button("Reconnect"):
            pipeline.restart()
    with col4:
        if st.button("Reset Session"):
            pipeline.reset_session()


class PostureDashboard:
    """Live dashboard with one pipeline per browser session"""

    def __init__(self, update_interval_ms=200):
        self.update_interval = update_interval_ms / 1000.0

        if 'pipeline' not in st.session_state:
            self._initialize()

    def _initialize(self):
        args = parse_args()
        pipeline = build_pipeline(args)
        st.session_state.pipeline = pipeline
        st.session_state.history = SessionHistory(pipeline.recorder.store) if pipeline.recorder else None
        if st.session_state.history:
            st.session_state.history.refresh()
        pipeline.start()
        logger.info("Dashboard started (%s)", "serial " + args.port if args.port else "simulated headset")

    def run(self):
        st.set_page_config(page_title="NeckSync", layout="wide")
        st.title("NeckSync Posture Coach")

        pipeline = st.session_state.pipeline
        history = st.session_state.history

        status_placeholder = st.empty()
        chart_placeholder = st.empty()

        render_controls(pipeline, history)
        if history is not None:
            st.divider()
            render_history(history)

        refresh = 0
        while True:
            render_live(pipeline, status_placeholder, chart_placeholder, refresh)
            refresh += 1
            time.sleep(self.update_interval)


if __name__ == "__main__":
    dashboard = PostureDashboard(update_interval_ms=200)
    dashboard.run()
