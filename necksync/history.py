"""
Session history browsing.

Filters stored sessions by timeframe, pages through them and computes the
summary numbers shown next to the history chart.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, List
import logging
import time

from .data.records import PostureSession, SessionStore

logger = logging.getLogger(__name__)


class Timeframe(Enum):
    """History windows offered to the user."""
    DAY = "Day"
    WEEK = "Week"
    MONTH = "Month"
    ALL = "All Time"


class SessionHistory:
    """
    Paged, filtered view over a session store.

    Sessions come back most recent first. ``visible_sessions`` grows one page
    at a time through load_more().
    """

    PAGE_SIZE = 10
    DEFAULT_MAX_DURATION = 60.0  # seconds, chart scale with no sessions
    DURATION_PADDING = 1.2

    def __init__(
        self,
        store: SessionStore,
        page_size: int = PAGE_SIZE,
        timeframe: Timeframe = Timeframe.WEEK,
        clock: Callable[[], float] = time.time,
    ):
        if page_size <= 0:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self.store = store
        self.page_size = page_size
        self.timeframe = timeframe
        self.clock = clock

        self.visible_sessions: List[PostureSession] = []
        self.can_load_more = True
        self._filtered: List[PostureSession] = []
        self._current_page = 0

    def _in_timeframe(self, session: PostureSession, now: datetime) -> bool:
        started = datetime.fromtimestamp(session.start_time)
        if self.timeframe == Timeframe.DAY:
            return started.date() == now.date()
        if self.timeframe == Timeframe.WEEK:
            return now - started <= timedelta(days=7)
        if self.timeframe == Timeframe.MONTH:
            return now - started <= timedelta(days=31)
        return True

    def _filter_sessions(self) -> List[PostureSession]:
        now = datetime.fromtimestamp(self.clock())
        return [
            s for s in self.store.list_sessions()
            if s.is_closed and self._in_timeframe(s, now)
        ]

    def refresh(self) -> List[PostureSession]:
        """Reload from the store and show the first page."""
        self._filtered = self._filter_sessions()
        self.visible_sessions = self._filtered[:self.page_size]
        self._current_page = 1
        self.can_load_more = len(self._filtered) > self.page_size
        logger.debug(
            "History refreshed: %d of %d sessions (%s)",
            len(self.visible_sessions), len(self._filtered), self.timeframe.value,
        )
        return self.visible_sessions

    def load_more(self) -> List[PostureSession]:
        """
        Append the next page.

        Returns:
            The sessions added by this call
        """
        if not self.can_load_more:
            return []

        if self._current_page == 0:
            self._filtered = self._filter_sessions()

        start = self._current_page * self.page_size
        end = min(start + self.page_size, len(self._filtered))
        if start >= end:
            self.can_load_more = False
            return []

        page = self._filtered[start:end]
        self.visible_sessions = self.visible_sessions + page
        self._current_page += 1
        self.can_load_more = end < len(self._filtered)
        return page

    def set_timeframe(self, timeframe: Timeframe) -> List[PostureSession]:
        self.timeframe = timeframe
        self.visible_sessions = []
        self._current_page = 0
        self.can_load_more = True
        return self.refresh()

    @property
    def average_poor_posture(self) -> int:
        """Integer mean of the visible sessions' poor posture percentages."""
        if not self.visible_sessions:
            return 0
        total = sum(s.poor_posture_percentage for s in self.visible_sessions)
        return total // len(self.visible_sessions)

    @property
    def max_duration(self) -> float:
        """Longest visible session plus padding, for chart scaling."""
        if not self.visible_sessions:
            return self.DEFAULT_MAX_DURATION
        return max(s.total_duration for s in self.visible_sessions) * self.DURATION_PADDING
