"""
Session records and persistence.

Defines the persisted PostureSession record, the session store contract with
in-memory and JSON-file implementations, and the recorder that opens and
closes sessions against an injected store.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, List, Optional, Union
import json
import logging
import threading
import time
import uuid

from ..errors import PersistenceWriteFailure
from ..session_stats import poor_posture_percentage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PostureSession:
    """
    One posture coaching session.

    Created open (no end_time) when monitoring starts, closed once when
    monitoring stops. Closed sessions are never modified.
    """
    start_time: float                       # Unix timestamp
    end_time: Optional[float] = None        # Unix timestamp, None while open
    poor_posture_duration: float = 0.0      # seconds
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    @property
    def is_closed(self) -> bool:
        return self.end_time is not None

    @property
    def total_duration(self) -> float:
        """Session length in seconds (0 while open)."""
        if self.end_time is None:
            return 0.0
        return max(0.0, self.end_time - self.start_time)

    @property
    def poor_posture_percentage(self) -> int:
        return poor_posture_percentage(self.poor_posture_duration, self.total_duration)

    def close(self, end_time: float, poor_posture_duration: float) -> "PostureSession":
        """Return the closed copy of this session."""
        if self.is_closed:
            raise ValueError(f"Session {self.id} is already closed")
        return replace(self, end_time=end_time, poor_posture_duration=poor_posture_duration)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "poor_posture_duration": self.poor_posture_duration,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PostureSession":
        return cls(
            id=uuid.UUID(data["id"]),
            start_time=float(data["start_time"]),
            end_time=float(data["end_time"]) if data.get("end_time") is not None else None,
            poor_posture_duration=float(data.get("poor_posture_duration", 0.0)),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, json_str: str) -> "PostureSession":
        return cls.from_dict(json.loads(json_str))


# ---------------------------------------------------------------------
# STORES
# ---------------------------------------------------------------------

class SessionStore(ABC):
    """
    Persistence contract for closed sessions.

    Append-only apart from clear_all(). Implementations raise
    PersistenceWriteFailure when a write cannot be completed.
    """

    @abstractmethod
    def append_session(self, session: PostureSession) -> None:
        pass

    @abstractmethod
    def list_sessions(self) -> List[PostureSession]:
        """Return all sessions, most recent first."""
        pass

    @abstractmethod
    def clear_all(self) -> None:
        pass


class InMemorySessionStore(SessionStore):
    """Session store kept in process memory."""

    def __init__(self):
        self._sessions: List[PostureSession] = []
        self._lock = threading.Lock()

    def append_session(self, session: PostureSession) -> None:
        with self._lock:
            self._sessions.insert(0, session)

    def list_sessions(self) -> List[PostureSession]:
        with self._lock:
            return list(self._sessions)

    def clear_all(self) -> None:
        with self._lock:
            self._sessions.clear()


class JsonSessionStore(SessionStore):
    """
    Session store backed by a single JSON file.

    The file holds a list of session objects, most recent first. Unreadable
    files are treated as empty on load and logged.
    """

    def __init__(self, path: Union[Path, str]):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._sessions: List[PostureSession] = self._load()

    def _load(self) -> List[PostureSession]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text())
            return [PostureSession.from_dict(item) for item in data]
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Could not load sessions from %s: %s", self.path, e)
            return []

    def _save(self, sessions: List[PostureSession]) -> None:
        json_str = json.dumps([s.to_dict() for s in sessions], indent=2)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json_str)
        except OSError as e:
            raise PersistenceWriteFailure(f"Could not write {self.path}: {e}") from e

    def append_session(self, session: PostureSession) -> None:
        with self._lock:
            updated = [session] + self._sessions
            self._save(updated)
            self._sessions = updated

    def list_sessions(self) -> List[PostureSession]:
        with self._lock:
            return list(self._sessions)

    def clear_all(self) -> None:
        with self._lock:
            self._sessions = []
            try:
                self.path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                raise PersistenceWriteFailure(f"Could not remove {self.path}: {e}") from e


# ---------------------------------------------------------------------
# RECORDER
# ---------------------------------------------------------------------

class SessionRecorder:
    """
    Opens and closes sessions against an injected store.

    Write failures never propagate: they are logged and kept in
    ``last_write_error`` so the caller can surface them.
    """

    def __init__(self, store: SessionStore, clock: Callable[[], float] = time.time):
        self.store = store
        self.clock = clock
        self.current_session: Optional[PostureSession] = None
        self.last_write_error: Optional[PersistenceWriteFailure] = None

    @property
    def is_recording(self) -> bool:
        return self.current_session is not None

    def start_new_session(self, now: Optional[float] = None) -> PostureSession:
        """Open a new session, replacing any unfinished one."""
        if self.current_session is not None:
            logger.warning("Discarding unfinished session %s", self.current_session.id)

        start = self.clock() if now is None else now
        self.current_session = PostureSession(start_time=start)
        logger.info("Session %s started", self.current_session.id)
        return self.current_session

    def end_current_session(
        self,
        poor_posture_duration: float,
        now: Optional[float] = None,
    ) -> Optional[PostureSession]:
        """
        Close the active session and hand it to the store.

        No-op returning None when no session is active.
        """
        if self.current_session is None:
            return None

        end = self.clock() if now is None else now
        session = self.current_session.close(end_time=end, poor_posture_duration=poor_posture_duration)
        self.current_session = None

        try:
            self.store.append_session(session)
            self.last_write_error = None
        except PersistenceWriteFailure as e:
            self.last_write_error = e
            logger.warning("Session %s was not saved: %s", session.id, e)

        logger.info(
            "Session %s ended: %.1fs, %d%% poor posture",
            session.id, session.total_duration, session.poor_posture_percentage,
        )
        return session
