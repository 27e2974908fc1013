"""Focus session model and serialization."""

import logging
import math
import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Lifecycle states of the focus session controller."""
    INACTIVE = "inactive"
    ACTIVE = "active"
    WARNING = "warning"  # Movement detected, waiting for the user to return
    QUITTING = "quitting"  # Quit dialog open, confirmation pending
    COMPLETED = "completed"

    @classmethod
    def from_tag(cls, tag: Any) -> Optional["SessionState"]:
        """Parse a persisted state tag, returning None for unknown values."""
        try:
            return cls(tag)
        except ValueError:
            return None


# States in which a session is running and its timers should be live
LIVE_STATES = frozenset({SessionState.ACTIVE, SessionState.WARNING, SessionState.QUITTING})


def is_valid_duration(duration: Any, start_time: Optional[datetime] = None) -> bool:
    """
    Check that duration is a usable session length.

    It must be a real positive finite number of seconds, and the session
    end time must fit in the datetime range.

    Args:
        duration: Candidate length in seconds.
        start_time: Start the end time is computed from. Defaults to now.

    Returns:
        True if a Session can be built with this duration.
    """
    # bool is an int subclass; reject it explicitly
    if isinstance(duration, bool) or not isinstance(duration, (int, float)):
        return False
    if not math.isfinite(duration) or duration <= 0:
        return False
    try:
        (start_time or datetime.now()) + timedelta(seconds=duration)
    except (OverflowError, ValueError):
        return False
    return True


class Session:
    """
    A single timed focus interval.

    id, start_time and duration are fixed at creation. Only state and
    interruption_count change afterwards. All derived values take an
    optional ``now`` so callers with their own clock (the controller's
    scheduler, tests) get consistent answers.
    """

    def __init__(
        self,
        duration: float,
        start_time: Optional[datetime] = None,
        session_id: Optional[str] = None,
        state: SessionState = SessionState.ACTIVE,
        interruption_count: int = 0,
    ):
        """
        Initialize a new session.

        Args:
            duration: Requested length in seconds. Must be > 0.
            start_time: Start timestamp. If None, uses current time.
            session_id: Optional identifier. If None, generates a UUID.
            state: Initial state tag.
            interruption_count: Confirmed movement events so far.

        Raises:
            ValueError: If duration is not positive and finite, or the end
                time would fall outside the datetime range.
        """
        start_time = start_time or datetime.now()
        if not is_valid_duration(duration, start_time):
            raise ValueError(f"Invalid session duration: {duration!r}")

        self._id = session_id or str(uuid.uuid4())
        self._start_time = start_time
        self._duration = float(duration)
        self.state = state
        self.interruption_count = interruption_count

    @property
    def id(self) -> str:
        return self._id

    @property
    def start_time(self) -> datetime:
        return self._start_time

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def end_time(self) -> datetime:
        return self._start_time + timedelta(seconds=self._duration)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now()
        return now >= self.end_time

    def remaining_time(self, now: Optional[datetime] = None) -> float:
        """Seconds left until end_time, never negative."""
        now = now or datetime.now()
        return max(0.0, (self.end_time - now).total_seconds())

    def elapsed_time(self, now: Optional[datetime] = None) -> float:
        """Seconds since start, capped at the session duration."""
        now = now or datetime.now()
        return min(self._duration, (now - self._start_time).total_seconds())

    def progress(self, now: Optional[datetime] = None) -> float:
        """Fraction of the session elapsed, clamped to [0, 1]."""
        fraction = self.elapsed_time(now) / self._duration
        return min(1.0, max(0.0, fraction))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize all fields for persistence (ISO timestamps keep microseconds)."""
        return {
            "id": self._id,
            "start_time": self._start_time.isoformat(),
            "duration": self._duration,
            "state": self.state.value,
            "interruption_count": self.interruption_count,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Optional["Session"]:
        """
        Rebuild a session from its persisted form.

        Args:
            data: Dict produced by to_dict().

        Returns:
            The Session, or None if the record is malformed.
        """
        if not isinstance(data, dict):
            return None

        try:
            session_id = data["id"]
            start_time = datetime.fromisoformat(data["start_time"])
            duration = data["duration"]
            state = SessionState.from_tag(data["state"])
            interruption_count = data["interruption_count"]
        except (KeyError, TypeError, ValueError) as e:
            logger.debug(f"Malformed session record: {e}")
            return None

        if not isinstance(session_id, str) or not session_id:
            return None
        # Sessions are stamped with naive local time
        if start_time.tzinfo is not None:
            return None
        if not is_valid_duration(duration, start_time):
            return None
        if (isinstance(interruption_count, bool) or not isinstance(interruption_count, int)
                or interruption_count < 0):
            return None
        if state is None:
            return None

        return cls(
            duration=duration,
            start_time=start_time,
            session_id=session_id,
            state=state,
            interruption_count=interruption_count,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Session):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return (f"Session(id={self._id!r}, start_time={self._start_time.isoformat()!r}, "
                f"duration={self._duration}, state={self.state.value!r}, "
                f"interruption_count={self.interruption_count})")
