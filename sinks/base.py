"""
Host capability interface for the session controller.

The controller only pushes into these sinks and never reads from them.
Every method here is a no-op, so HostSinks() doubles as the "headless"
implementation and as the base for real ones.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LiveActivitySnapshot:
    """State pushed to the system live-status display."""
    session_id: str
    remaining_seconds: float
    total_duration: float
    is_completed: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class HostSinks:
    """Feedback, notification and live-status capabilities (no-op defaults)."""

    def haptic(self) -> None:
        """Short, strong pulse signalling a movement warning."""

    def success_feedback(self) -> None:
        """Pulse signalling a completed session."""

    def speak(self, phrase: str) -> None:
        """Speak a short phrase aloud, interrupting any phrase in progress."""

    def schedule_alert(self, identifier: str, title: str, body: str, delay_seconds: float) -> None:
        """Schedule a local alert to fire after delay_seconds."""

    def cancel_alerts(self) -> None:
        """Cancel every pending local alert."""

    def start_live_activity(self, snapshot: LiveActivitySnapshot) -> None:
        """Begin showing a live-status display for snapshot.session_id."""

    def update_live_activity(self, snapshot: LiveActivitySnapshot) -> None:
        """Refresh the live-status display."""

    def end_live_activity(self, session_id: str) -> None:
        """Dismiss the live-status display immediately."""

    def set_idle_sleep_suppressed(self, suppressed: bool) -> None:
        """Keep the display awake while a session runs."""
