"""
SessionController: lifecycle authority for Owl Focus sessions.

Owns the single active Session, its countdown and hold-to-quit timers,
motion-detection subscription and persisted snapshot. It has no UI
dependencies: the presentation layer issues commands and observes the
controller through callbacks and get_status().

Callbacks:
    on_state_change(state: SessionState, session: Optional[Session])
    on_tick(session: Session)
    on_warning(interruption_count: int)
    on_quit_progress(progress: float)
    on_captcha_result(correct: bool)

Sink and callback failures are logged and swallowed; they never block or
roll back a transition.
"""

import logging
import random
import threading
from typing import Any, Callable, Dict, Optional

import config
from core.captcha import CaptchaChallenge, generate_captcha, parse_answer
from core.scheduler import ThreadScheduler, TimerHandle
from sensors.motion import MotionDetector, Subscription
from sinks.base import HostSinks, LiveActivitySnapshot
from tracking.session import LIVE_STATES, Session, SessionState, is_valid_duration
from tracking.store import KeyValueStore

logger = logging.getLogger(__name__)


class SessionController:
    """
    Session lifecycle state machine.

    States: inactive -> active <-> warning, active/warning -> quitting,
    quitting -> active | inactive, live -> completed -> inactive.

    Thread model: ticks and marshalled motion events run on the
    scheduler's worker thread; commands usually arrive from the UI
    thread. A re-entrant lock serializes both, so no two mutations of
    session state ever overlap.
    """

    # ------------------------------------------------------------------
    # Initialisation
    # ------------------------------------------------------------------

    def __init__(
        self,
        store: KeyValueStore,
        sinks: Optional[HostSinks] = None,
        motion_detector: Optional[MotionDetector] = None,
        scheduler: Optional[Any] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        """
        Initialise the controller in the inactive state.

        Args:
            store: Durable key-value store for the session snapshot.
            sinks: Feedback/notification capabilities (no-op if None).
            motion_detector: Movement source (soft mode if None).
            scheduler: Serialized execution context; a ThreadScheduler
                       owned by this controller is created if None.
            rng: Random source for captcha generation.
        """
        self.store = store
        self.sinks: HostSinks = sinks or HostSinks()
        self._owns_scheduler = scheduler is None
        self.scheduler = scheduler or ThreadScheduler()
        self.motion_detector = motion_detector or MotionDetector(dispatch=self.scheduler.call_soon)
        self.rng = rng or random.Random()

        # Session state
        self.session: Optional[Session] = None
        self.state: SessionState = SessionState.INACTIVE
        self.is_foreground: bool = True

        # Presentation flags
        self.showing_warning: bool = False
        self.showing_quit_dialog: bool = False
        self.showing_onboarding: bool = not bool(store.get(config.ONBOARDING_KEY, False))

        # Quit confirmation (ephemeral, never persisted)
        self.quit_progress: float = 0.0
        self.captcha: Optional[CaptchaChallenge] = None
        self.captcha_input: str = ""
        self._hold_ticks: int = 0
        self._hold_ticks_required: int = max(1, round(1.0 / config.HOLD_INCREMENT))

        # Timers and subscriptions
        self._session_timer: Optional[TimerHandle] = None
        self._hold_timer: Optional[TimerHandle] = None
        self._motion_subscription: Optional[Subscription] = None
        self._live_activity_id: Optional[str] = None
        self._last_warning_time = None

        self._lock = threading.RLock()

        # ---- Callbacks (set by the presentation layer) ----
        self.on_state_change: Optional[Callable[[SessionState, Optional[Session]], None]] = None
        self.on_tick: Optional[Callable[[Session], None]] = None
        self.on_warning: Optional[Callable[[int], None]] = None
        self.on_quit_progress: Optional[Callable[[float], None]] = None
        self.on_captcha_result: Optional[Callable[[bool], None]] = None

    # ------------------------------------------------------------------
    # Session commands
    # ------------------------------------------------------------------

    def start_session(self, duration: Optional[float] = None) -> Dict:
        """
        Start a new focus session.

        Starting from the completed state first resets to inactive.

        Args:
            duration: Length in seconds. Defaults to the selected duration.

        Returns:
            {"success": bool, "error": str | None, "error_type": str | None}
            error_type values: "already_running", "invalid_duration"
        """
        with self._lock:
            if duration is None:
                duration = self.selected_duration

            now = self.scheduler.now()
            if not is_valid_duration(duration, now):
                return {"success": False, "error": "Duration must be a positive number of seconds",
                        "error_type": "invalid_duration"}

            if self.state in LIVE_STATES:
                return {"success": False, "error": "Session already running",
                        "error_type": "already_running"}

            if self.state == SessionState.COMPLETED:
                self._reset_to_inactive()

            session = Session(duration=duration, start_time=now)
            self.session = session
            self._last_warning_time = None
            self._set_state(SessionState.ACTIVE)

            self._start_live_resources(session)
            self._persist()
            self._start_live_activity(session)

            logger.info(f"Focus session started: {int(duration // 60)} minutes")
            self._notify_state_change()
            return {"success": True, "error": None, "error_type": None}

    def start_new_session(self) -> None:
        """Leave the completed screen and return to inactive."""
        with self._lock:
            if self.state != SessionState.COMPLETED:
                return
            self._reset_to_inactive()
            self._notify_state_change()

    def resume_session(self) -> None:
        """Return to the running session from a warning or the quit dialog."""
        with self._lock:
            if self.state not in (SessionState.WARNING, SessionState.QUITTING):
                return

            self._cancel_hold_timer()
            self._clear_quit_confirmation()
            self.showing_warning = False
            self.showing_quit_dialog = False

            self._set_state(SessionState.ACTIVE)
            self._persist()
            logger.info("Session resumed")
            self._notify_state_change()

    def begin_quit(self) -> None:
        """Open the quit dialog and present a fresh captcha."""
        with self._lock:
            if self.state not in (SessionState.ACTIVE, SessionState.WARNING):
                return

            self.showing_warning = False
            self.showing_quit_dialog = True
            self._set_state(SessionState.QUITTING)
            self._new_captcha()
            self._persist()
            logger.info("Quit requested - awaiting confirmation")
            self._notify_state_change()

    def confirm_quit(self) -> None:
        """End the session early. Only valid while the quit dialog is open."""
        with self._lock:
            if self.state != SessionState.QUITTING:
                return

            self._stop_session()
            self.session = None
            self.showing_quit_dialog = False
            self._set_state(SessionState.INACTIVE)
            self._clear_persisted_session()
            logger.info("Session quit by user")
            self._notify_state_change()

    def complete_session(self) -> None:
        """Finish a running session whose time is up."""
        with self._lock:
            if self.session is None or self.state not in LIVE_STATES:
                return

            self._cancel_session_timer()
            self._cancel_hold_timer()
            self._stop_motion_detection()
            self._call_sink("set_idle_sleep_suppressed", False)

            self._clear_quit_confirmation()
            self.showing_warning = False
            self.showing_quit_dialog = False
            self._set_state(SessionState.COMPLETED)
            self._persist()

            self._call_sink("success_feedback")
            self._update_live_activity(completed=True)

            logger.info(f"Focus session completed "
                        f"({self.session.interruption_count} interruptions)")
            self._notify_state_change()

    # ------------------------------------------------------------------
    # Quit confirmation: math captcha
    # ------------------------------------------------------------------

    def generate_captcha(self) -> Optional[str]:
        """
        Replace the current challenge and clear the input.

        Returns:
            The new question, or None when not quitting.
        """
        with self._lock:
            if self.state != SessionState.QUITTING:
                return None
            self._new_captcha()
            self._notify_state_change()
            return self.captcha.question

    def validate_captcha(self, text: Optional[str] = None) -> bool:
        """
        Check an answer and act on it.

        Correct answers confirm the quit. Anything else (including
        non-numeric input) regenerates the challenge and clears the
        input, staying in quitting.

        Args:
            text: User input. Defaults to captcha_input.

        Returns:
            True if the answer was correct.
        """
        with self._lock:
            if self.state != SessionState.QUITTING or self.captcha is None:
                return False

            if text is None:
                text = self.captcha_input
            answer = parse_answer(text)
            correct = answer is not None and answer == self.captcha.answer

            self._invoke_callback("on_captcha_result", correct)

            if correct:
                self.confirm_quit()
            else:
                logger.info("Incorrect captcha answer - new challenge generated")
                self._new_captcha()
                self._notify_state_change()
            return correct

    # ------------------------------------------------------------------
    # Quit confirmation: hold to quit
    # ------------------------------------------------------------------

    def start_hold_to_quit(self) -> None:
        """Begin filling the hold-to-quit progress; completes after ~5 seconds."""
        with self._lock:
            if self.state != SessionState.QUITTING or self.session is None:
                return
            self._cancel_hold_timer()
            self._hold_ticks = 0
            self.quit_progress = 0.0
            self._hold_timer = self.scheduler.call_every(
                config.HOLD_TICK_SECONDS, self._on_hold_tick, self.session.id
            )

    def cancel_hold_to_quit(self) -> None:
        """Released before completion: stop the hold and reset progress."""
        with self._lock:
            self._cancel_hold_timer()
            self._hold_ticks = 0
            if self.quit_progress != 0.0:
                self.quit_progress = 0.0
                self._invoke_callback("on_quit_progress", 0.0)

    def _on_hold_tick(self, session_id: str) -> None:
        with self._lock:
            if (self._hold_timer is None or self.state != SessionState.QUITTING
                    or self.session is None or self.session.id != session_id):
                return

            self._hold_ticks += 1
            # Progress derives from the tick count so float drift can't add a tick
            self.quit_progress = min(1.0, self._hold_ticks / self._hold_ticks_required)
            self._invoke_callback("on_quit_progress", self.quit_progress)

            if self._hold_ticks >= self._hold_ticks_required:
                self._cancel_hold_timer()
                self.confirm_quit()

    # ------------------------------------------------------------------
    # Motion handling
    # ------------------------------------------------------------------

    def _on_movement_detected(self, session_id: str) -> None:
        with self._lock:
            session = self.session
            if session is None or session.id != session_id:
                return
            if self.state != SessionState.ACTIVE:
                return

            now = self.scheduler.now()
            if (self._last_warning_time is not None and
                    (now - self._last_warning_time).total_seconds() < config.WARNING_COOLDOWN_SECONDS):
                logger.debug("Movement ignored - warning cooldown active")
                return

            self._last_warning_time = now
            session.interruption_count += 1

            self._call_sink("haptic")
            self.showing_warning = True
            self._set_state(SessionState.WARNING)

            # Backgrounded warnings still count, they just aren't spoken
            if self.is_foreground:
                self._call_sink("speak", config.WARNING_PHRASE)

            self._persist()
            logger.info(f"Movement detected - warning #{session.interruption_count}")
            self._invoke_callback("on_warning", session.interruption_count)
            self._notify_state_change()

    # ------------------------------------------------------------------
    # App lifecycle
    # ------------------------------------------------------------------

    def enter_background(self) -> None:
        """Stop motion detection and schedule the session-end alert."""
        with self._lock:
            self.is_foreground = False
            if self.state == SessionState.ACTIVE and self.session:
                minutes = int(self.session.duration // 60)
                delay = max(1.0, self.session.remaining_time(self.scheduler.now()))
                self._call_sink(
                    "schedule_alert",
                    config.SESSION_END_ALERT_ID,
                    config.SESSION_END_ALERT_TITLE,
                    config.SESSION_END_ALERT_BODY.format(minutes=minutes),
                    delay,
                )
            self._stop_motion_detection()
            logger.info("App entered background - motion detection stopped")

    def enter_foreground(self) -> None:
        """Cancel deferred alerts, resume detection, complete if time ran out."""
        with self._lock:
            self.is_foreground = True
            self._call_sink("cancel_alerts")

            if self.session is None or self.state not in LIVE_STATES:
                return

            if self.session.is_expired(self.scheduler.now()):
                self.complete_session()
                return

            self._start_motion_detection(self.session.id)
            logger.info("App entered foreground - motion detection resumed")

    def shutdown(self) -> None:
        """
        Release every timer, subscription and system resource.

        The persisted snapshot is kept so the next launch can restore it.
        """
        with self._lock:
            self._stop_session()
            logger.info("Controller shutdown complete")

        if self._owns_scheduler:
            self.scheduler.shutdown()

    # ------------------------------------------------------------------
    # Persistence & restore
    # ------------------------------------------------------------------

    def restore_session(self) -> bool:
        """
        Adopt a persisted session on cold start.

        Absent or malformed records leave the controller inactive. An
        expired session is shown as completed without timers. A live
        session resumes exactly as if the process never stopped.

        Returns:
            True if a session was restored (live or completed).
        """
        with self._lock:
            if self.session is not None:
                return False

            raw_session = self.store.get(config.SESSION_DATA_KEY)
            raw_state = self.store.get(config.SESSION_STATE_KEY)
            if raw_session is None and raw_state is None:
                return False

            session = Session.from_dict(raw_session)
            state = SessionState.from_tag(raw_state)
            if session is None or state is None or state == SessionState.INACTIVE:
                logger.warning("Discarding malformed persisted session")
                self._clear_persisted_session()
                return False

            now = self.scheduler.now()
            if session.is_expired(now) or state == SessionState.COMPLETED:
                self._clear_persisted_session()
                self.session = session
                self._set_state(SessionState.COMPLETED)
                logger.info("Restored session had already ended - showing as completed")
                self._notify_state_change()
                return True

            self.session = session
            self._set_state(state)
            self.showing_warning = state == SessionState.WARNING
            self.showing_quit_dialog = state == SessionState.QUITTING
            if state == SessionState.QUITTING:
                self._new_captcha()

            self._start_live_resources(session)
            self._start_live_activity(session)

            logger.info(f"Session restored: {int(session.remaining_time(now))} seconds remaining")
            self._notify_state_change()
            return True

    def _persist(self) -> None:
        if self.session is None:
            return
        try:
            self.store.update({
                config.SESSION_DATA_KEY: self.session.to_dict(),
                config.SESSION_STATE_KEY: self.state.value,
            })
        except Exception as e:
            logger.warning(f"Failed to persist session: {e}")

    def _clear_persisted_session(self) -> None:
        try:
            self.store.remove(config.SESSION_DATA_KEY, config.SESSION_STATE_KEY)
        except Exception as e:
            logger.warning(f"Failed to clear persisted session: {e}")

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    @property
    def selected_duration(self) -> float:
        """Last duration the user picked, or the default."""
        value = self.store.get(config.SELECTED_DURATION_KEY)
        if is_valid_duration(value, self.scheduler.now()):
            return float(value)
        return float(config.DEFAULT_DURATION_SECONDS)

    def set_selected_duration(self, seconds: float) -> None:
        if not is_valid_duration(seconds, self.scheduler.now()):
            logger.warning(f"Invalid duration ignored: {seconds}")
            return
        self.store.set(config.SELECTED_DURATION_KEY, float(seconds))

    def complete_onboarding(self) -> None:
        with self._lock:
            self.store.set(config.ONBOARDING_KEY, True)
            self.showing_onboarding = False
            self._notify_state_change()

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    def get_status(self) -> Dict:
        """
        Snapshot of everything the presentation layer renders.

        The captcha answer is deliberately absent.
        """
        with self._lock:
            now = self.scheduler.now()
            session = self.session
            return {
                "state": self.state.value,
                "session_id": session.id if session else None,
                "duration_seconds": session.duration if session else 0.0,
                "remaining_seconds": session.remaining_time(now) if session else 0.0,
                "elapsed_seconds": session.elapsed_time(now) if session else 0.0,
                "progress": session.progress(now) if session else 0.0,
                "interruption_count": session.interruption_count if session else 0,
                "quit_progress": self.quit_progress,
                "captcha_question": self.captcha.question if self.captcha else None,
                "showing_warning": self.showing_warning,
                "showing_quit_dialog": self.showing_quit_dialog,
                "showing_onboarding": self.showing_onboarding,
                "is_foreground": self.is_foreground,
            }

    # ------------------------------------------------------------------
    # Timers and detection
    # ------------------------------------------------------------------

    def _start_live_resources(self, session: Session) -> None:
        """Countdown tick, motion detection and idle-sleep override."""
        self._cancel_session_timer()
        self._session_timer = self.scheduler.call_every(
            config.SESSION_TICK_SECONDS, self._on_session_tick, session.id
        )
        if self.is_foreground:
            self._start_motion_detection(session.id)
        self._call_sink("set_idle_sleep_suppressed", True)

    def _on_session_tick(self, session_id: str) -> None:
        with self._lock:
            session = self.session
            # Late ticks from a replaced or finished session are no-ops
            if session is None or session.id != session_id or self.state not in LIVE_STATES:
                return

            if session.is_expired(self.scheduler.now()):
                self.complete_session()
                return

            self._update_live_activity(completed=False)
            self._invoke_callback("on_tick", session)

    def _start_motion_detection(self, session_id: str) -> None:
        if self._motion_subscription:
            self._motion_subscription.cancel()
        try:
            self._motion_subscription = self.motion_detector.start_detection(
                lambda: self._on_movement_detected(session_id)
            )
        except Exception as e:
            self._motion_subscription = None
            logger.warning(f"Motion detection unavailable: {e}")

    def _stop_motion_detection(self) -> None:
        if self._motion_subscription:
            self._motion_subscription.cancel()
            self._motion_subscription = None
        try:
            self.motion_detector.stop_detection()
        except Exception as e:
            logger.warning(f"Failed to stop motion detection: {e}")

    def _cancel_session_timer(self) -> None:
        if self._session_timer:
            self._session_timer.cancel()
            self._session_timer = None

    def _cancel_hold_timer(self) -> None:
        if self._hold_timer:
            self._hold_timer.cancel()
            self._hold_timer = None

    def _stop_session(self) -> None:
        """Tear down everything a live session holds."""
        self._cancel_session_timer()
        self._cancel_hold_timer()
        self._stop_motion_detection()
        self._call_sink("set_idle_sleep_suppressed", False)
        self._end_live_activity()
        self._call_sink("cancel_alerts")
        self._clear_quit_confirmation()

    def _reset_to_inactive(self) -> None:
        self._end_live_activity()
        self._clear_persisted_session()
        self.session = None
        self.showing_warning = False
        self.showing_quit_dialog = False
        self._set_state(SessionState.INACTIVE)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _set_state(self, state: SessionState) -> None:
        self.state = state
        if self.session is not None:
            self.session.state = state

    def _new_captcha(self) -> None:
        self.captcha = generate_captcha(self.rng)
        self.captcha_input = ""

    def _clear_quit_confirmation(self) -> None:
        self.quit_progress = 0.0
        self._hold_ticks = 0
        self.captcha = None
        self.captcha_input = ""

    def _snapshot(self, completed: bool) -> LiveActivitySnapshot:
        return LiveActivitySnapshot(
            session_id=self.session.id,
            remaining_seconds=self.session.remaining_time(self.scheduler.now()),
            total_duration=self.session.duration,
            is_completed=completed,
        )

    def _start_live_activity(self, session: Session) -> None:
        self._live_activity_id = session.id
        self._push_snapshot("start_live_activity", completed=False)

    def _update_live_activity(self, completed: bool) -> None:
        if self._live_activity_id is None or self.session is None:
            return
        self._push_snapshot("update_live_activity", completed)

    def _end_live_activity(self) -> None:
        if self._live_activity_id is None:
            return
        session_id = self._live_activity_id
        self._live_activity_id = None
        self._call_sink("end_live_activity", session_id)

    def _push_snapshot(self, method: str, completed: bool) -> None:
        """Build the live-status snapshot and hand it to the sink; failures are logged."""
        try:
            snapshot = self._snapshot(completed)
        except (OverflowError, ValueError) as e:
            logger.warning(f"Could not build live activity snapshot: {e}")
            return
        self._call_sink(method, snapshot)

    def _call_sink(self, method: str, *args: Any) -> None:
        """Fire-and-forget sink call."""
        try:
            getattr(self.sinks, method)(*args)
        except Exception as e:
            logger.warning(f"Sink {method} failed: {e}")

    def _invoke_callback(self, name: str, *args: Any) -> None:
        callback = getattr(self, name)
        if callback:
            try:
                callback(*args)
            except Exception as e:
                logger.debug(f"{name} callback error: {e}")

    def _notify_state_change(self) -> None:
        self._invoke_callback("on_state_change", self.state, self.session)
