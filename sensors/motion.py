"""
Motion detection for focus sessions.

Samples user acceleration on a background thread and reports discrete
movement events. An event fires when the acceleration magnitude exceeds
MOVEMENT_THRESHOLD and at least MOVEMENT_DEBOUNCE_SECONDS have passed
since the previous event. Events are marshalled through ``dispatch``
(normally the controller scheduler's call_soon) so subscribers never
run on the sampling thread.
"""

import logging
import math
import threading
import time
from typing import Any, Callable, Optional

import config
from sensors.accelerometer import AccelerationSource, UnavailableSource

logger = logging.getLogger(__name__)


class Subscription:
    """Handle returned by start_detection(); cancel() detaches the callback."""

    def __init__(self, detector: "MotionDetector", callback: Callable[[], None]):
        self._detector = detector
        self.callback = callback
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._detector._unsubscribe(self)


class MotionDetector:
    """
    Debounced movement detector.

    start_detection() and stop_detection() are idempotent. If the source
    is unavailable, start_detection() still returns a subscription but no
    event is ever delivered.
    """

    def __init__(
        self,
        source: Optional[AccelerationSource] = None,
        dispatch: Optional[Callable[..., Any]] = None,
        threshold: float = config.MOVEMENT_THRESHOLD,
        debounce_seconds: float = config.MOVEMENT_DEBOUNCE_SECONDS,
        sample_rate_hz: float = config.MOTION_SAMPLE_RATE_HZ,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.source = source or UnavailableSource()
        self.dispatch = dispatch
        self.threshold = threshold
        self.debounce_seconds = debounce_seconds
        self.sample_interval = 1.0 / sample_rate_hz
        self._clock = clock
        self._last_movement_time: Optional[float] = None
        self._subscription: Optional[Subscription] = None
        self._thread: Optional[threading.Thread] = None
        self._should_stop = threading.Event()
        self._lock = threading.Lock()

    @property
    def is_available(self) -> bool:
        return self.source.is_available()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start_detection(self, callback: Callable[[], None]) -> Subscription:
        """
        Subscribe callback to movement events and start sampling.

        A second call replaces the previous subscriber and keeps the
        existing sampling thread.

        Args:
            callback: Called (via dispatch) once per detected movement.

        Returns:
            Subscription handle.
        """
        with self._lock:
            if self._subscription:
                self._subscription._cancelled = True
            subscription = Subscription(self, callback)
            self._subscription = subscription

            if not self.source.is_available():
                logger.info("Motion detection not available - running in soft mode")
                return subscription

            if not self.is_running:
                self._should_stop.clear()
                self._thread = threading.Thread(
                    target=self._sampling_loop, name="MotionDetection", daemon=True
                )
                self._thread.start()
                logger.debug("Motion detection started")

        return subscription

    def stop_detection(self) -> None:
        """Stop sampling. Safe to call when not running."""
        with self._lock:
            thread = self._thread
            self._thread = None
            self._should_stop.set()

        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=2.0)
            if thread.is_alive():
                logger.warning("Motion detection thread did not stop within timeout")
        if thread:
            self.source.close()
            logger.debug("Motion detection stopped")

    def should_trigger_movement(self, magnitude: float, now: Optional[float] = None) -> bool:
        """
        Apply the threshold and debounce rule to a single sample.

        Updates the last-movement timestamp when it returns True.
        """
        now = self._clock() if now is None else now
        if magnitude <= self.threshold:
            return False
        if (self._last_movement_time is not None
                and now - self._last_movement_time < self.debounce_seconds):
            return False
        self._last_movement_time = now
        return True

    def process_sample(self, x: float, y: float, z: float, now: Optional[float] = None) -> bool:
        """
        Evaluate one acceleration sample and report movement if it triggers.

        Returns:
            True if a movement event was reported.
        """
        magnitude = math.sqrt(x * x + y * y + z * z)
        if not self.should_trigger_movement(magnitude, now):
            return False

        subscription = self._subscription
        if subscription is None or subscription.cancelled:
            return False

        logger.debug(f"Movement detected (magnitude {magnitude:.2f}g)")
        if self.dispatch:
            self.dispatch(self._deliver, subscription)
        else:
            self._deliver(subscription)
        return True

    def _deliver(self, subscription: Subscription) -> None:
        # A subscription cancelled between sampling and delivery is stale
        if subscription.cancelled:
            return
        subscription.callback()

    def _unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if self._subscription is subscription:
                self._subscription = None

    def _sampling_loop(self) -> None:
        try:
            while not self._should_stop.is_set():
                sample = self.source.read()
                if sample is not None:
                    self.process_sample(*sample)
                self._should_stop.wait(self.sample_interval)
        except Exception as e:
            # Degrade to no detection rather than taking the session down
            logger.error(f"Motion sampling error: {e}")
