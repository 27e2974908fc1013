"""
Serialized execution context for the session controller.

All timer ticks and marshalled sensor callbacks run one at a time on a
single worker thread. Every scheduled call returns a TimerHandle; a
cancelled handle never fires again, even if its deadline has already
passed when cancel() is called.
"""

import heapq
import itertools
import logging
import threading
import time
from datetime import datetime
from typing import Any, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class TimerHandle:
    """Cancellation handle for a scheduled (optionally repeating) call."""

    def __init__(self, callback: Callable[..., Any], args: Tuple = (),
                 interval: Optional[float] = None):
        self.callback = callback
        self.args = args
        self.interval = interval
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def repeating(self) -> bool:
        return self.interval is not None

    def cancel(self) -> None:
        self._cancelled = True

    def run(self) -> None:
        """Invoke the callback, logging (not propagating) any error."""
        if self._cancelled:
            return
        try:
            self.callback(*self.args)
        except Exception as e:
            logger.error(f"Scheduled callback {getattr(self.callback, '__name__', self.callback)} "
                         f"failed: {e}", exc_info=True)


class ThreadScheduler:
    """
    Single-threaded timer scheduler.

    The worker thread is started lazily on the first scheduled call and
    runs as a daemon, so a host that forgets shutdown() still exits.
    """

    def __init__(self, name: str = "FocusScheduler"):
        self.name = name
        self._heap: List[Tuple[float, int, TimerHandle]] = []
        self._counter = itertools.count()
        self._cond = threading.Condition()
        self._thread: Optional[threading.Thread] = None
        self._stopped = False

    def now(self) -> datetime:
        return datetime.now()

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        return self.call_later(0.0, callback, *args)

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        handle = TimerHandle(callback, args)
        self._push(time.monotonic() + max(0.0, delay), handle)
        return handle

    def call_every(self, interval: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        """Run callback every interval seconds, first run one interval from now."""
        if interval <= 0:
            raise ValueError("Repeat interval must be positive")
        handle = TimerHandle(callback, args, interval=interval)
        self._push(time.monotonic() + interval, handle)
        return handle

    def shutdown(self, timeout: float = 2.0) -> None:
        """Stop the worker thread. Pending calls are dropped."""
        with self._cond:
            self._stopped = True
            for _, _, handle in self._heap:
                handle.cancel()
            self._heap.clear()
            self._cond.notify_all()

        thread = self._thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("Scheduler thread did not stop within timeout")
        self._thread = None

    def _push(self, deadline: float, handle: TimerHandle) -> None:
        with self._cond:
            if self._stopped:
                logger.debug("Scheduler stopped - dropping scheduled call")
                handle.cancel()
                return
            heapq.heappush(self._heap, (deadline, next(self._counter), handle))
            self._ensure_thread()
            self._cond.notify()

    def _ensure_thread(self) -> None:
        """Start the worker if needed. Caller holds self._cond."""
        if self._thread is None or not self._thread.is_alive():
            self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
            self._thread.start()

    def _run(self) -> None:
        while True:
            with self._cond:
                while not self._stopped:
                    if not self._heap:
                        self._cond.wait()
                        continue
                    deadline, _, handle = self._heap[0]
                    wait = deadline - time.monotonic()
                    if wait > 0:
                        self._cond.wait(timeout=wait)
                        continue
                    heapq.heappop(self._heap)
                    break
                else:
                    return

            if handle.cancelled:
                continue

            handle.run()

            if handle.repeating and not handle.cancelled:
                # Fixed-rate: next deadline derives from the previous one,
                # skipping missed beats instead of bursting
                next_deadline = deadline + handle.interval
                now = time.monotonic()
                if next_deadline < now:
                    next_deadline = now + handle.interval
                with self._cond:
                    if not self._stopped:
                        heapq.heappush(self._heap, (next_deadline, next(self._counter), handle))
