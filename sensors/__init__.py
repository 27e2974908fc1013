"""
Motion sensing package.

Wraps whatever accelerometer the host has behind a debounced
MotionDetector.
"""

import logging
from typing import Any, Callable, Optional

from sensors.accelerometer import AccelerationSource, detect_acceleration_source
from sensors.motion import MotionDetector, Subscription

logger = logging.getLogger(__name__)


def create_motion_detector(
    dispatch: Optional[Callable[..., Any]] = None,
    source: Optional[AccelerationSource] = None,
) -> MotionDetector:
    """
    Create a motion detector for this device.

    Args:
        dispatch: Marshals movement callbacks onto the controller's
                  execution context (e.g. ThreadScheduler.call_soon).
        source: Explicit sample source; auto-detected when None.

    Returns:
        MotionDetector (soft mode if no sensor is present).
    """
    return MotionDetector(source=source or detect_acceleration_source(), dispatch=dispatch)


__all__ = ["MotionDetector", "Subscription", "create_motion_detector"]
