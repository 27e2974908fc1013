"""Acceleration sample sources for the motion detector."""

import glob
import logging
from pathlib import Path
from typing import Optional, Tuple

import config

logger = logging.getLogger(__name__)

STANDARD_GRAVITY = 9.80665  # m/s^2

Vector = Tuple[float, float, float]


class AccelerationSource:
    """
    Base class for acceleration sources.

    read() returns user acceleration in g (gravity removed), or None when
    no sample is available right now.
    """

    def is_available(self) -> bool:
        raise NotImplementedError

    def read(self) -> Optional[Vector]:
        raise NotImplementedError

    def close(self) -> None:
        """Release any resources held by the source."""


class UnavailableSource(AccelerationSource):
    """Source for devices without a motion sensor."""

    def is_available(self) -> bool:
        return False

    def read(self) -> Optional[Vector]:
        return None


class IIOAccelerometerSource(AccelerationSource):
    """
    Linux industrial-I/O accelerometer (laptops, tablets, SBC sensor boards).

    Reads in_accel_{x,y,z}_raw from sysfs, applies the device scale to get
    m/s^2, and removes gravity with a low-pass filter so the output matches
    "user acceleration" in g.
    """

    SYSFS_PATTERN = "/sys/bus/iio/devices/iio:device*"

    def __init__(self, device_dir: Optional[Path] = None, alpha: float = config.GRAVITY_FILTER_ALPHA):
        self.device_dir = Path(device_dir) if device_dir else self._find_device()
        self.alpha = alpha
        self._gravity: Optional[Vector] = None
        self._scale = self._read_scale()

    @classmethod
    def _find_device(cls) -> Optional[Path]:
        for candidate in sorted(glob.glob(cls.SYSFS_PATTERN)):
            path = Path(candidate)
            if (path / "in_accel_x_raw").exists():
                logger.debug(f"Found IIO accelerometer at {path}")
                return path
        return None

    def _read_scale(self) -> float:
        if not self.device_dir:
            return 1.0
        scale_file = self.device_dir / "in_accel_scale"
        try:
            return float(scale_file.read_text().strip())
        except (OSError, ValueError):
            return 1.0

    def is_available(self) -> bool:
        return self.device_dir is not None and (self.device_dir / "in_accel_x_raw").exists()

    def read(self) -> Optional[Vector]:
        if not self.device_dir:
            return None
        try:
            raw = [
                float((self.device_dir / f"in_accel_{axis}_raw").read_text().strip())
                for axis in ("x", "y", "z")
            ]
        except (OSError, ValueError) as e:
            logger.debug(f"Accelerometer read failed: {e}")
            return None

        total = tuple(value * self._scale / STANDARD_GRAVITY for value in raw)

        if self._gravity is None:
            # First sample seeds the gravity estimate; report no movement
            self._gravity = total
            return (0.0, 0.0, 0.0)

        a = self.alpha
        self._gravity = tuple(a * g + (1 - a) * t for g, t in zip(self._gravity, total))
        return tuple(t - g for t, g in zip(total, self._gravity))

    def close(self) -> None:
        self._gravity = None


def detect_acceleration_source() -> AccelerationSource:
    """Return the first available sensor, or an UnavailableSource."""
    source = IIOAccelerometerSource()
    if source.is_available():
        logger.info(f"Using accelerometer at {source.device_dir}")
        return source
    logger.info("No accelerometer found - motion detection will run in soft mode")
    return UnavailableSource()
