from __future__ import annotations

from dataclasses import dataclass, replace
import logging
import math
import threading
from typing import Callable, Dict, Optional

from shared.models import CalibrationWindow

logger = logging.getLogger(__name__)

MIN_HEART_RATE = 30.0   # beats/minute, sets the normalization window and max pulse lag
MAX_HEART_RATE = 240.0  # beats/minute, sets the refractory period
BARRIER = 0.8           # normalized threshold a peak must cross


@dataclass(frozen=True)
class DetectionSettings:
    """Fixed constants of the peak detector and delay search."""

    min_heart_rate: float = MIN_HEART_RATE
    max_heart_rate: float = MAX_HEART_RATE
    barrier: float = BARRIER

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        for name, value in (("min_heart_rate", self.min_heart_rate), ("max_heart_rate", self.max_heart_rate)):
            if not math.isfinite(value) or value <= 0:
                raise ValueError(f"{name} must be positive")
        if self.min_heart_rate >= self.max_heart_rate:
            raise ValueError("min_heart_rate must be below max_heart_rate")
        if not (0.0 < self.barrier < 1.0):
            raise ValueError("barrier must be between 0 and 1")

    def max_interval(self, sample_rate: float) -> int:
        """Normalization window width in samples (one beat at the slowest rate)."""
        return int(sample_rate / (self.min_heart_rate / 60.0))

    def min_interval(self, sample_rate: float) -> int:
        """Refractory period in samples (one beat at the fastest rate)."""
        return int(sample_rate / (self.max_heart_rate / 60.0))

    @property
    def max_time_lag(self) -> float:
        """Longest accepted ECG to pulse delay, in seconds."""
        return 60.0 / self.min_heart_rate


@dataclass(frozen=True)
class CalibrationSettings:
    ecg_channel: int = 1
    pleth_channel: int = 0
    abp_channel: int = 2
    begin_percent: int = 0
    end_percent: int = 50

    def window(self) -> CalibrationWindow:
        return CalibrationWindow(self.begin_percent, self.end_percent)


class CalibrationSettingsStore:
    """
    Thread-safe settings container that lets the control layer change the
    channel selection and calibration window while observers follow along.
    """

    def __init__(self, initial: Optional[CalibrationSettings] = None) -> None:
        self._settings = initial or CalibrationSettings()
        self._settings.window()
        self._lock = threading.Lock()
        self._subscribers: Dict[int, Callable[[CalibrationSettings], None]] = {}
        self._next_token = 0

    def get(self) -> CalibrationSettings:
        with self._lock:
            return self._settings

    def update(self, **kwargs) -> CalibrationSettings:
        with self._lock:
            new_settings = replace(self._settings, **kwargs)
            new_settings.window()
            for name in ("ecg_channel", "pleth_channel", "abp_channel"):
                if getattr(new_settings, name) < 0:
                    raise ValueError(f"{name} must be non-negative")
            self._settings = new_settings
            callbacks = list(self._subscribers.values())
        for callback in callbacks:
            try:
                callback(new_settings)
            except Exception as exc:
                logger.debug("Calibration settings subscriber failed: %s", exc)
                continue
        return new_settings

    def subscribe(self, callback: Callable[[CalibrationSettings], None], *, replay: bool = True) -> Callable[[], None]:
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscribers[token] = callback
            snapshot = self._settings
        if replay:
            callback(snapshot)

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers.pop(token, None)

        return unsubscribe


__all__ = [
    "BARRIER",
    "MAX_HEART_RATE",
    "MIN_HEART_RATE",
    "CalibrationSettings",
    "CalibrationSettingsStore",
    "DetectionSettings",
]
