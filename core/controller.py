from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from analysis.calibration import CalibrationEngine
from analysis.settings import CalibrationSettings, CalibrationSettingsStore, DetectionSettings
from shared.models import CalibrationResult, ChannelInfo, ChannelState

from .recording import Recording

logger = logging.getLogger(__name__)


class CalibrationController:
    """Owns a recording and runs calibration passes against it.

    Buffer assignment, header changes and calibration passes all take the
    same lock, so a pass never observes a half-replaced channel set.
    """

    def __init__(
        self,
        *,
        settings_store: Optional[CalibrationSettingsStore] = None,
        detection_settings: Optional[DetectionSettings] = None,
    ) -> None:
        self._settings_store = settings_store or CalibrationSettingsStore()
        self._engine = CalibrationEngine(detection_settings)
        self._recording = Recording()
        self._lock = threading.RLock()
        self._last_result: Optional[CalibrationResult] = None
        self._subscribers: Dict[int, Callable[[CalibrationResult], None]] = {}
        self._next_token = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def settings_store(self) -> CalibrationSettingsStore:
        return self._settings_store

    @property
    def settings(self) -> CalibrationSettings:
        return self._settings_store.get()

    @property
    def recording(self) -> Recording:
        return self._recording

    @property
    def last_result(self) -> Optional[CalibrationResult]:
        with self._lock:
            return self._last_result

    def update_settings(self, **kwargs) -> CalibrationSettings:
        with self._lock:
            return self._settings_store.update(**kwargs)

    def configure(self, channels: Sequence[ChannelInfo]) -> None:
        with self._lock:
            self._recording.configure(channels)

    def set_data(self, index: int, samples: np.ndarray) -> bool:
        with self._lock:
            return self._recording.set_data(index, samples)

    def channel(self, index: int) -> Optional[ChannelState]:
        """Snapshot of channel `index` as left by the last completed pass."""
        with self._lock:
            state = self._recording.channel(index)
            return state.snapshot() if state is not None else None

    def calibrate(self) -> CalibrationResult:
        with self._lock:
            settings = self._settings_store.get()
            result = self._recording.calibrate(
                settings.ecg_channel,
                settings.pleth_channel,
                settings.abp_channel,
                settings.window(),
                engine=self._engine,
            )
            self._last_result = result
            callbacks: List[Callable[[CalibrationResult], None]] = list(self._subscribers.values())
        for callback in callbacks:
            try:
                callback(result)
            except Exception as exc:
                logger.debug("Calibration result subscriber failed: %s", exc)
                continue
        return result

    def subscribe(self, callback: Callable[[CalibrationResult], None]) -> Callable[[], None]:
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscribers[token] = callback

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers.pop(token, None)

        return unsubscribe


__all__ = ["CalibrationController"]
