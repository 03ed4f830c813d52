from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import numpy as np

from analysis.calibration import CalibrationEngine
from shared.models import CalibrationResult, CalibrationWindow, ChannelInfo, ChannelState

logger = logging.getLogger(__name__)


class Recording:
    """Channel set of one loaded recording.

    The loading layer first describes the channels (`configure`) and then
    hands over one sample buffer per channel (`set_data`). Indices outside
    the described channel range are ignored, so buffers may be offered
    before the header is known.
    """

    def __init__(self, channels: Sequence[ChannelInfo] = ()) -> None:
        self._infos: List[ChannelInfo] = []
        self._states: List[Optional[ChannelState]] = []
        if channels:
            self.configure(channels)

    @property
    def n_channels(self) -> int:
        return len(self._infos)

    @property
    def channels(self) -> List[ChannelInfo]:
        return list(self._infos)

    def configure(self, channels: Sequence[ChannelInfo]) -> None:
        infos = list(channels)
        states: List[Optional[ChannelState]] = []
        for index, info in enumerate(infos):
            state = self._states[index] if index < len(self._states) else None
            if state is not None and state.sample_rate != info.sample_rate:
                state.assign(state.samples, info.sample_rate)
            states.append(state)
        self._infos = infos
        self._states = states
        logger.debug("Recording configured with %d channels", len(infos))

    def set_data(self, index: int, samples: np.ndarray) -> bool:
        """Assign the sample buffer of channel `index`; returns False when ignored."""
        if not 0 <= index < len(self._infos):
            logger.debug("Ignoring samples for channel %d (have %d channels)", index, len(self._infos))
            return False
        info = self._infos[index]
        state = self._states[index]
        if state is None:
            state = ChannelState(index=index, sample_rate=info.sample_rate)
            self._states[index] = state
        state.assign(samples, info.sample_rate)
        return True

    def channel(self, index: int) -> Optional[ChannelState]:
        if not 0 <= index < len(self._states):
            return None
        return self._states[index]

    def sample_rate(self, index: int) -> float:
        if not 0 <= index < len(self._infos):
            return 0.0
        return self._infos[index].sample_rate

    def clear_derived(self) -> None:
        for state in self._states:
            if state is not None:
                state.clear_derived()

    def calibrate(
        self,
        ecg_index: int,
        pleth_index: int,
        abp_index: int,
        window: CalibrationWindow,
        engine: Optional[CalibrationEngine] = None,
    ) -> CalibrationResult:
        self.clear_derived()
        ecg = self.channel(ecg_index)
        pleth = self.channel(pleth_index)
        abp = self.channel(abp_index)
        missing = [
            name
            for name, state in (("ECG", ecg), ("pleth", pleth), ("ABP", abp))
            if state is None or state.n_samples == 0
        ]
        if missing:
            logger.warning("Cannot calibrate, no samples for channel(s): %s", ", ".join(missing))
            n_samples = abp.n_samples if abp is not None else 0
            return CalibrationResult.empty(window, n_samples)
        engine = engine or CalibrationEngine()
        return engine.calibrate(ecg, pleth, abp, window)


__all__ = ["Recording"]
