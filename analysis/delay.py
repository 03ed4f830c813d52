from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from .settings import DetectionSettings

logger = logging.getLogger(__name__)


class DelayEstimator:
    """Pulse transit delay from reference (ECG) peaks to target (pulse) peaks.

    For every reference peak the first target peak strictly after it and
    within `max_time_lag` seconds is taken; the delay is stored at that
    target sample. Reference peaks without such a target peak leave no entry.
    """

    def __init__(self, settings: Optional[DetectionSettings] = None) -> None:
        self._settings = settings or DetectionSettings()

    def estimate(
        self,
        reference_peaks: np.ndarray,
        reference_rate: float,
        target_peaks: np.ndarray,
        target_rate: float,
    ) -> np.ndarray:
        reference = np.asarray(reference_peaks)
        target = np.asarray(target_peaks)
        delays = np.zeros(target.size, dtype=np.float64)
        if reference.size == 0 or target.size == 0 or reference_rate <= 0 or target_rate <= 0:
            return delays

        max_time_lag = self._settings.max_time_lag
        target_indices = np.flatnonzero(target > 0)
        if target_indices.size == 0:
            return delays

        matched = 0
        for ref_index in np.flatnonzero(reference > 0).tolist():
            ref_time = ref_index / reference_rate
            start = int(ref_index * target_rate / reference_rate)
            pos = int(np.searchsorted(target_indices, start, side="left"))
            while pos < target_indices.size:
                tgt_index = int(target_indices[pos])
                lag = tgt_index / target_rate - ref_time
                if lag >= max_time_lag:
                    break
                if lag > 0:
                    delays[tgt_index] = lag
                    matched += 1
                    break
                pos += 1

        logger.debug("Delay: %d reference peaks matched within %.2f s", matched, max_time_lag)
        return delays


__all__ = ["DelayEstimator"]
