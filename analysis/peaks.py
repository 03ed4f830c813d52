"""Adaptive-threshold peak detection with instantaneous heart rate.

Samples are first normalized against the min/max of a forward-looking window
one slow beat wide, so the detector follows baseline wander and amplitude
changes. Runs of normalized samples above a fixed barrier are then merged
into single peaks, each labelled with the rate implied by the distance to
the previous peak.
"""
from __future__ import annotations

import enum
import logging
from typing import Optional, Tuple

import numpy as np
from scipy import ndimage

from .settings import DetectionSettings

logger = logging.getLogger(__name__)

# Marker left on a peak whose run spans a single sample; such peaks carry no rate.
SINGLE_SAMPLE_PEAK = 1


class InversionMode(enum.Enum):
    NORMAL = "normal"
    INVERTED = "inverted"
    AUTO = "auto"


def normalize(samples: np.ndarray, window: int) -> Tuple[np.ndarray, np.ndarray]:
    """Map each sample into [0, 1] using the min/max of the window starting at it.

    The window for sample i is [i, i + window), clamped so that it stops
    sliding at the last full window; buffers shorter than one window use
    the whole buffer. Returns (normalized, valid) where `valid` is False for
    samples whose window is flat (those normalize to 0).
    """
    x = np.asarray(samples, dtype=np.float64)
    n = x.size
    if n == 0:
        return np.zeros(0), np.zeros(0, dtype=bool)
    window = max(1, int(window))
    if n <= window:
        lo = np.full(n, np.min(x))
        hi = np.full(n, np.max(x))
    else:
        # Negative origin shifts the filter right: output[i] covers x[i : i + window].
        origin = -(window // 2)
        lo = ndimage.minimum_filter1d(x, size=window, origin=origin, mode="nearest")
        hi = ndimage.maximum_filter1d(x, size=window, origin=origin, mode="nearest")
        last = n - window
        lo[last + 1:] = lo[last]
        hi[last + 1:] = hi[last]
    span = hi - lo
    valid = span > 0
    normalized = np.zeros(n, dtype=np.float64)
    np.divide(x - lo, span, out=normalized, where=valid)
    return normalized, valid


class PeakDetector:
    """Emit a rate-coded peak train aligned with the input samples."""

    def __init__(self, settings: Optional[DetectionSettings] = None) -> None:
        self._settings = settings or DetectionSettings()

    @property
    def settings(self) -> DetectionSettings:
        return self._settings

    def detect(
        self,
        samples: np.ndarray,
        sample_rate: float,
        inversion: InversionMode = InversionMode.NORMAL,
    ) -> np.ndarray:
        x = np.asarray(samples, dtype=np.float64)
        n = x.size
        peaks = np.zeros(n, dtype=np.int64)
        if n < 2 or sample_rate <= 0:
            return peaks

        max_interval = self._settings.max_interval(sample_rate)
        min_interval = self._settings.min_interval(sample_rate)
        logger.debug(
            "Finding peaks: %d samples at %.1f Hz (%s, window=%d, refractory=%d)",
            n, sample_rate, inversion.value, max_interval, min_interval,
        )

        normalized, valid = normalize(x, max_interval)
        above_half = int(np.count_nonzero(normalized > 0.5))
        if inversion is InversionMode.INVERTED or (
            inversion is InversionMode.AUTO and above_half > n // 2
        ):
            normalized = np.where(valid, 1.0 - normalized, 0.0)

        candidates = np.flatnonzero(normalized > self._settings.barrier)
        if candidates.size == 0:
            return peaks

        runs = np.split(candidates, np.flatnonzero(np.diff(candidates) != 1) + 1)
        previous: Optional[int] = None
        for run in runs:
            start = int(run[0])
            end = int(run[-1]) + 1
            if previous is not None:
                start = max(start, previous + min_interval + 1)
            if start >= end:
                continue
            if end - start == 1:
                peaks[start] = SINGLE_SAMPLE_PEAK
                continue
            peak = start + int(np.argmax(normalized[start:end]))
            if previous is not None:
                rate = int(round(sample_rate * 60.0 / (peak - previous)))
                peaks[peak] = max(1, rate)
            previous = peak

        logger.debug("Finding peaks: %d peaks marked", int(np.count_nonzero(peaks)))
        return peaks


__all__ = ["InversionMode", "PeakDetector", "SINGLE_SAMPLE_PEAK", "normalize"]
