from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from shared.models import EnvelopePair
from .peaks import InversionMode, PeakDetector

logger = logging.getLogger(__name__)


class EnvelopeExtractor:
    """Per-beat maxima and minima of a pressure waveform.

    Maxima are the samples at peaks of the upright signal. Minimum candidates
    are the peaks of the inverted signal; of those, only the lowest one
    between two consecutive maxima is kept, so every beat contributes at most
    one minimum and a minimum after the last maximum is dropped.
    """

    def __init__(self, detector: Optional[PeakDetector] = None) -> None:
        self._detector = detector or PeakDetector()

    def extract(self, samples: np.ndarray, sample_rate: float) -> EnvelopePair:
        x = np.asarray(samples, dtype=np.float64)
        n = x.size
        minima = np.zeros(n, dtype=np.float64)
        maxima = np.zeros(n, dtype=np.float64)
        if n == 0:
            return EnvelopePair(minima, maxima)

        upper = self._detector.detect(x, sample_rate, InversionMode.NORMAL)
        is_max = upper != 0
        maxima[is_max] = x[is_max]

        lower = self._detector.detect(x, sample_rate, InversionMode.INVERTED)
        candidates = set(np.flatnonzero(lower != 0).tolist())
        boundaries = set(np.flatnonzero(maxima != 0).tolist())

        min_index = -1
        min_value = np.inf
        for index in sorted(candidates | boundaries):
            if index in candidates and x[index] < min_value:
                min_value = x[index]
                min_index = index
            if index in boundaries:
                if min_index != -1:
                    minima[min_index] = x[min_index]
                min_index = -1
                min_value = np.inf

        logger.debug(
            "Envelope: %d maxima, %d minima over %d samples",
            int(np.count_nonzero(maxima)), int(np.count_nonzero(minima)), n,
        )
        return EnvelopePair(minima, maxima)


__all__ = ["EnvelopeExtractor"]
