"""Delay to blood-pressure calibration over an ECG / pleth / ABP channel triple.

One pass:

1. peak trains for the ECG and plethysmogram channels,
2. measured diastolic/systolic envelope of the ABP channel,
3. ECG to pleth pulse transit delays (aligned to the pleth channel),
4. (delay, min, max) triples collected inside the calibration window,
5. two least-squares lines: delay -> diastolic ("low"), delay -> systolic ("high"),
6. predictions written outside the window,
7. error statistics of the predictions against the measurements.

Every pass recomputes all of this from the current buffers.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional

import numpy as np

from shared.models import (
    CalibrationResult,
    CalibrationWindow,
    ChannelState,
    DelayPressureSample,
    EnvelopePair,
    LinearModel,
)
from .delay import DelayEstimator
from .envelope import EnvelopeExtractor
from .least_squares import LeastSquaresFit
from .metrics import error_stats
from .peaks import InversionMode, PeakDetector
from .settings import DetectionSettings

logger = logging.getLogger(__name__)


def _delay_events(
    delays: np.ndarray,
    pleth_rate: float,
    abp_rate: float,
    begin: int,
    end: int,
) -> Dict[int, float]:
    """Map ABP indices in [begin, end) to the pleth delay that becomes visible there.

    A pleth sample q is visible from the first ABP index a whose time is
    strictly later, i.e. q * abp_rate < a * pleth_rate. Everything visible
    before `begin` is reported at `begin`; when several delays surface at
    the same index the latest pleth sample wins.
    """
    q = np.flatnonzero(delays)
    if q.size == 0 or begin >= end:
        return {}
    t = q * abp_rate
    first = np.floor(t / pleth_rate).astype(np.int64) + 1
    # the quotient may round across an integer; settle on the exact comparison
    first = np.where(t < (first - 1) * pleth_rate, first - 1, first)
    first = np.where(t < first * pleth_rate, first, first + 1)
    first = np.maximum(first, begin)
    keep = first < end
    return dict(zip(first[keep].tolist(), np.asarray(delays)[q[keep]].tolist()))


def _nonzero_between(values: np.ndarray, begin: int, end: int) -> Dict[int, float]:
    if begin >= end:
        return {}
    idx = begin + np.flatnonzero(values[begin:end])
    return dict(zip(idx.tolist(), values[idx].tolist()))


class CalibrationEngine:
    def __init__(self, settings: Optional[DetectionSettings] = None) -> None:
        self._settings = settings or DetectionSettings()
        self._detector = PeakDetector(self._settings)
        self._extractor = EnvelopeExtractor(self._detector)
        self._delay_estimator = DelayEstimator(self._settings)

    @property
    def settings(self) -> DetectionSettings:
        return self._settings

    def calibrate(
        self,
        ecg: ChannelState,
        pleth: ChannelState,
        abp: ChannelState,
        window: CalibrationWindow,
    ) -> CalibrationResult:
        for state in (ecg, pleth, abp):
            state.clear_derived()

        ecg_peaks = self._detector.detect(ecg.samples, ecg.sample_rate, InversionMode.NORMAL)
        pleth_peaks = self._detector.detect(pleth.samples, pleth.sample_rate, InversionMode.NORMAL)
        ecg.set_peaks(ecg_peaks)
        pleth.set_peaks(pleth_peaks)

        abp.set_measured(self._extractor.extract(abp.samples, abp.sample_rate))

        pleth.set_delays(
            self._delay_estimator.estimate(ecg_peaks, ecg.sample_rate, pleth_peaks, pleth.sample_rate)
        )

        samples = self._collect_samples(abp, pleth, window)
        low_fit = LeastSquaresFit()
        high_fit = LeastSquaresFit()
        for item in samples:
            low_fit.add(item.delay, item.min_pressure)
            high_fit.add(item.delay, item.max_pressure)
        low = low_fit.fit()
        high = high_fit.fit()
        logger.info("Lo = %.2f * t + %.2f (n=%d)", low.a, low.b, low.n)
        logger.info("Hi = %.2f * t + %.2f (n=%d)", high.a, high.b, high.n)

        if low.degenerate or high.degenerate:
            logger.warning(
                "Degenerate pressure fit from %d delay/pressure samples; skipping predictions",
                len(samples),
            )
        else:
            abp.set_predicted(self._predict(abp, pleth, window, low, high))

        return CalibrationResult(
            window=window,
            low=low,
            high=high,
            measured=abp.measured_envelope(),
            predicted=abp.predicted_envelope(),
            low_error=error_stats(abp.minima, abp.minima_predicted),
            high_error=error_stats(abp.maxima, abp.maxima_predicted),
            samples=samples,
        )

    def _collect_samples(
        self,
        abp: ChannelState,
        pleth: ChannelState,
        window: CalibrationWindow,
    ) -> List[DelayPressureSample]:
        begin, end = window.bounds(abp.n_samples)
        delay_at = _delay_events(pleth.delays, pleth.sample_rate, abp.sample_rate, begin, end)
        low_at = _nonzero_between(abp.minima, begin, end)
        high_at = _nonzero_between(abp.maxima, begin, end)

        samples: List[DelayPressureSample] = []
        delay = min_pressure = max_pressure = 0.0
        logger.debug("Delay Low High")
        for index in sorted(set(low_at) | set(high_at) | set(delay_at)):
            min_pressure = low_at.get(index, min_pressure)
            max_pressure = high_at.get(index, max_pressure)
            delay = delay_at.get(index, delay)
            if delay != 0 and min_pressure != 0 and max_pressure != 0:
                item = DelayPressureSample(delay, min_pressure, max_pressure)
                logger.debug("%.4f %.2f %.2f", item.delay, item.min_pressure, item.max_pressure)
                samples.append(item)
                delay = min_pressure = max_pressure = 0.0
        return samples

    def _predict(
        self,
        abp: ChannelState,
        pleth: ChannelState,
        window: CalibrationWindow,
        low: LinearModel,
        high: LinearModel,
    ) -> EnvelopePair:
        n = abp.n_samples
        begin, end = window.bounds(n)
        delay_at = _delay_events(pleth.delays, pleth.sample_rate, abp.sample_rate, 0, n)
        # extrema inside the window never take part
        low_at = {**_nonzero_between(abp.minima, 0, begin), **_nonzero_between(abp.minima, end, n)}
        high_at = {**_nonzero_between(abp.maxima, 0, begin), **_nonzero_between(abp.maxima, end, n)}
        events = set(low_at) | set(high_at) | set(delay_at)
        if begin < end:
            events.add(begin)

        minima = np.zeros(n)
        maxima = np.zeros(n)
        min_index: Optional[int] = None
        max_index: Optional[int] = None
        delay = 0.0
        for index in sorted(events):
            delay = delay_at.get(index, delay)
            if begin <= index < end:
                min_index = max_index = None
                continue
            if index in low_at:
                min_index = index
            if index in high_at:
                max_index = index
            if delay != 0 and min_index is not None and max_index is not None:
                minima[min_index] = low.predict(delay)
                maxima[max_index] = high.predict(delay)
                delay = 0.0
                min_index = max_index = None
        return EnvelopePair(minima, maxima)


__all__ = ["CalibrationEngine"]
