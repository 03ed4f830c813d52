from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np


def _freeze_array(array: np.ndarray, *, ndim: int | None = None, dtype=np.float64) -> np.ndarray:
    """Return a read-only, C-contiguous copy of `array`, validating dimensions."""
    arr = np.array(array, dtype=dtype, copy=True, order="C")
    if ndim is not None and arr.ndim != ndim:
        raise ValueError(f"array must be {ndim}D, got {arr.ndim}D")
    arr.setflags(write=False)
    return arr


# ----------------------------
# Recording / Channel metadata
# ----------------------------

@dataclass(frozen=True)
class ChannelInfo:
    """A single recorded signal as described by the recording header."""

    id: int
    name: str
    sample_rate: float
    units: str = ""

    def __post_init__(self) -> None:
        if self.id < 0:
            raise ValueError("id must be non-negative")
        if not np.isfinite(self.sample_rate) or self.sample_rate <= 0:
            raise ValueError("sample_rate must be positive")


@dataclass(frozen=True)
class CalibrationWindow:
    """Percentage range [begin, end) of a recording used to fit the pressure model."""

    begin_percent: int = 0
    end_percent: int = 50

    def __post_init__(self) -> None:
        if not (0 <= self.begin_percent < self.end_percent <= 100):
            raise ValueError("window must satisfy 0 <= begin_percent < end_percent <= 100")

    def bounds(self, n_samples: int) -> Tuple[int, int]:
        """Half-open sample index range covered by the window."""
        return (
            self.begin_percent * n_samples // 100,
            self.end_percent * n_samples // 100,
        )

    def contains(self, index: int, n_samples: int) -> bool:
        begin, end = self.bounds(n_samples)
        return begin <= index < end


# ----------------------------
# Regression data models
# ----------------------------

@dataclass(frozen=True)
class LinearModel:
    """Fitted line y = a * x + b over `n` samples.

    A degenerate model (too few samples or no spread in x) reports a = b = 0
    and must not be used for predictions.
    """

    a: float = 0.0
    b: float = 0.0
    n: int = 0
    degenerate: bool = True

    def predict(self, x: float) -> float:
        return self.a * x + self.b


@dataclass(frozen=True)
class DelayPressureSample:
    """Pulse transit delay (s) paired with the beat's diastolic and systolic pressure."""

    delay: float
    min_pressure: float
    max_pressure: float


@dataclass(frozen=True)
class EnvelopePair:
    """Per-sample minima and maxima of a pressure channel; zero means no extremum."""

    minima: np.ndarray = field(repr=False)
    maxima: np.ndarray = field(repr=False)

    def __post_init__(self) -> None:
        minima = _freeze_array(self.minima, ndim=1)
        maxima = _freeze_array(self.maxima, ndim=1)
        if minima.shape != maxima.shape:
            raise ValueError("minima and maxima must have the same length")
        object.__setattr__(self, "minima", minima)
        object.__setattr__(self, "maxima", maxima)

    @classmethod
    def zeros(cls, n_samples: int) -> "EnvelopePair":
        return cls(np.zeros(n_samples), np.zeros(n_samples))

    def __len__(self) -> int:
        return int(self.minima.size)

    @property
    def n_minima(self) -> int:
        return int(np.count_nonzero(self.minima))

    @property
    def n_maxima(self) -> int:
        return int(np.count_nonzero(self.maxima))


@dataclass(frozen=True)
class ErrorStats:
    """Agreement between measured and predicted extrema of one envelope side."""

    count: int = 0
    mean_measured: float = 0.0
    mean_predicted: float = 0.0
    mape_percent: Optional[float] = None


@dataclass(frozen=True)
class CalibrationResult:
    """Outcome of one calibration pass over an ECG/pleth/ABP channel triple."""

    window: CalibrationWindow
    low: LinearModel
    high: LinearModel
    measured: EnvelopePair
    predicted: EnvelopePair
    low_error: ErrorStats = field(default_factory=ErrorStats)
    high_error: ErrorStats = field(default_factory=ErrorStats)
    samples: Tuple[DelayPressureSample, ...] = ()

    def __post_init__(self) -> None:
        if len(self.measured) != len(self.predicted):
            raise ValueError("measured and predicted envelopes must have the same length")
        object.__setattr__(self, "samples", tuple(self.samples))

    @classmethod
    def empty(cls, window: CalibrationWindow, n_samples: int = 0) -> "CalibrationResult":
        return cls(
            window=window,
            low=LinearModel(),
            high=LinearModel(),
            measured=EnvelopePair.zeros(n_samples),
            predicted=EnvelopePair.zeros(n_samples),
        )

    @property
    def valid(self) -> bool:
        return not (self.low.degenerate or self.high.degenerate)


# ----------------------------
# Per-channel working state
# ----------------------------

@dataclass
class ChannelState:
    """Sample buffer of one channel plus every array derived from it.

    Derived arrays are aligned index-for-index with `samples`. All of them
    are read-only; a calibration pass publishes new arrays through the
    ``set_*`` methods instead of writing into the old ones, so arrays handed
    out earlier keep the values of the pass that produced them.
    """

    index: int
    sample_rate: float
    samples: np.ndarray = field(default_factory=lambda: _freeze_array(np.zeros(0)), repr=False)
    min_value: float = 0.0
    max_value: float = 0.0

    def __post_init__(self) -> None:
        if self.index < 0:
            raise ValueError("index must be non-negative")
        if not np.isfinite(self.sample_rate) or self.sample_rate <= 0:
            raise ValueError("sample_rate must be positive")
        self.assign(self.samples)

    @property
    def n_samples(self) -> int:
        return int(self.samples.size)

    @property
    def peaks(self) -> np.ndarray:
        """Rate-coded peak train (BPM, 0 = no peak)."""
        return self._peaks

    @property
    def delays(self) -> np.ndarray:
        """Pulse transit delay in seconds at each pulse peak, 0 elsewhere."""
        return self._delays

    @property
    def minima(self) -> np.ndarray:
        return self._measured.minima

    @property
    def maxima(self) -> np.ndarray:
        return self._measured.maxima

    @property
    def minima_predicted(self) -> np.ndarray:
        return self._predicted.minima

    @property
    def maxima_predicted(self) -> np.ndarray:
        return self._predicted.maxima

    def assign(self, samples: np.ndarray, sample_rate: Optional[float] = None) -> None:
        """Replace the buffer and reallocate zero-filled derived arrays."""
        self.samples = _freeze_array(samples, ndim=1)
        if sample_rate is not None:
            if not np.isfinite(sample_rate) or sample_rate <= 0:
                raise ValueError("sample_rate must be positive")
            self.sample_rate = float(sample_rate)
        n = self.samples.size
        if n:
            self.min_value = float(np.min(self.samples))
            self.max_value = float(np.max(self.samples))
        else:
            self.min_value = 0.0
            self.max_value = 0.0
        self.clear_derived()

    def clear_derived(self) -> None:
        n = self.n_samples
        self._peaks = _freeze_array(np.zeros(n), ndim=1, dtype=np.int64)
        self._delays = _freeze_array(np.zeros(n), ndim=1)
        self._measured = EnvelopePair.zeros(n)
        self._predicted = EnvelopePair.zeros(n)

    def set_peaks(self, peaks: np.ndarray) -> None:
        self._peaks = self._aligned(peaks, np.int64)

    def set_delays(self, delays: np.ndarray) -> None:
        self._delays = self._aligned(delays, np.float64)

    def set_measured(self, envelope: EnvelopePair) -> None:
        self._check_length(len(envelope))
        self._measured = envelope

    def set_predicted(self, envelope: EnvelopePair) -> None:
        self._check_length(len(envelope))
        self._predicted = envelope

    def measured_envelope(self) -> EnvelopePair:
        return self._measured

    def predicted_envelope(self) -> EnvelopePair:
        return self._predicted

    def snapshot(self) -> "ChannelState":
        """Shallow copy; shares the read-only arrays of the current pass."""
        return copy.copy(self)

    def _aligned(self, values: np.ndarray, dtype) -> np.ndarray:
        arr = _freeze_array(values, ndim=1, dtype=dtype)
        self._check_length(arr.size)
        return arr

    def _check_length(self, n: int) -> None:
        if n != self.n_samples:
            raise ValueError(f"expected {self.n_samples} values, got {n}")


__all__ = [
    "ChannelInfo",
    "ChannelState",
    "CalibrationWindow",
    "CalibrationResult",
    "DelayPressureSample",
    "EnvelopePair",
    "ErrorStats",
    "LinearModel",
]
