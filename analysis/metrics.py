"""Agreement metrics between measured and model-predicted pressure extrema.

Both inputs are sparse per-sample arrays where 0 means "no value"; only
positions holding a measurement and a prediction are compared.
"""
from typing import Tuple

import numpy as np

from shared.models import ErrorStats


def paired_values(measured: np.ndarray, predicted: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    m = np.asarray(measured, dtype=np.float64)
    p = np.asarray(predicted, dtype=np.float64)
    if m.shape != p.shape:
        raise ValueError("measured and predicted must have the same shape")
    mask = (m != 0) & (p != 0)
    return m[mask], p[mask]


def mean_absolute_percentage_error(measured: np.ndarray, predicted: np.ndarray) -> float:
    m, p = paired_values(measured, predicted)
    if m.size == 0:
        return 0.0
    return float(100.0 * np.mean(np.abs(m - p) / np.abs(m)))


def error_stats(measured: np.ndarray, predicted: np.ndarray) -> ErrorStats:
    m, p = paired_values(measured, predicted)
    if m.size == 0:
        return ErrorStats()
    return ErrorStats(
        count=int(m.size),
        mean_measured=float(np.mean(m)),
        mean_predicted=float(np.mean(p)),
        mape_percent=mean_absolute_percentage_error(measured, predicted),
    )
