"""Ordinary least-squares line fit accumulated one pair at a time."""
from __future__ import annotations

import logging

from shared.models import LinearModel

logger = logging.getLogger(__name__)

# Identical x values leave rounding noise in n*Sxx - Sx^2; anything this small
# relative to n*Sxx counts as zero spread.
_RELATIVE_SPREAD_TOL = 1e-12


class LeastSquaresFit:
    """Fit y = a * x + b from the running sums Sx, Sy, Sxy, Sxx."""

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self._n = 0
        self._sum_x = 0.0
        self._sum_y = 0.0
        self._sum_xy = 0.0
        self._sum_xx = 0.0

    @property
    def n(self) -> int:
        return self._n

    def add(self, x: float, y: float) -> None:
        x = float(x)
        y = float(y)
        self._n += 1
        self._sum_x += x
        self._sum_y += y
        self._sum_xy += x * y
        self._sum_xx += x * x

    def fit(self) -> LinearModel:
        n = self._n
        if n < 2:
            logger.debug("Degenerate fit: %d sample(s)", n)
            return LinearModel(a=0.0, b=0.0, n=n, degenerate=True)
        denominator = n * self._sum_xx - self._sum_x * self._sum_x
        if denominator <= _RELATIVE_SPREAD_TOL * n * self._sum_xx:
            logger.debug("Degenerate fit: no spread in x over %d samples", n)
            return LinearModel(a=0.0, b=0.0, n=n, degenerate=True)
        a = (n * self._sum_xy - self._sum_x * self._sum_y) / denominator
        b = (self._sum_y - a * self._sum_x) / n
        return LinearModel(a=a, b=b, n=n, degenerate=False)


__all__ = ["LeastSquaresFit"]
