"""
Shared data structures exchanged between the analysis core and its callers.
"""

from .models import (
    CalibrationResult,
    CalibrationWindow,
    ChannelInfo,
    ChannelState,
    DelayPressureSample,
    EnvelopePair,
    ErrorStats,
    LinearModel,
)

__all__ = [
    "CalibrationResult",
    "CalibrationWindow",
    "ChannelInfo",
    "ChannelState",
    "DelayPressureSample",
    "EnvelopePair",
    "ErrorStats",
    "LinearModel",
]
