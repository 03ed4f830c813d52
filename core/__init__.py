"""Core application utilities."""

from .controller import CalibrationController
from .recording import Recording
from shared.models import CalibrationResult, CalibrationWindow, ChannelInfo, ChannelState

__all__ = [
    "CalibrationController",
    "CalibrationResult",
    "CalibrationWindow",
    "ChannelInfo",
    "ChannelState",
    "Recording",
]
