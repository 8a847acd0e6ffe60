"""Optical code capture.

This module provides:
- CaptureEngine: single-result camera scan state machine
- CameraBackend/CodeDecoder: adapter interfaces
- OpenCV, ZBar and mock adapters
"""

from lastmile.capture.base import (
    CameraBackend,
    CameraDevice,
    CaptureState,
    CaptureSurface,
    CodeDecoder,
    CodeFamily,
    DecodeError,
    FacingMode,
)
from lastmile.capture.engine import CaptureEngine, classify_camera_error

__all__ = [
    "CameraBackend",
    "CameraDevice",
    "CaptureEngine",
    "CaptureState",
    "CaptureSurface",
    "CodeDecoder",
    "CodeFamily",
    "DecodeError",
    "FacingMode",
    "classify_camera_error",
]
