"""OpenCV camera backend.

Blocking OpenCV calls (open, read, release) run in worker threads so the
event loop stays responsive while the camera warms up.
"""

import asyncio
import threading
from typing import Any

import cv2

from lastmile.capture.base import CameraBackend, CameraDevice, FacingMode
from lastmile.core.config import Settings, settings
from lastmile.core.errors import CameraNotFoundError


class OpenCVCameraDevice(CameraDevice):
    """cv2.VideoCapture wrapped as a CameraDevice.

    cv2.VideoCapture is not thread-safe. A cancelled read keeps running in
    its worker thread, so read and release share a thread lock and release
    waits for any read still in flight.
    """

    def __init__(self, capture: cv2.VideoCapture) -> None:
        self._capture = capture
        self._lock = threading.Lock()
        self._released = False

    async def read_frame(self) -> Any | None:
        """Read one BGR frame; None when the camera has nothing yet."""
        if self._released:
            raise OSError("Camera device already released")
        ok, frame = await asyncio.to_thread(self._read)
        if not ok:
            return None
        return frame

    async def release(self) -> None:
        """Release the capture handle once."""
        if self._released:
            return
        self._released = True
        await asyncio.to_thread(self._release)

    def _read(self) -> tuple[bool, Any]:
        with self._lock:
            if self._released:
                return False, None
            return self._capture.read()

    def _release(self) -> None:
        with self._lock:
            self._capture.release()


class OpenCVCameraBackend(CameraBackend):
    """Opens local cameras by index.

    OpenCV has no facing concept, so each preference maps to a configured
    device index (back camera by default at index 0).
    """

    def __init__(self, config: Settings | None = None) -> None:
        config = config or settings
        self._indices = {
            FacingMode.ENVIRONMENT: config.camera_back_index,
            FacingMode.USER: config.camera_front_index,
        }

    def is_supported(self) -> bool:
        """True when this OpenCV build has at least one camera backend."""
        return bool(cv2.videoio_registry.getCameraBackends())

    async def open(self, facing: FacingMode) -> CameraDevice:
        """Open the device configured for `facing`.

        Raises:
            CameraNotFoundError: If the device index does not open.
        """
        index = self._indices[facing]
        capture = await asyncio.to_thread(cv2.VideoCapture, index)
        if not capture.isOpened():
            await asyncio.to_thread(capture.release)
            raise CameraNotFoundError()
        return OpenCVCameraDevice(capture)
