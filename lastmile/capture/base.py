"""Abstract camera/decoder interfaces and capture types.

A CameraBackend opens a CameraDevice for a facing preference; a CodeDecoder
turns one frame into decoded text (or None when no code is visible). The
CaptureEngine drives both.
"""

import asyncio
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any


class CodeFamily(str, Enum):
    """Code families the engine can scan for."""

    BARCODE = "barcode"
    QR = "qr"


class FacingMode(str, Enum):
    """Camera facing preference."""

    ENVIRONMENT = "environment"  # back camera
    USER = "user"  # front camera


class CaptureState(str, Enum):
    """Capture engine states.

    IDLE → ACQUIRING → SCANNING → (DECODED | STOPPED | FAILED).
    DECODED is transient: the engine stops itself right after.
    """

    IDLE = "idle"
    ACQUIRING = "acquiring"
    SCANNING = "scanning"
    DECODED = "decoded"
    STOPPED = "stopped"
    FAILED = "failed"


class DecodeError(Exception):
    """A frame could not be decoded for a reason other than "no code".

    Treated like "no code" by the scanning loop.
    """


class CameraDevice(ABC):
    """An acquired camera handle. Exclusive to one scan session."""

    @abstractmethod
    async def read_frame(self) -> Any | None:
        """Grab the next frame.

        Returns:
            Frame data, or None if no frame is ready yet.

        Raises:
            OSError: If the device was lost.
        """
        ...

    @abstractmethod
    async def release(self) -> None:
        """Release the device. Must be safe to call more than once."""
        ...


class CameraBackend(ABC):
    """Source of camera devices."""

    @abstractmethod
    def is_supported(self) -> bool:
        """Return False when no camera API is usable in this context."""
        ...

    @abstractmethod
    async def open(self, facing: FacingMode) -> CameraDevice:
        """Acquire a device for the facing preference.

        Raises:
            DeviceError: Mapped camera failure.
            PermissionError: Access refused by the OS.
        """
        ...


class CodeDecoder(ABC):
    """Frame decoder for one or more code families."""

    @abstractmethod
    def decode(self, frame: Any, family: CodeFamily) -> str | None:
        """Decode the first code of `family` in the frame.

        Called from a worker thread; must not touch the event loop.

        Returns:
            Decoded text, or None when no code is visible.

        Raises:
            DecodeError: Frame could not be processed.
        """
        ...


class CaptureSurface:
    """Mount acknowledgement for the view that displays the camera feed.

    The view renders the surface only after the engine enters ACQUIRING,
    then calls mark_mounted(). Headless callers create it already mounted.
    """

    def __init__(self, mounted: bool = False) -> None:
        self._mounted = asyncio.Event()
        if mounted:
            self._mounted.set()

    @property
    def is_mounted(self) -> bool:
        """True once the view has acknowledged the mount."""
        return self._mounted.is_set()

    def mark_mounted(self) -> None:
        """Called by the view once the surface is on screen."""
        self._mounted.set()

    def mark_unmounted(self) -> None:
        """Called by the view when the surface goes away."""
        self._mounted.clear()

    async def wait_mounted(self, timeout: float) -> bool:
        """Wait up to `timeout` seconds for the mount acknowledgement.

        Returns:
            True if mounted in time.
        """
        try:
            await asyncio.wait_for(self._mounted.wait(), timeout)
        except TimeoutError:
            return False
        return True
