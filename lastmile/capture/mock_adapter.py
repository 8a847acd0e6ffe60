"""Mock camera backend and decoder for testing.

Frames are plain values: a string is a visible code, None is an empty
frame. The mock decoder returns the string as-is.
"""

import asyncio
from collections import deque
from collections.abc import Iterable
from typing import Any

from lastmile.capture.base import (
    CameraBackend,
    CameraDevice,
    CodeDecoder,
    CodeFamily,
    FacingMode,
)


class MockCameraDevice(CameraDevice):
    """Plays back a fixed sequence of frames, then empty frames.

    Attributes:
        released: True once release() has run.
        frames_read: Number of read_frame() calls.
    """

    def __init__(self, frames: Iterable[Any] = ()) -> None:
        self._frames: deque[Any] = deque(frames)
        self.released = False
        self.frames_read = 0

    async def read_frame(self) -> Any | None:
        if self.released:
            raise OSError("Camera device already released")
        self.frames_read += 1
        await asyncio.sleep(0)
        if self._frames:
            return self._frames.popleft()
        return None

    async def release(self) -> None:
        self.released = True


class MockCameraBackend(CameraBackend):
    """Configurable backend that records every device it hands out.

    Attributes:
        supported: Value returned by is_supported().
        open_error: Exception raised by open(), if set.
        open_delay: Seconds open() waits before returning.
        devices: Devices opened so far.
        facings: Facing preference passed to each open().
    """

    def __init__(
        self,
        frames: Iterable[Any] = (),
        *,
        supported: bool = True,
        open_error: BaseException | None = None,
        open_delay: float = 0.0,
    ) -> None:
        self._frames = list(frames)
        self.supported = supported
        self.open_error = open_error
        self.open_delay = open_delay
        self.devices: list[MockCameraDevice] = []
        self.facings: list[FacingMode] = []

    def is_supported(self) -> bool:
        return self.supported

    async def open(self, facing: FacingMode) -> CameraDevice:
        self.facings.append(facing)
        if self.open_delay:
            await asyncio.sleep(self.open_delay)
        if self.open_error is not None:
            raise self.open_error
        device = MockCameraDevice(self._frames)
        self.devices.append(device)
        return device

    @property
    def open_count(self) -> int:
        """Devices successfully opened."""
        return len(self.devices)


class MockDecoder(CodeDecoder):
    """Returns string frames as decoded text.

    Attributes:
        calls: (frame, family) pairs seen.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[Any, CodeFamily]] = []

    def decode(self, frame: Any, family: CodeFamily) -> str | None:
        self.calls.append((frame, family))
        if isinstance(frame, str) and frame:
            return frame
        return None
