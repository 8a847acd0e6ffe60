"""Optical code capture engine.

State machine around one camera device:

    IDLE → ACQUIRING → SCANNING → (DECODED | STOPPED | FAILED)

- start() checks the camera API, releases any previous device, waits for
  the capture surface to mount, binds the back camera, then scans.
- The first decoded code moves the engine to DECODED, stops it, and only
  then hands the text to the result callback. One result per session.
- "No code in this frame" is the steady state while scanning; it is never
  reported upward.
- stop() may run at any time, including while a device is still being
  acquired. A device that finishes acquiring after stop() is released
  immediately instead of being bound.
"""

import asyncio
import contextlib
import inspect
from collections.abc import Awaitable, Callable

import structlog

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
from lastmile.core.config import Settings, settings
from lastmile.core.errors import (
    CameraNotFoundError,
    CameraPermissionDeniedError,
    CameraUnknownError,
    DeviceError,
    InsecureContextError,
)

logger = structlog.get_logger()

DecodeCallback = Callable[[str], Awaitable[None] | None]

_ACTIVE_STATES = (CaptureState.ACQUIRING, CaptureState.SCANNING)


def classify_camera_error(error: BaseException) -> DeviceError:
    """Map a camera failure onto the device error taxonomy.

    Returns a DeviceError subclass instance (does not raise).
    """
    if isinstance(error, DeviceError):
        return error
    if isinstance(error, PermissionError):
        return CameraPermissionDeniedError()
    if isinstance(error, FileNotFoundError):
        return CameraNotFoundError()
    message = str(error)
    lowered = message.lower()
    if "permission" in lowered or "not allowed" in lowered:
        return CameraPermissionDeniedError()
    if "not found" in lowered or "no camera" in lowered:
        return CameraNotFoundError()
    if "secure" in lowered or "not supported" in lowered:
        return InsecureContextError()
    return CameraUnknownError(message or None)


class CaptureEngine:
    """Drives one camera device through a single-result scan session.

    Args:
        backend: Camera source.
        decoder: Frame decoder.
        family: Code family to scan for.
        on_decoded: Result callback; runs after the engine has stopped.
        config: Client settings (fps, mount timeout).
        surface: Mount acknowledgement; defaults to an already-mounted one.
        facing: Camera preference (back camera by default).
    """

    def __init__(
        self,
        backend: CameraBackend,
        decoder: CodeDecoder,
        family: CodeFamily,
        *,
        on_decoded: DecodeCallback | None = None,
        config: Settings | None = None,
        surface: CaptureSurface | None = None,
        facing: FacingMode = FacingMode.ENVIRONMENT,
    ) -> None:
        config = config or settings
        self._backend = backend
        self._decoder = decoder
        self._on_decoded = on_decoded
        self._frame_interval = 1 / config.camera_fps
        self._mount_timeout = config.camera_mount_timeout_ms / 1000
        self.surface = surface or CaptureSurface(mounted=True)
        self.family = family
        self.facing = facing

        self.state = CaptureState.IDLE
        self.last_error: DeviceError | None = None
        self.last_result: str | None = None
        self._device: CameraDevice | None = None
        self._scan_task: asyncio.Task[None] | None = None
        # Bumped by every start() and stop(); stale work compares against it.
        self._generation = 0

    @property
    def camera_active(self) -> bool:
        """True from acquisition until the device is released."""
        return self.state in _ACTIVE_STATES

    @property
    def decoding(self) -> bool:
        """True while the decode loop runs."""
        return self.state is CaptureState.SCANNING

    async def start(self) -> None:
        """Acquire the camera and begin scanning.

        Raises:
            InsecureContextError: Camera API unavailable; nothing is acquired.
            CameraPermissionDeniedError: Access refused.
            CameraNotFoundError: No device for the facing preference.
            CameraUnknownError: Any other failure, including a surface that
                never mounted.
        """
        if not self._backend.is_supported():
            error = InsecureContextError()
            self._fail(error)
            raise error

        await self._teardown()
        self._generation += 1
        generation = self._generation
        self.last_error = None
        self.last_result = None
        self.state = CaptureState.ACQUIRING

        try:
            if not await self.surface.wait_mounted(self._mount_timeout):
                raise CameraUnknownError("Scanner surface not found. Please try again.")
            if generation != self._generation:
                return
            device = await self._backend.open(self.facing)
        except Exception as e:
            if generation != self._generation:
                return
            error = classify_camera_error(e)
            self._fail(error)
            if error is e:
                raise
            raise error from e

        if generation != self._generation:
            # stop() ran while the device was being acquired
            await device.release()
            logger.info("camera_released_after_cancelled_start", family=self.family.value)
            return

        self._device = device
        self.state = CaptureState.SCANNING
        self._scan_task = asyncio.get_running_loop().create_task(
            self._scan(generation, device)
        )
        logger.info("camera_scanning", family=self.family.value, facing=self.facing.value)

    async def stop(self) -> None:
        """Stop scanning and release the device. Idempotent."""
        self._generation += 1
        await self._teardown()
        if self.state in (*_ACTIVE_STATES, CaptureState.DECODED):
            self.state = CaptureState.STOPPED

    async def _teardown(self) -> None:
        task = self._scan_task
        self._scan_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        device = self._device
        self._device = None
        if device is not None:
            await device.release()

    async def _scan(self, generation: int, device: CameraDevice) -> None:
        while generation == self._generation:
            try:
                frame = await device.read_frame()
            except OSError as e:
                if generation != self._generation:
                    return
                logger.error("camera_device_lost", error=str(e))
                self._fail(CameraUnknownError("Camera disconnected. Please try again."))
                await self._teardown()
                return

            text: str | None = None
            if frame is not None:
                try:
                    text = await asyncio.to_thread(self._decoder.decode, frame, self.family)
                except DecodeError as e:
                    logger.debug("camera_frame_undecodable", error=str(e))

            if text:
                await self._deliver(text)
                return

            await asyncio.sleep(self._frame_interval)

    async def _deliver(self, text: str) -> None:
        self.state = CaptureState.DECODED
        self.last_result = text
        logger.info("camera_code_decoded", family=self.family.value, length=len(text))
        await self.stop()
        if self._on_decoded is None:
            return
        # Runs in the detached scan task, so nothing above would see a raise.
        try:
            result = self._on_decoded(text)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("camera_result_handler_failed", family=self.family.value)

    def _fail(self, error: DeviceError) -> None:
        self.state = CaptureState.FAILED
        self.last_error = error
        logger.error("camera_capture_failed", code=error.code, family=self.family.value)
