"""Scan session controller.

Wires the capture engine to the resolution flow for one scanner view:
camera decode → engine stops and releases the device → code is resolved.
A typed code goes through the same resolution, but only while the camera is
off.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog

from lastmile.api.agent import AgentBackend
from lastmile.capture.base import CameraBackend, CaptureSurface, CodeDecoder, CodeFamily
from lastmile.capture.engine import CaptureEngine
from lastmile.core.config import Settings
from lastmile.core.errors import DeviceError
from lastmile.schemas.order import OrderSummary
from lastmile.services.scan_resolution import ScanResolver

logger = structlog.get_logger()


@dataclass
class ScanSession:
    """Client-local state of one scanner view.

    Attributes:
        mode: Code family being scanned.
        camera_active: Camera acquired or scanning.
        decoding: Decode loop running.
        last_error: Last message shown to the operator.
        resolved_order: Most recent successful resolution.
    """

    mode: CodeFamily
    camera_active: bool = False
    decoding: bool = False
    last_error: str | None = None
    resolved_order: OrderSummary | None = None


class ScanController:
    """Owns the session, engine and resolver behind a scanner view.

    Args:
        api: Agent backend operations.
        camera: Camera backend.
        decoder: Frame decoder.
        mode: Barcode or QR scanning.
        on_resolved: Receives the resolved order (navigate to its view).
        on_error: Receives operator-facing error messages.
        config: Client settings.
        surface: Mount acknowledgement for the preview surface.
    """

    def __init__(
        self,
        api: AgentBackend,
        camera: CameraBackend,
        decoder: CodeDecoder,
        mode: CodeFamily,
        *,
        on_resolved: Callable[[OrderSummary], Awaitable[None] | None] | None = None,
        on_error: Callable[[str], Awaitable[None] | None] | None = None,
        config: Settings | None = None,
        surface: CaptureSurface | None = None,
    ) -> None:
        self.session = ScanSession(mode=mode)
        self.resolver = ScanResolver(api)
        self.engine = CaptureEngine(
            camera,
            decoder,
            mode,
            on_decoded=self._handle_decoded,
            config=config,
            surface=surface,
        )
        self._on_resolved = on_resolved
        self._on_error = on_error
        self._closed = False

    @property
    def manual_entry_enabled(self) -> bool:
        """Typed codes are accepted only while the camera is off."""
        return not self._closed and not self.engine.camera_active

    async def start_camera(self) -> bool:
        """Start scanning with the back camera.

        Returns:
            True when the camera is scanning; False on a device error, whose
            message lands in session.last_error.
        """
        if self._closed:
            return False
        self.session.last_error = None
        try:
            await self.engine.start()
        except DeviceError as e:
            self._set_error(e.message)
            return False
        finally:
            self._sync()
        return self.engine.decoding

    async def stop_camera(self) -> None:
        """Stop scanning. Safe to call when already stopped."""
        await self.engine.stop()
        self._sync()

    async def submit_manual(self, code: str) -> OrderSummary | None:
        """Resolve an operator-typed code.

        Returns:
            The resolved order, or None when rejected or not found.
        """
        if not self.manual_entry_enabled:
            self._set_error("Stop the camera to enter a code manually")
            return None
        return await self._resolve(code)

    async def close(self) -> None:
        """Tear down with the view: stop the camera and release the device."""
        self._closed = True
        await self.stop_camera()
        logger.debug("scan_session_closed", mode=self.session.mode.value)

    async def _handle_decoded(self, text: str) -> None:
        # The engine has already stopped and released the device.
        self._sync()
        if self._closed:
            return
        await self._resolve(text)

    async def _resolve(self, code: str) -> OrderSummary | None:
        order = await self.resolver.resolve(
            code,
            self.session.mode,
            on_success=self._on_resolved,
            on_error=self._on_error,
        )
        self.session.resolved_order = self.resolver.resolved_order
        self.session.last_error = self.resolver.last_error
        return order

    def _set_error(self, message: str) -> None:
        self.session.last_error = message
        logger.info("scan_session_error", mode=self.session.mode.value, message=message)

    def _sync(self) -> None:
        self.session.camera_active = self.engine.camera_active
        self.session.decoding = self.engine.decoding
