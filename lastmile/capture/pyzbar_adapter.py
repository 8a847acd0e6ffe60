"""ZBar decoder for barcodes and QR codes."""

from typing import Any

import cv2
import numpy as np
from pyzbar.pyzbar import ZBarSymbol
from pyzbar.pyzbar import decode as zbar_decode

from lastmile.capture.base import CodeDecoder, CodeFamily, DecodeError

# The barcode scanner also accepts QR labels.
_SYMBOLS: dict[CodeFamily, list[ZBarSymbol]] = {
    CodeFamily.BARCODE: [
        ZBarSymbol.EAN13,
        ZBarSymbol.EAN8,
        ZBarSymbol.UPCA,
        ZBarSymbol.UPCE,
        ZBarSymbol.CODE128,
        ZBarSymbol.CODE39,
        ZBarSymbol.I25,
        ZBarSymbol.QRCODE,
    ],
    CodeFamily.QR: [ZBarSymbol.QRCODE],
}


class PyzbarDecoder(CodeDecoder):
    """Decodes BGR or grayscale frames with ZBar."""

    def decode(self, frame: Any, family: CodeFamily) -> str | None:
        """Return the first symbol's text, or None when nothing is visible."""
        if not isinstance(frame, np.ndarray) or frame.size == 0:
            raise DecodeError("Frame is not an image array")
        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY) if frame.ndim == 3 else frame
        results = zbar_decode(gray, symbols=_SYMBOLS[family])
        if not results:
            return None
        return results[0].data.decode("utf-8", errors="replace")
