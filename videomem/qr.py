"""
QR payload codec.

Each frame carries one JSON payload ``{"text": ..., "frame": n}``. Payloads
longer than COMPRESSION_THRESHOLD characters are stored as ``GZ:`` followed by
base64(gzip(payload)). Rendering uses the qrcode library; reading uses the
OpenCV QR detector.
"""

from __future__ import annotations

import base64
import binascii
import gzip
import json
import logging

import cv2
import numpy as np
import qrcode
from PIL import Image
from qrcode.constants import ERROR_CORRECT_H, ERROR_CORRECT_L, ERROR_CORRECT_M, ERROR_CORRECT_Q
from qrcode.exceptions import DataOverflowError

from videomem.config import QRConfig
from videomem.exceptions import VideomemError
from videomem.logging_utils import get_component_logger
from videomem.schema import FramePayload

PAYLOAD_PREFIX = "GZ:"
COMPRESSION_THRESHOLD = 100

_ERROR_CORRECTION = {
    "L": ERROR_CORRECT_L,
    "M": ERROR_CORRECT_M,
    "Q": ERROR_CORRECT_Q,
    "H": ERROR_CORRECT_H,
}

class QRRenderError(VideomemError):
    """A payload could not be rendered as a QR code."""


# ============================================================
# Payload Encoding
# ============================================================


def encode_payload(text: str, frame: int) -> str:
    """Serialize a chunk payload, compressing it when long."""
    data = json.dumps({"text": text, "frame": frame}, ensure_ascii=False, separators=(",", ":"))
    if len(data) > COMPRESSION_THRESHOLD:
        return compress_payload(data)
    return data


def compress_payload(data: str) -> str:
    compressed = gzip.compress(data.encode("utf-8"))
    return PAYLOAD_PREFIX + base64.b64encode(compressed).decode("ascii")


def decompress_payload(raw: str, logger: logging.Logger | None = None) -> str:
    """
    Reverse :func:`compress_payload` when the ``GZ:`` prefix is present.

    Text without the prefix is returned unchanged. If the compressed form is
    invalid the raw text is returned and the failure is logged.
    """
    if not raw.startswith(PAYLOAD_PREFIX):
        return raw

    try:
        compressed = base64.b64decode(raw[len(PAYLOAD_PREFIX):], validate=True)
        return gzip.decompress(compressed).decode("utf-8")
    except (binascii.Error, OSError, EOFError, UnicodeDecodeError) as e:
        get_component_logger("qr", logger).error(
            f"Failed to decompress QR payload: {e}. Returning raw data."
        )
        return raw


def parse_payload(data: str) -> FramePayload:
    """
    Parse decoded payload JSON.

    Raises:
        pydantic.ValidationError: If the text is not a valid payload
    """
    return FramePayload.model_validate_json(data)


# ============================================================
# Rendering
# ============================================================


def render_qr(
    data: str,
    qr_config: QRConfig | None = None,
    logger: logging.Logger | None = None,
) -> Image.Image:
    """
    Render data as an RGB QR image.

    Args:
        data: Text to encode (already compressed if needed)
        qr_config: Rendering parameters (default: QRConfig())
        logger: Logger for render diagnostics (default: videomem.qr)

    Returns:
        PIL image

    Raises:
        QRRenderError: If the data does not fit any QR version
    """
    qr_config = qr_config or QRConfig()
    qr = qrcode.QRCode(
        version=qr_config.version,
        error_correction=_ERROR_CORRECTION[qr_config.error_correction],
        box_size=qr_config.box_size,
        border=qr_config.border,
    )
    try:
        qr.add_data(data)
        qr.make(fit=True)
    except (DataOverflowError, ValueError) as e:
        get_component_logger("qr", logger).debug(f"QR render failed for {len(data)} chars: {e}")
        raise QRRenderError(f"Cannot render {len(data)} chars as QR: {e}") from e

    image = qr.make_image(fill_color=qr_config.fill_color, back_color=qr_config.back_color)
    return image.convert("RGB")


def fit_to_frame(
    image: Image.Image,
    width: int,
    height: int,
    back_color: str = "#FFFFFF",
    logger: logging.Logger | None = None,
) -> Image.Image:
    """
    Center a QR image on a ``width`` x ``height`` canvas.

    The image is scaled by the largest integer factor that fits, with
    nearest-neighbor sampling so module edges stay sharp. A QR larger than the
    frame is shrunk to fit.
    """
    w, h = image.size
    factor = min(width // w, height // h)
    if factor >= 1:
        image = image.resize((w * factor, h * factor), Image.NEAREST)
    else:
        side = min(width, height)
        get_component_logger("qr", logger).warning(
            f"QR image {w}x{h} larger than frame {width}x{height}, shrinking"
        )
        image = image.resize((side, side), Image.NEAREST)

    canvas = Image.new("RGB", (width, height), back_color)
    canvas.paste(image, ((width - image.size[0]) // 2, (height - image.size[1]) // 2))
    return canvas


# ============================================================
# Reading
# ============================================================


def decode_qr(frame: np.ndarray, logger: logging.Logger | None = None) -> str | None:
    """
    Read the QR code in a frame image (BGR or grayscale array).

    Returns:
        Decoded text, or None if no code was found
    """
    if frame is None or frame.size == 0:
        return None

    detector = cv2.QRCodeDetector()
    try:
        data, _points, _ = detector.detectAndDecode(frame)
    except cv2.error as e:
        get_component_logger("qr", logger).debug(f"QR detection failed: {e}")
        return None
    return data or None
