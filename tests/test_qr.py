"""Tests for videomem/qr.py payload codec and QR rendering."""

import base64
import gzip
import json
import logging

import numpy as np
import pytest
from pydantic import ValidationError

from videomem.config import QRConfig
from videomem.qr import (
    COMPRESSION_THRESHOLD,
    PAYLOAD_PREFIX,
    QRRenderError,
    decode_qr,
    decompress_payload,
    encode_payload,
    fit_to_frame,
    parse_payload,
    render_qr,
)


def _to_bgr(image) -> np.ndarray:
    return np.array(image)[:, :, ::-1].copy()


class TestPayload:
    def test_short_payload_is_plain_json(self):
        data = encode_payload("hello", 3)
        assert not data.startswith(PAYLOAD_PREFIX)
        assert json.loads(data) == {"text": "hello", "frame": 3}

    def test_long_payload_is_compressed(self):
        text = "lorem ipsum " * 20
        data = encode_payload(text, 0)
        assert data.startswith(PAYLOAD_PREFIX)
        restored = json.loads(decompress_payload(data))
        assert restored == {"text": text, "frame": 0}

    def test_threshold_is_on_serialized_length(self):
        # Serialized JSON adds ~20 chars of framing around the text
        text = "a" * (COMPRESSION_THRESHOLD - 25)
        assert not encode_payload(text, 1).startswith(PAYLOAD_PREFIX)

    def test_plain_text_unchanged(self):
        assert decompress_payload("This is a plain text QR.") == "This is a plain text QR."

    def test_compressed_empty_string(self):
        raw = PAYLOAD_PREFIX + base64.b64encode(gzip.compress(b"")).decode()
        assert decompress_payload(raw) == ""

    def test_invalid_compressed_returns_raw(self, caplog):
        raw = "GZ:NotValidBase64OrGzip"
        assert decompress_payload(raw) == raw
        assert "Failed to decompress" in caplog.text

    def test_parse_payload(self):
        payload = parse_payload('{"text": "abc", "frame": 2}')
        assert payload.text == "abc"
        assert payload.frame == 2

    def test_parse_payload_invalid(self):
        with pytest.raises(ValidationError):
            parse_payload("not json")


class TestRender:
    def test_render_and_decode(self):
        data = encode_payload("Sentence three follows.", 2)
        image = fit_to_frame(render_qr(data), 320, 320)
        assert decode_qr(_to_bgr(image)) == data

    def test_compressed_payload_survives_qr(self):
        data = encode_payload("A longer chunk of text. " * 10, 5)
        image = fit_to_frame(render_qr(data), 640, 640)
        assert decompress_payload(decode_qr(_to_bgr(image))) == json.dumps(
            {"text": "A longer chunk of text. " * 10, "frame": 5},
            separators=(",", ":"),
        )

    def test_render_respects_config(self):
        small = render_qr("abc", QRConfig(box_size=2, border=1))
        large = render_qr("abc", QRConfig(box_size=8, border=1))
        assert large.size[0] == small.size[0] * 4

    def test_overflow_raises(self):
        with pytest.raises(QRRenderError):
            render_qr("x" * 5000, QRConfig(error_correction="H"))

    def test_fit_to_frame_size(self):
        image = fit_to_frame(render_qr("abc"), 1280, 720)
        assert image.size == (1280, 720)
        assert image.mode == "RGB"

    def test_fit_to_frame_shrinks_oversized(self):
        image = fit_to_frame(render_qr("abc", QRConfig(box_size=20)), 64, 48)
        assert image.size == (64, 48)

    def test_decode_blank_frame(self):
        assert decode_qr(np.full((100, 100, 3), 255, dtype=np.uint8)) is None


class TestInjectedLogger:
    def test_decompress_failure_logged_to_given_logger(self, caplog):
        log = logging.getLogger("tests.qr.decode")
        with caplog.at_level(logging.ERROR, logger="tests.qr.decode"):
            decompress_payload("GZ:NotValidBase64OrGzip", log)
        assert [r.name for r in caplog.records] == ["tests.qr.decode"]

    def test_shrink_warning_logged_to_given_logger(self, caplog):
        log = logging.getLogger("tests.qr.render")
        with caplog.at_level(logging.WARNING):
            fit_to_frame(render_qr("abc", QRConfig(box_size=20)), 64, 48, logger=log)
        assert any(r.name == "tests.qr.render" and "shrinking" in r.message for r in caplog.records)

    def test_default_logger_is_component_scoped(self, caplog):
        with caplog.at_level(logging.WARNING):
            fit_to_frame(render_qr("abc", QRConfig(box_size=20)), 64, 48)
        assert any(r.name == "videomem.qr" for r in caplog.records)
