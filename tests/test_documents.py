"""Tests for videomem/documents.py using PDFs generated with PyMuPDF."""

import logging

import fitz
import pytest

from videomem.documents import extract_document_text, extract_pdf_text
from videomem.encoder import Encoder


@pytest.fixture
def sample_pdf(tmp_path):
    path = tmp_path / "sample.pdf"
    doc = fitz.open()
    for text in ["First page text.", "Second page text."]:
        page = doc.new_page()
        page.insert_text((72, 72), text)
    doc.save(str(path))
    doc.close()
    return path


class TestExtract:
    def test_pages_joined_with_blank_lines(self, sample_pdf):
        text = extract_pdf_text(sample_pdf)
        assert text == "First page text.\n\nSecond page text."

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            extract_pdf_text(tmp_path / "missing.pdf")

    def test_unsupported_suffix(self, tmp_path):
        path = tmp_path / "notes.docx"
        path.write_bytes(b"x")
        with pytest.raises(ValueError):
            extract_document_text(path)


def test_encoder_add_pdf(sample_pdf, base_config, embedder):
    encoder = Encoder({**base_config, "chunk_size": 20, "overlap": 0}, embedder=embedder)
    assert encoder.add_pdf(sample_pdf) == 2
    assert encoder.chunks == ["First page text.", "Second page text."]


def test_extract_logs_to_injected_logger(sample_pdf, caplog):
    log = logging.getLogger("tests.documents")
    with caplog.at_level(logging.INFO, logger="tests.documents"):
        extract_pdf_text(sample_pdf, log)
    assert any("Extracted 2 pages" in r.message for r in caplog.records)
