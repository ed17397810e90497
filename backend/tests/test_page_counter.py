"""Tests for billable page counting of uploaded documents."""
import pytest
import pymupdf
from unittest.mock import AsyncMock, patch

from services.page_counter import (
    DOCX_MIME,
    PageCountError,
    count_converted_pdf_pages,
    count_pages,
    count_pdf_pages,
    count_pdf_pages_from_structure,
    estimate_pages_from_size,
    is_allowed_type,
)
from services.libreoffice import LibreOfficeError

LETTER_PAGE = "Dear Sir or Madam, please find the enclosed certificate of residence."


def _pdf(page_texts):
    doc = pymupdf.open()
    for text in page_texts:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


def test_allowed_types():
    for mime in ("application/pdf", "image/jpeg", "image/jpg", "image/png", "image/webp", DOCX_MIME):
        assert is_allowed_type(mime)
    assert not is_allowed_type("application/zip")
    assert not is_allowed_type("text/plain")


def test_count_pdf_pages_uses_parsed_document():
    assert count_pdf_pages(_pdf(["one", "two", "three"])) == 3


def test_structure_scan_prefers_largest_pages_count():
    raw = b"%PDF-1.4 1 0 obj << /Type /Pages /Kids [] /Count 2 >> 2 0 obj << /Type /Pages /Count 7 >>"
    assert count_pdf_pages_from_structure(raw) == 7


def test_structure_scan_counts_page_objects():
    raw = b"<< /Type /Page >> << /Type /Page >> << /Type /Page >>"
    assert count_pdf_pages_from_structure(raw) == 3


def test_structure_scan_gives_up_without_markers():
    assert count_pdf_pages_from_structure(b"not a pdf") is None


def test_unreadable_pdf_falls_back_to_size_estimate():
    assert count_pdf_pages(b"x" * 400_000) == 3
    assert estimate_pages_from_size(10) == 1


def test_converted_pdf_drops_trailing_blank_page():
    assert count_converted_pdf_pages(_pdf(["page one text", "page two text", ""])) == 2


def test_converted_single_blank_page_is_still_one_page():
    assert count_converted_pdf_pages(_pdf([""])) == 1


@pytest.mark.asyncio
async def test_images_count_as_one_page():
    assert await count_pages(b"\x89PNG", "image/png", "scan.png") == 1


@pytest.mark.asyncio
async def test_office_documents_are_counted_after_conversion():
    with patch("services.page_counter.convert_to_pdf", new=AsyncMock(return_value=_pdf([LETTER_PAGE, LETTER_PAGE]))):
        assert await count_pages(b"docx", DOCX_MIME, "letter.docx") == 2


@pytest.mark.asyncio
async def test_office_conversion_failure_raises_page_count_error():
    with patch(
        "services.page_counter.convert_to_pdf",
        new=AsyncMock(side_effect=LibreOfficeError("timeout")),
    ):
        with pytest.raises(PageCountError, match="Failed to count pages"):
            await count_pages(b"docx", DOCX_MIME, "letter.docx")
