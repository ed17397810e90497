"""
Page counting for uploaded documents.
PDF pages drive order pricing, so the count degrades through several fallbacks rather than failing.
"""
import math
import re
import logging
from typing import Optional

import pymupdf

from services.libreoffice import convert_to_pdf, LibreOfficeError

logger = logging.getLogger(__name__)

MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
IMAGE_MIMES = {"image/jpeg", "image/jpg", "image/png", "image/webp"}
OFFICE_MIMES = {DOCX_MIME, XLSX_MIME}
ALLOWED_MIME_TYPES = {PDF_MIME} | IMAGE_MIMES | OFFICE_MIMES

# Rough bytes-per-page used when the PDF structure cannot be read at all
BYTES_PER_PAGE_ESTIMATE = 150000
BLANK_PAGE_MAX_CHARS = 50

_PAGES_COUNT_RE = re.compile(rb"/Type\s*/Pages\b[^>]*?/Count\s+(\d+)", re.DOTALL)
_PAGE_OBJECT_RE = re.compile(rb"/Type\s*/Page\b")


class PageCountError(Exception):
    """Page count could not be determined."""
    pass


def is_allowed_type(content_type: str) -> bool:
    return content_type in ALLOWED_MIME_TYPES


def estimate_pages_from_size(size: int) -> int:
    return max(1, math.ceil(size / BYTES_PER_PAGE_ESTIMATE))


def count_pdf_pages_from_structure(content: bytes) -> Optional[int]:
    """Scan raw PDF objects: largest /Pages /Count, else number of /Page objects."""
    counts = [int(m) for m in _PAGES_COUNT_RE.findall(content)]
    if counts and max(counts) > 0:
        return max(counts)
    page_objects = len(_PAGE_OBJECT_RE.findall(content))
    if page_objects > 0:
        return page_objects
    return None


def count_pdf_pages(content: bytes) -> int:
    try:
        with pymupdf.open(stream=content, filetype="pdf") as doc:
            if doc.page_count > 0:
                return doc.page_count
    except Exception as e:
        logger.warning(f"PDF parse failed, falling back to structure scan: {e}")

    structural = count_pdf_pages_from_structure(content)
    if structural:
        return structural
    return estimate_pages_from_size(len(content))


def count_converted_pdf_pages(pdf_bytes: bytes) -> int:
    """
    Page count of a LibreOffice-rendered PDF.
    LibreOffice often emits a trailing empty page, which is not billed.
    """
    with pymupdf.open(stream=pdf_bytes, filetype="pdf") as doc:
        page_count = doc.page_count
        if page_count > 1:
            last_page_text = doc[page_count - 1].get_text().strip()
            if len(last_page_text) < BLANK_PAGE_MAX_CHARS:
                logger.info("Detected blank last page, adjusting count")
                page_count -= 1
    return page_count


async def count_pages(content: bytes, content_type: str, filename: str) -> int:
    """Billable page count for an uploaded file. Raises PageCountError for office conversion failures."""
    if content_type == PDF_MIME:
        return count_pdf_pages(content)
    if content_type in IMAGE_MIMES:
        return 1
    if content_type in OFFICE_MIMES:
        try:
            pdf_bytes = await convert_to_pdf(content, filename, content_type)
            return count_converted_pdf_pages(pdf_bytes)
        except LibreOfficeError as e:
            logger.error(f"Office page count failed for {filename}: {e}")
            raise PageCountError(f"Failed to count pages: {e}") from e
        except Exception as e:
            logger.error(f"Converted PDF unreadable for {filename}: {e}")
            raise PageCountError(f"Failed to count pages: {e}") from e
    raise PageCountError(f"Unsupported file type: {content_type}")
