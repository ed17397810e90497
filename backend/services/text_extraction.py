"""
Text extraction for translation: PDF pages, Word and Excel documents.

Tables are rendered as markdown tables so they survive translation and can
be rebuilt as Word tables by the document generator.
"""
import io
import re
import logging
from typing import List, Tuple, Iterable, Any

import pymupdf
from docx import Document
from docx.table import Table
from docx.text.paragraph import Paragraph
from openpyxl import load_workbook

logger = logging.getLogger(__name__)

MAX_CHUNK_CHARS = 4500
MIN_PAGE_TEXT_CHARS = 5
OCR_RENDER_ZOOM = 2
OCR_MAX_PAGES = 50

_PAGE_SEPARATOR_RE = re.compile(r"--\s*\d+\s*of\s*\d+\s*--", re.IGNORECASE)
_PARAGRAPH_BREAK_RE = re.compile(r"\n{2,}")


def strip_page_separators(text: str) -> str:
    """Drop "-- 1 of 7 --" page markers some extractors inject."""
    return _PAGE_SEPARATOR_RE.sub("", text).strip()


def split_into_chunks(text: str, max_chars: int = MAX_CHUNK_CHARS) -> List[str]:
    """
    Split text into chunks no longer than max_chars.
    Prefers paragraph breaks, then line breaks, then a hard split.
    """
    normalized = text.replace("\r\n", "\n").strip()
    if len(normalized) <= max_chars:
        return [normalized]

    parts: List[str] = []
    for paragraph in _PARAGRAPH_BREAK_RE.split(normalized):
        parts.extend(paragraph.split("\n") if "\n" in paragraph else [paragraph])

    chunks: List[str] = []
    current = ""
    for part in parts:
        candidate = f"{current}\n{part}" if current else part
        if len(candidate) <= max_chars:
            current = candidate
            continue
        if current:
            chunks.append(current)
        if len(part) <= max_chars:
            current = part
        else:
            chunks.extend(part[i:i + max_chars] for i in range(0, len(part), max_chars))
            current = ""
    if current:
        chunks.append(current)
    return [c for c in chunks if c.strip()]


# ============================================================================
# PDF
# ============================================================================

def extract_pdf_pages(content: bytes) -> List[Tuple[int, str]]:
    """(page_number, text) for every page with usable text. Page numbers are 1-based."""
    pages = []
    with pymupdf.open(stream=content, filetype="pdf") as doc:
        for index, page in enumerate(doc):
            try:
                text = strip_page_separators(page.get_text())
            except Exception as e:
                logger.warning(f"Failed to extract text from page {index + 1}: {e}")
                continue
            if len(text) < MIN_PAGE_TEXT_CHARS:
                continue
            pages.append((index + 1, text))
    return pages


def render_pdf_pages(content: bytes, zoom: int = OCR_RENDER_ZOOM, max_pages: int = OCR_MAX_PAGES) -> List[Tuple[int, bytes]]:
    """Rasterize pages to PNG for OCR of scanned PDFs."""
    images = []
    matrix = pymupdf.Matrix(zoom, zoom)
    with pymupdf.open(stream=content, filetype="pdf") as doc:
        for index in range(min(doc.page_count, max_pages)):
            pixmap = doc[index].get_pixmap(matrix=matrix)
            images.append((index + 1, pixmap.tobytes("png")))
    return images


# ============================================================================
# MARKDOWN TABLES
# ============================================================================

def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).replace("|", "\\|").replace("\n", " ").strip()


def rows_to_markdown(rows: List[List[Any]]) -> str:
    """Render rows as a markdown table; the first row is the header."""
    rows = [r for r in rows if any(_cell_text(c) for c in r)]
    if not rows:
        return ""
    width = max(len(r) for r in rows)
    lines = []
    for index, row in enumerate(rows):
        cells = [_cell_text(c) for c in row] + [""] * (width - len(row))
        lines.append("| " + " | ".join(cells) + " |")
        if index == 0:
            lines.append("| " + " | ".join(["---"] * width) + " |")
    return "\n".join(lines)


# ============================================================================
# WORD / EXCEL
# ============================================================================

def _iter_docx_blocks(document) -> Iterable[Any]:
    """Paragraphs and tables in body order."""
    for child in document.element.body.iterchildren():
        tag = child.tag.rsplit("}", 1)[-1]
        if tag == "p":
            yield Paragraph(child, document)
        elif tag == "tbl":
            yield Table(child, document)


def extract_docx_text(content: bytes) -> str:
    document = Document(io.BytesIO(content))
    blocks = []
    for block in _iter_docx_blocks(document):
        if isinstance(block, Paragraph):
            text = block.text.strip()
            if text:
                blocks.append(text)
        else:
            rows = [[cell.text for cell in row.cells] for row in block.rows]
            table = rows_to_markdown(rows)
            if table:
                blocks.append(table)
    return "\n\n".join(blocks)


def extract_xlsx_sheets(content: bytes) -> List[Tuple[str, str]]:
    """(sheet title, markdown table) for every non-empty sheet."""
    workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    sheets = []
    try:
        for sheet in workbook.worksheets:
            rows = [list(row) for row in sheet.iter_rows(values_only=True)]
            table = rows_to_markdown(rows)
            if table:
                sheets.append((sheet.title, table))
    finally:
        workbook.close()
    return sheets
