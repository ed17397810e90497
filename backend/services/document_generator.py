"""
Document Generation Service - Word/PDF deliverables from reviewed translations.

Segments are written in order with a "Page N" heading whenever the source page
changes. Markdown tables in translated text become bordered Word tables; very
wide tables are split into column chunks on separate pages.

PDF output goes through LibreOffice; if conversion fails the DOCX is delivered instead.
"""
import io
import re
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Tuple

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH, WD_BREAK
from docx.shared import Pt

from database import database
from models import AuditAction, UserRole, TranslatedFile, TranslationStatus
from services.libreoffice import convert_to_pdf
from services.page_counter import PDF_MIME, DOCX_MIME
from services.order_workflow import OrderStatus, can_receive_translated_files
from services.storage_adapter import storage_adapter, upload_order_file
from services.order_service import get_order, upload_translated_files
from services.translation_service import get_translation, get_translations_by_order
from utils.audit import create_audit_log

logger = logging.getLogger(__name__)

MAX_TABLE_COLUMNS = 9
DIVIDER = "─"
NBSP = "\u00a0"

_LEADING_SPACES_RE = re.compile(r"^ +")
_EXTENSION_RE = re.compile(r"\.[^.]+$")
_CELL_SPLIT_RE = re.compile(r"(?<!\\)\|")


class DocumentSourceNotFound(LookupError):
    pass


@dataclass
class ParsedTable:
    headers: List[str]
    rows: List[List[str]]


# ============================================================================
# MARKDOWN TABLES
# ============================================================================

def _is_table_line(line: str) -> bool:
    stripped = line.strip()
    return stripped.startswith("|") and stripped.endswith("|")


def _split_row(line: str) -> List[str]:
    """Cells between unescaped pipes; an escaped \\| inside a cell is a literal pipe."""
    cells = _CELL_SPLIT_RE.split(line.strip())[1:-1]
    return [cell.strip().replace("\\|", "|") for cell in cells]


def parse_markdown_table(lines: List[str]) -> Optional[ParsedTable]:
    """Header row, separator row of -, : and spaces, then data rows padded/truncated to the header width."""
    if len(lines) < 2 or not _is_table_line(lines[0]) or not _is_table_line(lines[1]):
        return None

    separator = lines[1].strip()[1:-1]
    if not separator or any(ch not in "-: |" for ch in separator):
        return None

    headers = _split_row(lines[0])
    if not headers:
        return None

    rows = []
    for line in lines[2:]:
        if not line.strip().startswith("|"):
            break
        cells = _split_row(line)
        cells += [""] * (len(headers) - len(cells))
        rows.append(cells[:len(headers)])
    return ParsedTable(headers=headers, rows=rows)


def get_table_chunk_size(total_columns: int, max_columns: int = MAX_TABLE_COLUMNS) -> int:
    for size in (5, 4, 3):
        if total_columns > size and total_columns % size == 0:
            return size
    return min(max_columns, total_columns)


def split_wide_table(table: ParsedTable, max_columns: int = MAX_TABLE_COLUMNS) -> List[ParsedTable]:
    total = len(table.headers)
    if total <= max_columns:
        return [table]

    size = get_table_chunk_size(total, max_columns)
    return [
        ParsedTable(
            headers=table.headers[start:start + size],
            rows=[row[start:start + size] for row in table.rows],
        )
        for start in range(0, total, size)
    ]


# ============================================================================
# DOCX BUILDING
# ============================================================================

def normalize_line(line: str) -> str:
    """Leading spaces become non-breaking so Word does not collapse indentation."""
    match = _LEADING_SPACES_RE.match(line)
    if not match:
        return line
    count = len(match.group(0))
    return NBSP * count + line[count:]


def _add_page_break(doc) -> None:
    doc.add_paragraph().add_run().add_break(WD_BREAK.PAGE)


def _add_spaced_paragraph(doc, text: str = "", after: int = 0, bold: bool = False, italic: bool = False):
    paragraph = doc.add_paragraph()
    if text:
        run = paragraph.add_run(text)
        run.bold = bold
        run.italic = italic
    paragraph.paragraph_format.space_after = Pt(after)
    return paragraph


def add_word_table(doc, table: ParsedTable) -> None:
    word_table = doc.add_table(rows=1 + len(table.rows), cols=len(table.headers))
    word_table.style = "Table Grid"

    for col, header in enumerate(table.headers):
        paragraph = word_table.rows[0].cells[col].paragraphs[0]
        paragraph.alignment = WD_ALIGN_PARAGRAPH.CENTER
        paragraph.add_run(header).bold = True

    for row_index, row in enumerate(table.rows, start=1):
        for col, value in enumerate(row):
            word_table.rows[row_index].cells[col].text = value


def add_translated_text(doc, text: str) -> None:
    """Write translated text line by line, turning markdown tables into Word tables."""
    lines = (text or "").replace("\r\n", "\n").split("\n")
    i = 0
    while i < len(lines):
        line = lines[i]
        if _is_table_line(line):
            j = i
            while j < len(lines) and lines[j].strip().startswith("|"):
                j += 1
            table = parse_markdown_table(lines[i:j])
            if table and table.rows:
                parts = split_wide_table(table)
                for index, part in enumerate(parts):
                    add_word_table(doc, part)
                    _add_spaced_paragraph(doc, after=10)
                    if index < len(parts) - 1:
                        _add_page_break(doc)
                i = j
                continue

        _add_spaced_paragraph(doc, normalize_line(line), after=10 if not line.strip() else 0)
        i += 1


def _add_segments(doc, segments: List[Dict[str, Any]], page_heading_level: int) -> None:
    last_page = None
    for segment in sorted(segments, key=lambda s: s.get("order", 0)):
        page = segment.get("page_number")
        if page and page != last_page:
            last_page = page
            doc.add_heading(f"Page {page}", level=page_heading_level)
        add_translated_text(doc, segment.get("translated_text") or "")


def _to_bytes(doc) -> bytes:
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


def build_translated_docx(translation: Dict[str, Any], order: Dict[str, Any], file_name: str) -> bytes:
    doc = Document()
    doc.core_properties.title = f"Translation: {file_name}"

    doc.add_heading(f"Translation: {file_name}", level=1)
    _add_spaced_paragraph(doc, f"Order: {order['order_number']}", after=10, bold=True)
    _add_spaced_paragraph(
        doc,
        f"Source Language: {translation.get('source_language')} → Target Language: {translation.get('target_language')}",
        after=20,
        italic=True,
    )
    _add_spaced_paragraph(doc, DIVIDER * 50, after=20)

    _add_segments(doc, translation.get("segments") or [], page_heading_level=2)
    return _to_bytes(doc)


def build_combined_docx(translations: List[Dict[str, Any]], order: Dict[str, Any], generated_at: datetime) -> bytes:
    doc = Document()
    doc.core_properties.title = f"Combined Translation Document - {order['order_number']}"

    doc.add_heading("Combined Translation Document", level=0)
    _add_spaced_paragraph(doc, f"Order: {order['order_number']}", after=5, bold=True)
    _add_spaced_paragraph(doc, f"Documents: {len(translations)}", after=5, italic=True)
    _add_spaced_paragraph(doc, f"Generated: {generated_at.strftime('%B %d, %Y %I:%M %p')}", after=20, italic=True)

    doc.add_heading("Contents:", level=2)
    for index, translation in enumerate(translations, start=1):
        _add_spaced_paragraph(doc, f"{index}. {translation['file_name']}", after=2)
    _add_spaced_paragraph(doc, DIVIDER * 60, after=20)

    for index, translation in enumerate(translations):
        if index > 0:
            _add_page_break(doc)
        doc.add_heading(f"Document {index + 1}: {translation['file_name']}", level=1)
        _add_spaced_paragraph(
            doc,
            f"{translation.get('source_language')} → {translation.get('target_language')}",
            after=15,
            italic=True,
        )
        _add_segments(doc, translation.get("segments") or [], page_heading_level=3)
        if index < len(translations) - 1:
            _add_spaced_paragraph(doc, after=20)

    return _to_bytes(doc)


# ============================================================================
# EXPORT + DELIVERY
# ============================================================================

async def export_document(docx_bytes: bytes, base_name: str, fmt: str) -> Tuple[bytes, str, str]:
    """Returns (content, extension, mime type). PDF falls back to DOCX when conversion fails."""
    if fmt == "pdf":
        try:
            pdf_bytes = await convert_to_pdf(docx_bytes, f"{base_name}.docx", DOCX_MIME)
            return pdf_bytes, "pdf", PDF_MIME
        except Exception as e:
            logger.error(f"PDF conversion failed, falling back to DOCX: {e}")
    return docx_bytes, "docx", DOCX_MIME


def translated_file_name(file_name: str, extension: str) -> str:
    if _EXTENSION_RE.search(file_name):
        return _EXTENSION_RE.sub(f"_translated.{extension}", file_name)
    return f"{file_name}_translated.{extension}"


async def _latest_version_number(translation: Dict[str, Any]) -> Optional[int]:
    """Version of the approved text; None while the translation has unapproved edits."""
    if translation.get("status") != TranslationStatus.APPROVED.value or not translation.get("latest_version_id"):
        return None
    db = database.get_db()
    version = await db.translation_versions.find_one(
        {"version_id": translation["latest_version_id"]}, {"_id": 0, "version_number": 1}
    )
    return version.get("version_number") if version else None


def _ensure_deliverable(order: Dict[str, Any]) -> None:
    if not can_receive_translated_files(OrderStatus(order["status"])):
        raise ValueError(f"Translated files cannot be added to an order in status {order['status']}")


async def _store_and_attach(
    order: Dict[str, Any],
    content: bytes,
    file_name: str,
    mime_type: str,
    original_file_name: str,
    page_count: int,
    admin: Dict,
    version_number: Optional[int] = None,
) -> Dict[str, Any]:
    """Store the generated file and add it to the order; the stored blob is removed if attaching fails."""
    _ensure_deliverable(order)
    stored = await upload_order_file(
        content=content,
        filename=file_name,
        content_type=mime_type,
        uploaded_by=admin.get("user_id"),
        order_id=order["order_id"],
        source="generated_translation",
        page_count=page_count,
    )
    translated = TranslatedFile(
        file_name=file_name,
        file_url=stored.url,
        storage_id=stored.file_id,
        file_size=len(content),
        page_count=page_count,
        file_type=mime_type,
        original_file_name=original_file_name,
        translated_at=datetime.now(timezone.utc),
        version_number=version_number,
    )
    try:
        await upload_translated_files(order["order_id"], [translated], admin)
    except ValueError:
        await storage_adapter.delete_file(stored.file_id)
        raise
    return translated.model_dump()


async def generate_translated_document(
    order_id: str,
    translation_id: str,
    file_name: str,
    fmt: str,
    admin: Dict,
) -> Dict[str, Any]:
    """Build, store and attach the translated document for one file."""
    translation = await get_translation(translation_id)
    if not translation or translation.get("order_id") != order_id or not translation.get("segments"):
        raise DocumentSourceNotFound("Translation not found or empty")
    order = await get_order(order_id)
    if not order:
        raise DocumentSourceNotFound("Order not found")
    _ensure_deliverable(order)

    docx_bytes = build_translated_docx(translation, order, file_name)
    content, extension, mime_type = await export_document(docx_bytes, _EXTENSION_RE.sub("", file_name), fmt)
    output_name = translated_file_name(file_name, extension)

    stored = await _store_and_attach(
        order, content, output_name, mime_type,
        original_file_name=file_name,
        page_count=len(translation["segments"]),
        admin=admin,
        version_number=await _latest_version_number(translation),
    )
    await create_audit_log(
        action=AuditAction.DOCUMENT_GENERATED,
        actor_role=UserRole.ADMIN,
        actor_id=admin.get("user_id"),
        resource_type="order",
        resource_id=order_id,
        metadata={"file_name": output_name, "format": extension, "translation_id": translation_id},
    )
    return {
        "success": True,
        "file_name": output_name,
        "file_url": stored["file_url"],
        "format": extension,
        "message": f"Translated document generated successfully as {extension.upper()}",
    }


async def generate_combined_document(
    order_id: str,
    file_names: List[str],
    fmt: str,
    admin: Dict,
) -> Dict[str, Any]:
    """One document containing every approved translation among file_names, in that order."""
    order = await get_order(order_id)
    if not order:
        raise DocumentSourceNotFound("Order not found")
    _ensure_deliverable(order)

    translations = await get_translations_by_order(order_id)
    if not translations:
        raise DocumentSourceNotFound("No translations found")

    selected = [
        t for t in translations
        if t.get("file_name") in file_names and t.get("status") == TranslationStatus.APPROVED.value
    ]
    if not selected:
        raise DocumentSourceNotFound("No approved translations found for the specified files")
    selected.sort(key=lambda t: file_names.index(t["file_name"]))

    now = datetime.now(timezone.utc)
    docx_bytes = build_combined_docx(selected, order, now)
    content, extension, mime_type = await export_document(docx_bytes, "combined_translation", fmt)
    timestamp = now.strftime("%Y-%m-%dT%H-%M-%S")
    output_name = f"combined_translation_{order['order_number']}_{timestamp}.{extension}"

    stored = await _store_and_attach(
        order, content, output_name, mime_type,
        original_file_name=f"Combined: {', '.join(file_names)}",
        page_count=sum(len(t.get("segments") or []) for t in selected),
        admin=admin,
    )
    await create_audit_log(
        action=AuditAction.DOCUMENT_GENERATED,
        actor_role=UserRole.ADMIN,
        actor_id=admin.get("user_id"),
        resource_type="order",
        resource_id=order_id,
        metadata={"file_name": output_name, "format": extension, "documents": len(selected)},
    )
    return {
        "success": True,
        "file_name": output_name,
        "file_url": stored["file_url"],
        "format": extension,
        "documents_included": len(selected),
        "message": f"Combined document generated successfully as {extension.upper()}",
    }
