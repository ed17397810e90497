"""
Translation pipeline - turns one uploaded order file into reviewable segments.

Flow: load order file -> mark translation "translating" -> extract text
(PDF text layer, OCR for images and scanned PDFs, Word/Excel parsing) ->
translate chunk by chunk -> store segments as "review" at 100%.
Any failure resets the translation to "pending" at 0%.
"""
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, List, Any

from models import (
    AuditAction, UserRole, TranslationProvider, TranslationStatus,
    DocumentDomain, OcrQuality, Segment, UsageEvent,
)
from services.order_service import get_order, update_detected_source_language
from services.storage_adapter import storage_adapter
from services.page_counter import PDF_MIME, DOCX_MIME, XLSX_MIME, IMAGE_MIMES
from services.text_extraction import (
    split_into_chunks, extract_pdf_pages, render_pdf_pages,
    extract_docx_text, extract_xlsx_sheets, MIN_PAGE_TEXT_CHARS,
)
from services.ocr_service import ocr_image
from services.translation_providers import translate_text, DEFAULT_PROVIDER
from services.translation_service import upsert_translation, update_translation_progress
from services.usage_service import record_usage_events
from utils.audit import create_audit_log

logger = logging.getLogger(__name__)

OCR_FAILED_ORIGINAL = (
    "No extractable text was found in this PDF, and OCR failed. "
    "This usually means it's a scanned document (image-only PDF)."
)
OCR_EMPTY_ORIGINAL = (
    "No extractable text was found in this PDF. "
    "This usually means it's a scanned document (image-only PDF)."
)
OCR_EMPTY_TRANSLATED = "OCR completed but no text was detected on any page."


class OrderFileNotFound(LookupError):
    pass


class UnsupportedFileType(ValueError):
    pass


class TranslationFailed(Exception):
    """Extraction or translation failed; the translation was reset to pending."""
    pass


def _ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def _segment(segment_id: str, original: str, translated: str, page_number: Optional[int], order: int) -> Segment:
    return Segment(
        id=segment_id,
        original_text=original,
        translated_text=translated,
        page_number=page_number,
        order=order,
    )


class SegmentTranslator:
    """Translates text in provider-sized chunks and accumulates usage."""

    def __init__(
        self,
        source_language: str,
        target_language: str,
        provider: TranslationProvider,
        document_domain: DocumentDomain,
        open_router_model: Optional[str] = None,
        ocr_quality: OcrQuality = OcrQuality.HIGH,
    ):
        self.source_language = source_language
        self.target_language = target_language
        self.provider = provider
        self.document_domain = document_domain
        self.open_router_model = open_router_model
        self.ocr_quality = ocr_quality
        self.usage: List[UsageEvent] = []
        self.detected_source_language: Optional[str] = None

    async def translate(self, text: str) -> str:
        translated_chunks = []
        for chunk in split_into_chunks(text):
            result = await translate_text(
                chunk,
                self.source_language,
                self.target_language,
                provider=self.provider,
                document_domain=self.document_domain,
                open_router_model=self.open_router_model,
            )
            self.usage.append(result.usage)
            if result.detected_source_language and not self.detected_source_language:
                self.detected_source_language = result.detected_source_language
            translated_chunks.append(result.text)
        return "\n".join(translated_chunks)

    async def ocr(self, content: bytes, mime_type: str) -> str:
        result = await ocr_image(content, mime_type, self.ocr_quality)
        if result.usage:
            self.usage.append(result.usage)
        return result.text


async def translate_image(content: bytes, mime_type: str, translator: SegmentTranslator) -> List[Segment]:
    text = await translator.ocr(content, mime_type)
    if len(text) < MIN_PAGE_TEXT_CHARS:
        raise TranslationFailed("No text detected in image")
    translated = await translator.translate(text)
    return [_segment(f"image-ocr-{_ms()}", text, translated, 1, 0)]


async def translate_scanned_pdf(content: bytes, translator: SegmentTranslator) -> List[Segment]:
    segments = []
    for page_number, png in render_pdf_pages(content):
        text = await translator.ocr(png, "image/png")
        if len(text) < MIN_PAGE_TEXT_CHARS:
            continue
        translated = await translator.translate(text)
        segments.append(_segment(f"pdf-ocr-page-{page_number}-{_ms()}", text, translated, page_number, page_number - 1))
    return segments


async def translate_pdf(content: bytes, translator: SegmentTranslator) -> List[Segment]:
    """
    Text-layer PDFs translate page by page.
    Image-only PDFs go through OCR; OCR failure or an empty result yields one explanatory segment.
    """
    segments = []
    for page_number, text in extract_pdf_pages(content):
        translated = await translator.translate(text)
        segments.append(_segment(f"pdf-page-{page_number}-{_ms()}", text, translated, page_number, page_number - 1))
    if segments:
        return segments

    try:
        segments = await translate_scanned_pdf(content, translator)
    except Exception as e:
        logger.warning(f"OCR pipeline failed: {e}")
        return [_segment(f"pdf-ocr-failed-{_ms()}", OCR_FAILED_ORIGINAL, f"OCR/translation failed: {e}", 1, 0)]

    if segments:
        return segments
    return [_segment(f"pdf-ocr-empty-{_ms()}", OCR_EMPTY_ORIGINAL, OCR_EMPTY_TRANSLATED, 1, 0)]


async def translate_docx(content: bytes, translator: SegmentTranslator) -> List[Segment]:
    text = extract_docx_text(content)
    if not text:
        raise TranslationFailed("No text found in document")
    segments = []
    for index, chunk in enumerate(split_into_chunks(text)):
        translated = await translator.translate(chunk)
        segments.append(_segment(f"docx-{index}-{_ms()}", chunk, translated, None, index))
    return segments


async def translate_xlsx(content: bytes, translator: SegmentTranslator) -> List[Segment]:
    sheets = extract_xlsx_sheets(content)
    if not sheets:
        raise TranslationFailed("No cells with text found in workbook")
    segments = []
    for sheet_number, (title, table) in enumerate(sheets, start=1):
        for chunk in split_into_chunks(f"{title}\n\n{table}"):
            translated = await translator.translate(chunk)
            segments.append(_segment(f"xlsx-{sheet_number}-{len(segments)}-{_ms()}", chunk, translated, sheet_number, len(segments)))
    return segments


async def extract_and_translate(content: bytes, file_type: str, translator: SegmentTranslator) -> List[Segment]:
    if file_type in IMAGE_MIMES:
        return await translate_image(content, file_type, translator)
    if file_type == PDF_MIME:
        return await translate_pdf(content, translator)
    if file_type == DOCX_MIME:
        return await translate_docx(content, translator)
    if file_type == XLSX_MIME:
        return await translate_xlsx(content, translator)
    raise UnsupportedFileType(f"Unsupported file type: {file_type}")


def _find_order_file(order: Dict[str, Any], file_name: str, file_index: int) -> Optional[Dict[str, Any]]:
    files = order.get("files") or []
    if 0 <= file_index < len(files) and files[file_index].get("file_name") == file_name:
        return files[file_index]
    return next((f for f in files if f.get("file_name") == file_name), None)


async def run_translation(
    order_id: str,
    file_name: str,
    file_index: int,
    source_language: Optional[str],
    target_language: Optional[str],
    admin: Dict,
    provider: Optional[TranslationProvider] = None,
    document_domain: Optional[DocumentDomain] = None,
    open_router_model: Optional[str] = None,
    ocr_quality: Optional[OcrQuality] = None,
) -> Dict:
    """
    Translate one order file and store the result for review.
    Raises OrderFileNotFound, UnsupportedFileType or TranslationFailed.
    """
    order = await get_order(order_id)
    if not order:
        raise OrderFileNotFound("Order or file not found")
    order_file = _find_order_file(order, file_name, file_index)
    if not order_file or not order_file.get("storage_id"):
        raise OrderFileNotFound("Order or file not found")

    file_type = order_file.get("file_type", "")
    if file_type not in IMAGE_MIMES and file_type not in (PDF_MIME, DOCX_MIME, XLSX_MIME):
        raise UnsupportedFileType(f"Unsupported file type: {file_type}")

    source_language = source_language or order.get("source_language", "auto")
    target_language = target_language or order["target_language"]
    provider = provider or DEFAULT_PROVIDER
    document_domain = document_domain or DocumentDomain(order.get("document_domain") or DocumentDomain.GENERAL.value)
    ocr_quality = ocr_quality or OcrQuality(order.get("ocr_quality") or OcrQuality.HIGH.value)
    provider_fields = {
        "translation_provider": provider.value,
        "document_domain": document_domain.value,
        "open_router_model": open_router_model if provider == TranslationProvider.OPENROUTER else None,
        "ocr_quality": ocr_quality.value,
    }

    translation_id = await upsert_translation(
        order_id=order_id,
        file_name=file_name,
        file_index=file_index,
        segments=[],
        status=TranslationStatus.TRANSLATING,
        progress=0,
        source_language=source_language,
        target_language=target_language,
        **provider_fields,
    )

    translator = SegmentTranslator(
        source_language, target_language, provider, document_domain, open_router_model, ocr_quality,
    )
    try:
        content, _ = await storage_adapter.download_file(order_file["storage_id"])
        segments = await extract_and_translate(content, file_type, translator)
    except Exception as e:
        await update_translation_progress(translation_id, 0, TranslationStatus.PENDING)
        await record_usage_events(order_id, file_name, translator.usage)
        await create_audit_log(
            action=AuditAction.TRANSLATION_FAILED,
            actor_role=UserRole.ADMIN,
            actor_id=admin.get("user_id"),
            resource_type="order",
            resource_id=order_id,
            metadata={"file_name": file_name, "provider": provider.value, "error": str(e)},
        )
        logger.error(f"Translation failed for order {order_id} file {file_name}: {e}")
        raise TranslationFailed(str(e)) from e

    for index, segment in enumerate(segments):
        segment.order = index
        segment.is_edited = False

    await upsert_translation(
        order_id=order_id,
        file_name=file_name,
        file_index=file_index,
        segments=segments,
        status=TranslationStatus.REVIEW,
        progress=100,
        source_language=source_language,
        target_language=target_language,
        **provider_fields,
    )
    await record_usage_events(order_id, file_name, translator.usage)

    if translator.detected_source_language and source_language == "auto":
        await update_detected_source_language(order_id, None, translator.detected_source_language)

    await create_audit_log(
        action=AuditAction.TRANSLATION_RUN,
        actor_role=UserRole.ADMIN,
        actor_id=admin.get("user_id"),
        resource_type="order",
        resource_id=order_id,
        metadata={"file_name": file_name, "provider": provider.value, "segments": len(segments)},
    )
    logger.info(f"Translated {file_name} for order {order_id}: {len(segments)} segment(s)")

    return {
        "success": True,
        "translation_id": translation_id,
        "segments_count": len(segments),
        "detected_source_language": translator.detected_source_language,
        "message": "Translation completed successfully",
    }
