"""
Tests for machine translation: provider request shapes, chunked segment translation,
per-file-type extraction and the run_translation success/failure bookkeeping.
"""
import io
import os
import pytest
import pymupdf
from unittest.mock import AsyncMock, MagicMock, patch

from docx import Document
from openpyxl import Workbook

from models import (
    DocumentDomain, OcrQuality, Segment, TranslationProvider, TranslationStatus, UsageEvent, UsageKind,
)
from services import translation_pipeline
from services.translation_pipeline import (
    OCR_EMPTY_ORIGINAL, OrderFileNotFound, SegmentTranslator, TranslationFailed, UnsupportedFileType,
    extract_and_translate, run_translation,
)
from services.translation_providers import (
    FORMATTING_RULES, ProviderResult, TranslationProviderError, build_user_prompt, get_domain_system_prompt,
    translate_text,
)

ADMIN = {"user_id": "admin-1", "role": "admin"}


def _result(text, detected=None):
    return ProviderResult(
        text=text,
        detected_source_language=detected,
        usage=UsageEvent(provider=TranslationProvider.GOOGLE, kind=UsageKind.TEXT, input_chars=len(text), requests=1),
    )


def _fake_translate(prefix="EN:", detected=None):
    async def translate(text, source, target, **kwargs):
        return _result(f"{prefix}{text}", detected)
    return AsyncMock(side_effect=translate)


def _translator(provider=TranslationProvider.GOOGLE):
    return SegmentTranslator("auto", "en", provider, DocumentDomain.GENERAL, None, OcrQuality.HIGH)


def _http_client(response_json, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = response_json
    response.text = str(response_json)
    client = MagicMock()
    client.post = AsyncMock(return_value=response)
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return client


# ============================================
# Prompts and providers
# ============================================

def test_user_prompt_for_auto_detect_and_explicit_source():
    assert build_user_prompt("Hallo", "auto", "en").startswith(
        "Detect the source language and translate the following text into English."
    )
    assert build_user_prompt("Hallo", "de", "fr").startswith(
        "Translate the following text from German into French."
    )


def test_domain_prompts_share_formatting_rules():
    legal = get_domain_system_prompt(DocumentDomain.LEGAL)
    medical = get_domain_system_prompt(DocumentDomain.MEDICAL)
    assert legal != medical
    assert FORMATTING_RULES in legal and FORMATTING_RULES in medical


@pytest.mark.asyncio
async def test_google_omits_source_for_auto_and_reports_detection():
    client = _http_client({"data": {"translations": [{"translatedText": "Hello", "detectedSourceLanguage": "de"}]}})
    with patch.dict(os.environ, {"GOOGLE_CLOUD_API_KEY": "key"}), \
            patch("services.translation_providers.httpx.AsyncClient", return_value=client):
        result = await translate_text("Hallo", "auto", "en", provider=TranslationProvider.GOOGLE)

    body = client.post.call_args.kwargs["json"]
    assert "source" not in body
    assert body["target"] == "en"
    assert result.text == "Hello"
    assert result.detected_source_language == "de"
    assert result.usage.input_chars == 5


@pytest.mark.asyncio
async def test_openrouter_uses_selected_model_and_records_tokens():
    client = _http_client({
        "model": "anthropic/claude-sonnet-4.5",
        "choices": [{"message": {"content": " Hello \n"}}],
        "usage": {"prompt_tokens": 120, "completion_tokens": 8, "total_tokens": 128},
    })
    with patch.dict(os.environ, {"OPENROUTER_API_KEY": "key"}), \
            patch("services.translation_providers.httpx.AsyncClient", return_value=client):
        result = await translate_text(
            "Hallo", "de", "en",
            provider=TranslationProvider.OPENROUTER,
            document_domain=DocumentDomain.CERTIFICATE,
            open_router_model="anthropic/claude-sonnet-4.5",
        )

    payload = client.post.call_args.kwargs["json"]
    assert payload["model"] == "anthropic/claude-sonnet-4.5"
    assert payload["messages"][0]["role"] == "system"
    assert result.text == "Hello"
    assert result.usage.total_tokens == 128
    assert client.post.call_args.kwargs["headers"]["Authorization"] == "Bearer key"


@pytest.mark.asyncio
async def test_missing_api_key_is_a_provider_error():
    with patch.dict(os.environ, {"ANTHROPIC_API_KEY": ""}):
        with pytest.raises(TranslationProviderError, match="ANTHROPIC_API_KEY"):
            await translate_text("Hallo", "de", "en", provider=TranslationProvider.ANTHROPIC)


@pytest.mark.asyncio
async def test_provider_http_error_raises():
    client = _http_client({"error": "rate limited"}, status_code=429)
    with patch.dict(os.environ, {"OPENAI_API_KEY": "key"}), \
            patch("services.translation_providers.httpx.AsyncClient", return_value=client):
        with pytest.raises(TranslationProviderError, match="429"):
            await translate_text("Hallo", "de", "en", provider=TranslationProvider.OPENAI)


# ============================================
# Extraction + translation per file type
# ============================================

@pytest.mark.asyncio
async def test_text_pdf_translates_page_by_page():
    doc = pymupdf.open()
    doc.new_page().insert_text((72, 72), "Erste Seite")
    doc.new_page().insert_text((72, 72), "Zweite Seite")
    content = doc.tobytes()
    doc.close()

    translator = _translator()
    with patch("services.translation_pipeline.translate_text", _fake_translate(detected="de")):
        segments = await extract_and_translate(content, "application/pdf", translator)

    assert [s.page_number for s in segments] == [1, 2]
    assert segments[0].translated_text == "EN:Erste Seite"
    assert len(translator.usage) == 2
    assert translator.detected_source_language == "de"


@pytest.mark.asyncio
async def test_scanned_pdf_without_ocr_text_yields_placeholder():
    doc = pymupdf.open()
    doc.new_page()
    content = doc.tobytes()
    doc.close()

    translator = _translator()
    with patch.object(SegmentTranslator, "ocr", AsyncMock(return_value="")):
        segments = await extract_and_translate(content, "application/pdf", translator)

    assert len(segments) == 1
    assert segments[0].original_text == OCR_EMPTY_ORIGINAL


@pytest.mark.asyncio
async def test_image_without_text_fails():
    with patch.object(SegmentTranslator, "ocr", AsyncMock(return_value="  ")):
        with pytest.raises(TranslationFailed, match="No text detected"):
            await extract_and_translate(b"png", "image/png", _translator())


@pytest.mark.asyncio
async def test_docx_is_translated_in_chunks():
    document = Document()
    document.add_paragraph("Geburtsurkunde")
    buffer = io.BytesIO()
    document.save(buffer)

    with patch("services.translation_pipeline.translate_text", _fake_translate()):
        segments = await extract_and_translate(
            buffer.getvalue(),
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            _translator(),
        )
    assert [(s.original_text, s.translated_text, s.page_number) for s in segments] == [
        ("Geburtsurkunde", "EN:Geburtsurkunde", None)
    ]


@pytest.mark.asyncio
async def test_xlsx_sheets_are_translated_as_markdown_tables():
    workbook = Workbook()
    fees = workbook.active
    fees.title = "Gebuehren"
    fees.append(["Leistung", "Betrag"])
    fees.append(["Beglaubigung", 20])
    workbook.create_sheet("Leer")
    buffer = io.BytesIO()
    workbook.save(buffer)

    translator = _translator()
    with patch("services.translation_pipeline.translate_text", _fake_translate()):
        segments = await extract_and_translate(
            buffer.getvalue(),
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            translator,
        )

    assert len(segments) == 1
    assert segments[0].page_number == 1
    assert segments[0].original_text.startswith("Gebuehren\n\n| Leistung | Betrag |")
    assert "| Beglaubigung | 20 |" in segments[0].original_text
    assert segments[0].translated_text.startswith("EN:Gebuehren")
    assert len(translator.usage) == 1


@pytest.mark.asyncio
async def test_unknown_type_is_rejected():
    with pytest.raises(UnsupportedFileType):
        await extract_and_translate(b"zip", "application/zip", _translator())


# ============================================
# run_translation
# ============================================

ORDER = {
    "order_id": "order-1",
    "order_number": "TRANS-1-ABC",
    "source_language": "auto",
    "target_language": "en",
    "document_domain": "legal",
    "ocr_quality": "high",
    "files": [{"file_name": "scan.png", "storage_id": "f1", "file_type": "image/png"}],
}


@pytest.fixture
def pipeline_mocks():
    mocks = {
        "get_order": AsyncMock(return_value=ORDER),
        "upsert_translation": AsyncMock(return_value="tr-1"),
        "update_translation_progress": AsyncMock(),
        "record_usage_events": AsyncMock(return_value=1),
        "create_audit_log": AsyncMock(),
        "update_detected_source_language": AsyncMock(return_value=True),
    }
    patches = [patch(f"services.translation_pipeline.{name}", mock) for name, mock in mocks.items()]
    patches.append(patch.object(
        translation_pipeline.storage_adapter, "download_file", AsyncMock(return_value=(b"png", MagicMock())),
    ))
    for p in patches:
        p.start()
    yield mocks
    for p in patches:
        p.stop()


@pytest.mark.asyncio
async def test_run_translation_stores_review_result_and_detected_language(pipeline_mocks):
    with patch.object(SegmentTranslator, "ocr", AsyncMock(return_value="Urkunde Nr. 5")), \
            patch("services.translation_pipeline.translate_text", _fake_translate(detected="de")):
        result = await run_translation("order-1", "scan.png", 0, None, None, ADMIN,
                                       provider=TranslationProvider.GOOGLE)

    assert result["success"] is True
    assert result["translation_id"] == "tr-1"
    assert result["segments_count"] == 1
    first, final = pipeline_mocks["upsert_translation"].call_args_list
    assert first.kwargs["status"] == TranslationStatus.TRANSLATING
    assert first.kwargs["document_domain"] == "legal"
    assert final.kwargs["status"] == TranslationStatus.REVIEW
    assert final.kwargs["progress"] == 100
    pipeline_mocks["update_detected_source_language"].assert_awaited_once_with("order-1", None, "de")


@pytest.mark.asyncio
async def test_run_translation_failure_resets_to_pending(pipeline_mocks):
    failing = AsyncMock(side_effect=TranslationProviderError("OPENROUTER_API_KEY not configured"))
    with patch.object(SegmentTranslator, "ocr", AsyncMock(return_value="Urkunde Nr. 5")), \
            patch("services.translation_pipeline.translate_text", failing):
        with pytest.raises(TranslationFailed, match="OPENROUTER_API_KEY"):
            await run_translation("order-1", "scan.png", 0, None, None, ADMIN)

    pipeline_mocks["update_translation_progress"].assert_awaited_once_with("tr-1", 0, TranslationStatus.PENDING)
    pipeline_mocks["record_usage_events"].assert_awaited_once()
    assert pipeline_mocks["upsert_translation"].await_count == 1


@pytest.mark.asyncio
async def test_run_translation_unknown_file(pipeline_mocks):
    with pytest.raises(OrderFileNotFound):
        await run_translation("order-1", "missing.pdf", 3, None, None, ADMIN)


@pytest.mark.asyncio
async def test_run_translation_renumbers_segments(pipeline_mocks):
    extracted = [
        Segment(id="pdf-ocr-page-2", original_text="Seite zwei", translated_text="Page two",
                page_number=2, order=1, is_edited=True),
        Segment(id="pdf-ocr-page-4", original_text="Seite vier", translated_text="Page four",
                page_number=4, order=3),
    ]
    with patch("services.translation_pipeline.extract_and_translate", AsyncMock(return_value=extracted)):
        result = await run_translation("order-1", "scan.png", 0, None, None, ADMIN,
                                       provider=TranslationProvider.GOOGLE)

    assert result["segments_count"] == 2
    stored = pipeline_mocks["upsert_translation"].call_args_list[-1].kwargs["segments"]
    assert [s.order for s in stored] == [0, 1]
    assert [s.page_number for s in stored] == [2, 4]
    assert not any(s.is_edited for s in stored)
