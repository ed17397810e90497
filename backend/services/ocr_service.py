"""
OCR for images and scanned PDF pages.

Google Document AI is used when a processor is configured (service-account
credentials via google-auth); otherwise the Cloud Vision REST API with
GOOGLE_CLOUD_API_KEY.
"""
import asyncio
import base64
import os
import logging
from dataclasses import dataclass
from typing import Optional

import httpx
import google.auth
from google.auth.transport.requests import Request as GoogleAuthRequest

from models import OcrQuality, UsageEvent, UsageKind, TranslationProvider

logger = logging.getLogger(__name__)

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"
VISION_URL = "https://vision.googleapis.com/v1/images:annotate"
OCR_TIMEOUT_SECONDS = 120.0


class OcrError(Exception):
    """OCR provider call failed or is not configured."""
    pass


@dataclass
class OcrResult:
    text: str
    usage: Optional[UsageEvent] = None


def document_ai_configured() -> bool:
    return bool(os.getenv("GOOGLE_CLOUD_PROJECT_ID") and os.getenv("DOCUMENT_AI_PROCESSOR_ID"))


def _document_ai_endpoint() -> str:
    project_id = os.getenv("GOOGLE_CLOUD_PROJECT_ID")
    location = os.getenv("DOCUMENT_AI_LOCATION", "us")
    processor_id = os.getenv("DOCUMENT_AI_PROCESSOR_ID")
    return (
        f"https://{location}-documentai.googleapis.com/v1/projects/{project_id}"
        f"/locations/{location}/processors/{processor_id}:process"
    )


def _fetch_access_token() -> str:
    """Service-account token from application default credentials (blocking)."""
    credentials, _ = google.auth.default(scopes=[CLOUD_PLATFORM_SCOPE])
    credentials.refresh(GoogleAuthRequest())
    return credentials.token


async def get_access_token() -> str:
    loop = asyncio.get_event_loop()
    try:
        return await loop.run_in_executor(None, _fetch_access_token)
    except Exception as e:
        raise OcrError(f"Google credentials unavailable: {e}") from e


async def ocr_with_document_ai(content: bytes, mime_type: str) -> OcrResult:
    token = await get_access_token()
    body = {
        "rawDocument": {
            "content": base64.b64encode(content).decode("ascii"),
            "mimeType": mime_type,
        }
    }
    async with httpx.AsyncClient() as client:
        response = await client.post(
            _document_ai_endpoint(),
            json=body,
            headers={"Authorization": f"Bearer {token}"},
            timeout=OCR_TIMEOUT_SECONDS,
        )
    if response.status_code != 200:
        logger.error(f"Document AI error {response.status_code}: {response.text[:500]}")
        raise OcrError(f"Document AI error: {response.status_code}")

    document = response.json().get("document") or {}
    text = (document.get("text") or "").strip()
    return OcrResult(
        text=text,
        usage=UsageEvent(provider=TranslationProvider.GOOGLE, kind=UsageKind.OCR, model="document-ai", requests=1),
    )


async def ocr_with_vision(content: bytes, quality: OcrQuality = OcrQuality.HIGH) -> OcrResult:
    api_key = os.getenv("GOOGLE_CLOUD_API_KEY")
    if not api_key:
        raise OcrError("GOOGLE_CLOUD_API_KEY not configured")

    feature = "TEXT_DETECTION" if quality == OcrQuality.LOW else "DOCUMENT_TEXT_DETECTION"
    body = {
        "requests": [{
            "image": {"content": base64.b64encode(content).decode("ascii")},
            "features": [{"type": feature}],
        }]
    }
    async with httpx.AsyncClient() as client:
        response = await client.post(f"{VISION_URL}?key={api_key}", json=body, timeout=OCR_TIMEOUT_SECONDS)
    if response.status_code != 200:
        logger.error(f"Vision API error {response.status_code}: {response.text[:500]}")
        raise OcrError(f"Vision API error: {response.status_code}")

    responses = response.json().get("responses") or [{}]
    annotations = responses[0].get("textAnnotations") or []
    text = annotations[0].get("description", "").strip() if annotations else ""
    return OcrResult(
        text=text,
        usage=UsageEvent(provider=TranslationProvider.GOOGLE, kind=UsageKind.VISION, model=feature.lower(), requests=1),
    )


async def ocr_image(content: bytes, mime_type: str, quality: OcrQuality = OcrQuality.HIGH) -> OcrResult:
    """OCR one image (or a rendered PDF page)."""
    if document_ai_configured():
        return await ocr_with_document_ai(content, mime_type)
    return await ocr_with_vision(content, quality)
