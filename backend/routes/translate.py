"""
Admin Translate Route - run OCR and machine translation for one order file.
"""
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, Field
from typing import Optional
from middleware import admin_route_guard
from models import TranslationProvider, DocumentDomain, OcrQuality
from services.languages import is_supported_language
from services.translation_pipeline import (
    run_translation, OrderFileNotFound, UnsupportedFileType, TranslationFailed,
)
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin/translate", tags=["admin-translate"])


class TranslateRequest(BaseModel):
    order_id: str
    file_name: str
    file_index: int = Field(default=0, ge=0)
    source_language: Optional[str] = None
    target_language: Optional[str] = None
    provider: Optional[TranslationProvider] = None
    document_domain: Optional[DocumentDomain] = None
    open_router_model: Optional[str] = None
    ocr_quality: Optional[OcrQuality] = None


@router.post("")
async def translate_file(
    body: TranslateRequest,
    current_user: dict = Depends(admin_route_guard),
):
    """
    Translate one file of an order. The result is stored in review status.
    Languages default to the order's own when omitted.
    """
    if body.source_language and not is_supported_language(body.source_language, allow_auto=True):
        raise HTTPException(status_code=400, detail=f"Unsupported source language: {body.source_language}")
    if body.target_language and not is_supported_language(body.target_language):
        raise HTTPException(status_code=400, detail=f"Unsupported target language: {body.target_language}")

    try:
        return await run_translation(
            order_id=body.order_id,
            file_name=body.file_name,
            file_index=body.file_index,
            source_language=body.source_language,
            target_language=body.target_language,
            admin=current_user,
            provider=body.provider,
            document_domain=body.document_domain,
            open_router_model=body.open_router_model,
            ocr_quality=body.ocr_quality,
        )
    except OrderFileNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UnsupportedFileType as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TranslationFailed as e:
        raise HTTPException(
            status_code=500,
            detail={"error": "Translation failed", "details": str(e)},
        )
