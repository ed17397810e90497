"""
Admin Translation Routes - review and edit machine translations per order file.
"""
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, Field
from typing import Optional, List
from middleware import admin_route_guard
from models import Segment, TranslationStatus, TranslationProvider, DocumentDomain, OcrQuality
from services.translation_service import (
    get_translation, get_translation_by_file, get_translations_by_order,
    upsert_translation, update_translation_segment, approve_translation,
    get_translation_versions, update_translation_progress,
)
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin/translations", tags=["admin-translations"])


# ============================================
# MODELS
# ============================================

class UpsertTranslationRequest(BaseModel):
    order_id: str
    file_name: str
    file_index: int = Field(ge=0)
    segments: List[Segment]
    status: TranslationStatus
    progress: int = 0
    source_language: str
    target_language: str
    translation_provider: Optional[TranslationProvider] = None
    document_domain: Optional[DocumentDomain] = None
    open_router_model: Optional[str] = None
    ocr_quality: Optional[OcrQuality] = None


class SegmentEditRequest(BaseModel):
    translated_text: str


class ProgressRequest(BaseModel):
    progress: int
    status: Optional[TranslationStatus] = None


# ============================================
# ENDPOINTS
# ============================================

@router.get("/order/{order_id}")
async def list_order_translations(
    order_id: str,
    current_user: dict = Depends(admin_route_guard),
):
    translations = await get_translations_by_order(order_id)
    return {"translations": translations}


@router.get("/order/{order_id}/file/{file_name}")
async def get_file_translation(
    order_id: str,
    file_name: str,
    current_user: dict = Depends(admin_route_guard),
):
    translation = await get_translation_by_file(order_id, file_name)
    if not translation:
        raise HTTPException(status_code=404, detail="Translation not found")
    return translation


@router.get("/{translation_id}")
async def get_translation_detail(
    translation_id: str,
    current_user: dict = Depends(admin_route_guard),
):
    translation = await get_translation(translation_id)
    if not translation:
        raise HTTPException(status_code=404, detail="Translation not found")
    return translation


@router.put("")
async def save_translation(
    body: UpsertTranslationRequest,
    current_user: dict = Depends(admin_route_guard),
):
    """Create or replace the translation for one order file."""
    translation_id = await upsert_translation(
        order_id=body.order_id,
        file_name=body.file_name,
        file_index=body.file_index,
        segments=body.segments,
        status=body.status,
        progress=body.progress,
        source_language=body.source_language,
        target_language=body.target_language,
        translation_provider=body.translation_provider.value if body.translation_provider else None,
        document_domain=body.document_domain.value if body.document_domain else None,
        open_router_model=body.open_router_model,
        ocr_quality=body.ocr_quality.value if body.ocr_quality else None,
    )
    return {"translation_id": translation_id}


@router.patch("/{translation_id}/segments/{segment_id}")
async def edit_segment(
    translation_id: str,
    segment_id: str,
    body: SegmentEditRequest,
    current_user: dict = Depends(admin_route_guard),
):
    try:
        return await update_translation_segment(translation_id, segment_id, body.translated_text)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{translation_id}/approve")
async def approve(
    translation_id: str,
    current_user: dict = Depends(admin_route_guard),
):
    """Approve the translation and snapshot it as a new version."""
    try:
        result = await approve_translation(translation_id, current_user)
    except ValueError as e:
        status_code = 404 if "not found" in str(e).lower() else 400
        raise HTTPException(status_code=status_code, detail=str(e))
    return {"success": True, **result}


@router.get("/{translation_id}/versions")
async def list_versions(
    translation_id: str,
    current_user: dict = Depends(admin_route_guard),
):
    versions = await get_translation_versions(translation_id)
    return {"versions": versions}


@router.patch("/{translation_id}/progress")
async def set_progress(
    translation_id: str,
    body: ProgressRequest,
    current_user: dict = Depends(admin_route_guard),
):
    if not await get_translation(translation_id):
        raise HTTPException(status_code=404, detail="Translation not found")
    await update_translation_progress(translation_id, body.progress, body.status)
    return {"success": True}
