"""
Admin Document Routes - build Word/PDF deliverables from reviewed translations.
Generated files are stored and attached to the order as translated files.
"""
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, Field
from typing import List, Literal
from middleware import admin_route_guard
from services.document_generator import (
    generate_translated_document, generate_combined_document, DocumentSourceNotFound,
)
from services.storage_adapter import StorageError
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin/documents", tags=["admin-documents"])


# ============================================
# MODELS
# ============================================

class TranslatedDocumentRequest(BaseModel):
    translation_id: str
    order_id: str
    file_name: str
    format: Literal["docx", "pdf"] = "docx"


class CombinedDocumentRequest(BaseModel):
    order_id: str
    file_names: List[str] = Field(min_length=1)
    format: Literal["docx", "pdf"] = "docx"


# ============================================
# ENDPOINTS
# ============================================

@router.post("/translated")
async def generate_translated(
    body: TranslatedDocumentRequest,
    current_user: dict = Depends(admin_route_guard),
):
    try:
        return await generate_translated_document(
            order_id=body.order_id,
            translation_id=body.translation_id,
            file_name=body.file_name,
            fmt=body.format,
            admin=current_user,
        )
    except DocumentSourceNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        # Order not in a deliverable state
        raise HTTPException(status_code=400, detail=str(e))
    except StorageError as e:
        logger.error(f"Failed to store translated document for order {body.order_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to generate document")


@router.post("/combined")
async def generate_combined(
    body: CombinedDocumentRequest,
    current_user: dict = Depends(admin_route_guard),
):
    """Merge approved translations of the listed files into one document, in list order."""
    try:
        return await generate_combined_document(
            order_id=body.order_id,
            file_names=body.file_names,
            fmt=body.format,
            admin=current_user,
        )
    except DocumentSourceNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageError as e:
        logger.error(f"Failed to store combined document for order {body.order_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to generate combined document")
