"""
Order Routes - translation orders placed by signed-in users.
Amounts are always priced server-side from the stored page counts.
Orders become paid only through the PayPal capture in routes/paypal.py.
"""
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel
from middleware import require_auth
from models import CreateOrderRequest
from services.languages import is_supported_language
from services.order_service import (
    create_order, get_user_orders, get_order_by_id,
    update_detected_source_language,
)
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/orders", tags=["orders"])


# ============================================
# MODELS
# ============================================

class DetectedLanguageRequest(BaseModel):
    detected_source_language: str


# ============================================
# ENDPOINTS
# ============================================

@router.post("")
async def place_order(
    body: CreateOrderRequest,
    claims: dict = Depends(require_auth),
):
    if not is_supported_language(body.source_language, allow_auto=True):
        raise HTTPException(status_code=400, detail=f"Unsupported source language: {body.source_language}")
    if not is_supported_language(body.target_language):
        raise HTTPException(status_code=400, detail=f"Unsupported target language: {body.target_language}")

    try:
        order = await create_order(
            clerk_id=claims["sub"],
            files=body.files,
            total_pages=body.total_pages,
            service_type=body.service_type,
            is_rush=body.is_rush,
            document_domain=body.document_domain,
            source_language=body.source_language,
            target_language=body.target_language,
            remarks=body.remarks,
            ocr_quality=body.ocr_quality,
        )
    except ValueError as e:
        status_code = 404 if "not found" in str(e).lower() else 400
        raise HTTPException(status_code=status_code, detail=str(e))

    return {"order_id": order["order_id"], "order": order}


@router.get("")
async def list_my_orders(claims: dict = Depends(require_auth)):
    orders = await get_user_orders(claims["sub"])
    return {"orders": orders, "total": len(orders)}


@router.get("/{order_id}")
async def get_my_order(order_id: str, claims: dict = Depends(require_auth)):
    order = await get_order_by_id(order_id, claims["sub"])
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.post("/{order_id}/detected-language")
async def record_detected_language(
    order_id: str,
    body: DetectedLanguageRequest,
    claims: dict = Depends(require_auth),
):
    try:
        changed = await update_detected_source_language(order_id, claims["sub"], body.detected_source_language)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True, "changed": changed}
