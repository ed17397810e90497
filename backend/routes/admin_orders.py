"""
Admin Orders Routes
Order review, status changes, custom quotes and delivery of translated files.
"""
from fastapi import APIRouter, HTTPException, Depends, UploadFile, File, Form
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime, timezone
from middleware import admin_route_guard
from models import TranslatedFile, CreateOrderRequest
from services.languages import is_supported_language
from services.order_workflow import OrderStatus, get_allowed_transitions, can_receive_translated_files
from services.order_service import (
    create_order, get_all_orders, get_order_with_files, get_order, update_order_status,
    set_quote_amount, upload_translated_files, delete_translated_file,
)
from services.page_counter import (
    MAX_FILE_SIZE_BYTES, PageCountError, count_pages, is_allowed_type,
)
from services.storage_adapter import upload_order_file, StorageError
from services.user_service import get_user_by_id
from utils.audit import get_audit_logs_for_resource
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin/orders", tags=["admin-orders"])


# ============================================
# MODELS
# ============================================

class StatusUpdateRequest(BaseModel):
    status: OrderStatus


class QuoteRequest(BaseModel):
    amount: float = Field(gt=0)


class AdminCreateOrderRequest(CreateOrderRequest):
    """Order placed by an admin for a client, identified by user_id or clerk_id."""
    user_id: Optional[str] = None
    clerk_id: Optional[str] = None


def _order_error(e: ValueError) -> HTTPException:
    status_code = 404 if "not found" in str(e).lower() else 400
    return HTTPException(status_code=status_code, detail=str(e))


# ============================================
# QUERY ENDPOINTS
# ============================================

@router.get("")
async def list_orders(
    status: Optional[OrderStatus] = None,
    limit: int = 500,
    current_user: dict = Depends(admin_route_guard),
):
    """All orders, newest first, with customer contact details."""
    orders = await get_all_orders(status=status.value if status else None, limit=limit)
    return {"orders": orders, "total": len(orders)}


@router.get("/{order_id}")
async def get_order_detail(
    order_id: str,
    current_user: dict = Depends(admin_route_guard),
):
    order = await get_order_with_files(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.get("/{order_id}/allowed-transitions")
async def get_order_transitions(
    order_id: str,
    current_user: dict = Depends(admin_route_guard),
):
    order = await get_order(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    current = OrderStatus(order["status"])
    return {
        "current_status": current.value,
        "allowed_transitions": [s.value for s in get_allowed_transitions(current)],
    }


@router.get("/{order_id}/timeline")
async def get_order_timeline(
    order_id: str,
    limit: int = 50,
    current_user: dict = Depends(admin_route_guard),
):
    """Audit trail for one order, newest first."""
    order = await get_order(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    events = await get_audit_logs_for_resource("order", order_id, limit=limit)
    return {"order_id": order_id, "events": events}


# ============================================
# ADMIN ACTIONS
# ============================================

@router.post("")
async def create_order_for_client(
    body: AdminCreateOrderRequest,
    current_user: dict = Depends(admin_route_guard),
):
    """Place an order on behalf of a client (e.g. one created via POST /api/admin/users)."""
    clerk_id = body.clerk_id
    if not clerk_id:
        if not body.user_id:
            raise HTTPException(status_code=400, detail="Provide the client's user_id or clerk_id")
        client = await get_user_by_id(body.user_id)
        if not client:
            raise HTTPException(status_code=404, detail="User not found")
        clerk_id = client["clerk_id"]

    if not is_supported_language(body.source_language, allow_auto=True):
        raise HTTPException(status_code=400, detail=f"Unsupported source language: {body.source_language}")
    if not is_supported_language(body.target_language):
        raise HTTPException(status_code=400, detail=f"Unsupported target language: {body.target_language}")

    try:
        order = await create_order(
            clerk_id=clerk_id,
            files=body.files,
            total_pages=body.total_pages,
            service_type=body.service_type,
            is_rush=body.is_rush,
            document_domain=body.document_domain,
            source_language=body.source_language,
            target_language=body.target_language,
            remarks=body.remarks,
            ocr_quality=body.ocr_quality,
            created_by=current_user,
        )
    except ValueError as e:
        raise _order_error(e)

    return {"order_id": order["order_id"], "order": order}


@router.patch("/{order_id}/status")
async def change_order_status(
    order_id: str,
    body: StatusUpdateRequest,
    current_user: dict = Depends(admin_route_guard),
):
    try:
        order = await update_order_status(order_id, body.status, current_user)
    except ValueError as e:
        raise _order_error(e)
    return {"success": True, "status": order["status"]}


@router.post("/{order_id}/quote")
async def quote_order(
    order_id: str,
    body: QuoteRequest,
    current_user: dict = Depends(admin_route_guard),
):
    """Price a custom order. Moves it to pending and emails the customer."""
    try:
        order = await set_quote_amount(order_id, body.amount, current_user)
    except ValueError as e:
        raise _order_error(e)
    return {"success": True, "amount": order["amount"], "status": order["status"]}


@router.post("/{order_id}/translated-files")
async def add_translated_files(
    order_id: str,
    files: List[UploadFile] = File(...),
    original_file_names: List[str] = Form(...),
    current_user: dict = Depends(admin_route_guard),
):
    """
    Deliver finished translations.
    original_file_names is matched to files by position.
    """
    if len(original_file_names) != len(files):
        raise HTTPException(
            status_code=400,
            detail="Provide one original_file_names entry per uploaded file",
        )

    order = await get_order(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if not can_receive_translated_files(OrderStatus(order["status"])):
        raise HTTPException(
            status_code=400,
            detail=f"Translated files cannot be added to an order in status {order['status']}",
        )

    checked = []
    for upload, original_name in zip(files, original_file_names):
        if not is_allowed_type(upload.content_type):
            raise HTTPException(status_code=400, detail=f"File type {upload.content_type} not allowed")
        content = await upload.read()
        if len(content) > MAX_FILE_SIZE_BYTES:
            raise HTTPException(status_code=400, detail="File too large. Maximum size is 10MB")
        checked.append((upload, original_name, content))

    translated = []
    for upload, original_name, content in checked:
        try:
            page_count = await count_pages(content, upload.content_type, upload.filename)
        except PageCountError as e:
            logger.warning(f"Page count unavailable for translated file {upload.filename}: {e}")
            page_count = 0

        try:
            meta = await upload_order_file(
                content=content,
                filename=upload.filename,
                content_type=upload.content_type,
                uploaded_by=current_user["user_id"],
                order_id=order_id,
                source="translated_upload",
                page_count=page_count,
            )
        except StorageError as e:
            logger.error(f"Failed to store translated file {upload.filename}: {e}")
            raise HTTPException(status_code=500, detail="Failed to store file")

        translated.append(TranslatedFile(
            file_name=upload.filename,
            file_url=meta.url,
            storage_id=meta.file_id,
            file_size=len(content),
            page_count=page_count,
            file_type=upload.content_type,
            original_file_name=original_name,
            translated_at=datetime.now(timezone.utc),
        ))

    try:
        order = await upload_translated_files(order_id, translated, current_user)
    except ValueError as e:
        raise _order_error(e)

    return {
        "success": True,
        "status": order["status"],
        "translated_files": order.get("translated_files", []),
    }


@router.delete("/{order_id}/translated-files/{file_name}")
async def remove_translated_file(
    order_id: str,
    file_name: str,
    current_user: dict = Depends(admin_route_guard),
):
    try:
        order = await delete_translated_file(order_id, file_name, current_user)
    except ValueError as e:
        raise _order_error(e)
    return {"success": True, "translated_files": order.get("translated_files", [])}
