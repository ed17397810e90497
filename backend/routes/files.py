"""
File Routes - order document upload, page counting and download.
"""
from fastapi import APIRouter, HTTPException, Depends, UploadFile, File
from fastapi.responses import Response
from middleware import get_current_db_user
from models import UserRole
from services.order_service import get_order
from services.page_counter import (
    MAX_FILE_SIZE_BYTES, PageCountError, count_pages, is_allowed_type,
)
from services.storage_adapter import (
    storage_adapter, upload_order_file, StorageError, StoredFileNotFound,
)
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/files", tags=["files"])


async def _read_checked(file: UploadFile) -> bytes:
    if not is_allowed_type(file.content_type):
        raise HTTPException(
            status_code=400,
            detail=f"File type {file.content_type} not allowed. Use PDF, JPG, PNG, WEBP, DOCX or XLSX",
        )
    content = await file.read()
    if len(content) > MAX_FILE_SIZE_BYTES:
        raise HTTPException(status_code=400, detail="File too large. Maximum size is 10MB")
    return content


async def _count_or_500(content: bytes, file: UploadFile) -> int:
    try:
        return await count_pages(content, file.content_type, file.filename)
    except PageCountError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/upload")
async def upload_file(
    file: UploadFile = File(...),
    current_user: dict = Depends(get_current_db_user),
):
    """Store a document for a new order and return its descriptor with the billable page count."""
    content = await _read_checked(file)
    page_count = await _count_or_500(content, file)

    try:
        meta = await upload_order_file(
            content=content,
            filename=file.filename,
            content_type=file.content_type,
            uploaded_by=current_user["user_id"],
            page_count=page_count,
        )
    except StorageError as e:
        logger.error(f"Upload failed for {file.filename}: {e}")
        raise HTTPException(status_code=500, detail="Failed to store file")

    return {
        "file_name": file.filename,
        "file_url": meta.url,
        "storage_id": meta.file_id,
        "file_size": len(content),
        "page_count": page_count,
        "file_type": file.content_type,
    }


@router.post("/count-pages")
async def count_file_pages(
    file: UploadFile = File(...),
    current_user: dict = Depends(get_current_db_user),
):
    content = await _read_checked(file)
    page_count = await _count_or_500(content, file)
    return {"file_name": file.filename, "page_count": page_count}


async def _can_access(user: dict, meta) -> bool:
    if user.get("role") == UserRole.ADMIN.value:
        return True
    if meta.uploaded_by == user["user_id"]:
        return True
    order_id = meta.metadata.get("order_id")
    if order_id:
        order = await get_order(order_id)
        return bool(order and order.get("user_id") == user["user_id"])
    return False


@router.get("/{storage_id}")
async def download_file(
    storage_id: str,
    current_user: dict = Depends(get_current_db_user),
):
    try:
        content, meta = await storage_adapter.download_file(storage_id)
    except StoredFileNotFound:
        raise HTTPException(status_code=404, detail="File not found")

    if not await _can_access(current_user, meta):
        raise HTTPException(status_code=403, detail="Not authorized")

    return Response(
        content=content,
        media_type=meta.content_type,
        headers={"Content-Disposition": f'attachment; filename="{meta.filename}"'},
    )
