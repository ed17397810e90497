"""
Translation Service - per-file translation records and approved versions.

One translation exists per (order_id, file_name). Approving a translation
snapshots its segments into translation_versions so delivered documents can
be traced back to the exact text that was approved.
"""
import uuid
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, List, Any

from database import database
from models import AuditAction, UserRole, TranslationStatus, Segment
from utils.audit import create_audit_log

logger = logging.getLogger(__name__)


async def get_translation(translation_id: str) -> Optional[Dict]:
    db = database.get_db()
    return await db.translations.find_one({"translation_id": translation_id}, {"_id": 0})


async def get_translation_by_file(order_id: str, file_name: str) -> Optional[Dict]:
    db = database.get_db()
    return await db.translations.find_one({"order_id": order_id, "file_name": file_name}, {"_id": 0})


async def get_translations_by_order(order_id: str) -> List[Dict]:
    db = database.get_db()
    return await db.translations.find({"order_id": order_id}, {"_id": 0}).sort("file_index", 1).to_list(length=100)


async def upsert_translation(
    order_id: str,
    file_name: str,
    file_index: int,
    segments: List[Segment],
    status: TranslationStatus,
    progress: int,
    source_language: str,
    target_language: str,
    translation_provider: Optional[str] = None,
    document_domain: Optional[str] = None,
    open_router_model: Optional[str] = None,
    ocr_quality: Optional[str] = None,
) -> str:
    """
    Create or replace the translation for one order file.
    Optional provider fields are only written when given. Returns translation_id.
    """
    db = database.get_db()
    now = datetime.now(timezone.utc)
    segment_docs = [s.model_dump() if isinstance(s, Segment) else s for s in segments]

    optional_fields = {
        "translation_provider": translation_provider,
        "document_domain": document_domain,
        "open_router_model": open_router_model,
        "ocr_quality": ocr_quality,
    }
    optional_fields = {k: v for k, v in optional_fields.items() if v is not None}

    existing = await get_translation_by_file(order_id, file_name)
    if existing:
        await db.translations.update_one(
            {"translation_id": existing["translation_id"]},
            {"$set": {
                "segments": segment_docs,
                "status": status.value,
                "progress": _clamp_progress(progress),
                "source_language": source_language,
                "target_language": target_language,
                "updated_at": now,
                **optional_fields,
            }},
        )
        return existing["translation_id"]

    translation_id = str(uuid.uuid4())
    await db.translations.insert_one({
        "translation_id": translation_id,
        "order_id": order_id,
        "file_name": file_name,
        "file_index": file_index,
        "segments": segment_docs,
        "status": status.value,
        "progress": _clamp_progress(progress),
        "source_language": source_language,
        "target_language": target_language,
        "translation_provider": None,
        "document_domain": None,
        "open_router_model": None,
        "ocr_quality": None,
        "approved_at": None,
        "latest_version_id": None,
        "created_at": now,
        "updated_at": now,
        **optional_fields,
    })
    logger.info(f"Translation created for order {order_id} file {file_name}")
    return translation_id


async def update_translation_segment(translation_id: str, segment_id: str, translated_text: str) -> Dict:
    """
    Edit one segment. Unchanged text is not flagged as edited.
    Editing an approved translation sends it back to review until it is approved again.
    """
    db = database.get_db()
    translation = await get_translation(translation_id)
    if not translation:
        raise ValueError("Translation not found")

    segments = translation.get("segments") or []
    segment = next((s for s in segments if s.get("id") == segment_id), None)
    if segment is None:
        raise ValueError("Segment not found")

    if segment.get("translated_text") == translated_text:
        return {"success": True, "changed": False}

    now = datetime.now(timezone.utc)
    segment["translated_text"] = translated_text
    segment["is_edited"] = True
    segment["edited_at"] = now

    update = {"$set": {"segments": segments, "updated_at": now}}
    if translation.get("status") == TranslationStatus.APPROVED.value:
        update["$set"]["status"] = TranslationStatus.REVIEW.value
        update["$unset"] = {"approved_at": ""}
        logger.info(f"Translation {translation_id} edited after approval; back to review")

    await db.translations.update_one({"translation_id": translation_id}, update)
    return {"success": True, "changed": True}


async def approve_translation(translation_id: str, approved_by: Dict) -> Dict:
    """
    Mark a translation approved and snapshot its segments as the next version.
    Returns {"version_id", "version_number"}.
    """
    db = database.get_db()
    translation = await get_translation(translation_id)
    if not translation:
        raise ValueError("Translation not found")
    if not translation.get("segments"):
        raise ValueError("Cannot approve a translation without segments")

    latest = await db.translation_versions.find_one(
        {"translation_id": translation_id},
        {"_id": 0, "version_number": 1},
        sort=[("version_number", -1)],
    )
    version_number = (latest["version_number"] + 1) if latest else 1
    now = datetime.now(timezone.utc)
    version_id = str(uuid.uuid4())

    await db.translation_versions.insert_one({
        "version_id": version_id,
        "translation_id": translation_id,
        "order_id": translation["order_id"],
        "file_name": translation["file_name"],
        "version_number": version_number,
        "segments": translation["segments"],
        "approved_by": approved_by.get("user_id"),
        "approved_at": now,
        "created_at": now,
    })
    await db.translations.update_one(
        {"translation_id": translation_id},
        {"$set": {
            "status": TranslationStatus.APPROVED.value,
            "approved_at": now,
            "latest_version_id": version_id,
            "updated_at": now,
        }},
    )
    await create_audit_log(
        action=AuditAction.TRANSLATION_APPROVED,
        actor_role=UserRole.ADMIN,
        actor_id=approved_by.get("user_id"),
        resource_type="order",
        resource_id=translation["order_id"],
        metadata={
            "translation_id": translation_id,
            "file_name": translation["file_name"],
            "version_number": version_number,
        },
    )
    logger.info(f"Translation {translation_id} approved as version {version_number}")
    return {"version_id": version_id, "version_number": version_number}


async def get_translation_versions(translation_id: str) -> List[Dict]:
    db = database.get_db()
    return await db.translation_versions.find(
        {"translation_id": translation_id}, {"_id": 0}
    ).sort("version_number", -1).to_list(length=100)


def _clamp_progress(progress: Any) -> int:
    return max(0, min(100, int(progress)))


async def update_translation_progress(
    translation_id: str,
    progress: int,
    status: Optional[TranslationStatus] = None,
) -> None:
    db = database.get_db()
    update = {"progress": _clamp_progress(progress), "updated_at": datetime.now(timezone.utc)}
    if status is not None:
        update["status"] = status.value
    await db.translations.update_one({"translation_id": translation_id}, {"$set": update})
