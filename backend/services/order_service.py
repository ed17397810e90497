"""
Order Service - Business Logic Layer
Handles translation orders with server-side pricing and state machine enforcement.

Ownership is checked by Clerk id on every user-facing read and write;
admin operations take the admin user record for the audit trail.
"""
import random
import uuid
import string
import logging
from datetime import datetime, timezone, timedelta
from typing import Optional, Dict, List, Any

from database import database
from models import (
    AuditAction, UserRole, EmailKind, ServiceType, DocumentDomain, OcrQuality,
    OrderFile, TranslatedFile,
)
from services.order_workflow import (
    OrderStatus, REMINDER_ELIGIBLE_STATES, is_valid_transition, is_terminal_state,
    can_receive_translated_files,
)
from services.pricing import get_pricing, calculate_amount
from services.storage_adapter import storage_adapter, file_url, StorageError
from services.email_service import email_service
from utils.audit import create_audit_log

logger = logging.getLogger(__name__)

RUSH_DELIVERY_DAYS = 1
STANDARD_DELIVERY_DAYS = 7

_BASE36_UPPER = string.digits + string.ascii_uppercase


def generate_order_number() -> str:
    """Human-facing order number: TRANS-{epoch ms}-{9 base36 chars}"""
    ms = int(datetime.now(timezone.utc).timestamp() * 1000)
    suffix = "".join(random.choices(_BASE36_UPPER, k=9))
    return f"TRANS-{ms}-{suffix}"


def estimate_delivery_date(is_rush: bool, now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now + timedelta(days=RUSH_DELIVERY_DAYS if is_rush else STANDARD_DELIVERY_DAYS)


def _order_actor(admin: Optional[Dict]) -> Dict[str, Any]:
    if not admin:
        return {"actor_role": None, "actor_id": None}
    return {"actor_role": UserRole.ADMIN, "actor_id": admin.get("user_id")}


async def _verified_files(files: List[OrderFile], uploader_ids: List[str]) -> List[OrderFile]:
    """
    Re-read each file from storage. Page counts, sizes and types come from the
    upload record, never from the order request.
    """
    verified = []
    for f in files:
        meta = await storage_adapter.get_file_metadata(f.storage_id) if f.storage_id else None
        if not meta or meta.uploaded_by not in uploader_ids:
            raise ValueError(f"Uploaded file not found: {f.file_name}")
        stored_pages = meta.metadata.get("page_count")
        if stored_pages is None:
            raise ValueError(f"Page count unavailable for {f.file_name}; upload the file again")
        verified.append(f.model_copy(update={
            "file_url": meta.url,
            "file_size": meta.size_bytes,
            "file_type": meta.content_type,
            "page_count": int(stored_pages),
        }))
    return verified


async def create_order(
    clerk_id: str,
    files: List[OrderFile],
    total_pages: int,
    service_type: ServiceType,
    is_rush: bool,
    document_domain: DocumentDomain,
    source_language: str,
    target_language: str,
    remarks: Optional[str] = None,
    ocr_quality: OcrQuality = OcrQuality.HIGH,
    created_by: Optional[Dict] = None,
) -> Dict:
    """
    Create an order for the user with clerk_id (the signed-in customer, or a
    client when created_by is the admin placing it for them).
    Custom orders wait for an admin quote; everything else is priced from settings.
    Returns the created order document.
    """
    db = database.get_db()

    user = await db.users.find_one({"clerk_id": clerk_id}, {"_id": 0})
    if not user:
        raise ValueError("User not found")

    uploader_ids = [user["user_id"]]
    if created_by:
        uploader_ids.append(created_by.get("user_id"))
    files = await _verified_files(files, uploader_ids)
    counted_pages = sum(f.page_count for f in files)
    if total_pages != counted_pages:
        raise ValueError(f"total_pages ({total_pages}) does not match the uploaded files ({counted_pages})")

    is_custom = service_type == ServiceType.CUSTOM
    pricing = await get_pricing()
    amount = calculate_amount(service_type, counted_pages, is_rush, pricing)
    now = datetime.now(timezone.utc)

    order_doc = {
        "order_id": str(uuid.uuid4()),
        "user_id": user["user_id"],
        "clerk_id": clerk_id,
        "order_number": generate_order_number(),
        "files": [f.model_dump() for f in files],
        "translated_files": [],
        "total_pages": counted_pages,
        "amount": amount,
        "quote_amount": None,
        "service_type": service_type.value,
        "is_rush": is_rush,
        "document_domain": document_domain.value,
        "remarks": remarks,
        "source_language": source_language,
        "detected_source_language": None,
        "target_language": target_language,
        "ocr_quality": ocr_quality.value,
        "status": (OrderStatus.QUOTE_PENDING if is_custom else OrderStatus.PENDING).value,
        "payment_id": None,
        "payment_status": None,
        "estimated_delivery_date": estimate_delivery_date(is_rush, now),

        # Payment reminders
        "reminder_count": 0,
        "last_reminder_sent_at": None,
        "final_notice_sent_at": None,

        "created_at": now,
        "updated_at": now,
    }

    await db.orders.insert_one(order_doc)
    order_doc.pop("_id", None)

    actor = _order_actor(created_by) if created_by else {"actor_role": UserRole.USER, "actor_id": user["user_id"]}
    await create_audit_log(
        action=AuditAction.ORDER_CREATED,
        **actor,
        resource_type="order",
        resource_id=order_doc["order_id"],
        metadata={
            "order_number": order_doc["order_number"],
            "service_type": order_doc["service_type"],
            "amount": amount,
            "total_pages": counted_pages,
        },
    )
    logger.info(f"Order created: {order_doc['order_number']} ({order_doc['status']})")

    if not is_custom:
        try:
            await email_service.send_order_email(EmailKind.ORDER_CREATED, order_doc, user["email"])
        except Exception as e:
            logger.error(f"Order created email failed for {order_doc['order_number']}: {e}")

    return order_doc


async def get_user_orders(clerk_id: str) -> List[Dict]:
    db = database.get_db()
    return await db.orders.find({"clerk_id": clerk_id}, {"_id": 0}).sort("created_at", -1).to_list(length=500)


async def get_order_by_id(order_id: str, clerk_id: str) -> Optional[Dict]:
    """Order owned by clerk_id, else None (other users' orders are indistinguishable from missing)."""
    db = database.get_db()
    return await db.orders.find_one({"order_id": order_id, "clerk_id": clerk_id}, {"_id": 0})


async def get_order(order_id: str) -> Optional[Dict]:
    db = database.get_db()
    return await db.orders.find_one({"order_id": order_id}, {"_id": 0})


async def update_order_payment(
    order_id: str,
    clerk_id: str,
    payment_id: str,
    payment_status: str,
) -> Dict:
    """Record a captured payment. Only the owner's pending order can be paid."""
    db = database.get_db()
    order = await get_order_by_id(order_id, clerk_id)
    if not order:
        raise ValueError("Order not found")

    current = OrderStatus(order["status"])
    if current == OrderStatus.PAID and order.get("payment_id") == payment_id:
        return order
    if not is_valid_transition(current, OrderStatus.PAID):
        raise ValueError(f"Order cannot be paid in status {current.value}")

    now = datetime.now(timezone.utc)
    await db.orders.update_one(
        {"order_id": order_id},
        {"$set": {
            "status": OrderStatus.PAID.value,
            "payment_id": payment_id,
            "payment_status": payment_status,
            "updated_at": now,
        }},
    )
    await create_audit_log(
        action=AuditAction.ORDER_PAID,
        actor_role=UserRole.USER,
        actor_id=order.get("user_id"),
        resource_type="order",
        resource_id=order_id,
        before_state={"status": current.value},
        after_state={"status": OrderStatus.PAID.value},
        metadata={"payment_id": payment_id, "payment_status": payment_status},
    )
    logger.info(f"Order {order['order_number']} paid ({payment_id})")
    order.update(status=OrderStatus.PAID.value, payment_id=payment_id, payment_status=payment_status, updated_at=now)
    return order


async def update_detected_source_language(order_id: str, clerk_id: Optional[str], detected: str) -> bool:
    """
    Store the language detected during translation.
    Only auto-detect orders are touched. Returns True when the order changed.
    """
    db = database.get_db()
    query = {"order_id": order_id}
    if clerk_id:
        query["clerk_id"] = clerk_id
    order = await db.orders.find_one(query, {"_id": 0})
    if not order:
        raise ValueError("Order not found")
    if order.get("source_language") != "auto" or not detected:
        return False
    if order.get("detected_source_language") == detected:
        return False

    await db.orders.update_one(
        {"order_id": order_id},
        {"$set": {"detected_source_language": detected, "updated_at": datetime.now(timezone.utc)}},
    )
    return True


# ============================================================================
# ADMIN OPERATIONS
# ============================================================================

async def get_all_orders(status: Optional[str] = None, limit: int = 500) -> List[Dict]:
    """All orders newest first, enriched with the customer's contact details."""
    db = database.get_db()
    query = {"status": status} if status else {}
    orders = await db.orders.find(query, {"_id": 0}).sort("created_at", -1).to_list(length=limit)

    user_ids = list({o["user_id"] for o in orders if o.get("user_id")})
    users = await db.users.find({"user_id": {"$in": user_ids}}, {"_id": 0}).to_list(length=len(user_ids) or 1)
    users_by_id = {u["user_id"]: u for u in users}

    for order in orders:
        user = users_by_id.get(order.get("user_id"))
        order["user_email"] = user.get("email") if user else "Unknown"
        order["user_name"] = user.get("name") if user else None
        order["user_telephone"] = user.get("telephone") if user else None
    return orders


async def get_order_with_files(order_id: str) -> Optional[Dict]:
    """Order plus resolved download URLs for uploaded and translated files."""
    order = await get_order(order_id)
    if not order:
        return None

    for key in ("files", "translated_files"):
        for entry in order.get(key) or []:
            if entry.get("storage_id"):
                entry["file_url"] = file_url(entry["storage_id"])
    return order


async def update_order_status(order_id: str, new_status: OrderStatus, admin: Optional[Dict] = None) -> Dict:
    """
    Admin status change, validated against the workflow table.
    Setting the current status again is a no-op.
    """
    db = database.get_db()
    order = await get_order(order_id)
    if not order:
        raise ValueError("Order not found")

    current = OrderStatus(order["status"])
    if current == new_status:
        return order
    if is_terminal_state(current):
        raise ValueError(f"Order is {current.value} and can no longer change status")
    if not is_valid_transition(current, new_status):
        raise ValueError(f"Invalid transition: {current.value} -> {new_status.value}")

    now = datetime.now(timezone.utc)
    await db.orders.update_one(
        {"order_id": order_id},
        {"$set": {"status": new_status.value, "updated_at": now}},
    )
    await create_audit_log(
        action=AuditAction.ORDER_STATUS_CHANGED,
        resource_type="order",
        resource_id=order_id,
        before_state={"status": current.value},
        after_state={"status": new_status.value},
        **_order_actor(admin),
    )
    logger.info(f"Order {order['order_number']} transitioned: {current.value} -> {new_status.value}")
    order.update(status=new_status.value, updated_at=now)
    return order


async def set_quote_amount(order_id: str, amount: float, admin: Optional[Dict] = None) -> Dict:
    """Price a custom order and release it for payment."""
    db = database.get_db()
    order = await get_order(order_id)
    if not order:
        raise ValueError("Order not found")
    if order.get("service_type") != ServiceType.CUSTOM.value:
        raise ValueError("Quotes can only be set on custom orders")
    if amount is None or amount <= 0:
        raise ValueError("Quote amount must be greater than zero")

    current = OrderStatus(order["status"])
    update = {"amount": amount, "quote_amount": amount, "updated_at": datetime.now(timezone.utc)}
    if current == OrderStatus.QUOTE_PENDING:
        update["status"] = OrderStatus.PENDING.value
    elif current != OrderStatus.PENDING:
        raise ValueError(f"Cannot quote an order in status {current.value}")

    await db.orders.update_one({"order_id": order_id}, {"$set": update})
    await create_audit_log(
        action=AuditAction.ORDER_QUOTE_SET,
        resource_type="order",
        resource_id=order_id,
        before_state={"status": current.value, "amount": order.get("amount")},
        after_state={"status": update.get("status", current.value), "amount": amount},
        **_order_actor(admin),
    )
    order.update(update)

    user = await db.users.find_one({"user_id": order.get("user_id")}, {"_id": 0})
    if user and user.get("email"):
        try:
            await email_service.send_order_email(EmailKind.QUOTE_READY, order, user["email"])
        except Exception as e:
            logger.error(f"Quote ready email failed for {order['order_number']}: {e}")
    else:
        logger.warning(f"No email for order {order['order_number']}; quote email skipped")

    return order


async def upload_translated_files(
    order_id: str,
    files: List[TranslatedFile],
    admin: Optional[Dict] = None,
) -> Dict:
    """
    Attach delivered translations to a paid order and mark it completed.
    """
    db = database.get_db()
    order = await get_order(order_id)
    if not order:
        raise ValueError("Order not found")

    current = OrderStatus(order["status"])
    if not can_receive_translated_files(current):
        raise ValueError(f"Translated files cannot be added to an order in status {current.value}")

    now = datetime.now(timezone.utc)
    entries = []
    for f in files:
        entry = f.model_dump()
        entry["translated_at"] = entry.get("translated_at") or now
        entries.append(entry)

    await db.orders.update_one(
        {"order_id": order_id},
        {
            "$push": {"translated_files": {"$each": entries}},
            "$set": {"status": OrderStatus.COMPLETED.value, "updated_at": now},
        },
    )
    await create_audit_log(
        action=AuditAction.TRANSLATED_FILES_UPLOADED,
        resource_type="order",
        resource_id=order_id,
        before_state={"status": current.value},
        after_state={"status": OrderStatus.COMPLETED.value},
        metadata={"files": [e["file_name"] for e in entries]},
        **_order_actor(admin),
    )
    logger.info(f"{len(entries)} translated file(s) added to {order['order_number']}")

    order["translated_files"] = (order.get("translated_files") or []) + entries
    order.update(status=OrderStatus.COMPLETED.value, updated_at=now)
    return order


async def delete_translated_file(order_id: str, file_name: str, admin: Optional[Dict] = None) -> Dict:
    """Remove a delivered file. The order entry goes even if the stored blob cannot be deleted."""
    db = database.get_db()
    order = await get_order(order_id)
    if not order:
        raise ValueError("Order not found")

    translated = order.get("translated_files") or []
    target = next((f for f in translated if f.get("file_name") == file_name), None)
    if not target:
        raise ValueError("Translated file not found")

    if target.get("storage_id"):
        try:
            await storage_adapter.delete_file(target["storage_id"])
        except StorageError as e:
            logger.warning(f"Stored file {target['storage_id']} not deleted: {e}")

    await db.orders.update_one(
        {"order_id": order_id},
        {
            "$pull": {"translated_files": {"file_name": file_name}},
            "$set": {"updated_at": datetime.now(timezone.utc)},
        },
    )
    await create_audit_log(
        action=AuditAction.TRANSLATED_FILE_DELETED,
        resource_type="order",
        resource_id=order_id,
        metadata={"file_name": file_name, "storage_id": target.get("storage_id")},
        **_order_actor(admin),
    )
    order["translated_files"] = [f for f in translated if f.get("file_name") != file_name]
    return order


# ============================================================================
# PAYMENT REMINDER BOOKKEEPING
# ============================================================================

async def update_order_reminder(order_id: str, reminder_count: int) -> None:
    db = database.get_db()
    now = datetime.now(timezone.utc)
    await db.orders.update_one(
        {"order_id": order_id},
        {"$set": {"reminder_count": reminder_count, "last_reminder_sent_at": now, "updated_at": now}},
    )


async def mark_final_notice_sent(order_id: str) -> None:
    db = database.get_db()
    now = datetime.now(timezone.utc)
    await db.orders.update_one(
        {"order_id": order_id},
        {"$set": {"final_notice_sent_at": now, "updated_at": now}},
    )


async def get_pending_orders_for_reminders(now: datetime, min_interval: timedelta) -> List[Dict]:
    """
    Pending orders due for a reminder or final notice, with the customer's email and name.
    Due when at least min_interval has passed since the last reminder (or creation).
    """
    db = database.get_db()
    cursor = db.orders.find(
        {
            "status": {"$in": sorted(s.value for s in REMINDER_ELIGIBLE_STATES)},
            "final_notice_sent_at": None,
            "reminder_count": {"$lte": 3},
        },
        {"_id": 0},
    )
    candidates = []
    async for order in cursor:
        last_contact = order.get("last_reminder_sent_at") or order.get("created_at")
        if last_contact is None:
            continue
        if last_contact.tzinfo is None:
            last_contact = last_contact.replace(tzinfo=timezone.utc)
        if now - last_contact < min_interval:
            continue

        user = await db.users.find_one({"user_id": order.get("user_id")}, {"_id": 0})
        order["user_email"] = user.get("email") if user else None
        order["user_name"] = user.get("name") if user else None
        candidates.append(order)
    return candidates
