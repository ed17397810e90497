"""
Payment reminders for unpaid orders.

Runs daily. An order in "pending" gets reminder 1, 2 and 3 at least two days
apart (counted from creation, then from the last reminder), then a final
notice. Nothing is sent after the final notice.
"""
import logging
from datetime import datetime, timezone, timedelta
from typing import Dict, Optional

from models import AuditAction, EmailKind
from services.email_service import email_service
from services.order_service import (
    get_pending_orders_for_reminders, update_order_reminder, mark_final_notice_sent,
)
from utils.audit import create_audit_log

logger = logging.getLogger(__name__)

REMINDER_INTERVAL = timedelta(days=2)
MAX_REMINDERS = 3


async def process_payment_reminders(now: Optional[datetime] = None) -> Dict[str, int]:
    """Send due reminders and final notices. Returns counts per outcome."""
    now = now or datetime.now(timezone.utc)
    orders = await get_pending_orders_for_reminders(now, REMINDER_INTERVAL)
    results = {"checked": len(orders), "reminders_sent": 0, "final_notices_sent": 0, "skipped": 0, "failed": 0}

    for order in orders:
        email = order.get("user_email")
        if not email:
            logger.warning(f"No email for order {order.get('order_number')}; reminder skipped")
            results["skipped"] += 1
            continue

        count = order.get("reminder_count") or 0
        try:
            if count < MAX_REMINDERS:
                reminder_number = count + 1
                log = await email_service.send_order_email(
                    EmailKind.PAYMENT_REMINDER, order, email, reminder_number=reminder_number,
                )
                if log.status != "sent":
                    results["failed"] += 1
                    continue
                await update_order_reminder(order["order_id"], reminder_number)
                await create_audit_log(
                    action=AuditAction.PAYMENT_REMINDER_SENT,
                    resource_type="order",
                    resource_id=order["order_id"],
                    metadata={"reminder_number": reminder_number},
                )
                results["reminders_sent"] += 1
            else:
                log = await email_service.send_order_email(EmailKind.FINAL_NOTICE, order, email)
                if log.status != "sent":
                    results["failed"] += 1
                    continue
                await mark_final_notice_sent(order["order_id"])
                await create_audit_log(
                    action=AuditAction.FINAL_NOTICE_SENT,
                    resource_type="order",
                    resource_id=order["order_id"],
                )
                results["final_notices_sent"] += 1
        except Exception as e:
            logger.error(f"Payment reminder failed for order {order.get('order_number')}: {e}")
            results["failed"] += 1

    logger.info(f"Payment reminders processed: {results}")
    return results
