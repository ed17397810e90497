"""
Notification Routes - order confirmation emails requested by the signed-in customer.
"""
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel
from typing import Literal
from middleware import get_current_db_user
from models import EmailKind
from services.email_service import email_service
from services.order_service import get_order
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/notifications", tags=["notifications"])

CONFIRMATION_KINDS = {
    "paid_confirmation": EmailKind.PAYMENT_CONFIRMED,
    "payment_required": EmailKind.ORDER_CREATED,
}


class OrderConfirmationRequest(BaseModel):
    order_id: str
    kind: Literal["paid_confirmation", "payment_required"]


@router.post("/order-confirmation")
async def send_order_confirmation(
    body: OrderConfirmationRequest,
    current_user: dict = Depends(get_current_db_user),
):
    order = await get_order(body.order_id)
    if not order or order.get("user_id") != current_user["user_id"]:
        raise HTTPException(status_code=404, detail="Order not found")

    kind = CONFIRMATION_KINDS[body.kind]
    template_kwargs = {"customer_name": current_user.get("name")} if kind == EmailKind.PAYMENT_CONFIRMED else {}
    try:
        log = await email_service.send_order_email(kind, order, current_user["email"], **template_kwargs)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if log.status != "sent":
        raise HTTPException(status_code=502, detail="Failed to send email")
    return {"success": True, "message_id": log.message_id}
