"""PayPal Service - Orders v2 checkout for translation orders.

This service handles:
- Creating a PayPal order for the stored order amount (never a client-supplied amount)
- Capturing the approved PayPal order
- Marking the translation order paid and sending the confirmation email

Without PAYPAL_CLIENT_ID/PAYPAL_CLIENT_SECRET the service runs in dev mode:
PayPal ids are generated locally and captures are simulated as COMPLETED.
"""
import os
import random
import string
import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional

import httpx

from database import database
from models import EmailKind
from services.order_workflow import OrderStatus
from services.order_service import get_order_by_id, update_order_payment
from services.email_service import email_service

logger = logging.getLogger(__name__)

PAYPAL_API_BASE = {
    "live": "https://api-m.paypal.com",
    "sandbox": "https://api-m.sandbox.paypal.com",
}
CURRENCY = "USD"
REQUEST_TIMEOUT_SECONDS = 30.0


class PayPalError(Exception):
    """PayPal API call failed."""
    pass


def _dev_order_id() -> str:
    ms = int(datetime.now(timezone.utc).timestamp() * 1000)
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"PAYPAL-{ms}-{suffix}"


class PayPalService:
    """PayPal checkout operations."""

    def __init__(self):
        self.client_id = (os.getenv("PAYPAL_CLIENT_ID") or "").strip()
        self.client_secret = (os.getenv("PAYPAL_CLIENT_SECRET") or "").strip()
        mode = (os.getenv("PAYPAL_MODE") or "sandbox").strip().lower()
        self.base_url = PAYPAL_API_BASE.get(mode, PAYPAL_API_BASE["sandbox"])
        if not self.configured:
            logger.warning("PayPal credentials not set - payments run in dev mode")

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    async def _get_access_token(self, client: httpx.AsyncClient) -> str:
        response = await client.post(
            f"{self.base_url}/v1/oauth2/token",
            data={"grant_type": "client_credentials"},
            auth=(self.client_id, self.client_secret),
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
        if response.status_code != 200:
            logger.error(f"PayPal OAuth failed {response.status_code}: {response.text[:300]}")
            raise PayPalError("PayPal authentication failed")
        return response.json()["access_token"]

    async def create_order(self, order_id: str, clerk_id: str) -> Dict[str, Any]:
        """
        Create a PayPal order for an unpaid translation order owned by clerk_id.
        Returns {"paypal_order_id", "amount", "currency"}.
        """
        order = await get_order_by_id(order_id, clerk_id)
        if not order:
            raise LookupError("Order not found")
        if order.get("status") != OrderStatus.PENDING.value:
            raise ValueError(f"Order is not awaiting payment (status: {order.get('status')})")
        amount = float(order.get("amount") or 0)
        if amount <= 0:
            raise ValueError("Order has no payable amount")

        if not self.configured:
            paypal_order_id = _dev_order_id()
            logger.info(f"[DEV MODE] PayPal order {paypal_order_id} for {order['order_number']}")
            return {"paypal_order_id": paypal_order_id, "amount": amount, "currency": CURRENCY}

        payload = {
            "intent": "CAPTURE",
            "purchase_units": [{
                "reference_id": order_id,
                "custom_id": order["order_number"],
                "description": f"Translation order {order['order_number']}",
                "amount": {"currency_code": CURRENCY, "value": f"{amount:.2f}"},
            }],
        }
        async with httpx.AsyncClient() as client:
            token = await self._get_access_token(client)
            response = await client.post(
                f"{self.base_url}/v2/checkout/orders",
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
        if response.status_code not in (200, 201):
            logger.error(f"PayPal create order failed {response.status_code}: {response.text[:300]}")
            raise PayPalError("Failed to create PayPal order")

        paypal_order_id = response.json()["id"]
        logger.info(f"PayPal order {paypal_order_id} created for {order['order_number']}")
        return {"paypal_order_id": paypal_order_id, "amount": amount, "currency": CURRENCY}

    async def _capture(self, paypal_order_id: str, order: Dict[str, Any]) -> Dict[str, Any]:
        if not self.configured:
            logger.info(f"[DEV MODE] Simulated capture of {paypal_order_id}")
            amount = {"currency_code": CURRENCY, "value": f"{float(order.get('amount') or 0):.2f}"}
            return {
                "id": paypal_order_id,
                "status": "COMPLETED",
                "purchase_units": [{
                    "reference_id": order["order_id"],
                    "payments": {"captures": [{"id": paypal_order_id, "status": "COMPLETED", "amount": amount}]},
                }],
            }

        async with httpx.AsyncClient() as client:
            token = await self._get_access_token(client)
            response = await client.post(
                f"{self.base_url}/v2/checkout/orders/{paypal_order_id}/capture",
                headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
        if response.status_code not in (200, 201):
            logger.error(f"PayPal capture failed {response.status_code}: {response.text[:300]}")
            raise PayPalError("Failed to capture PayPal order")
        return response.json()

    @staticmethod
    def verify_capture(capture: Dict[str, Any], order: Dict[str, Any]) -> None:
        """The captured PayPal order must reference this order and carry its exact amount."""
        units = capture.get("purchase_units") or [{}]
        unit = units[0]
        if unit.get("reference_id") != order["order_id"]:
            logger.error(f"PayPal capture {capture.get('id')} references {unit.get('reference_id')}, not {order['order_id']}")
            raise PayPalError("PayPal payment does not belong to this order")

        captures = (unit.get("payments") or {}).get("captures") or []
        amount = captures[0].get("amount") if captures else unit.get("amount")
        amount = amount or {}
        expected = f"{float(order.get('amount') or 0):.2f}"
        if amount.get("currency_code") != CURRENCY or amount.get("value") != expected:
            logger.error(
                f"PayPal capture {capture.get('id')} amount {amount} does not match "
                f"{expected} {CURRENCY} for order {order['order_number']}"
            )
            raise PayPalError("Captured amount does not match the order")

    async def capture_order(self, paypal_order_id: str, order_id: str, clerk_id: str) -> Dict[str, Any]:
        """Capture payment, check it against the stored order, mark the order paid and email the confirmation."""
        order = await get_order_by_id(order_id, clerk_id)
        if not order:
            raise LookupError("Order not found")
        if order.get("status") == OrderStatus.PAID.value and order.get("payment_id") == paypal_order_id:
            return {"success": True, "status": order.get("payment_status"), "order_id": order_id, "payment_id": paypal_order_id}
        if order.get("status") != OrderStatus.PENDING.value:
            raise ValueError(f"Order is not awaiting payment (status: {order.get('status')})")

        capture = await self._capture(paypal_order_id, order)
        status = capture.get("status", "UNKNOWN")
        if status != "COMPLETED":
            raise PayPalError(f"Payment not completed (status: {status})")
        self.verify_capture(capture, order)

        order = await update_order_payment(order_id, clerk_id, paypal_order_id, status)
        await self._send_confirmation(order)
        return {"success": True, "status": status, "order_id": order_id, "payment_id": paypal_order_id}

    async def _send_confirmation(self, order: Dict[str, Any]) -> Optional[str]:
        db = database.get_db()
        user = await db.users.find_one({"user_id": order.get("user_id")}, {"_id": 0})
        if not user or not user.get("email"):
            logger.warning(f"No email for order {order['order_number']}; confirmation skipped")
            return None
        try:
            log = await email_service.send_order_email(
                EmailKind.PAYMENT_CONFIRMED, order, user["email"], customer_name=user.get("name"),
            )
            return log.status
        except Exception as e:
            logger.error(f"Payment confirmation email failed for {order['order_number']}: {e}")
            return None


paypal_service = PayPalService()
