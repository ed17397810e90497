"""
PayPal Routes - checkout for priced orders.
The amount charged always comes from the stored order, never from the client.
"""
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel
from middleware import require_auth
from services.paypal_service import paypal_service, PayPalError
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/paypal", tags=["paypal"])


class CreatePayPalOrderRequest(BaseModel):
    order_id: str


class CapturePayPalOrderRequest(BaseModel):
    paypal_order_id: str
    order_id: str


@router.post("/create-order")
async def create_paypal_order(
    body: CreatePayPalOrderRequest,
    claims: dict = Depends(require_auth),
):
    try:
        return await paypal_service.create_order(body.order_id, claims["sub"])
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PayPalError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.post("/capture-order")
async def capture_paypal_order(
    body: CapturePayPalOrderRequest,
    claims: dict = Depends(require_auth),
):
    try:
        return await paypal_service.capture_order(body.paypal_order_id, body.order_id, claims["sub"])
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PayPalError as e:
        logger.error(f"PayPal capture failed for order {body.order_id}: {e}")
        raise HTTPException(status_code=502, detail=str(e))
