"""
Tests for PayPal checkout: dev-mode simulation, the Orders v2 REST calls and
verification of a capture against the stored order before it is marked paid.
"""
import os
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from services import paypal_service as paypal_module
from services.paypal_service import PayPalError, PayPalService

ORDER = {
    "order_id": "order-1",
    "order_number": "TRANS-1-ABC",
    "user_id": "user-1",
    "clerk_id": "user_abc",
    "status": "pending",
    "amount": 75,
}


def _service(configured=False):
    env = {"PAYPAL_CLIENT_ID": "client" if configured else "", "PAYPAL_CLIENT_SECRET": "secret" if configured else ""}
    with patch.dict(os.environ, env):
        return PayPalService()


def _response(status_code, payload):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    response.text = str(payload)
    return response


def _http(*responses):
    """Patched httpx.AsyncClient whose post() returns the given responses in order."""
    client = MagicMock()
    client.post = AsyncMock(side_effect=list(responses))
    client_cls = MagicMock()
    client_cls.return_value.__aenter__ = AsyncMock(return_value=client)
    client_cls.return_value.__aexit__ = AsyncMock(return_value=False)
    return client_cls, client


def _captured(reference_id="order-1", value="75.00", currency="USD", status="COMPLETED"):
    return {
        "id": "PP-1",
        "status": status,
        "purchase_units": [{
            "reference_id": reference_id,
            "payments": {"captures": [{"id": "CAP-1", "status": "COMPLETED",
                                       "amount": {"currency_code": currency, "value": value}}]},
        }],
    }


@pytest.fixture
def order_store():
    paid = {**ORDER, "status": "paid", "payment_id": "PP-1", "payment_status": "COMPLETED"}
    with patch.object(paypal_module, "get_order_by_id", AsyncMock(return_value=dict(ORDER))) as get_order, \
            patch.object(paypal_module, "update_order_payment", AsyncMock(return_value=paid)) as pay, \
            patch.object(PayPalService, "_send_confirmation", AsyncMock(return_value="sent")) as confirm:
        yield {"get": get_order, "pay": pay, "confirm": confirm}


# ============================================
# Create
# ============================================

@pytest.mark.asyncio
async def test_dev_mode_create_uses_stored_amount(order_store):
    result = await _service().create_order("order-1", "user_abc")
    assert result["paypal_order_id"].startswith("PAYPAL-")
    assert result["amount"] == 75.0
    assert result["currency"] == "USD"


@pytest.mark.asyncio
async def test_create_posts_checkout_order(order_store):
    client_cls, client = _http(
        _response(200, {"access_token": "tok"}),
        _response(201, {"id": "PP-1", "status": "CREATED"}),
    )
    service = _service(configured=True)
    with patch("services.paypal_service.httpx.AsyncClient", client_cls):
        result = await service.create_order("order-1", "user_abc")

    assert result == {"paypal_order_id": "PP-1", "amount": 75.0, "currency": "USD"}
    url = client.post.call_args_list[1].args[0]
    assert url.endswith("/v2/checkout/orders")
    unit = client.post.call_args_list[1].kwargs["json"]["purchase_units"][0]
    assert unit["reference_id"] == "order-1"
    assert unit["amount"] == {"currency_code": "USD", "value": "75.00"}
    assert client.post.call_args_list[1].kwargs["headers"]["Authorization"] == "Bearer tok"


@pytest.mark.asyncio
async def test_create_rejects_orders_not_awaiting_payment(order_store):
    order_store["get"].return_value = {**ORDER, "status": "quote_pending"}
    with pytest.raises(ValueError, match="not awaiting payment"):
        await _service().create_order("order-1", "user_abc")


# ============================================
# Capture
# ============================================

@pytest.mark.asyncio
async def test_dev_mode_capture_marks_order_paid(order_store):
    result = await _service().capture_order("PP-1", "order-1", "user_abc")

    assert result == {"success": True, "status": "COMPLETED", "order_id": "order-1", "payment_id": "PP-1"}
    order_store["pay"].assert_awaited_once_with("order-1", "user_abc", "PP-1", "COMPLETED")
    order_store["confirm"].assert_awaited_once()


@pytest.mark.asyncio
async def test_capture_calls_paypal_and_marks_order_paid(order_store):
    client_cls, client = _http(_response(200, {"access_token": "tok"}), _response(201, _captured()))
    service = _service(configured=True)
    with patch("services.paypal_service.httpx.AsyncClient", client_cls):
        result = await service.capture_order("PP-1", "order-1", "user_abc")

    assert result["status"] == "COMPLETED"
    assert client.post.call_args_list[1].args[0].endswith("/v2/checkout/orders/PP-1/capture")
    order_store["pay"].assert_awaited_once_with("order-1", "user_abc", "PP-1", "COMPLETED")


@pytest.mark.asyncio
async def test_capture_for_another_order_is_rejected(order_store):
    client_cls, _ = _http(_response(200, {"access_token": "tok"}), _response(201, _captured(reference_id="order-2")))
    service = _service(configured=True)
    with patch("services.paypal_service.httpx.AsyncClient", client_cls):
        with pytest.raises(PayPalError, match="does not belong to this order"):
            await service.capture_order("PP-1", "order-1", "user_abc")
    order_store["pay"].assert_not_awaited()


@pytest.mark.parametrize("value,currency", [("0.01", "USD"), ("75.00", "EUR")])
@pytest.mark.asyncio
async def test_capture_with_wrong_amount_is_rejected(order_store, value, currency):
    client_cls, _ = _http(
        _response(200, {"access_token": "tok"}),
        _response(201, _captured(value=value, currency=currency)),
    )
    service = _service(configured=True)
    with patch("services.paypal_service.httpx.AsyncClient", client_cls):
        with pytest.raises(PayPalError, match="amount does not match"):
            await service.capture_order("PP-1", "order-1", "user_abc")
    order_store["pay"].assert_not_awaited()
    order_store["confirm"].assert_not_awaited()


@pytest.mark.asyncio
async def test_incomplete_capture_is_not_recorded(order_store):
    client_cls, _ = _http(_response(200, {"access_token": "tok"}), _response(201, _captured(status="PENDING")))
    service = _service(configured=True)
    with patch("services.paypal_service.httpx.AsyncClient", client_cls):
        with pytest.raises(PayPalError, match="not completed"):
            await service.capture_order("PP-1", "order-1", "user_abc")
    order_store["pay"].assert_not_awaited()


@pytest.mark.asyncio
async def test_repeated_capture_returns_recorded_payment(order_store):
    order_store["get"].return_value = {**ORDER, "status": "paid", "payment_id": "PP-1", "payment_status": "COMPLETED"}
    client_cls, client = _http()
    with patch("services.paypal_service.httpx.AsyncClient", client_cls):
        result = await _service(configured=True).capture_order("PP-1", "order-1", "user_abc")

    assert result["success"] is True
    client.post.assert_not_awaited()
    order_store["pay"].assert_not_awaited()


def test_verify_capture_falls_back_to_unit_amount():
    capture = {"purchase_units": [{"reference_id": "order-1", "amount": {"currency_code": "USD", "value": "75.00"}}]}
    PayPalService.verify_capture(capture, ORDER)
