"""Admin usage accounting routes."""
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from typing import List
from middleware import admin_route_guard
from models import UsageEvent
from services.usage_service import record_usage_events, get_usage_by_order

router = APIRouter(prefix="/api/admin/usage", tags=["admin-usage"])


class RecordUsageRequest(BaseModel):
    order_id: str
    file_name: str
    events: List[UsageEvent]


@router.post("")
async def record_usage(
    body: RecordUsageRequest,
    current_user: dict = Depends(admin_route_guard),
):
    recorded = await record_usage_events(body.order_id, body.file_name, body.events)
    return {"recorded": recorded}


@router.get("/{order_id}")
async def order_usage(
    order_id: str,
    current_user: dict = Depends(admin_route_guard),
):
    return await get_usage_by_order(order_id)
