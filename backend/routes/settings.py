"""Pricing settings: public read, admin write."""
from fastapi import APIRouter, HTTPException, Depends
from middleware import admin_route_guard
from models import PricingSettings, AuditAction, UserRole
from services.pricing import get_pricing, update_pricing
from utils.audit import create_audit_log

router = APIRouter(prefix="/api/settings", tags=["settings"])
admin_router = APIRouter(prefix="/api/admin/settings", tags=["admin-settings"])


@router.get("/pricing")
async def read_pricing():
    return await get_pricing()


@admin_router.put("/pricing")
async def write_pricing(
    body: PricingSettings,
    current_user: dict = Depends(admin_route_guard),
):
    before = await get_pricing()
    try:
        pricing = await update_pricing(body.model_dump(), updated_by=current_user["user_id"])
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    await create_audit_log(
        action=AuditAction.PRICING_UPDATED,
        actor_role=UserRole.ADMIN,
        actor_id=current_user["user_id"],
        resource_type="settings",
        resource_id="pricing",
        before_state=before,
        after_state=pricing,
    )
    return pricing
