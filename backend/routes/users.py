"""
User Routes - Clerk session sync for signed-in users, client management for admins.
"""
from fastapi import APIRouter, HTTPException, Depends
from middleware import require_auth, admin_route_guard
from models import (
    SyncUserRequest, CreateClientUserRequest, UpdateUserRoleRequest, UpdateUserDetailsRequest,
)
from services.user_service import (
    create_or_update_user, get_user_by_clerk_id, get_current_user_role,
    create_client_user, update_user_role, update_user_details, get_all_users,
)
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/users", tags=["users"])
admin_router = APIRouter(prefix="/api/admin/users", tags=["admin-users"])


@router.post("/sync")
async def sync_user(
    body: SyncUserRequest,
    claims: dict = Depends(require_auth),
):
    """Create or refresh the user record for the signed-in Clerk user. Never changes role."""
    user_id = await create_or_update_user(
        clerk_id=claims["sub"],
        email=body.email,
        name=body.name,
        telephone=body.telephone,
    )
    return {"user_id": user_id}


@router.get("/me")
async def get_me(claims: dict = Depends(require_auth)):
    user = await get_user_by_clerk_id(claims["sub"])
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/me/role")
async def get_my_role(claims: dict = Depends(require_auth)):
    """Role of the signed-in user, or {"role": null} before the first sync."""
    role = await get_current_user_role(claims["sub"])
    return role or {"role": None}


# ============================================
# ADMIN
# ============================================

@admin_router.get("")
async def list_users(current_user: dict = Depends(admin_route_guard)):
    users = await get_all_users()
    return {"users": users, "total": len(users)}


@admin_router.post("")
async def create_user(
    body: CreateClientUserRequest,
    current_user: dict = Depends(admin_route_guard),
):
    """Create a client ahead of their first sign-in. Existing emails return the existing user."""
    return await create_client_user(
        email=body.email,
        admin=current_user,
        name=body.name,
        telephone=body.telephone,
    )


@admin_router.patch("/{user_id}/role")
async def change_user_role(
    user_id: str,
    body: UpdateUserRoleRequest,
    current_user: dict = Depends(admin_route_guard),
):
    try:
        return await update_user_role(user_id, body.role, current_user)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@admin_router.patch("/{user_id}")
async def change_user_details(
    user_id: str,
    body: UpdateUserDetailsRequest,
    current_user: dict = Depends(admin_route_guard),
):
    try:
        return await update_user_details(
            user_id,
            current_user,
            name=body.name,
            email=body.email,
            telephone=body.telephone,
        )
    except ValueError as e:
        status_code = 404 if "not found" in str(e).lower() else 400
        raise HTTPException(status_code=status_code, detail=str(e))
