from fastapi import Request, HTTPException, status
from typing import Optional
import logging
from auth import verify_session_token
from models import UserRole
from database import database

logger = logging.getLogger(__name__)

async def get_current_user(request: Request) -> Optional[dict]:
    """Extract and verify the Clerk session from the Bearer token."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None

    token = auth_header.split(" ", 1)[1].strip()
    if not token:
        return None

    return await verify_session_token(token)

async def require_auth(request: Request) -> dict:
    """Require a valid Clerk session. Returns claims; `sub` is the Clerk user id."""
    user = await get_current_user(request)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )
    return user

async def get_current_db_user(request: Request) -> dict:
    """Require auth and return the synced user record."""
    claims = await require_auth(request)

    db = database.get_db()
    user = await db.users.find_one({"clerk_id": claims["sub"]}, {"_id": 0})
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return user

async def admin_route_guard(request: Request) -> dict:
    """Guard for admin routes. Returns the admin's user record."""
    claims = await require_auth(request)

    db = database.get_db()
    user = await db.users.find_one({"clerk_id": claims["sub"]}, {"_id": 0})

    if not user or user.get("role") != UserRole.ADMIN.value:
        logger.warning(f"Admin access denied for Clerk id {claims['sub']}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )

    return user
