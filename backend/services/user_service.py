"""
User Service - users mirrored from Clerk plus admin-created client records.
Role is the only authorization attribute; Clerk owns credentials.
"""
import random
import re
import string
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, List

from database import database
from models import User, UserRole, AuditAction
from utils.audit import create_audit_log

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


def _random_base36(length: int = 9) -> str:
    return "".join(random.choices(_BASE36, k=length))


def generate_temp_clerk_id() -> str:
    """Placeholder Clerk id for users created by an admin before they sign up."""
    ms = int(datetime.now(timezone.utc).timestamp() * 1000)
    return f"temp_{ms}_{_random_base36()}"


async def get_user_by_clerk_id(clerk_id: str) -> Optional[Dict]:
    db = database.get_db()
    return await db.users.find_one({"clerk_id": clerk_id}, {"_id": 0})


async def get_user_by_id(user_id: str) -> Optional[Dict]:
    db = database.get_db()
    return await db.users.find_one({"user_id": user_id}, {"_id": 0})


async def get_current_user_role(clerk_id: str) -> Optional[Dict]:
    user = await get_user_by_clerk_id(clerk_id)
    if not user:
        return None
    return {"role": user.get("role", UserRole.USER.value)}


async def create_or_update_user(
    clerk_id: str,
    email: str,
    name: Optional[str] = None,
    telephone: Optional[str] = None,
    role: Optional[UserRole] = None,
) -> str:
    """
    Upsert the user behind a Clerk session.
    Existing role is preserved unless a role is passed explicitly.
    Returns the user_id.
    """
    db = database.get_db()
    now = datetime.now(timezone.utc)
    existing = await get_user_by_clerk_id(clerk_id)

    if existing:
        update_fields = {"email": email, "updated_at": now}
        if name is not None:
            update_fields["name"] = name
        if telephone is not None:
            update_fields["telephone"] = telephone
        if role is not None:
            update_fields["role"] = role.value
        await db.users.update_one({"clerk_id": clerk_id}, {"$set": update_fields})
        return existing["user_id"]

    user = User(
        clerk_id=clerk_id,
        email=email,
        name=name,
        telephone=telephone,
        role=role or UserRole.USER,
    )
    await db.users.insert_one(user.model_dump())
    logger.info(f"User created for Clerk id {clerk_id}")
    await create_audit_log(
        action=AuditAction.USER_SYNCED,
        actor_id=clerk_id,
        resource_type="user",
        resource_id=user.user_id,
    )
    return user.user_id


async def create_client_user(
    email: str,
    admin: Dict,
    name: Optional[str] = None,
    telephone: Optional[str] = None,
) -> Dict:
    """
    Admin creates a client record ahead of sign-up.
    Returns {"user_id", "clerk_id", "created"}; an existing email is returned unchanged.
    The clerk_id is what admin-placed orders for this client are keyed on.
    """
    db = database.get_db()
    existing = await db.users.find_one({"email": email}, {"_id": 0})
    if existing:
        return {"user_id": existing["user_id"], "clerk_id": existing["clerk_id"], "created": False}

    user = User(
        clerk_id=generate_temp_clerk_id(),
        email=email,
        name=name,
        telephone=telephone,
    )
    await db.users.insert_one(user.model_dump())
    await create_audit_log(
        action=AuditAction.USER_CREATED_BY_ADMIN,
        actor_role=UserRole.ADMIN,
        actor_id=admin.get("user_id"),
        resource_type="user",
        resource_id=user.user_id,
        metadata={"email": email},
    )
    return {"user_id": user.user_id, "clerk_id": user.clerk_id, "created": True}


async def update_user_role(user_id: str, role: UserRole, admin: Dict) -> Dict:
    db = database.get_db()
    user = await get_user_by_id(user_id)
    if not user:
        raise ValueError(f"User not found: {user_id}")

    await db.users.update_one(
        {"user_id": user_id},
        {"$set": {"role": role.value, "updated_at": datetime.now(timezone.utc)}},
    )
    await create_audit_log(
        action=AuditAction.USER_ROLE_CHANGED,
        actor_role=UserRole.ADMIN,
        actor_id=admin.get("user_id"),
        resource_type="user",
        resource_id=user_id,
        before_state={"role": user.get("role")},
        after_state={"role": role.value},
    )
    return {"success": True}


async def update_user_details(
    user_id: str,
    admin: Dict,
    name: Optional[str] = None,
    email: Optional[str] = None,
    telephone: Optional[str] = None,
) -> Dict:
    """
    Patch name/email/telephone. Blank name or telephone clears the field;
    blank email is rejected.
    """
    db = database.get_db()
    user = await get_user_by_id(user_id)
    if not user:
        raise ValueError(f"User not found: {user_id}")

    set_fields = {"updated_at": datetime.now(timezone.utc)}
    unset_fields = {}

    if email is not None:
        email = email.strip()
        if not email:
            raise ValueError("Email cannot be empty")
        if await db.users.find_one({"email": email, "user_id": {"$ne": user_id}}, {"_id": 0, "user_id": 1}):
            raise ValueError("Email already in use by another user")
        set_fields["email"] = email

    for field, value in (("name", name), ("telephone", telephone)):
        if value is None:
            continue
        value = value.strip()
        if value:
            set_fields[field] = value
        else:
            unset_fields[field] = ""

    update = {"$set": set_fields}
    if unset_fields:
        update["$unset"] = unset_fields
    await db.users.update_one({"user_id": user_id}, update)

    await create_audit_log(
        action=AuditAction.USER_DETAILS_UPDATED,
        actor_role=UserRole.ADMIN,
        actor_id=admin.get("user_id"),
        resource_type="user",
        resource_id=user_id,
        metadata={"fields": sorted(list(set_fields.keys() - {"updated_at"}) + list(unset_fields.keys()))},
    )
    return {"success": True}


async def get_all_users() -> List[Dict]:
    db = database.get_db()
    return await db.users.find({}, {"_id": 0}).sort("created_at", -1).to_list(length=1000)


async def make_admin(clerk_id: str) -> Dict:
    """Promote an existing user to admin by Clerk id."""
    db = database.get_db()
    user = await get_user_by_clerk_id(clerk_id)
    if not user:
        raise ValueError(f"No user with Clerk id {clerk_id}. Sign in once before promoting.")
    return await _promote(db, user)


async def make_admin_by_email(email: str) -> Dict:
    """Promote an existing user to admin by email (case-insensitive)."""
    db = database.get_db()
    email = email.strip()
    user = await db.users.find_one(
        {"email": {"$regex": f"^{re.escape(email)}$", "$options": "i"}}, {"_id": 0},
    )
    if not user:
        raise ValueError(f"No user with email {email}. Sign in once before promoting.")
    return await _promote(db, user)


async def _promote(db, user: Dict) -> Dict:
    if user.get("role") == UserRole.ADMIN.value:
        return {"action": "unchanged", "user_id": user["user_id"], "email": user["email"]}

    await db.users.update_one(
        {"user_id": user["user_id"]},
        {"$set": {"role": UserRole.ADMIN.value, "updated_at": datetime.now(timezone.utc)}},
    )
    await create_audit_log(
        action=AuditAction.ADMIN_BOOTSTRAPPED,
        resource_type="user",
        resource_id=user["user_id"],
        before_state={"role": user.get("role")},
        after_state={"role": UserRole.ADMIN.value},
    )
    logger.info(f"User {user['email']} promoted to admin")
    return {"action": "promoted", "user_id": user["user_id"], "email": user["email"]}
