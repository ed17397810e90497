"""
Clerk session verification.

Clerk issues RS256 session JWTs. They are verified against CLERK_JWT_KEY (PEM)
when set, otherwise against the instance JWKS, fetched with httpx and cached.
"""
from jose import JWTError, jwt
from datetime import datetime, timezone
from typing import Optional, Dict, List
import os
import time
import logging

import httpx

logger = logging.getLogger(__name__)

JWT_ALGORITHMS = ["RS256"]
JWKS_CACHE_SECONDS = 3600
CLERK_API_JWKS_URL = "https://api.clerk.com/v1/jwks"

_jwks_cache: Dict[str, object] = {"keys": [], "fetched_at": 0.0}


def _jwks_source() -> Optional[Dict[str, object]]:
    """Where to fetch the JWKS from: explicit URL, issuer well-known, or the Clerk API with the secret key."""
    jwks_url = (os.getenv("CLERK_JWKS_URL") or "").strip()
    if jwks_url:
        return {"url": jwks_url, "headers": {}}
    issuer = (os.getenv("CLERK_ISSUER") or "").strip().rstrip("/")
    if issuer:
        return {"url": f"{issuer}/.well-known/jwks.json", "headers": {}}
    secret_key = (os.getenv("CLERK_SECRET_KEY") or "").strip()
    if secret_key:
        return {"url": CLERK_API_JWKS_URL, "headers": {"Authorization": f"Bearer {secret_key}"}}
    return None


async def fetch_jwks(force: bool = False) -> List[Dict]:
    if not force and _jwks_cache["keys"] and time.time() - _jwks_cache["fetched_at"] < JWKS_CACHE_SECONDS:
        return _jwks_cache["keys"]

    source = _jwks_source()
    if not source:
        logger.warning("No Clerk JWKS source configured (CLERK_JWKS_URL, CLERK_ISSUER or CLERK_SECRET_KEY)")
        return []

    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(source["url"], headers=source["headers"], timeout=10.0)
        response.raise_for_status()
        payload = response.json()
        keys = payload.get("keys", []) if isinstance(payload, dict) else []
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"Failed to fetch Clerk JWKS: {e}")
        return _jwks_cache["keys"]

    _jwks_cache["keys"] = keys
    _jwks_cache["fetched_at"] = time.time()
    return keys


async def _signing_key(token: str):
    pem = (os.getenv("CLERK_JWT_KEY") or "").strip()
    if pem:
        return pem.replace("\\n", "\n")

    kid = jwt.get_unverified_header(token).get("kid")
    for force in (False, True):
        for key in await fetch_jwks(force=force):
            if key.get("kid") == kid:
                return key
    return None


async def verify_session_token(token: str) -> Optional[Dict]:
    """Verify a Clerk session token. Returns its claims, or None when invalid."""
    try:
        key = await _signing_key(token)
        if key is None:
            logger.warning("No signing key matches the session token")
            return None

        issuer = (os.getenv("CLERK_ISSUER") or "").strip().rstrip("/") or None
        claims = jwt.decode(
            token,
            key,
            algorithms=JWT_ALGORITHMS,
            issuer=issuer,
            options={"verify_aud": False},
        )
    except JWTError as e:
        logger.info(f"Session token rejected: {e}")
        return None

    if not claims.get("sub"):
        return None
    return claims


def _key_mode(key: str, live_prefix: str, test_prefix: str) -> str:
    if key.startswith(live_prefix):
        return "production"
    if key.startswith(test_prefix):
        return "development"
    return "unknown"


def get_clerk_status() -> Dict:
    """Which Clerk instance (development or production) the configured keys point at."""
    publishable_key = (os.getenv("CLERK_PUBLISHABLE_KEY") or "").strip()
    secret_key = (os.getenv("CLERK_SECRET_KEY") or "").strip()

    if not publishable_key:
        status = "not-configured"
    else:
        status = _key_mode(publishable_key, "pk_live_", "pk_test_")

    secret_mode = _key_mode(secret_key, "sk_live_", "sk_test_") if secret_key else None
    modes_match = secret_mode is None or status not in ("production", "development") or secret_mode == status

    recommendations = []
    if status == "not-configured":
        recommendations.append("Clerk keys are not configured. Set CLERK_PUBLISHABLE_KEY and CLERK_SECRET_KEY.")
    elif status == "unknown":
        recommendations.append("Clerk publishable key format is unrecognized. Expected pk_test_... or pk_live_...")
    elif status == "development":
        recommendations.append("Using development keys (pk_test_). Switch to live keys (pk_live_) for production.")
    else:
        recommendations.append("Using production keys (pk_live_). Make sure the production domain is allowed in Clerk.")
    if not secret_key:
        recommendations.append("CLERK_SECRET_KEY is not set. It is required for server-side authentication.")
    elif not modes_match:
        recommendations.append("CLERK_SECRET_KEY and CLERK_PUBLISHABLE_KEY belong to different Clerk instances.")

    return {
        "status": status,
        "publishable_key": {
            "prefix": publishable_key[:10] + "..." if len(publishable_key) > 10 else publishable_key,
            "is_set": bool(publishable_key),
            "type": status if status in ("production", "development") else "unknown",
        },
        "has_secret_key": bool(secret_key),
        "secret_key_matches": modes_match,
        "environment": os.getenv("ENVIRONMENT", "development"),
        "checked_at": datetime.now(timezone.utc).isoformat(),
        "recommendations": recommendations,
    }
