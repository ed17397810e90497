"""
Canonical public frontend base URL for payment links in customer emails.
No other code should build frontend links directly.
"""
import os
import logging

logger = logging.getLogger(__name__)

DEFAULT_PUBLIC_APP_URL = "https://translatoraxis.com"


def get_public_app_url() -> str:
    """
    Return normalized public frontend base URL (no trailing slash).
    Fallback order: FRONTEND_PUBLIC_URL, PUBLIC_APP_URL, APP_URL, VERCEL_URL (as https), then the production domain.
    Plain http is upgraded to https for non-localhost hosts.
    """
    raw = (
        (os.getenv("FRONTEND_PUBLIC_URL") or "").strip()
        or (os.getenv("PUBLIC_APP_URL") or "").strip()
        or (os.getenv("APP_URL") or "").strip()
    )
    if not raw and os.getenv("VERCEL_URL"):
        raw = f"https://{os.getenv('VERCEL_URL', '').strip()}"
    raw = raw.rstrip("/")
    if not raw:
        return DEFAULT_PUBLIC_APP_URL
    if raw.startswith("http://") and "localhost" not in raw:
        raw = "https://" + raw.split("://", 1)[1]
    if "localhost" in raw.lower():
        env = (os.getenv("ENVIRONMENT") or "").strip().lower()
        if env in ("production", "prod"):
            logger.warning("Public app URL points at localhost in production; payment links will be broken")
    return raw
