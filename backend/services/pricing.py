"""
Pricing settings - per-page rates for certified and general translations.
Stored in the `settings` collection under key "pricing"; defaults apply until an admin saves rates.
"""
import copy
import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from database import database
from models import ServiceType

logger = logging.getLogger(__name__)

PRICING_KEY = "pricing"

DEFAULT_PRICING: Dict[str, Dict[str, float]] = {
    "certified": {"base_per_page": 25, "rush_extra_per_page": 25},
    "general": {"base_per_page": 15, "rush_extra_per_page": 15},
}


def _merge_with_defaults(stored: Optional[Dict[str, Any]]) -> Dict[str, Dict[str, float]]:
    pricing = copy.deepcopy(DEFAULT_PRICING)
    if not stored:
        return pricing
    for tier, rates in stored.items():
        if tier in pricing and isinstance(rates, dict):
            pricing[tier].update({k: v for k, v in rates.items() if k in pricing[tier]})
    return pricing


async def get_pricing() -> Dict[str, Dict[str, float]]:
    """Current pricing, falling back to defaults for anything not stored."""
    db = database.get_db()
    doc = await db.settings.find_one({"key": PRICING_KEY}, {"_id": 0})
    return _merge_with_defaults(doc.get("value") if doc else None)


async def update_pricing(pricing: Dict[str, Dict[str, float]], updated_by: str) -> Dict[str, Dict[str, float]]:
    """Upsert pricing. Raises ValueError for negative or non-numeric rates."""
    for tier, rates in pricing.items():
        if tier not in DEFAULT_PRICING:
            raise ValueError(f"Unknown pricing tier: {tier}")
        for field, value in rates.items():
            if not isinstance(value, (int, float)) or value < 0:
                raise ValueError(f"Invalid rate for {tier}.{field}: {value}")

    merged = _merge_with_defaults(pricing)
    db = database.get_db()
    await db.settings.update_one(
        {"key": PRICING_KEY},
        {"$set": {
            "key": PRICING_KEY,
            "value": merged,
            "updated_by": updated_by,
            "updated_at": datetime.now(timezone.utc),
        }},
        upsert=True,
    )
    logger.info(f"Pricing updated by {updated_by}")
    return merged


def calculate_amount(
    service_type: ServiceType,
    total_pages: int,
    is_rush: bool,
    pricing: Dict[str, Dict[str, float]],
) -> float:
    """pages * (base + rush extra). Custom orders are priced by quote, so 0."""
    if service_type == ServiceType.CUSTOM:
        return 0
    rates = pricing[service_type.value]
    per_page = rates["base_per_page"] + (rates["rush_extra_per_page"] if is_rush else 0)
    return round(total_pages * per_page, 2)
