"""Provider usage accounting per order file (characters for Google, tokens for LLMs)."""
import uuid
import logging
from datetime import datetime, timezone
from typing import Dict, List, Any

from database import database
from models import UsageEvent

logger = logging.getLogger(__name__)

_TOTAL_FIELDS = ("input_chars", "output_chars", "prompt_tokens", "completion_tokens", "total_tokens", "requests")


async def record_usage_events(order_id: str, file_name: str, events: List[UsageEvent]) -> int:
    """Bulk insert usage events. Returns the number recorded."""
    if not events:
        return 0

    db = database.get_db()
    now = datetime.now(timezone.utc)
    docs = []
    for event in events:
        doc = event.model_dump()
        doc.update(
            usage_id=str(uuid.uuid4()),
            order_id=order_id,
            file_name=file_name,
            created_at=now,
        )
        docs.append(doc)

    await db.translation_usage.insert_many(docs)
    logger.info(f"Recorded {len(docs)} usage event(s) for order {order_id}")
    return len(docs)


def summarize_usage(events: List[Dict[str, Any]]) -> Dict[str, Dict[str, int]]:
    """Per-provider totals of every counted field."""
    totals: Dict[str, Dict[str, int]] = {}
    for event in events:
        provider_totals = totals.setdefault(event.get("provider", "unknown"), {f: 0 for f in _TOTAL_FIELDS})
        for field in _TOTAL_FIELDS:
            provider_totals[field] += event.get(field) or 0
    return totals


async def get_usage_by_order(order_id: str) -> Dict[str, Any]:
    db = database.get_db()
    events = await db.translation_usage.find(
        {"order_id": order_id}, {"_id": 0}
    ).sort("created_at", -1).to_list(length=1000)
    return {"events": events, "totals": summarize_usage(events)}
