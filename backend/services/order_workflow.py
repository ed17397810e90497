"""
Order Workflow State Machine
Defines the valid states and transitions for translation orders.
This is the single source of truth for order status rules.
"""
from enum import Enum
from typing import List, Dict, Set


class OrderStatus(str, Enum):
    """Translation order states"""
    QUOTE_PENDING = "quote_pending"   # Custom order awaiting an admin quote
    PENDING = "pending"               # Priced, awaiting payment
    PAID = "paid"                     # Payment captured
    PROCESSING = "processing"         # Translation in progress
    COMPLETED = "completed"           # Translated files delivered
    CANCELLED = "cancelled"           # Admin only


# Valid state transitions - whitelist approach
ALLOWED_TRANSITIONS: Dict[OrderStatus, List[OrderStatus]] = {
    OrderStatus.QUOTE_PENDING: [OrderStatus.PENDING, OrderStatus.CANCELLED],
    OrderStatus.PENDING: [OrderStatus.PAID, OrderStatus.CANCELLED],
    OrderStatus.PAID: [OrderStatus.PROCESSING, OrderStatus.COMPLETED, OrderStatus.CANCELLED],
    OrderStatus.PROCESSING: [OrderStatus.COMPLETED, OrderStatus.CANCELLED],
    OrderStatus.COMPLETED: [OrderStatus.PROCESSING],  # Re-opened for corrections
    OrderStatus.CANCELLED: [],
}


TERMINAL_STATES: Set[OrderStatus] = {
    OrderStatus.CANCELLED,
}


# Only unpaid, priced orders receive payment reminders
REMINDER_ELIGIBLE_STATES: Set[OrderStatus] = {
    OrderStatus.PENDING,
}


# Translated files may be delivered once payment has been captured
DELIVERABLE_STATES: Set[OrderStatus] = {
    OrderStatus.PAID,
    OrderStatus.PROCESSING,
    OrderStatus.COMPLETED,
}


def is_valid_transition(from_status: OrderStatus, to_status: OrderStatus) -> bool:
    """Check if a state transition is valid"""
    if from_status not in ALLOWED_TRANSITIONS:
        return False
    return to_status in ALLOWED_TRANSITIONS[from_status]


def is_terminal_state(status: OrderStatus) -> bool:
    return status in TERMINAL_STATES


def can_receive_translated_files(status: OrderStatus) -> bool:
    return status in DELIVERABLE_STATES


def get_allowed_transitions(status: OrderStatus) -> List[OrderStatus]:
    """Get list of valid next states from current status"""
    return ALLOWED_TRANSITIONS.get(status, [])
