"""Ticket and dispute status rules shared by support tickets and disputes."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from .exceptions import InvalidTransitionError


class TicketStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class TicketPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TicketCategory(str, Enum):
    GENERAL_INQUIRY = "general_inquiry"
    TECHNICAL_ISSUE = "technical_issue"
    PAYMENT_PROBLEM = "payment_problem"
    ORDER_ISSUE = "order_issue"
    REFUND_REQUEST = "refund_request"
    ACCOUNT_ISSUE = "account_issue"
    LISTING_HELP = "listing_help"
    OTHER = "other"


TICKET_TRANSITIONS: Dict[TicketStatus, FrozenSet[TicketStatus]] = {
    TicketStatus.OPEN: frozenset({TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED, TicketStatus.CLOSED}),
    TicketStatus.IN_PROGRESS: frozenset({TicketStatus.RESOLVED, TicketStatus.CLOSED}),
    TicketStatus.RESOLVED: frozenset({TicketStatus.IN_PROGRESS, TicketStatus.CLOSED}),
    TicketStatus.CLOSED: frozenset(),
}


def can_transition(current: TicketStatus, target: TicketStatus) -> bool:
    return TicketStatus(target) in TICKET_TRANSITIONS[TicketStatus(current)]


def status_change(
    current: TicketStatus,
    target: TicketStatus,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """Return the columns to write for a status change.

    Entering ``resolved`` also stamps ``resolved_at``.

    Raises:
        InvalidTransitionError: If the move isn't in the transition table,
            including setting the current status again
    """
    target = TicketStatus(target)
    if not can_transition(current, target):
        raise InvalidTransitionError(TicketStatus(current).value, target.value)

    changes: Dict[str, Any] = {'status': target.value}
    if target == TicketStatus.RESOLVED:
        changes['resolved_at'] = now or datetime.now(timezone.utc)
    return changes
