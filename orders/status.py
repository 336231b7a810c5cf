"""Order, payout and delivery status rules."""

from enum import Enum
from typing import Dict, FrozenSet, Optional


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELED = "canceled"
    RETURNED = "returned"
    REFUNDED = "refunded"


class PayoutStatus(str, Enum):
    IN_ESCROW = "in_escrow"
    PROCESSING = "processing"
    PAID = "paid"


class DeliveryStatus(str, Enum):
    NOT_SHIPPED = "not_shipped"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"


ORDER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.CANCELED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.CONFIRMED, OrderStatus.SHIPPED, OrderStatus.CANCELED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.CANCELED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.RETURNED, OrderStatus.REFUNDED}),
    OrderStatus.RETURNED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

PAYOUT_TRANSITIONS: Dict[PayoutStatus, FrozenSet[PayoutStatus]] = {
    PayoutStatus.IN_ESCROW: frozenset({PayoutStatus.PROCESSING}),
    PayoutStatus.PROCESSING: frozenset({PayoutStatus.PAID}),
    PayoutStatus.PAID: frozenset(),
}

# Which party may move an order into each status. Admins may make any allowed
# move; returned/refunded are only reached through the refunds workflow.
TRANSITION_PARTIES: Dict[OrderStatus, FrozenSet[str]] = {
    OrderStatus.CONFIRMED: frozenset({'seller'}),
    OrderStatus.PROCESSING: frozenset({'seller'}),
    OrderStatus.SHIPPED: frozenset({'seller'}),
    OrderStatus.DELIVERED: frozenset({'buyer'}),
    OrderStatus.CANCELED: frozenset({'buyer', 'seller'}),
    OrderStatus.RETURNED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

# Statuses whose stock is handed back when the order is canceled
CANCELABLE = frozenset(s for s, targets in ORDER_TRANSITIONS.items() if OrderStatus.CANCELED in targets)

# Statuses counted as a confirmed sale for conversion metrics
CONFIRMED_OR_LATER = frozenset({
    OrderStatus.CONFIRMED,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
    OrderStatus.RETURNED,
    OrderStatus.REFUNDED,
})


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return OrderStatus(target) in ORDER_TRANSITIONS[OrderStatus(current)]


def can_transition_payout(current: PayoutStatus, target: PayoutStatus) -> bool:
    return PayoutStatus(target) in PAYOUT_TRANSITIONS[PayoutStatus(current)]


def party_may_transition(party: Optional[str], target: OrderStatus, is_admin: bool = False) -> bool:
    """Check whether a buyer/seller (or admin) may request a move to target."""
    if is_admin:
        return True
    return party in TRANSITION_PARTIES[OrderStatus(target)]


def delivery_status_for(status: OrderStatus) -> Optional[DeliveryStatus]:
    """Delivery status implied by entering an order status, if it changes."""
    return {
        OrderStatus.SHIPPED: DeliveryStatus.IN_TRANSIT,
        OrderStatus.DELIVERED: DeliveryStatus.DELIVERED,
    }.get(OrderStatus(status))
