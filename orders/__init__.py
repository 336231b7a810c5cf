"""Orders module for managing marketplace orders.

This module handles order placement, fulfilment status changes and the
escrow hold on seller payouts. Funds for a delivered order stay in escrow
until the hold period passes without an open dispute or return.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Any
from uuid import UUID

from config import settings_conf
from database import get_pool
from listings import ListingReviewStatus
from notifications import NotificationManager, NotificationType
from .status import (
    OrderStatus,
    PayoutStatus,
    DeliveryStatus,
    CANCELABLE,
    can_transition,
    can_transition_payout,
    party_may_transition,
    delivery_status_for
)

logger = logging.getLogger(__name__)

# Load settings from config and convert to proper types
ESCROW_HOLD_DAYS = int(settings_conf['escrow_hold_days'])

# Statuses whose ongoing dispute or return keeps a payout in escrow
OPEN_DISPUTE_STATUSES = ('open', 'in_progress')
ACTIVE_REFUND_STATUSES = ('return_requested', 'return_approved')

STATUS_NOTIFICATIONS = {
    OrderStatus.CONFIRMED: NotificationType.ORDER_CONFIRMED,
    OrderStatus.PROCESSING: NotificationType.ORDER_PROCESSING,
    OrderStatus.SHIPPED: NotificationType.ORDER_SHIPPED,
    OrderStatus.DELIVERED: NotificationType.ORDER_DELIVERED,
    OrderStatus.CANCELED: NotificationType.ORDER_CANCELED,
    OrderStatus.RETURNED: NotificationType.ORDER_RETURNED,
    OrderStatus.REFUNDED: NotificationType.ORDER_REFUNDED,
}

class OrderError(Exception):
    """Base class for order-related errors."""
    pass

class OrderNotFoundError(OrderError):
    """Raised when an order doesn't exist."""
    pass

class OrderPermissionError(OrderError):
    """Raised when the caller isn't allowed to see or change the order."""
    pass

class InvalidTransitionError(OrderError):
    """Raised when a status change isn't allowed from the current status."""
    def __init__(self, kind: str, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move {kind} from {current} to {target}")

class ListingUnavailableError(OrderError):
    """Raised when the requested listing is missing or not approved."""
    pass

class InsufficientStockError(OrderError):
    """Raised when a listing has fewer units than requested."""
    def __init__(self, listing_id: UUID, available: int, requested: int):
        self.listing_id = listing_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for listing {listing_id}: "
            f"available {available}, requested {requested}"
        )

def party_of(order: Dict[str, Any], user_id: UUID) -> Optional[str]:
    """Return 'buyer' or 'seller' for a participant of the order, else None."""
    if order['buyer_id'] == user_id:
        return 'buyer'
    if order['seller_id'] == user_id:
        return 'seller'
    return None

class OrderManager:
    """Manages order operations and state transitions."""

    def __init__(self, pool=None, notifications: Optional[NotificationManager] = None) -> None:
        """Initialize order manager.

        Args:
            pool: Optional database connection pool. If not provided, will get from database module.
            notifications: Optional notification manager sharing the same pool.
        """
        self.pool = pool
        self.notifications = notifications or NotificationManager(pool)

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def create_order(
        self,
        buyer_id: UUID,
        listing_id: UUID,
        quantity: int,
        customer_name: str,
        customer_email: str,
        shipping_address: str
    ) -> Dict[str, Any]:
        """Place an order for a listing.

        Stock is reserved in the same transaction that creates the order.

        Returns:
            Dict containing the created order

        Raises:
            OrderError: If quantity is not positive or the buyer owns the listing
            ListingUnavailableError: If listing is missing or not approved
            InsufficientStockError: If the listing doesn't have enough units
        """
        if quantity <= 0:
            raise OrderError("Quantity must be positive")

        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                listing = await conn.fetchrow(
                    'SELECT * FROM listings WHERE id = $1 FOR UPDATE',
                    listing_id
                )
                if not listing or listing['review_status'] != ListingReviewStatus.APPROVED.value:
                    raise ListingUnavailableError(f"Listing {listing_id} is not available")
                if listing['seller_id'] == buyer_id:
                    raise OrderError("Sellers cannot order their own listings")
                if listing['quantity_available'] < quantity:
                    raise InsufficientStockError(listing_id, listing['quantity_available'], quantity)

                await conn.execute(
                    '''
                    UPDATE listings
                    SET quantity_available = quantity_available - $2,
                        updated_at = now()
                    WHERE id = $1
                    ''',
                    listing_id,
                    quantity
                )

                order = await conn.fetchrow(
                    '''
                    INSERT INTO orders (
                        buyer_id, seller_id, listing_id, product_title, product_image,
                        product_category, quantity, amount_cents, currency,
                        customer_name, customer_email, shipping_address
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
                    RETURNING *
                    ''',
                    buyer_id,
                    listing['seller_id'],
                    listing_id,
                    listing['title'],
                    listing['image_url'],
                    listing['category'],
                    quantity,
                    listing['price_cents'] * quantity,
                    listing['currency'],
                    customer_name,
                    customer_email,
                    shipping_address
                )

                await self._record_history(conn, order['id'], None, OrderStatus.PENDING, buyer_id, 'Order placed')

        order = dict(order)
        logger.info(f"Created order {order['id']} for listing {listing_id}")
        await self.notifications.send_notification(
            order['seller_id'],
            NotificationType.ORDER_PLACED,
            "New order",
            f"{quantity} x {order['product_title']} ordered by {customer_name}.",
            order_id=order['id']
        )
        return order

    async def get_order(self, order_id: UUID, user_id: UUID, is_admin: bool = False) -> Dict[str, Any]:
        """Get an order visible to the caller.

        Raises:
            OrderNotFoundError: If order doesn't exist
            OrderPermissionError: If the caller is not a participant or admin
        """
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            order = await conn.fetchrow('SELECT * FROM orders WHERE id = $1', order_id)
            if not order:
                raise OrderNotFoundError(f"Order {order_id} not found")
            if not is_admin and party_of(order, user_id) is None:
                raise OrderPermissionError(f"Not allowed to view order {order_id}")
            return dict(order)

    async def list_buyer_orders(self, buyer_id: UUID, status: Optional[OrderStatus] = None) -> List[Dict[str, Any]]:
        return await self._list_orders('buyer_id', buyer_id, status)

    async def list_seller_orders(self, seller_id: UUID, status: Optional[OrderStatus] = None) -> List[Dict[str, Any]]:
        return await self._list_orders('seller_id', seller_id, status)

    async def _list_orders(self, column: str, user_id: UUID, status: Optional[OrderStatus]) -> List[Dict[str, Any]]:
        await self.ensure_pool()

        query = f'SELECT * FROM orders WHERE {column} = $1'
        params: List[Any] = [user_id]
        if status:
            query += ' AND order_status = $2'
            params.append(OrderStatus(status).value)
        query += ' ORDER BY created_at DESC'

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, *params)
            return [dict(r) for r in rows]

    async def confirm_order(self, order_id: UUID, actor_id: UUID, is_admin: bool = False) -> Dict[str, Any]:
        return await self.transition(order_id, OrderStatus.CONFIRMED, actor_id, is_admin, note='Order confirmed')

    async def start_processing(self, order_id: UUID, actor_id: UUID, is_admin: bool = False) -> Dict[str, Any]:
        return await self.transition(order_id, OrderStatus.PROCESSING, actor_id, is_admin, note='Order is being prepared')

    async def ship_order(
        self,
        order_id: UUID,
        actor_id: UUID,
        tracking_number: str,
        is_admin: bool = False
    ) -> Dict[str, Any]:
        """Mark an order shipped with its carrier tracking number."""
        tracking_number = (tracking_number or '').strip()
        if not tracking_number:
            raise OrderError("Tracking number is required to ship an order")
        return await self.transition(
            order_id,
            OrderStatus.SHIPPED,
            actor_id,
            is_admin,
            note=f"Shipped with tracking {tracking_number}",
            extra={'tracking_number': tracking_number, 'shipped_at': datetime.now(timezone.utc)}
        )

    async def mark_delivered(self, order_id: UUID, actor_id: UUID, is_admin: bool = False) -> Dict[str, Any]:
        """Mark an order delivered and start its escrow hold period."""
        delivered_at = datetime.now(timezone.utc)
        return await self.transition(
            order_id,
            OrderStatus.DELIVERED,
            actor_id,
            is_admin,
            note='Delivery confirmed',
            extra={
                'delivered_at': delivered_at,
                'hold_releasable_at': delivered_at + timedelta(days=ESCROW_HOLD_DAYS)
            }
        )

    async def cancel_order(
        self,
        order_id: UUID,
        actor_id: UUID,
        reason: Optional[str] = None,
        is_admin: bool = False
    ) -> Dict[str, Any]:
        """Cancel an order that hasn't shipped and hand its stock back."""
        return await self.transition(
            order_id,
            OrderStatus.CANCELED,
            actor_id,
            is_admin,
            note=reason or 'Order canceled'
        )

    async def transition(
        self,
        order_id: UUID,
        target: OrderStatus,
        actor_id: Optional[UUID],
        is_admin: bool = False,
        note: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
        conn=None
    ) -> Dict[str, Any]:
        """Move an order to a new status.

        Validates the move against the status table and the caller's party,
        applies implied delivery fields, writes a history row and notifies the
        other party once committed.

        Args:
            order_id: The order's UUID
            target: The requested status
            actor_id: The caller, or None for system moves made by other workflows
            is_admin: Whether the caller is an admin
            note: History note
            extra: Additional columns to set
            conn: Optional connection inside a caller's transaction. When given,
                  notifications are left to the caller.

        Raises:
            OrderNotFoundError: If order doesn't exist
            OrderPermissionError: If the caller may not make this move
            InvalidTransitionError: If the move isn't allowed from the current status
        """
        target = OrderStatus(target)

        if conn is not None:
            return await self._apply_transition(conn, order_id, target, actor_id, is_admin, note, extra)

        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                order = await self._apply_transition(conn, order_id, target, actor_id, is_admin, note, extra)

        await self.notify_transition(order, target, actor_id)
        return order

    async def _apply_transition(self, conn, order_id, target, actor_id, is_admin, note, extra):
        current = await conn.fetchrow('SELECT * FROM orders WHERE id = $1 FOR UPDATE', order_id)
        if not current:
            raise OrderNotFoundError(f"Order {order_id} not found")

        # System moves (actor_id None) come from other workflows that checked access
        if actor_id is not None:
            party = party_of(current, actor_id)
            if party is None and not is_admin:
                raise OrderPermissionError(f"Not allowed to change order {order_id}")
            if not party_may_transition(party, target, is_admin):
                raise OrderPermissionError(f"The {party} cannot mark an order {target.value}")

        if not can_transition(current['order_status'], target):
            raise InvalidTransitionError('order', current['order_status'], target.value)

        updates: Dict[str, Any] = {'order_status': target.value}
        delivery = delivery_status_for(target)
        if delivery:
            updates['delivery_status'] = delivery.value
        updates.update(extra or {})

        set_clauses = [f"{name} = ${idx}" for idx, name in enumerate(updates, start=2)]
        order = await conn.fetchrow(
            f'''
            UPDATE orders
            SET {', '.join(set_clauses)}, updated_at = now()
            WHERE id = $1
            RETURNING *
            ''',
            order_id,
            *updates.values()
        )

        if target == OrderStatus.CANCELED and OrderStatus(current['order_status']) in CANCELABLE:
            await conn.execute(
                '''
                UPDATE listings
                SET quantity_available = quantity_available + $2,
                    updated_at = now()
                WHERE id = $1
                ''',
                current['listing_id'],
                current['quantity']
            )

        await self._record_history(conn, order_id, current['order_status'], target, actor_id, note)
        logger.info(f"Order {order_id}: {current['order_status']} -> {target.value}")
        return dict(order)

    async def notify_transition(self, order: Dict[str, Any], target: OrderStatus, actor_id: Optional[UUID]) -> None:
        """Tell the party that didn't make the change (both for admin/system moves)."""
        party = party_of(order, actor_id) if actor_id else None
        recipients = []
        if party != 'buyer':
            recipients.append(order['buyer_id'])
        if party != 'seller':
            recipients.append(order['seller_id'])

        status_text = OrderStatus(target).value.replace('_', ' ')
        for recipient in recipients:
            await self.notifications.send_notification(
                recipient,
                STATUS_NOTIFICATIONS[OrderStatus(target)],
                f"Order {status_text}",
                f"Order for {order['product_title']} is now {status_text}.",
                order_id=order['id']
            )

    async def _record_history(self, conn, order_id, from_status, to_status, actor_id, note) -> None:
        await conn.execute(
            '''
            INSERT INTO order_history (order_id, from_status, to_status, actor_id, note)
            VALUES ($1, $2, $3, $4, $5)
            ''',
            order_id,
            OrderStatus(from_status).value if from_status else None,
            OrderStatus(to_status).value,
            actor_id,
            note
        )

    async def get_history(self, order_id: UUID, user_id: UUID, is_admin: bool = False) -> List[Dict[str, Any]]:
        """Get the status history of an order, oldest first."""
        await self.get_order(order_id, user_id, is_admin)

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                '''
                SELECT from_status, to_status, actor_id, note, created_at
                FROM order_history
                WHERE order_id = $1
                ORDER BY created_at ASC
                ''',
                order_id
            )
            return [dict(r) for r in rows]

    async def release_matured_holds(self, now: Optional[datetime] = None) -> int:
        """Release escrow on delivered orders whose hold period has passed.

        Orders with an open dispute or an active return stay in escrow.

        Returns:
            Number of orders moved to payout processing
        """
        await self.ensure_pool()
        now = now or datetime.now(timezone.utc)

        async with self.pool.acquire() as conn:
            released = await conn.fetch(
                '''
                UPDATE orders
                SET payout_status = $1, updated_at = now()
                WHERE payout_status = $2
                AND order_status = $3
                AND hold_releasable_at <= $4
                AND NOT EXISTS (
                    SELECT 1 FROM order_disputes d
                    WHERE d.order_id = orders.id AND d.status = ANY($5)
                )
                AND NOT EXISTS (
                    SELECT 1 FROM refunds r
                    WHERE r.order_id = orders.id AND r.status = ANY($6)
                )
                RETURNING id, seller_id, product_title
                ''',
                PayoutStatus.PROCESSING.value,
                PayoutStatus.IN_ESCROW.value,
                OrderStatus.DELIVERED.value,
                now,
                list(OPEN_DISPUTE_STATUSES),
                list(ACTIVE_REFUND_STATUSES)
            )

        for order in released:
            await self.notifications.send_notification(
                order['seller_id'],
                NotificationType.PAYOUT_RELEASED,
                "Payout released from escrow",
                f"Funds for {order['product_title']} are being processed for payout.",
                order_id=order['id']
            )

        if released:
            logger.info(f"Released escrow for {len(released)} orders")
        return len(released)

    async def mark_payout_paid(self, order_id: UUID) -> Dict[str, Any]:
        """Record that a released payout has been paid out to the seller.

        Raises:
            OrderNotFoundError: If order doesn't exist
            InvalidTransitionError: If the payout isn't in processing
        """
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                order = await conn.fetchrow('SELECT * FROM orders WHERE id = $1 FOR UPDATE', order_id)
                if not order:
                    raise OrderNotFoundError(f"Order {order_id} not found")
                if not can_transition_payout(order['payout_status'], PayoutStatus.PAID):
                    raise InvalidTransitionError('payout', order['payout_status'], PayoutStatus.PAID.value)

                order = await conn.fetchrow(
                    '''
                    UPDATE orders
                    SET payout_status = $2, updated_at = now()
                    WHERE id = $1
                    RETURNING *
                    ''',
                    order_id,
                    PayoutStatus.PAID.value
                )

        await self.notifications.send_notification(
            order['seller_id'],
            NotificationType.PAYOUT_PAID,
            "Payout sent",
            f"Your payout for {order['product_title']} has been paid.",
            order_id=order_id
        )
        return dict(order)

__all__ = [
    'OrderManager',
    'OrderStatus',
    'PayoutStatus',
    'DeliveryStatus',
    'OrderError',
    'OrderNotFoundError',
    'OrderPermissionError',
    'InvalidTransitionError',
    'ListingUnavailableError',
    'InsufficientStockError',
    'ESCROW_HOLD_DAYS',
    'party_of'
]
