"""Refunds module for order returns.

The buyer requests a return on a delivered order. The seller (or an admin)
approves or rejects it, records the condition of the returned item and
completes the refund, which moves the order to refunded or returned.
"""

import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Any
from uuid import UUID

from database import get_pool
from notifications import NotificationManager, NotificationType
from orders import OrderManager, OrderStatus

logger = logging.getLogger(__name__)

class RefundType(str, Enum):
    FULL = "full"
    PARTIAL = "partial"
    STORE_CREDIT = "store_credit"

class ReturnReason(str, Enum):
    DAMAGED = "damaged"
    DEFECTIVE = "defective"
    NOT_AS_DESCRIBED = "not_as_described"
    WRONG_ITEM = "wrong_item"
    CHANGED_MIND = "changed_mind"
    NO_LONGER_NEEDED = "no_longer_needed"

class RefundStatus(str, Enum):
    RETURN_REQUESTED = "return_requested"
    RETURN_APPROVED = "return_approved"
    RETURN_REJECTED = "return_rejected"
    REFUNDED = "refunded"
    CANCELED = "canceled"

class ReceivedCondition(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    ACCEPTABLE = "acceptable"
    POOR = "poor"

ACTIVE_STATUSES = (RefundStatus.RETURN_REQUESTED.value, RefundStatus.RETURN_APPROVED.value)

# Order status a completed refund leaves behind
ORDER_STATUS_AFTER_REFUND = {
    RefundType.FULL: OrderStatus.REFUNDED,
    RefundType.STORE_CREDIT: OrderStatus.REFUNDED,
    RefundType.PARTIAL: OrderStatus.RETURNED
}

class RefundError(Exception):
    """Base exception for refund operations."""
    pass

class RefundNotFoundError(RefundError):
    """Raised when a refund doesn't exist."""
    pass

class RefundPermissionError(RefundError):
    """Raised when the caller may not see or act on a refund."""
    pass

class RefundExistsError(RefundError):
    """Raised when an order already has an active return."""
    pass

class InvalidTransitionError(RefundError):
    """Raised when a refund isn't in the status an action needs."""
    def __init__(self, current: str, action: str):
        self.current = current
        self.action = action
        super().__init__(f"Cannot {action} a refund that is {current}")

def generate_rma_number(order_id: UUID, now_ms: Optional[int] = None) -> str:
    """Build a return merchandise authorization number for an order."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"RMA-{now_ms}-{str(order_id)[:8].upper()}"

def refund_amount(refund_type: RefundType, order_amount_cents: int, amount_cents: Optional[int] = None) -> int:
    """Work out the refund amount for a refund type.

    Raises:
        RefundError: If a partial amount is missing, not positive or above the order amount
    """
    if RefundType(refund_type) != RefundType.PARTIAL:
        return order_amount_cents
    if amount_cents is None or amount_cents <= 0:
        raise RefundError("Partial refunds need a positive amount")
    if amount_cents > order_amount_cents:
        raise RefundError("Partial refund cannot exceed the order amount")
    return amount_cents

class RefundManager:
    """Manager class for returns and refunds."""

    def __init__(self, pool=None, notifications: Optional[NotificationManager] = None, orders: Optional[OrderManager] = None):
        self.pool = pool
        self.notifications = notifications or NotificationManager(pool)
        self.orders = orders or OrderManager(pool, self.notifications)

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def request_return(
        self,
        order_id: UUID,
        buyer_id: UUID,
        refund_type: RefundType,
        reason: ReturnReason,
        description: Optional[str] = None,
        amount_cents: Optional[int] = None
    ) -> Dict[str, Any]:
        """Request a return on a delivered order.

        Args:
            order_id: The order being returned
            buyer_id: The caller, who must be the order's buyer
            refund_type: full, partial or store_credit
            reason: Why the item is being returned
            description: Optional details
            amount_cents: Amount for partial refunds

        Returns:
            Dict containing the created refund

        Raises:
            RefundError: If the reason or amount is invalid, the order is
                missing or not delivered
            RefundPermissionError: If the caller isn't the buyer
            RefundExistsError: If the order already has an active return
        """
        if not reason:
            raise RefundError("A return reason is required")
        reason = ReturnReason(reason)
        refund_type = RefundType(refund_type)

        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                order = await conn.fetchrow('SELECT * FROM orders WHERE id = $1 FOR UPDATE', order_id)
                if not order:
                    raise RefundError(f"Order {order_id} not found")
                if order['buyer_id'] != buyer_id:
                    raise RefundPermissionError("Only the buyer can request a return")
                if order['order_status'] != OrderStatus.DELIVERED.value:
                    raise RefundError(f"Returns need a delivered order, this one is {order['order_status']}")

                existing = await conn.fetchval(
                    'SELECT rma_number FROM refunds WHERE order_id = $1 AND status = ANY($2) LIMIT 1',
                    order_id,
                    list(ACTIVE_STATUSES)
                )
                if existing:
                    raise RefundExistsError(f"Order {order_id} already has active return {existing}")

                amount = refund_amount(refund_type, order['amount_cents'], amount_cents)
                refund = await conn.fetchrow(
                    '''
                    INSERT INTO refunds (
                        order_id, buyer_id, seller_id, rma_number, refund_type,
                        reason, description, amount_cents, currency
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                    RETURNING *
                    ''',
                    order_id,
                    buyer_id,
                    order['seller_id'],
                    generate_rma_number(order_id),
                    refund_type.value,
                    reason.value,
                    description,
                    amount,
                    order['currency']
                )

        logger.info(f"Return {refund['rma_number']} requested for order {order_id}")
        await self.notifications.send_notification(
            order['seller_id'],
            NotificationType.REFUND_REQUESTED,
            "Return requested",
            f"The buyer requested a {refund_type.value.replace('_', ' ')} return for "
            f"{order['product_title']} ({reason.value.replace('_', ' ')}).",
            order_id=order_id
        )
        return dict(refund)

    async def get_refund(self, refund_id: UUID, user_id: UUID, is_admin: bool = False) -> Dict[str, Any]:
        """Get a refund visible to the caller.

        Raises:
            RefundNotFoundError: If refund doesn't exist
            RefundPermissionError: If the caller isn't buyer, seller or admin
        """
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            refund = await conn.fetchrow('SELECT * FROM refunds WHERE id = $1', refund_id)
            if not refund:
                raise RefundNotFoundError(f"Refund {refund_id} not found")
            if not is_admin and user_id not in (refund['buyer_id'], refund['seller_id']):
                raise RefundPermissionError(f"Not allowed to view refund {refund_id}")
            return dict(refund)

    async def list_buyer_refunds(self, buyer_id: UUID) -> List[Dict[str, Any]]:
        return await self._list_refunds('buyer_id', buyer_id)

    async def list_seller_refunds(self, seller_id: UUID) -> List[Dict[str, Any]]:
        return await self._list_refunds('seller_id', seller_id)

    async def list_all_refunds(self, status: Optional[RefundStatus] = None) -> List[Dict[str, Any]]:
        await self.ensure_pool()

        query = 'SELECT * FROM refunds'
        params: List[Any] = []
        if status:
            query += ' WHERE status = $1'
            params.append(RefundStatus(status).value)
        query += ' ORDER BY created_at DESC'

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, *params)
            return [dict(r) for r in rows]

    async def _list_refunds(self, column: str, user_id: UUID) -> List[Dict[str, Any]]:
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f'SELECT * FROM refunds WHERE {column} = $1 ORDER BY created_at DESC',
                user_id
            )
            return [dict(r) for r in rows]

    async def _load_for_action(
        self,
        conn,
        refund_id: UUID,
        user_id: UUID,
        is_admin: bool,
        action: str,
        required: RefundStatus,
        party: str = 'seller_id'
    ):
        refund = await conn.fetchrow('SELECT * FROM refunds WHERE id = $1 FOR UPDATE', refund_id)
        if not refund:
            raise RefundNotFoundError(f"Refund {refund_id} not found")
        if not is_admin and refund[party] != user_id:
            raise RefundPermissionError(f"Not allowed to {action} refund {refund_id}")
        if refund['status'] != required.value:
            raise InvalidTransitionError(refund['status'], action)
        return refund

    async def _update(self, conn, refund_id: UUID, updates: Dict[str, Any]) -> Dict[str, Any]:
        set_clauses = [f"{name} = ${idx}" for idx, name in enumerate(updates, start=2)]
        row = await conn.fetchrow(
            f'''
            UPDATE refunds
            SET {', '.join(set_clauses)}, updated_at = now()
            WHERE id = $1
            RETURNING *
            ''',
            refund_id,
            *updates.values()
        )
        return dict(row)

    async def approve_return(self, refund_id: UUID, user_id: UUID, is_admin: bool = False) -> Dict[str, Any]:
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await self._load_for_action(
                    conn, refund_id, user_id, is_admin, 'approve', RefundStatus.RETURN_REQUESTED
                )
                refund = await self._update(conn, refund_id, {
                    'status': RefundStatus.RETURN_APPROVED.value,
                    'processed_by': user_id
                })

        await self.notifications.send_notification(
            refund['buyer_id'],
            NotificationType.REFUND_APPROVED,
            "Return approved",
            f"Your return {refund['rma_number']} was approved. Please ship the item back.",
            order_id=refund['order_id']
        )
        return refund

    async def reject_return(
        self,
        refund_id: UUID,
        user_id: UUID,
        reason: str,
        is_admin: bool = False
    ) -> Dict[str, Any]:
        """Reject a requested return with a reason shown to the buyer."""
        if not reason or not reason.strip():
            raise RefundError("A rejection reason is required")

        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await self._load_for_action(
                    conn, refund_id, user_id, is_admin, 'reject', RefundStatus.RETURN_REQUESTED
                )
                refund = await self._update(conn, refund_id, {
                    'status': RefundStatus.RETURN_REJECTED.value,
                    'rejection_reason': reason.strip(),
                    'processed_by': user_id
                })

        await self.notifications.send_notification(
            refund['buyer_id'],
            NotificationType.REFUND_REJECTED,
            "Return rejected",
            f"Your return {refund['rma_number']} was rejected: {reason.strip()}",
            order_id=refund['order_id']
        )
        return refund

    async def mark_received(
        self,
        refund_id: UUID,
        user_id: UUID,
        condition: ReceivedCondition,
        is_admin: bool = False
    ) -> Dict[str, Any]:
        """Record that the returned item arrived and its condition."""
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await self._load_for_action(
                    conn, refund_id, user_id, is_admin, 'receive', RefundStatus.RETURN_APPROVED
                )
                refund = await self._update(conn, refund_id, {
                    'received_condition': ReceivedCondition(condition).value,
                    'received_at': datetime.now(timezone.utc)
                })

        await self.notifications.send_notification(
            refund['buyer_id'],
            NotificationType.REFUND_RECEIVED,
            "Return received",
            f"The seller received your return {refund['rma_number']}.",
            order_id=refund['order_id']
        )
        return refund

    async def complete_refund(self, refund_id: UUID, user_id: UUID, is_admin: bool = False) -> Dict[str, Any]:
        """Complete an approved return and move the order on.

        Full and store credit refunds leave the order refunded, partial
        refunds leave it returned.

        Raises:
            RefundNotFoundError: If refund doesn't exist
            RefundPermissionError: If the caller isn't the seller or admin
            InvalidTransitionError: If the return isn't approved
        """
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                refund = await self._load_for_action(
                    conn, refund_id, user_id, is_admin, 'complete', RefundStatus.RETURN_APPROVED
                )
                refund = await self._update(conn, refund_id, {
                    'status': RefundStatus.REFUNDED.value,
                    'refunded_at': datetime.now(timezone.utc),
                    'processed_by': user_id
                })

                target = ORDER_STATUS_AFTER_REFUND[RefundType(refund['refund_type'])]
                current = await conn.fetchval('SELECT order_status FROM orders WHERE id = $1', refund['order_id'])
                order = None
                if current != target.value:
                    order = await self.orders.transition(
                        refund['order_id'],
                        target,
                        None,
                        note=f"Refund {refund['rma_number']} completed",
                        conn=conn
                    )

        logger.info(f"Refund {refund['rma_number']} completed")
        if order:
            await self.orders.notify_transition(order, target, user_id)
        await self.notifications.send_notification(
            refund['buyer_id'],
            NotificationType.REFUND_COMPLETED,
            "Refund completed",
            f"Your refund {refund['rma_number']} has been processed.",
            order_id=refund['order_id']
        )
        return refund

    async def cancel_return(self, refund_id: UUID, buyer_id: UUID) -> Dict[str, Any]:
        """Withdraw a return request the seller hasn't acted on yet."""
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await self._load_for_action(
                    conn, refund_id, buyer_id, False, 'cancel', RefundStatus.RETURN_REQUESTED,
                    party='buyer_id'
                )
                refund = await self._update(conn, refund_id, {'status': RefundStatus.CANCELED.value})

        await self.notifications.send_notification(
            refund['seller_id'],
            NotificationType.REFUND_CANCELED,
            "Return canceled",
            f"The buyer canceled return {refund['rma_number']}.",
            order_id=refund['order_id']
        )
        return refund

__all__ = [
    'RefundManager',
    'RefundType',
    'ReturnReason',
    'RefundStatus',
    'ReceivedCondition',
    'RefundError',
    'RefundNotFoundError',
    'RefundPermissionError',
    'RefundExistsError',
    'InvalidTransitionError',
    'generate_rma_number',
    'refund_amount'
]
