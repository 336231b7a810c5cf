"""Order disputes.

A dispute follows the same status rules as a support ticket. While it is
open or in progress the order's payout stays in escrow. Disputes left
unresolved are escalated as they age and auto-resolved after thirty days.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any
from uuid import UUID

from database import get_pool
from notifications import NotificationManager, NotificationType
from orders import OrderStatus, party_of
from .exceptions import (
    SupportError,
    DisputeNotFoundError,
    SupportPermissionError,
    DisputeExistsError
)
from .status import TicketStatus, status_change

logger = logging.getLogger(__name__)

# (minimum age in hours, escalation level), highest first
ESCALATION_THRESHOLDS = [
    (168, 3),
    (72, 2),
    (24, 1)
]
AUTO_RESOLVE_HOURS = 720
AUTO_RESOLUTION = 'auto_resolved'

# Orders that can't be disputed yet or any more
NON_DISPUTABLE_ORDER_STATUSES = {OrderStatus.PENDING.value, OrderStatus.CANCELED.value}

ACTIVE_STATUSES = (TicketStatus.OPEN.value, TicketStatus.IN_PROGRESS.value)

def escalation_level_for(age_hours: float) -> int:
    """Escalation level for a dispute of the given age."""
    for threshold, level in ESCALATION_THRESHOLDS:
        if age_hours >= threshold:
            return level
    return 0

class DisputeManager:
    """Manager class for order disputes."""

    def __init__(self, pool=None, notifications: Optional[NotificationManager] = None):
        self.pool = pool
        self.notifications = notifications or NotificationManager(pool)

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def open_dispute(
        self,
        order_id: UUID,
        user_id: UUID,
        reason: str,
        description: str
    ) -> Dict[str, Any]:
        """Open a dispute on an order.

        Args:
            order_id: The disputed order
            user_id: The buyer or seller opening it
            reason: Short reason
            description: Details of the problem

        Returns:
            Dict containing the created dispute

        Raises:
            SupportError: If reason/description is blank, the order is missing
                or the order can't be disputed in its current status
            SupportPermissionError: If the caller isn't a party to the order
            DisputeExistsError: If the order already has a dispute that isn't closed
        """
        if not reason or not reason.strip():
            raise SupportError("Dispute reason is required")
        if not description or not description.strip():
            raise SupportError("Dispute description is required")

        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                order = await conn.fetchrow('SELECT * FROM orders WHERE id = $1 FOR UPDATE', order_id)
                if not order:
                    raise SupportError(f"Order {order_id} not found")
                if party_of(order, user_id) is None:
                    raise SupportPermissionError(f"Not a party to order {order_id}")
                if order['order_status'] in NON_DISPUTABLE_ORDER_STATUSES:
                    raise SupportError(f"Cannot dispute a {order['order_status']} order")

                existing = await conn.fetchval(
                    '''
                    SELECT id FROM order_disputes
                    WHERE order_id = $1 AND status != $2
                    LIMIT 1
                    ''',
                    order_id,
                    TicketStatus.CLOSED.value
                )
                if existing:
                    raise DisputeExistsError(f"Order {order_id} already has dispute {existing}")

                dispute = await conn.fetchrow(
                    '''
                    INSERT INTO order_disputes (order_id, opened_by, reason, description)
                    VALUES ($1, $2, $3, $4)
                    RETURNING *
                    ''',
                    order_id,
                    user_id,
                    reason.strip(),
                    description.strip()
                )

        logger.info(f"Dispute {dispute['id']} opened on order {order_id}")
        other_party = order['seller_id'] if party_of(order, user_id) == 'buyer' else order['buyer_id']
        await self.notifications.send_notification(
            other_party,
            NotificationType.DISPUTE_OPENED,
            "Dispute opened",
            f"A dispute was opened on the order for {order['product_title']}: {reason.strip()}",
            order_id=order_id
        )
        return dict(dispute)

    async def get_dispute(self, dispute_id: UUID, user_id: UUID, is_admin: bool = False) -> Dict[str, Any]:
        """Get a dispute visible to the caller.

        Raises:
            DisputeNotFoundError: If dispute doesn't exist
            SupportPermissionError: If the caller isn't a party or admin
        """
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            dispute = await conn.fetchrow(
                '''
                SELECT d.*, o.buyer_id, o.seller_id
                FROM order_disputes d
                JOIN orders o ON o.id = d.order_id
                WHERE d.id = $1
                ''',
                dispute_id
            )
            if not dispute:
                raise DisputeNotFoundError(f"Dispute {dispute_id} not found")
            if not is_admin and party_of(dispute, user_id) is None:
                raise SupportPermissionError(f"Not allowed to view dispute {dispute_id}")
            return dict(dispute)

    async def list_disputes(self, status: Optional[TicketStatus] = None) -> List[Dict[str, Any]]:
        await self.ensure_pool()

        query = 'SELECT * FROM order_disputes'
        params: List[Any] = []
        if status:
            query += ' WHERE status = $1'
            params.append(TicketStatus(status).value)
        query += ' ORDER BY escalation_level DESC, created_at ASC'

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, *params)
            return [dict(r) for r in rows]

    async def update_dispute_status(
        self,
        dispute_id: UUID,
        status: TicketStatus,
        resolution: Optional[str] = None
    ) -> Dict[str, Any]:
        """Move a dispute to a new status (admin).

        Raises:
            DisputeNotFoundError: If dispute doesn't exist
            InvalidTransitionError: If the status change isn't allowed
        """
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                dispute = await conn.fetchrow(
                    'SELECT * FROM order_disputes WHERE id = $1 FOR UPDATE',
                    dispute_id
                )
                if not dispute:
                    raise DisputeNotFoundError(f"Dispute {dispute_id} not found")

                updates = status_change(dispute['status'], status)
                if resolution:
                    updates['resolution'] = resolution.strip()
                updated = await self._write(conn, dispute_id, updates)

        logger.info(f"Dispute {dispute_id}: {dispute['status']} -> {updated['status']}")
        if updated['status'] in (TicketStatus.RESOLVED.value, TicketStatus.CLOSED.value):
            await self._notify_parties(
                updated,
                NotificationType.DISPUTE_RESOLVED,
                "Dispute resolved",
                f"The dispute on your order is now {updated['status']}."
                + (f" Resolution: {updated['resolution']}" if updated['resolution'] else '')
            )
        return updated

    async def escalate_overdue(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Raise the escalation level of aging disputes and auto-resolve stale ones.

        Levels are only ever raised. Disputes older than the auto-resolve
        limit are resolved with resolution ``auto_resolved``.

        Returns:
            Counts of escalated and auto-resolved disputes
        """
        await self.ensure_pool()
        now = now or datetime.now(timezone.utc)
        escalated: List[Dict[str, Any]] = []
        resolved: List[Dict[str, Any]] = []

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                disputes = await conn.fetch(
                    '''
                    SELECT * FROM order_disputes
                    WHERE status = ANY($1)
                    FOR UPDATE
                    ''',
                    list(ACTIVE_STATUSES)
                )

                for dispute in disputes:
                    age_hours = (now - dispute['created_at']).total_seconds() / 3600

                    if age_hours >= AUTO_RESOLVE_HOURS:
                        updates = status_change(dispute['status'], TicketStatus.RESOLVED, now)
                        updates['resolution'] = AUTO_RESOLUTION
                        updates['escalation_level'] = max(dispute['escalation_level'], 3)
                        resolved.append(await self._write(conn, dispute['id'], updates))
                        continue

                    level = escalation_level_for(age_hours)
                    if level > dispute['escalation_level']:
                        escalated.append(
                            await self._write(conn, dispute['id'], {'escalation_level': level})
                        )

        for dispute in escalated:
            await self._notify_parties(
                dispute,
                NotificationType.DISPUTE_ESCALATED,
                "Dispute escalated",
                f"An open dispute on your order was escalated to level {dispute['escalation_level']}."
            )
        for dispute in resolved:
            await self._notify_parties(
                dispute,
                NotificationType.DISPUTE_RESOLVED,
                "Dispute closed automatically",
                "A dispute on your order was resolved automatically after 30 days without resolution."
            )

        if escalated or resolved:
            logger.info(f"Escalated {len(escalated)} disputes, auto-resolved {len(resolved)}")
        return {'escalated': len(escalated), 'auto_resolved': len(resolved)}

    async def _write(self, conn, dispute_id: UUID, updates: Dict[str, Any]) -> Dict[str, Any]:
        set_clauses = [f"{name} = ${idx}" for idx, name in enumerate(updates, start=2)]
        row = await conn.fetchrow(
            f'''
            UPDATE order_disputes
            SET {', '.join(set_clauses)}, updated_at = now()
            WHERE id = $1
            RETURNING *
            ''',
            dispute_id,
            *updates.values()
        )
        return dict(row)

    async def _notify_parties(self, dispute: Dict[str, Any], type: NotificationType, title: str, message: str) -> None:
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            order = await conn.fetchrow(
                'SELECT buyer_id, seller_id FROM orders WHERE id = $1',
                dispute['order_id']
            )
        if not order:
            return
        for recipient in (order['buyer_id'], order['seller_id']):
            await self.notifications.send_notification(
                recipient, type, title, message, order_id=dispute['order_id']
            )
