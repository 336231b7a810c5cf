"""Support module for customer service tickets.

Buyers and sellers open tickets and reply to them; admins triage them by
status, priority and assignee, and may leave internal notes that the
ticket owner never sees.
"""

import logging
from typing import Dict, List, Optional, Any
from uuid import UUID

from database import get_pool
from notifications import NotificationManager, NotificationType
from users import UserRole
from .exceptions import (
    SupportError,
    TicketNotFoundError,
    DisputeNotFoundError,
    SupportPermissionError,
    DisputeExistsError,
    InvalidTransitionError
)
from .status import (
    TicketStatus,
    TicketPriority,
    TicketCategory,
    TICKET_TRANSITIONS,
    can_transition,
    status_change
)

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100

class SupportManager:
    """Manager class for support tickets and their replies."""

    def __init__(self, pool=None, notifications: Optional[NotificationManager] = None):
        self.pool = pool
        self.notifications = notifications or NotificationManager(pool)

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def create_ticket(
        self,
        user_id: UUID,
        subject: str,
        description: str,
        category: TicketCategory,
        priority: TicketPriority = TicketPriority.MEDIUM,
        order_id: Optional[UUID] = None
    ) -> Dict[str, Any]:
        """Open a new support ticket.

        Args:
            user_id: The ticket owner
            subject: Short summary
            description: Full description of the problem
            category: Ticket category
            priority: Ticket priority, medium unless given
            order_id: Optional related order

        Returns:
            Dict containing the created ticket

        Raises:
            SupportError: If subject or description is blank
        """
        if not subject or not subject.strip():
            raise SupportError("Subject is required")
        if not description or not description.strip():
            raise SupportError("Description is required")

        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            ticket = await conn.fetchrow(
                '''
                INSERT INTO support_tickets (
                    user_id, order_id, subject, description, category, priority
                ) VALUES ($1, $2, $3, $4, $5, $6)
                RETURNING *
                ''',
                user_id,
                order_id,
                subject.strip(),
                description.strip(),
                TicketCategory(category).value,
                TicketPriority(priority).value
            )

        logger.info(f"Created support ticket {ticket['id']} for user {user_id}")
        return dict(ticket)

    async def _fetch_ticket(self, conn, ticket_id: UUID, lock: bool = False):
        query = 'SELECT * FROM support_tickets WHERE id = $1'
        if lock:
            query += ' FOR UPDATE'
        ticket = await conn.fetchrow(query, ticket_id)
        if not ticket:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return ticket

    async def get_ticket(self, ticket_id: UUID, user_id: UUID, is_admin: bool = False) -> Dict[str, Any]:
        """Get a ticket with its replies.

        Internal notes are only included for admins.

        Raises:
            TicketNotFoundError: If ticket doesn't exist
            SupportPermissionError: If the caller is neither owner nor admin
        """
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            ticket = await self._fetch_ticket(conn, ticket_id)
            if not is_admin and ticket['user_id'] != user_id:
                raise SupportPermissionError(f"Not allowed to view ticket {ticket_id}")

            query = 'SELECT * FROM support_ticket_replies WHERE ticket_id = $1'
            if not is_admin:
                query += ' AND is_internal = false'
            query += ' ORDER BY created_at ASC'
            replies = await conn.fetch(query, ticket_id)

            result = dict(ticket)
            result['replies'] = [dict(r) for r in replies]
            return result

    async def list_user_tickets(self, user_id: UUID, status: Optional[TicketStatus] = None) -> List[Dict[str, Any]]:
        await self.ensure_pool()

        query = 'SELECT * FROM support_tickets WHERE user_id = $1'
        params: List[Any] = [user_id]
        if status:
            query += ' AND status = $2'
            params.append(TicketStatus(status).value)
        query += ' ORDER BY created_at DESC'

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, *params)
            return [dict(r) for r in rows]

    async def list_all_tickets(
        self,
        status: Optional[TicketStatus] = None,
        priority: Optional[TicketPriority] = None,
        category: Optional[TicketCategory] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Dict[str, Any]:
        """List tickets across all users for the admin queue."""
        await self.ensure_pool()
        limit = min(max(limit, 1), MAX_PAGE_SIZE)

        conditions = []
        params: List[Any] = []
        for column, value, enum in (
            ('status', status, TicketStatus),
            ('priority', priority, TicketPriority),
            ('category', category, TicketCategory)
        ):
            if value:
                params.append(enum(value).value)
                conditions.append(f"{column} = ${len(params)}")
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ''

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f'''
                SELECT * FROM support_tickets
                {where}
                ORDER BY created_at DESC
                LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}
                ''',
                *params,
                limit,
                offset
            )
            total_count = await conn.fetchval(
                f'SELECT COUNT(*) FROM support_tickets {where}',
                *params
            )

            return {
                'tickets': [dict(r) for r in rows],
                'total_count': total_count,
                'limit': limit,
                'offset': offset
            }

    async def update_ticket(
        self,
        ticket_id: UUID,
        user_id: UUID,
        is_admin: bool = False,
        status: Optional[TicketStatus] = None,
        priority: Optional[TicketPriority] = None,
        assigned_to: Optional[UUID] = None
    ) -> Dict[str, Any]:
        """Update a ticket's status, priority or assignee in one call.

        Only admins may change priority or assignee, or move the status
        freely. Owners may close their own ticket.

        Raises:
            TicketNotFoundError: If ticket doesn't exist
            SupportPermissionError: If the caller may not make the change
            InvalidTransitionError: If the status change isn't allowed
            SupportError: If nothing was given to update
        """
        if status is None and priority is None and assigned_to is None:
            raise SupportError("Nothing to update")

        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                ticket = await self._fetch_ticket(conn, ticket_id, lock=True)

                if not is_admin:
                    if ticket['user_id'] != user_id:
                        raise SupportPermissionError(f"Not allowed to update ticket {ticket_id}")
                    if priority is not None or assigned_to is not None:
                        raise SupportPermissionError("Only admins can change priority or assignee")
                    if status is not None and TicketStatus(status) != TicketStatus.CLOSED:
                        raise SupportPermissionError("Ticket owners can only close their tickets")

                updates: Dict[str, Any] = {}
                if status is not None:
                    updates.update(status_change(ticket['status'], status))
                if priority is not None:
                    updates['priority'] = TicketPriority(priority).value
                if assigned_to is not None:
                    updates['assigned_to'] = assigned_to

                set_clauses = [f"{name} = ${idx}" for idx, name in enumerate(updates, start=2)]
                updated = await conn.fetchrow(
                    f'''
                    UPDATE support_tickets
                    SET {', '.join(set_clauses)}, updated_at = now()
                    WHERE id = $1
                    RETURNING *
                    ''',
                    ticket_id,
                    *updates.values()
                )

        if status is not None:
            logger.info(f"Ticket {ticket_id}: {ticket['status']} -> {updated['status']}")
            if updated['user_id'] != user_id:
                await self.notifications.send_notification(
                    updated['user_id'],
                    NotificationType.SUPPORT_STATUS,
                    "Support ticket updated",
                    f"Your ticket \"{updated['subject']}\" is now {updated['status'].replace('_', ' ')}.",
                    order_id=updated['order_id']
                )
        return dict(updated)

    async def reply(
        self,
        ticket_id: UUID,
        user_id: UUID,
        role: UserRole,
        message: str,
        is_internal: bool = False
    ) -> Dict[str, Any]:
        """Add a reply to a ticket.

        Raises:
            TicketNotFoundError: If ticket doesn't exist
            SupportPermissionError: If the caller isn't owner or admin, or a
                non-admin posts an internal note
            SupportError: If the message is blank or the ticket is closed
        """
        if not message or not message.strip():
            raise SupportError("Reply message is required")

        is_admin = UserRole(role) == UserRole.ADMIN
        if is_internal and not is_admin:
            raise SupportPermissionError("Only admins can add internal notes")

        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                ticket = await self._fetch_ticket(conn, ticket_id)
                if not is_admin and ticket['user_id'] != user_id:
                    raise SupportPermissionError(f"Not allowed to reply to ticket {ticket_id}")
                if ticket['status'] == TicketStatus.CLOSED.value:
                    raise SupportError(f"Ticket {ticket_id} is closed")

                reply = await conn.fetchrow(
                    '''
                    INSERT INTO support_ticket_replies (
                        ticket_id, sender_id, sender_role, message, is_internal
                    ) VALUES ($1, $2, $3, $4, $5)
                    RETURNING *
                    ''',
                    ticket_id,
                    user_id,
                    UserRole(role).value,
                    message.strip(),
                    is_internal
                )
                await conn.execute(
                    'UPDATE support_tickets SET updated_at = now() WHERE id = $1',
                    ticket_id
                )

        if not is_internal and ticket['user_id'] != user_id:
            await self.notifications.send_notification(
                ticket['user_id'],
                NotificationType.SUPPORT_REPLY,
                "New reply from support",
                f"Support replied to your ticket \"{ticket['subject']}\".",
                order_id=ticket['order_id']
            )
        return dict(reply)

    async def get_stats(self) -> Dict[str, int]:
        """Count tickets per status plus the overall total."""
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                'SELECT status, COUNT(*) AS count FROM support_tickets GROUP BY status'
            )

        stats = {s.value: 0 for s in TicketStatus}
        for row in rows:
            stats[row['status']] = row['count']
        stats['total'] = sum(stats.values())
        return stats

from .disputes import DisputeManager, escalation_level_for

__all__ = [
    'SupportManager',
    'DisputeManager',
    'TicketStatus',
    'TicketPriority',
    'TicketCategory',
    'TICKET_TRANSITIONS',
    'SupportError',
    'TicketNotFoundError',
    'DisputeNotFoundError',
    'SupportPermissionError',
    'DisputeExistsError',
    'InvalidTransitionError',
    'can_transition',
    'status_change',
    'escalation_level_for'
]
