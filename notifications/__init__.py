"""Notifications module.

Stores per-user notifications, honours per-category notification settings
and pushes new notifications to connected clients through a broadcaster
registered by the API layer.
"""

import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional
from uuid import UUID

from asyncpg.exceptions import PostgresError

from database import get_pool

logger = logging.getLogger(__name__)

class NotificationType(str, Enum):
    ORDER_PLACED = "order_placed"
    ORDER_CONFIRMED = "order_confirmed"
    ORDER_PROCESSING = "order_processing"
    ORDER_SHIPPED = "order_shipped"
    ORDER_DELIVERED = "order_delivered"
    ORDER_CANCELED = "order_canceled"
    ORDER_RETURNED = "order_returned"
    ORDER_REFUNDED = "order_refunded"
    PAYOUT_RELEASED = "payout_released"
    PAYOUT_PAID = "payout_paid"
    REFUND_REQUESTED = "refund_requested"
    REFUND_APPROVED = "refund_approved"
    REFUND_REJECTED = "refund_rejected"
    REFUND_RECEIVED = "refund_received"
    REFUND_COMPLETED = "refund_completed"
    REFUND_CANCELED = "refund_canceled"
    SUPPORT_REPLY = "support_reply"
    SUPPORT_STATUS = "support_status"
    DISPUTE_OPENED = "dispute_opened"
    DISPUTE_ESCALATED = "dispute_escalated"
    DISPUTE_RESOLVED = "dispute_resolved"
    LISTING_APPROVED = "listing_approved"
    LISTING_REJECTED = "listing_rejected"
    LISTING_REVISION = "listing_revision_requested"
    SYSTEM = "system"

# Type prefix -> notification_settings column. Unlisted prefixes always deliver.
SETTING_FOR_CATEGORY = {
    'order': 'order_updates',
    'payout': 'order_updates',
    'refund': 'refund_updates',
    'support': 'support_updates',
    'dispute': 'support_updates',
    'listing': 'listing_updates'
}

SETTING_FIELDS = ('order_updates', 'refund_updates', 'support_updates', 'listing_updates')

DEFAULT_SETTINGS = {field: True for field in SETTING_FIELDS}

Broadcaster = Callable[[str, Dict[str, Any]], Awaitable[None]]

_broadcaster: Optional[Broadcaster] = None

def set_broadcaster(broadcaster: Optional[Broadcaster]) -> None:
    """Register the coroutine used to push notifications to live clients."""
    global _broadcaster
    _broadcaster = broadcaster

def notification_category(notification_type: str) -> str:
    """Return the category prefix of a notification type."""
    return str(notification_type).split('_', 1)[0]

def is_enabled(notification_type: str, settings: Optional[Dict[str, Any]]) -> bool:
    """Check a notification type against a user's settings row."""
    if not settings:
        return True
    column = SETTING_FOR_CATEGORY.get(notification_category(notification_type))
    if column is None:
        return True
    return bool(settings.get(column, True))

def _affected(status: str) -> int:
    """Row count from an asyncpg command status such as 'UPDATE 3'."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0

class NotificationError(Exception):
    """Base exception for notification operations."""
    pass

class NotificationNotFoundError(NotificationError):
    """Raised when a notification doesn't exist for the user."""
    pass

class NotificationManager:
    """Manager class for user notifications."""

    def __init__(self, pool=None):
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def send_notification(
        self,
        user_id: UUID,
        type: NotificationType,
        title: str,
        message: str,
        order_id: Optional[UUID] = None
    ) -> Optional[Dict[str, Any]]:
        """Send a notification to a user.

        This is used by the other managers after their own writes commit. It will:
        1. Check the user's notification settings
        2. Save the notification to the database
        3. Push it to connected clients

        A failure here is logged and does not undo the caller's work.

        Returns:
            The stored notification, or None if suppressed or failed
        """
        await self.ensure_pool()
        type_value = NotificationType(type).value

        try:
            async with self.pool.acquire() as conn:
                settings = await conn.fetchrow(
                    'SELECT * FROM notification_settings WHERE user_id = $1',
                    user_id
                )
                if not is_enabled(type_value, dict(settings) if settings else None):
                    logger.debug(f"Notification {type_value} suppressed for {user_id}")
                    return None

                row = await conn.fetchrow(
                    '''
                    INSERT INTO notifications (user_id, type, title, message, order_id)
                    VALUES ($1, $2, $3, $4, $5)
                    RETURNING *
                    ''',
                    user_id,
                    type_value,
                    title,
                    message,
                    order_id
                )
        except PostgresError as e:
            logger.error(f"Error sending notification to {user_id}: {e}")
            return None

        notification = dict(row)

        if _broadcaster:
            try:
                await _broadcaster('notifications', {
                    'user_id': str(user_id),
                    'notification': {
                        'id': str(notification['id']),
                        'type': type_value,
                        'title': title,
                        'message': message,
                        'order_id': str(order_id) if order_id else None,
                        'created_at': notification['created_at'].isoformat()
                    }
                })
            except Exception as e:
                logger.error(f"Error broadcasting notification {notification['id']}: {e}")

        return notification

    async def list_notifications(
        self,
        user_id: UUID,
        type: Optional[NotificationType] = None,
        unread_only: bool = False,
        starred_only: bool = False,
        limit: int = 50,
        offset: int = 0
    ) -> Dict[str, Any]:
        """List a user's notifications, newest first."""
        await self.ensure_pool()

        conditions = ['user_id = $1']
        params: List[Any] = [user_id]
        if type:
            params.append(NotificationType(type).value)
            conditions.append(f"type = ${len(params)}")
        if unread_only:
            conditions.append('is_read = false')
        if starred_only:
            conditions.append('is_starred = true')
        where = ' AND '.join(conditions)

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f'''
                SELECT * FROM notifications
                WHERE {where}
                ORDER BY created_at DESC
                LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}
                ''',
                *params,
                limit,
                offset
            )
            total_count = await conn.fetchval(
                f'SELECT COUNT(*) FROM notifications WHERE {where}',
                *params
            )
            unread_count = await conn.fetchval(
                'SELECT COUNT(*) FROM notifications WHERE user_id = $1 AND is_read = false',
                user_id
            )

            return {
                'notifications': [dict(r) for r in rows],
                'total_count': total_count,
                'unread_count': unread_count,
                'limit': limit,
                'offset': offset
            }

    async def get_unread_count(self, user_id: UUID) -> int:
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            return await conn.fetchval(
                'SELECT COUNT(*) FROM notifications WHERE user_id = $1 AND is_read = false',
                user_id
            )

    async def mark_read(self, user_id: UUID, notification_ids: List[UUID]) -> int:
        """Mark the caller's notifications as read, returning how many changed."""
        if not notification_ids:
            return 0
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            result = await conn.execute(
                '''
                UPDATE notifications
                SET is_read = true
                WHERE user_id = $1 AND id = ANY($2) AND is_read = false
                ''',
                user_id,
                notification_ids
            )
            return _affected(result)

    async def mark_all_read(self, user_id: UUID) -> int:
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            result = await conn.execute(
                'UPDATE notifications SET is_read = true WHERE user_id = $1 AND is_read = false',
                user_id
            )
            return _affected(result)

    async def toggle_star(self, user_id: UUID, notification_id: UUID) -> bool:
        """Flip the starred flag, returning the new value.

        Raises:
            NotificationNotFoundError: If the notification isn't the user's
        """
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            starred = await conn.fetchval(
                '''
                UPDATE notifications
                SET is_starred = NOT is_starred
                WHERE id = $1 AND user_id = $2
                RETURNING is_starred
                ''',
                notification_id,
                user_id
            )
            if starred is None:
                raise NotificationNotFoundError(f"Notification {notification_id} not found")
            return starred

    async def delete(self, user_id: UUID, notification_id: UUID) -> None:
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            result = await conn.execute(
                'DELETE FROM notifications WHERE id = $1 AND user_id = $2',
                notification_id,
                user_id
            )
            if _affected(result) == 0:
                raise NotificationNotFoundError(f"Notification {notification_id} not found")

    async def clear_all(self, user_id: UUID) -> int:
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            result = await conn.execute('DELETE FROM notifications WHERE user_id = $1', user_id)
            return _affected(result)

    async def get_settings(self, user_id: UUID) -> Dict[str, bool]:
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                'SELECT * FROM notification_settings WHERE user_id = $1',
                user_id
            )
            if not row:
                return dict(DEFAULT_SETTINGS)
            return {field: row[field] for field in SETTING_FIELDS}

    async def update_settings(self, user_id: UUID, **settings: bool) -> Dict[str, bool]:
        """Upsert notification settings; omitted fields keep their value."""
        unknown = set(settings) - set(SETTING_FIELDS)
        if unknown:
            raise NotificationError(f"Unknown settings: {', '.join(sorted(unknown))}")

        merged = await self.get_settings(user_id)
        merged.update({k: v for k, v in settings.items() if v is not None})

        async with self.pool.acquire() as conn:
            await conn.execute(
                '''
                INSERT INTO notification_settings (
                    user_id, order_updates, refund_updates, support_updates, listing_updates
                ) VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT (user_id) DO UPDATE
                SET
                    order_updates = EXCLUDED.order_updates,
                    refund_updates = EXCLUDED.refund_updates,
                    support_updates = EXCLUDED.support_updates,
                    listing_updates = EXCLUDED.listing_updates,
                    updated_at = now()
                ''',
                user_id,
                *(merged[field] for field in SETTING_FIELDS)
            )
        return merged

__all__ = [
    'NotificationManager',
    'NotificationType',
    'NotificationError',
    'NotificationNotFoundError',
    'set_broadcaster',
    'is_enabled',
    'notification_category',
    'DEFAULT_SETTINGS'
]
