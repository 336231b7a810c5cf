"""Tests for notification storage, settings and live delivery."""

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from asyncpg.exceptions import PostgresError

import notifications
from notifications import (
    NotificationManager,
    NotificationType,
    NotificationError,
    NotificationNotFoundError,
    DEFAULT_SETTINGS,
    is_enabled,
    _affected
)

@pytest.fixture
def broadcaster():
    push = AsyncMock()
    notifications.set_broadcaster(push)
    yield push
    notifications.set_broadcaster(None)

def stored(user_id, type_value='order_shipped'):
    return {
        'id': uuid.uuid4(),
        'user_id': user_id,
        'type': type_value,
        'title': 'Shipped',
        'message': 'Your order is on its way',
        'created_at': datetime(2025, 3, 1, tzinfo=timezone.utc)
    }

@pytest.mark.parametrize('type_value,settings,expected', [
    ('order_shipped', None, True),
    ('order_shipped', {'order_updates': False}, False),
    ('payout_released', {'order_updates': False}, False),
    ('dispute_opened', {'support_updates': False}, False),
    ('refund_approved', {'order_updates': False}, True),
    ('system', {'order_updates': False, 'support_updates': False}, True)
])
def test_is_enabled(type_value, settings, expected):
    assert is_enabled(type_value, settings) is expected

def test_affected_rows():
    assert _affected('UPDATE 3') == 3
    assert _affected('DELETE 0') == 0
    assert _affected(None) == 0

@pytest.mark.asyncio
async def test_send_stores_and_pushes(pool, conn, buyer_id, broadcaster):
    row = stored(buyer_id)
    conn.fetchrow.side_effect = [None, row]

    result = await NotificationManager(pool).send_notification(
        buyer_id, NotificationType.ORDER_SHIPPED, 'Shipped', 'Your order is on its way'
    )

    assert result == row
    channel, payload = broadcaster.call_args.args
    assert channel == 'notifications'
    assert payload['user_id'] == str(buyer_id)
    assert payload['notification']['type'] == 'order_shipped'
    assert payload['notification']['order_id'] is None

@pytest.mark.asyncio
async def test_send_respects_settings(pool, conn, buyer_id, broadcaster):
    conn.fetchrow.return_value = dict(DEFAULT_SETTINGS, listing_updates=False)

    result = await NotificationManager(pool).send_notification(
        buyer_id, NotificationType.LISTING_APPROVED, 'Approved', 'Your listing is live'
    )

    assert result is None
    assert conn.fetchrow.await_count == 1
    broadcaster.assert_not_called()

@pytest.mark.asyncio
async def test_send_failure_is_not_raised(pool, conn, buyer_id, broadcaster):
    conn.fetchrow.side_effect = PostgresError("relation does not exist")

    result = await NotificationManager(pool).send_notification(
        buyer_id, NotificationType.SYSTEM, 'Hello', 'Welcome'
    )

    assert result is None
    broadcaster.assert_not_called()

@pytest.mark.asyncio
async def test_broadcast_failure_keeps_notification(pool, conn, buyer_id, broadcaster):
    row = stored(buyer_id)
    conn.fetchrow.side_effect = [None, row]
    broadcaster.side_effect = RuntimeError("socket closed")

    result = await NotificationManager(pool).send_notification(
        buyer_id, NotificationType.ORDER_SHIPPED, 'Shipped', 'Your order is on its way'
    )

    assert result == row

@pytest.mark.asyncio
async def test_list_filters(pool, conn, buyer_id):
    conn.fetchval.side_effect = [4, 2]

    result = await NotificationManager(pool).list_notifications(
        buyer_id, type=NotificationType.ORDER_PLACED, unread_only=True, limit=10
    )

    sql = conn.fetch.call_args.args[0]
    assert 'type = $2' in sql
    assert 'is_read = false' in sql
    assert 'LIMIT $3 OFFSET $4' in sql
    assert conn.fetch.call_args.args[1:] == (buyer_id, 'order_placed', 10, 0)
    assert result['total_count'] == 4
    assert result['unread_count'] == 2

@pytest.mark.asyncio
async def test_mark_read_counts_changed_rows(pool, conn, buyer_id):
    conn.execute.return_value = 'UPDATE 2'
    ids = [uuid.uuid4(), uuid.uuid4(), uuid.uuid4()]

    assert await NotificationManager(pool).mark_read(buyer_id, ids) == 2
    assert conn.execute.call_args.args[1:] == (buyer_id, ids)

@pytest.mark.asyncio
async def test_mark_read_with_no_ids(pool, conn, buyer_id):
    assert await NotificationManager(pool).mark_read(buyer_id, []) == 0
    conn.execute.assert_not_called()

@pytest.mark.asyncio
async def test_toggle_star_missing(pool, conn, buyer_id):
    conn.fetchval.return_value = None

    with pytest.raises(NotificationNotFoundError):
        await NotificationManager(pool).toggle_star(buyer_id, uuid.uuid4())

@pytest.mark.asyncio
async def test_delete_missing(pool, conn, buyer_id):
    conn.execute.return_value = 'DELETE 0'

    with pytest.raises(NotificationNotFoundError):
        await NotificationManager(pool).delete(buyer_id, uuid.uuid4())

@pytest.mark.asyncio
async def test_settings_default_to_enabled(pool, conn, buyer_id):
    assert await NotificationManager(pool).get_settings(buyer_id) == DEFAULT_SETTINGS

@pytest.mark.asyncio
async def test_update_settings_merges(pool, conn, buyer_id):
    result = await NotificationManager(pool).update_settings(buyer_id, refund_updates=False, order_updates=None)

    assert result == dict(DEFAULT_SETTINGS, refund_updates=False)
    assert conn.execute.call_args.args[1:] == (buyer_id, True, False, True, True)

@pytest.mark.asyncio
async def test_update_settings_rejects_unknown(pool, buyer_id):
    with pytest.raises(NotificationError):
        await NotificationManager(pool).update_settings(buyer_id, marketing=True)
