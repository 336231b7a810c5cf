"""Tests for the polling loops."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from polling import Poller, NotificationPoller, OrderStatusPoller, MAX_CONSECUTIVE_ERRORS

def notification(n):
    return {'id': f"n{n}", 'title': f"Update {n}"}

def test_interval_never_below_one_second():
    poller = Poller(AsyncMock(), interval=0.2, min_interval=0.1)
    assert poller.interval == 1.0
    assert poller.min_interval == 1.0

@pytest.mark.asyncio
async def test_stops_after_three_consecutive_errors():
    fetch = AsyncMock(side_effect=ConnectionError("down"))
    on_error = MagicMock()
    poller = Poller(fetch, on_error=on_error)
    poller.is_polling = True

    for _ in range(MAX_CONSECUTIVE_ERRORS):
        assert await poller.poll_once() is None

    assert poller.error_count == 3
    assert poller.is_polling is False
    assert on_error.call_count == 3

@pytest.mark.asyncio
async def test_success_resets_error_count():
    fetch = AsyncMock(side_effect=[ConnectionError("blip"), ConnectionError("blip"), {'ok': True}])
    poller = Poller(fetch)
    poller.is_polling = True

    await poller.poll_once()
    await poller.poll_once()
    data = await poller.poll_once()

    assert data == {'ok': True}
    assert poller.error_count == 0
    assert poller.is_polling is True

@pytest.mark.asyncio
async def test_no_retry_stops_on_first_error():
    poller = Poller(AsyncMock(side_effect=TimeoutError()), retry_on_error=False)
    poller.is_polling = True

    await poller.poll_once()

    assert poller.is_polling is False

@pytest.mark.asyncio
async def test_adaptive_interval():
    fetch = AsyncMock(side_effect=[[1], [1], [1], [2]])
    poller = Poller(fetch, interval=10, adaptive=True, min_interval=2, max_interval=5, backoff_multiplier=2)

    await poller.poll_once()
    assert poller.current_interval == 2  # first data counts as a change
    await poller.poll_once()
    assert poller.current_interval == 4
    await poller.poll_once()
    assert poller.current_interval == 5  # capped
    await poller.poll_once()
    assert poller.current_interval == 2

@pytest.mark.asyncio
async def test_sync_fetch_runs_in_thread():
    poller = Poller(lambda: {'count': 4})
    assert await poller.poll_once() == {'count': 4}

@pytest.mark.asyncio
async def test_start_and_stop():
    fetch = AsyncMock(return_value=[])
    poller = Poller(fetch, interval=30)

    task = poller.start()
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    poller.stop()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert fetch.await_count == 1
    assert poller.is_polling is False

@pytest.mark.asyncio
async def test_first_notification_poll_only_seeds():
    client = MagicMock()
    client.list_notifications.return_value = {'notifications': [notification(1), notification(2)]}
    on_new = MagicMock()
    poller = NotificationPoller(client, on_new)

    await poller.poll_once()

    on_new.assert_not_called()
    assert poller.seen_ids == {'n1', 'n2'}

@pytest.mark.asyncio
async def test_new_notifications_are_reported_once():
    client = MagicMock()
    client.list_notifications.side_effect = [
        {'notifications': [notification(1)]},
        {'notifications': [notification(2), notification(1)]},
        {'notifications': [notification(2), notification(1)]}
    ]
    on_new = MagicMock()
    poller = NotificationPoller(client, on_new, unread_only=True)

    for _ in range(3):
        await poller.poll_once()

    on_new.assert_called_once_with(notification(2))
    client.list_notifications.assert_called_with(unread_only=True, limit=50)

@pytest.mark.asyncio
async def test_large_bursts_are_batched():
    client = MagicMock()
    client.list_notifications.side_effect = [
        {'notifications': []},
        {'notifications': [notification(n) for n in range(7)]}
    ]
    on_new = MagicMock()
    poller = NotificationPoller(client, on_new)

    await poller.poll_once()
    await poller.poll_once()

    on_new.assert_called_once()
    summary = on_new.call_args.args[0]
    assert summary['batched'] is True
    assert summary['message'] == 'You have 7 new updates'

@pytest.mark.asyncio
async def test_order_status_changes():
    client = MagicMock()
    client.list_my_orders.side_effect = [
        [{'id': 'o1', 'order_status': 'pending'}],
        [{'id': 'o1', 'order_status': 'confirmed'}, {'id': 'o2', 'order_status': 'pending'}],
        [{'id': 'o1', 'order_status': 'confirmed'}, {'id': 'o2', 'order_status': 'pending'}]
    ]
    changes = []
    poller = OrderStatusPoller(client, lambda *change: changes.append(change))

    for _ in range(3):
        await poller.poll_once()

    assert changes == [('o1', 'pending', 'confirmed'), ('o2', None, 'pending')]

@pytest.mark.asyncio
async def test_seller_poller_lists_seller_orders():
    client = MagicMock()
    client.list_seller_orders.return_value = []
    poller = OrderStatusPoller(client, MagicMock(), as_seller=True)

    await poller.poll_once()

    client.list_seller_orders.assert_called_once_with()
    client.list_my_orders.assert_not_called()

@pytest.mark.asyncio
async def test_failing_callback_counts_as_error():
    on_error = MagicMock()
    poller = Poller(AsyncMock(return_value=[1]), on_data=MagicMock(side_effect=KeyError('id')), on_error=on_error)
    poller.is_polling = True

    for _ in range(MAX_CONSECUTIVE_ERRORS):
        await poller.poll_once()

    assert poller.error_count == 3
    assert poller.is_polling is False
    assert isinstance(on_error.call_args.args[0], KeyError)

@pytest.mark.asyncio
async def test_failing_callback_does_not_kill_the_loop():
    fetch = AsyncMock(return_value=[])
    on_data = MagicMock(side_effect=[ValueError("bad payload"), None])
    poller = Poller(fetch, interval=1, on_data=on_data)

    with patch('polling.asyncio.sleep', AsyncMock(side_effect=[None, asyncio.CancelledError()])):
        task = poller.start()
        with pytest.raises(asyncio.CancelledError):
            await task

    assert fetch.await_count == 2
    assert poller.error_count == 0
    assert poller.is_polling is False

@pytest.mark.asyncio
async def test_new_notification_handler_errors_are_counted():
    client = MagicMock()
    client.list_notifications.side_effect = [
        {'notifications': []},
        {'notifications': [notification(1)]}
    ]
    poller = NotificationPoller(client, MagicMock(side_effect=RuntimeError("toast failed")))

    await poller.poll_once()
    await poller.poll_once()

    assert poller.error_count == 1
