"""Polling loops for clients that can't hold a WebSocket open.

``Poller`` refetches on a fixed or adaptive interval and gives up after a
few consecutive errors. ``NotificationPoller`` and ``OrderStatusPoller``
sit on top of it and turn each fetched snapshot into change events.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 30.0
MIN_INTERVAL = 1.0
MAX_INTERVAL = 60.0
BACKOFF_MULTIPLIER = 1.5
MAX_CONSECUTIVE_ERRORS = 3
MAX_BATCH_SIZE = 5

async def _maybe_await(value):
    if inspect.isawaitable(value):
        return await value
    return value

class Poller:
    """Fixed or adaptive interval refetch loop."""

    def __init__(
        self,
        fetch: Callable[[], Any],
        interval: float = DEFAULT_INTERVAL,
        adaptive: bool = False,
        min_interval: float = MIN_INTERVAL,
        max_interval: float = MAX_INTERVAL,
        backoff_multiplier: float = BACKOFF_MULTIPLIER,
        retry_on_error: bool = True,
        on_data: Optional[Callable[[Any], Any]] = None,
        on_error: Optional[Callable[[Exception], Any]] = None
    ):
        """Initialize a poller.

        Args:
            fetch: Sync or async callable returning the current data. Sync
                   callables run in a worker thread.
            interval: Seconds between polls, never below min_interval
            adaptive: Speed up after changes and back off while data is unchanged
            min_interval: Fastest interval, floored at one second
            max_interval: Slowest adaptive interval
            backoff_multiplier: Interval growth per unchanged poll in adaptive mode
            retry_on_error: Keep polling after an error, up to MAX_CONSECUTIVE_ERRORS
            on_data: Called with each successful result
            on_error: Called with each fetch error
        """
        self.fetch = fetch
        self.min_interval = max(float(min_interval), MIN_INTERVAL)
        self.max_interval = max(float(max_interval), self.min_interval)
        self.interval = max(float(interval), self.min_interval)
        self.current_interval = self.interval
        self.adaptive = adaptive
        self.backoff_multiplier = backoff_multiplier
        self.retry_on_error = retry_on_error
        self.on_data = on_data
        self.on_error = on_error

        self.is_polling = False
        self.error_count = 0
        self.last_data: Any = None
        self._has_data = False
        self._task: Optional[asyncio.Task] = None

    async def _fetch(self) -> Any:
        if inspect.iscoroutinefunction(self.fetch):
            return await self.fetch()
        # RPC calls are not async
        return await asyncio.to_thread(self.fetch)

    async def poll_once(self) -> Any:
        """Fetch once, updating error count, interval and last data.

        Returns:
            The fetched data, or None if the fetch failed
        """
        try:
            data = await self._fetch()
        except Exception as e:
            await self._record_error(e)
            return None

        changed = not self._has_data or data != self.last_data
        self.last_data = data
        self._has_data = True

        if self.adaptive:
            if changed:
                self.current_interval = self.min_interval
            else:
                self.current_interval = min(
                    self.current_interval * self.backoff_multiplier,
                    self.max_interval
                )

        if self.on_data:
            try:
                await _maybe_await(self.on_data(data))
            except Exception as e:
                await self._record_error(e)
                return data

        self.error_count = 0
        return data

    async def _record_error(self, error: Exception) -> None:
        """Count a failed fetch or callback, stopping after too many in a row."""
        self.error_count += 1
        logger.error(f"Polling error ({self.error_count}/{MAX_CONSECUTIVE_ERRORS}): {error}")
        if self.on_error:
            await _maybe_await(self.on_error(error))
        if not self.retry_on_error or self.error_count >= MAX_CONSECUTIVE_ERRORS:
            logger.warning("Stopping poller after repeated errors")
            self.stop()

    async def _run(self) -> None:
        try:
            while self.is_polling:
                await self.poll_once()
                if not self.is_polling:
                    break
                await asyncio.sleep(self.current_interval)
        finally:
            if self._task is asyncio.current_task():
                self.is_polling = False

    def start(self) -> asyncio.Task:
        """Start polling in a background task on the running loop."""
        if self._task and not self._task.done():
            return self._task
        self.is_polling = True
        self.error_count = 0
        self.current_interval = self.interval
        self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    def stop(self) -> None:
        """Stop polling. The current fetch, if any, is cancelled."""
        self.is_polling = False
        task = self._task
        if task and not task.done():
            try:
                current = asyncio.current_task()
            except RuntimeError:
                current = None
            if task is not current:
                task.cancel()

class NotificationPoller(Poller):
    """Polls the caller's notifications and reports new ones.

    The first poll only records what is already there. When more than
    ``max_batch_size`` new notifications arrive at once a single summary
    is emitted instead.
    """

    def __init__(
        self,
        client,
        on_new: Callable[[Dict[str, Any]], Any],
        unread_only: bool = False,
        limit: int = 50,
        max_batch_size: int = MAX_BATCH_SIZE,
        **kwargs
    ):
        self.client = client
        self.on_new = on_new
        self.unread_only = unread_only
        self.limit = limit
        self.max_batch_size = max_batch_size
        self.seen_ids: Set[str] = set()
        self._seeded = False
        super().__init__(self._list_notifications, on_data=self._handle_notifications, **kwargs)

    def _list_notifications(self) -> List[Dict[str, Any]]:
        result = self.client.list_notifications(unread_only=self.unread_only, limit=self.limit)
        return result['notifications']

    async def _handle_notifications(self, notifications: List[Dict[str, Any]]) -> None:
        ids = {str(n['id']) for n in notifications}
        if not self._seeded:
            self.seen_ids = ids
            self._seeded = True
            return

        new = [n for n in notifications if str(n['id']) not in self.seen_ids]
        self.seen_ids |= ids
        if not new:
            return

        if len(new) > self.max_batch_size:
            await _maybe_await(self.on_new({
                'type': 'system',
                'title': 'New notifications',
                'message': f"You have {len(new)} new updates",
                'count': len(new),
                'batched': True
            }))
            return

        for notification in new:
            await _maybe_await(self.on_new(notification))

class OrderStatusPoller(Poller):
    """Polls the caller's orders and reports status changes.

    Emits ``(order_id, old_status, new_status)``; orders that appear after
    the first poll are reported with ``old_status`` None.
    """

    def __init__(
        self,
        client,
        on_change: Callable[[str, Optional[str], str], Any],
        as_seller: bool = False,
        **kwargs
    ):
        self.client = client
        self.on_change = on_change
        self.as_seller = as_seller
        self.statuses: Dict[str, str] = {}
        self._seeded = False
        super().__init__(self._list_orders, on_data=self._handle_orders, **kwargs)

    def _list_orders(self) -> List[Dict[str, Any]]:
        if self.as_seller:
            return self.client.list_seller_orders()
        return self.client.list_my_orders()

    async def _handle_orders(self, orders: List[Dict[str, Any]]) -> None:
        current = {str(o['id']): o['order_status'] for o in orders}
        if not self._seeded:
            self.statuses = current
            self._seeded = True
            return

        for order_id, status in current.items():
            old = self.statuses.get(order_id)
            if old != status:
                await _maybe_await(self.on_change(order_id, old, status))
        self.statuses = current

__all__ = [
    'Poller',
    'NotificationPoller',
    'OrderStatusPoller',
    'MAX_CONSECUTIVE_ERRORS',
    'MIN_INTERVAL'
]
