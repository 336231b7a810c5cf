"""Tests for the background sweeps."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from asyncpg.exceptions import InterfaceError

from database import DatabaseError
from workers import release_once, escalate_once, release_escrow_task, escalate_disputes_task

@pytest.mark.asyncio
async def test_release_once():
    manager = MagicMock()
    manager.release_matured_holds = AsyncMock(return_value=2)

    assert await release_once(manager) == 2

@pytest.mark.asyncio
async def test_escalate_once():
    manager = MagicMock()
    manager.escalate_overdue = AsyncMock(return_value={'escalated': 1, 'auto_resolved': 0})

    assert await escalate_once(manager) == {'escalated': 1, 'auto_resolved': 0}

@pytest.mark.asyncio
async def test_release_task_survives_database_errors():
    with patch('workers.escrow.OrderManager') as manager_cls, \
            patch('workers.escrow.asyncio.sleep', AsyncMock(side_effect=[None, asyncio.CancelledError()])):
        manager_cls.return_value.release_matured_holds = AsyncMock(side_effect=[DatabaseError("down"), 0])

        with pytest.raises(asyncio.CancelledError):
            await release_escrow_task(interval=5)

    assert manager_cls.return_value.release_matured_holds.await_count == 2

@pytest.mark.asyncio
async def test_escalation_task_survives_any_error():
    with patch('workers.escalation.DisputeManager') as manager_cls, \
            patch('workers.escalation.asyncio.sleep', AsyncMock(side_effect=[None, asyncio.CancelledError()])):
        manager_cls.return_value.escalate_overdue = AsyncMock(side_effect=[
            InterfaceError('pool is closed'),
            {'escalated': 0, 'auto_resolved': 0}
        ])

        with pytest.raises(asyncio.CancelledError):
            await escalate_disputes_task(interval=5)

    assert manager_cls.return_value.escalate_overdue.await_count == 2

@pytest.mark.asyncio
async def test_release_task_survives_unexpected_errors():
    with patch('workers.escrow.OrderManager') as manager_cls, \
            patch('workers.escrow.asyncio.sleep', AsyncMock(side_effect=[None, asyncio.CancelledError()])):
        manager_cls.return_value.release_matured_holds = AsyncMock(side_effect=[KeyError('hold_releasable_at'), 1])

        with pytest.raises(asyncio.CancelledError):
            await release_escrow_task(interval=5)

    assert manager_cls.return_value.release_matured_holds.await_count == 2
