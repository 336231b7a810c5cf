"""Tests for websocket fan-out."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import WebSocketDisconnect

from api.websockets import ConnectionManager

def socket():
    ws = MagicMock()
    ws.send_json = AsyncMock()
    return ws

@pytest.fixture
def connections():
    manager = ConnectionManager()
    alice, bob = socket(), socket()
    manager.active_connections['notifications'] |= {alice, bob}
    manager.owners[alice] = 'alice'
    manager.owners[bob] = 'bob'
    return manager, alice, bob

@pytest.mark.asyncio
async def test_updates_for_a_user_reach_only_that_user(connections):
    manager, alice, bob = connections

    await manager.broadcast('notifications', {'user_id': 'alice', 'notification': {}})

    alice.send_json.assert_awaited_once()
    bob.send_json.assert_not_called()
    message = alice.send_json.call_args.args[0]
    assert message['type'] == 'update'
    assert message['channel'] == 'notifications'

@pytest.mark.asyncio
async def test_updates_without_user_go_to_everyone(connections):
    manager, alice, bob = connections

    await manager.broadcast('notifications', {'listing_id': 'l1'})

    alice.send_json.assert_awaited_once()
    bob.send_json.assert_awaited_once()

@pytest.mark.asyncio
async def test_dead_connections_are_dropped(connections):
    manager, alice, bob = connections
    bob.send_json.side_effect = WebSocketDisconnect()

    await manager.broadcast('notifications', {'message': 'hi'})

    assert manager.active_connections['notifications'] == {alice}
    assert bob not in manager.owners

@pytest.mark.asyncio
async def test_unknown_channel():
    with pytest.raises(ValueError):
        await ConnectionManager().broadcast('prices', {})
