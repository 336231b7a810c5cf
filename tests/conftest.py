"""Shared fixtures.

Managers take an optional pool, so tests hand them a stand-in pool whose
connection methods are AsyncMocks and assert on the SQL they were given.
"""

import os
import tempfile
import uuid
from datetime import timedelta
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Settings are read when config is first imported
_settings_dir = tempfile.mkdtemp(prefix="luxela-test-")
Path(_settings_dir, "settings.conf").write_text("[DEFAULT]\njwt_secret = test-secret\n")
os.environ["LUXELA_SETTINGS"] = _settings_dir

from auth import create_access_token  # noqa: E402
from users import UserRole  # noqa: E402

class _AsyncContext:
    def __init__(self, value=None):
        self.value = value

    async def __aenter__(self):
        return self.value

    async def __aexit__(self, exc_type, exc, tb):
        return False

class FakeConnection:
    """Connection stand-in; configure fetchrow/fetch/fetchval per test."""

    def __init__(self):
        self.fetchrow = AsyncMock(return_value=None)
        self.fetch = AsyncMock(return_value=[])
        self.fetchval = AsyncMock(return_value=None)
        self.execute = AsyncMock(return_value='UPDATE 1')

    def transaction(self):
        return _AsyncContext()

    def executed_sql(self):
        """Every SQL string passed to execute, in order."""
        return [call.args[0] for call in self.execute.call_args_list]

class FakePool:
    def __init__(self, conn: FakeConnection):
        self.conn = conn

    def acquire(self):
        return _AsyncContext(self.conn)

@pytest.fixture
def conn():
    return FakeConnection()

@pytest.fixture
def pool(conn):
    return FakePool(conn)

@pytest.fixture
def notifier():
    """NotificationManager stand-in recording sent notifications."""
    manager = MagicMock()
    manager.send_notification = AsyncMock(return_value=None)
    return manager

@pytest.fixture
def buyer_id():
    return uuid.uuid4()

@pytest.fixture
def seller_id():
    return uuid.uuid4()

@pytest.fixture
def admin_id():
    return uuid.uuid4()

def bearer(user_id, role: UserRole, expires_in: timedelta = timedelta(hours=1)) -> dict:
    """Authorization header for a signed-in user."""
    token = create_access_token(user_id, role, email=f"{role.value}@example.com", expires_in=expires_in)
    return {"Authorization": f"Bearer {token}"}
