"""Tests for local profiles and member administration."""

import uuid

import pytest
from asyncpg.exceptions import UniqueViolationError

from config import settings_conf
from users import (
    UserManager,
    UserRole,
    UserStatus,
    UserError,
    UserNotFoundError,
    UserExistsError,
    InvalidUploadError
)

@pytest.mark.asyncio
async def test_ensure_user_upserts_profile(pool, conn, buyer_id):
    conn.fetchrow.return_value = {'id': buyer_id, 'role': 'buyer', 'status': 'active'}

    profile = await UserManager(pool).ensure_user(buyer_id, None, UserRole.BUYER)

    assert profile['status'] == 'active'
    sql = conn.fetchrow.call_args.args[0]
    assert 'ON CONFLICT (id)' in sql
    assert 'COALESCE($2::text, users.email)' in sql
    assert 'role =' not in sql.split('DO UPDATE')[1]
    assert conn.fetchrow.call_args.args[1:] == (buyer_id, None, 'buyer', f"{buyer_id}@users.luxela")

@pytest.mark.asyncio
async def test_ensure_user_email_taken(pool, conn, buyer_id):
    conn.fetchrow.side_effect = UniqueViolationError('duplicate key value violates unique constraint "idx_users_email"')

    with pytest.raises(UserExistsError):
        await UserManager(pool).ensure_user(buyer_id, 'ada@example.com', UserRole.BUYER)

@pytest.mark.asyncio
async def test_update_profile_rejects_role(pool, buyer_id):
    with pytest.raises(UserError):
        await UserManager(pool).update_profile(buyer_id, role='admin')

@pytest.mark.asyncio
async def test_update_profile(pool, conn, buyer_id):
    conn.fetchrow.return_value = {'id': buyer_id, 'display_name': 'Amaka'}

    await UserManager(pool).update_profile(buyer_id, display_name='Amaka', phone=None)

    assert 'display_name = $2' in conn.fetchrow.call_args.args[0]
    assert conn.fetchrow.call_args.args[1:] == (buyer_id, 'Amaka')

@pytest.mark.asyncio
async def test_missing_user(pool, buyer_id):
    with pytest.raises(UserNotFoundError):
        await UserManager(pool).get_user(buyer_id)

@pytest.mark.asyncio
async def test_suspend(pool, conn, buyer_id):
    conn.fetchrow.return_value = {'id': buyer_id, 'status': 'suspended'}

    await UserManager(pool).set_status(buyer_id, UserStatus.SUSPENDED)

    assert conn.fetchrow.call_args.args[1:] == (buyer_id, 'suspended')

@pytest.mark.asyncio
async def test_list_users_filters(pool, conn):
    conn.fetchval.return_value = 0

    await UserManager(pool).list_users(role=UserRole.SELLER, search='ade')

    sql = conn.fetch.call_args.args[0]
    assert 'role = $1' in sql
    assert 'email ILIKE $2' in sql
    assert conn.fetch.call_args.args[1:] == ('seller', '%ade%', 50, 0)

@pytest.mark.asyncio
@pytest.mark.parametrize('filename,content', [
    ('avatar.gif', b'GIF89a'),
    ('avatar', b'\x89PNG'),
    ('avatar.png', b'')
])
async def test_profile_picture_validation(pool, conn, buyer_id, filename, content):
    with pytest.raises(InvalidUploadError):
        await UserManager(pool).save_profile_picture(buyer_id, filename, content)
    conn.fetchrow.assert_not_called()

@pytest.mark.asyncio
async def test_profile_picture_is_stored(pool, conn, buyer_id, tmp_path, monkeypatch):
    monkeypatch.setitem(settings_conf, 'media_root', str(tmp_path))
    conn.fetchrow.return_value = {'id': buyer_id}

    await UserManager(pool).save_profile_picture(buyer_id, 'Me.PNG', b'\x89PNG data')

    stored = list((tmp_path / 'profile').iterdir())
    assert len(stored) == 1
    assert stored[0].suffix == '.png'
    assert stored[0].read_bytes() == b'\x89PNG data'
    assert conn.fetchrow.call_args.args[2] == f"/media/profile/{stored[0].name}"
