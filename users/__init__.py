"""Users module for marketplace accounts.

Accounts are created by the identity provider; this module keeps the local
profile row that orders, listings and tickets point at, and gives admins
the member management operations.
"""

import hashlib
import logging
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Any
from uuid import UUID

import aiofiles
from asyncpg.exceptions import UniqueViolationError

from config import settings_conf
from database import get_pool

logger = logging.getLogger(__name__)

# User-mutable profile fields
MUTABLE_FIELDS = {
    'display_name',
    'phone',
    'profile_image_url'
}

ALLOWED_IMAGE_EXTENSIONS = {'jpg', 'jpeg', 'png', 'webp'}

class UserRole(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"

class UserStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"

class UserError(Exception):
    """Base exception for user operations."""
    pass

class UserNotFoundError(UserError):
    """Raised when a user does not exist."""
    pass

class UserExistsError(UserError):
    """Raised when an email is already taken by another account."""
    pass

class InvalidUploadError(UserError):
    """Raised when an uploaded profile picture is rejected."""
    pass

class UserManager:
    """Manager class for user profiles and member administration."""

    def __init__(self, pool=None):
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def ensure_user(self, user_id: UUID, email: Optional[str], role: UserRole) -> Dict[str, Any]:
        """Create the local profile row on first use, returning it either way.

        The role is only written on first use. A missing email keeps the
        stored one, or a placeholder for new rows.

        Raises:
            UserExistsError: If the email belongs to another account
        """
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            try:
                row = await conn.fetchrow(
                    '''
                    INSERT INTO users (id, email, role)
                    VALUES ($1, COALESCE($2::text, $4), $3)
                    ON CONFLICT (id) DO UPDATE
                    SET email = COALESCE($2::text, users.email)
                    RETURNING *
                    ''',
                    user_id,
                    email,
                    UserRole(role).value,
                    f"{user_id}@users.luxela"
                )
            except UniqueViolationError:
                raise UserExistsError(f"Email {email} is already used by another account")
            return dict(row)

    async def get_user(self, user_id: UUID) -> Dict[str, Any]:
        """Get a user by ID.

        Raises:
            UserNotFoundError: If the user doesn't exist
        """
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow('SELECT * FROM users WHERE id = $1', user_id)
            if not row:
                raise UserNotFoundError(f"User {user_id} not found")
            return dict(row)

    async def update_profile(self, user_id: UUID, **fields) -> Dict[str, Any]:
        """Update mutable profile fields.

        Raises:
            UserError: If a field is not user-mutable
            UserNotFoundError: If the user doesn't exist
        """
        invalid = set(fields) - MUTABLE_FIELDS
        if invalid:
            raise UserError(f"Cannot update fields: {', '.join(sorted(invalid))}")

        updates = {k: v for k, v in fields.items() if v is not None}
        if not updates:
            return await self.get_user(user_id)

        await self.ensure_pool()

        # Build update query dynamically based on provided fields
        set_clauses = [f"{name} = ${idx}" for idx, name in enumerate(updates, start=2)]

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f'''
                UPDATE users
                SET {', '.join(set_clauses)}, updated_at = now()
                WHERE id = $1
                RETURNING *
                ''',
                user_id,
                *updates.values()
            )
            if not row:
                raise UserNotFoundError(f"User {user_id} not found")
            return dict(row)

    async def save_profile_picture(self, user_id: UUID, filename: str, content: bytes) -> Dict[str, Any]:
        """Store an uploaded profile picture and point the profile at it.

        Files are content-addressed under ``media_root/profile``.

        Raises:
            InvalidUploadError: If the file type or size is not accepted
        """
        extension = filename.rsplit('.', 1)[-1].lower() if '.' in filename else ''
        if extension not in ALLOWED_IMAGE_EXTENSIONS:
            raise InvalidUploadError(
                f"Unsupported image type '{extension}'. "
                f"Allowed: {', '.join(sorted(ALLOWED_IMAGE_EXTENSIONS))}"
            )
        if not content:
            raise InvalidUploadError("Uploaded file is empty")
        if len(content) > settings_conf['max_upload_bytes']:
            raise InvalidUploadError(
                f"File exceeds {settings_conf['max_upload_bytes']} bytes"
            )

        digest = hashlib.sha256(content).hexdigest()
        target_dir = Path(settings_conf['media_root']) / 'profile'
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / f"{digest}.{extension}"

        async with aiofiles.open(target, 'wb') as f:
            await f.write(content)

        logger.info(f"Stored profile picture for {user_id} at {target}")
        return await self.update_profile(
            user_id,
            profile_image_url=f"/media/profile/{digest}.{extension}"
        )

    async def list_users(
        self,
        role: Optional[UserRole] = None,
        status: Optional[UserStatus] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Dict[str, Any]:
        """List users for the admin members page."""
        await self.ensure_pool()

        conditions = []
        params: List[Any] = []
        if role:
            params.append(UserRole(role).value)
            conditions.append(f"role = ${len(params)}")
        if status:
            params.append(UserStatus(status).value)
            conditions.append(f"status = ${len(params)}")
        if search:
            params.append(f"%{search}%")
            conditions.append(f"(email ILIKE ${len(params)} OR display_name ILIKE ${len(params)})")

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ''

        async with self.pool.acquire() as conn:
            total = await conn.fetchval(f'SELECT COUNT(*) FROM users {where}', *params)
            rows = await conn.fetch(
                f'''
                SELECT * FROM users {where}
                ORDER BY created_at DESC
                LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}
                ''',
                *params,
                limit,
                offset
            )
            return {
                'users': [dict(r) for r in rows],
                'total_count': total,
                'limit': limit,
                'offset': offset
            }

    async def set_status(self, user_id: UUID, status: UserStatus) -> Dict[str, Any]:
        """Suspend or reactivate a user."""
        return await self._set_column(user_id, 'status', UserStatus(status).value)

    async def set_role(self, user_id: UUID, role: UserRole) -> Dict[str, Any]:
        """Change a user's marketplace role."""
        return await self._set_column(user_id, 'role', UserRole(role).value)

    async def _set_column(self, user_id: UUID, column: str, value: str) -> Dict[str, Any]:
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f'UPDATE users SET {column} = $2, updated_at = now() WHERE id = $1 RETURNING *',
                user_id,
                value
            )
            if not row:
                raise UserNotFoundError(f"User {user_id} not found")
            logger.info(f"Set {column} of user {user_id} to {value}")
            return dict(row)

__all__ = [
    'UserManager',
    'UserRole',
    'UserStatus',
    'UserError',
    'UserNotFoundError',
    'UserExistsError',
    'InvalidUploadError',
    'MUTABLE_FIELDS'
]
