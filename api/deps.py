"""Shared route dependencies."""

from typing import Callable, Optional

from fastapi import Depends, HTTPException, status

from auth import CurrentUser, get_current_user, get_optional_user
from users import UserManager, UserRole, UserStatus

async def load_member(user: CurrentUser) -> CurrentUser:
    """Resolve a token's caller against their local profile.

    The profile row is created on first use, seeded with the token's role.
    After that the stored role is authoritative, so role changes made by an
    admin take effect on the next request.

    Raises:
        HTTPException: If the account is suspended
    """
    profile = await UserManager().ensure_user(user.id, user.email, user.role)
    if profile['status'] == UserStatus.SUSPENDED.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is suspended"
        )
    return CurrentUser(id=user.id, role=profile['role'], email=profile.get('email') or user.email)

def member(*roles: UserRole) -> Callable:
    """Build a dependency for signed-in members with one of the given roles.

    Any role is accepted when none are given.
    """
    allowed = {UserRole(r) for r in roles} if roles else set(UserRole)

    async def dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        user = await load_member(user)
        if user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(sorted(r.value for r in allowed))}"
            )
        return user

    return dependency

async def optional_member(user: Optional[CurrentUser] = Depends(get_optional_user)) -> Optional[CurrentUser]:
    """The signed-in member, or None for anonymous callers."""
    if user is None:
        return None
    return await load_member(user)

current_member = member()
seller_member = member(UserRole.SELLER, UserRole.ADMIN)
admin_member = member(UserRole.ADMIN)
