"""User profile and member administration endpoints."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, UploadFile
from pydantic import BaseModel, Field

from auth import CurrentUser
from config import settings_conf
from users import UserManager, UserRole, UserStatus
from ..deps import current_member, admin_member

router = APIRouter(tags=["Users"])

class ProfileUpdate(BaseModel):
    """Model for profile updates."""
    display_name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=30)
    profile_image_url: Optional[str] = None

class ListUsersRequest(BaseModel):
    role: Optional[UserRole] = None
    status: Optional[UserStatus] = None
    search: Optional[str] = None
    limit: int = Field(50, ge=1, le=100)
    offset: int = Field(0, ge=0)

class SetStatusRequest(BaseModel):
    user_id: UUID
    status: UserStatus

class SetRoleRequest(BaseModel):
    user_id: UUID
    role: UserRole

@router.post("/rpc/users.me")
async def get_me(user: CurrentUser = Depends(current_member)):
    """Get the caller's profile."""
    return await UserManager().get_user(user.id)

@router.post("/rpc/users.updateProfile")
async def update_profile(request: ProfileUpdate, user: CurrentUser = Depends(current_member)):
    """Update the caller's display name, phone or picture URL."""
    return await UserManager().update_profile(user.id, **request.model_dump(exclude_none=True))

@router.post("/users/me/profile-picture")
async def upload_profile_picture(
    file: UploadFile = File(...),
    user: CurrentUser = Depends(current_member)
):
    """Upload a profile picture (jpg, jpeg, png or webp)."""
    # One byte past the limit is enough to reject an oversized file
    content = await file.read(settings_conf['max_upload_bytes'] + 1)
    return await UserManager().save_profile_picture(user.id, file.filename or '', content)

@router.post("/rpc/users.list")
async def list_users(request: ListUsersRequest, user: CurrentUser = Depends(admin_member)):
    """List members with optional role, status and search filters."""
    return await UserManager().list_users(**request.model_dump())

@router.post("/rpc/users.setStatus")
async def set_status(request: SetStatusRequest, user: CurrentUser = Depends(admin_member)):
    """Suspend or reactivate a member."""
    return await UserManager().set_status(request.user_id, request.status)

@router.post("/rpc/users.setRole")
async def set_role(request: SetRoleRequest, user: CurrentUser = Depends(admin_member)):
    """Change a member's role."""
    return await UserManager().set_role(request.user_id, request.role)
