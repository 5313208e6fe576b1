"""User administration and profile endpoints."""

from fastapi import APIRouter, Depends, Security
from typing import Optional
from pydantic import BaseModel, EmailStr, Field

from auth import get_current_user
from policy import Caller, Role
from users import UserManager
from ..dependencies import get_user_manager

router = APIRouter(
    prefix="/users",
    tags=["Users"]
)

class ProfileUpdate(BaseModel):
    """Model for profile updates."""
    username: Optional[str] = Field(None, min_length=3, max_length=50)
    email: Optional[EmailStr] = None

class RoleUpdate(BaseModel):
    """Model for an admin changing a user's role."""
    role: Role

# Profile routes are registered before /{user_id}
@router.get("/profile")
async def get_profile(
    caller: Caller = Security(get_current_user),
    manager: UserManager = Depends(get_user_manager)
):
    """Get the authenticated user's profile."""
    return await manager.get_profile(caller)

@router.put("/profile")
async def update_profile(
    update: ProfileUpdate,
    caller: Caller = Security(get_current_user),
    manager: UserManager = Depends(get_user_manager)
):
    """Update the authenticated user's username and email."""
    return await manager.update_profile(caller, update.username, update.email)

@router.get("/role/{role}")
async def get_users_by_role(
    role: Role,
    caller: Caller = Security(get_current_user),
    manager: UserManager = Depends(get_user_manager)
):
    """List users with a role."""
    return await manager.list_users_by_role(caller, role)

@router.get("")
async def get_users(
    caller: Caller = Security(get_current_user),
    manager: UserManager = Depends(get_user_manager)
):
    """List all users (admin only)."""
    return await manager.list_users(caller)

@router.get("/{user_id}")
async def get_user(
    user_id: int,
    caller: Caller = Security(get_current_user),
    manager: UserManager = Depends(get_user_manager)
):
    """Get a user by ID (admin only)."""
    return await manager.get_user(caller, user_id)

@router.put("/{user_id}")
async def update_user_role(
    user_id: int,
    update: RoleUpdate,
    caller: Caller = Security(get_current_user),
    manager: UserManager = Depends(get_user_manager)
):
    """Change a user's role (admin only)."""
    return await manager.update_role(caller, user_id, update.role)

@router.delete("/{user_id}")
async def delete_user(
    user_id: int,
    caller: Caller = Security(get_current_user),
    manager: UserManager = Depends(get_user_manager)
):
    """Delete a user (admin only)."""
    return await manager.delete_user(caller, user_id)

__all__ = ['router']
