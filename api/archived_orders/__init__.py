"""Archived order endpoints."""

from fastapi import APIRouter, Depends, Security, status
from typing import Optional
from pydantic import BaseModel, Field

from archive import ArchiveManager
from auth import get_current_user
from policy import Caller
from ..dependencies import get_archive_manager

router = APIRouter(
    prefix="/archived-orders",
    tags=["Archived Orders"]
)

class ArchiveRequest(BaseModel):
    """Request model for archiving a completed order."""
    order_id: int
    rating: Optional[int] = Field(None, ge=1, le=5)
    review: Optional[str] = Field(None, max_length=5000)

class ReviewUpdate(BaseModel):
    """Request model for updating a review."""
    rating: Optional[int] = Field(None, ge=1, le=5)
    review: Optional[str] = Field(None, max_length=5000)

@router.get("")
async def get_archived_orders(
    caller: Caller = Security(get_current_user),
    manager: ArchiveManager = Depends(get_archive_manager)
):
    """Get all archived orders (admin only)."""
    return await manager.list_archived(caller)

@router.get("/user")
async def get_user_archived_orders(
    caller: Caller = Security(get_current_user),
    manager: ArchiveManager = Depends(get_archive_manager)
):
    """Get the caller's archived orders as customer or freelancer."""
    return await manager.list_user_archived(caller)

@router.get("/{archived_id}")
async def get_archived_order(
    archived_id: int,
    caller: Caller = Security(get_current_user),
    manager: ArchiveManager = Depends(get_archive_manager)
):
    return await manager.get_archived(caller, archived_id)

@router.post("", status_code=status.HTTP_201_CREATED)
async def archive_order(
    request: ArchiveRequest,
    caller: Caller = Security(get_current_user),
    manager: ArchiveManager = Depends(get_archive_manager)
):
    """Archive a completed order with a rating and review."""
    return await manager.archive_order(caller, request.order_id, request.rating, request.review)

@router.put("/{archived_id}/review")
async def update_review(
    archived_id: int,
    request: ReviewUpdate,
    caller: Caller = Security(get_current_user),
    manager: ArchiveManager = Depends(get_archive_manager)
):
    """Update the rating and review of an archived order."""
    return await manager.update_review(caller, archived_id, request.rating, request.review)

__all__ = ['router']
