"""Category endpoints. Reading is public, changes are admin-only."""

from fastapi import APIRouter, Depends, Security, status
from typing import Optional
from pydantic import BaseModel, Field

from auth import get_current_user
from categories import CategoryManager
from policy import Caller
from ..dependencies import get_category_manager

router = APIRouter(
    prefix="/categories",
    tags=["Categories"]
)

class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    parent_id: Optional[int] = None

class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    parent_id: Optional[int] = None

@router.get("")
async def get_categories(manager: CategoryManager = Depends(get_category_manager)):
    return await manager.list_categories()

@router.get("/{category_id}")
async def get_category(
    category_id: int,
    manager: CategoryManager = Depends(get_category_manager)
):
    return await manager.get_category(category_id)

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_category(
    category: CategoryCreate,
    caller: Caller = Security(get_current_user),
    manager: CategoryManager = Depends(get_category_manager)
):
    return await manager.create_category(
        caller,
        name=category.name,
        description=category.description,
        parent_id=category.parent_id
    )

@router.put("/{category_id}")
async def update_category(
    category_id: int,
    category: CategoryUpdate,
    caller: Caller = Security(get_current_user),
    manager: CategoryManager = Depends(get_category_manager)
):
    return await manager.update_category(
        caller,
        category_id,
        name=category.name,
        description=category.description,
        parent_id=category.parent_id
    )

@router.delete("/{category_id}")
async def delete_category(
    category_id: int,
    caller: Caller = Security(get_current_user),
    manager: CategoryManager = Depends(get_category_manager)
):
    """Delete a category without subcategories or orders."""
    return await manager.delete_category(caller, category_id)

__all__ = ['router']
