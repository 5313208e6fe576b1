"""Orders API endpoints."""

from fastapi import APIRouter, Depends, Security, status
from typing import Optional
from decimal import Decimal
from datetime import date
from pydantic import BaseModel, Field, field_validator

from auth import get_current_user
from orders import OrderManager, OrderStatus
from policy import Caller
from ..dependencies import get_order_manager

# Create router
router = APIRouter(
    prefix="/orders",
    tags=["Orders"]
)

class CreateOrderRequest(BaseModel):
    """Request model for creating an order."""
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    budget: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    deadline: Optional[date] = None
    category_id: Optional[int] = None

    @field_validator('deadline')
    @classmethod
    def deadline_not_in_past(cls, v: Optional[date]) -> Optional[date]:
        if v is not None and v < date.today():
            raise ValueError("Deadline cannot be in the past")
        return v

class UpdateOrderRequest(BaseModel):
    """Request model for an admin order update; omitted fields are left unchanged."""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    budget: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2)
    deadline: Optional[date] = None
    status: Optional[OrderStatus] = None
    category_id: Optional[int] = None
    freelancer_id: Optional[int] = None

# Specific paths first, /{order_id} last
@router.get("/all")
async def get_all_orders(
    caller: Caller = Security(get_current_user),
    manager: OrderManager = Depends(get_order_manager)
):
    """Get every order (admin only)."""
    return await manager.list_all_orders(caller)

@router.get("/customer/{customer_id}")
async def get_customer_orders(
    customer_id: int,
    caller: Caller = Security(get_current_user),
    manager: OrderManager = Depends(get_order_manager)
):
    """Get a customer's orders visible to the caller."""
    return await manager.list_customer_orders(caller, customer_id)

@router.get("")
async def get_orders(
    caller: Caller = Security(get_current_user),
    manager: OrderManager = Depends(get_order_manager)
):
    """Get the orders relevant to the caller's role."""
    return await manager.list_orders(caller)

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_order(
    order_request: CreateOrderRequest,
    caller: Caller = Security(get_current_user),
    manager: OrderManager = Depends(get_order_manager)
):
    """Create a new open order."""
    return await manager.create_order(
        caller,
        title=order_request.title,
        description=order_request.description,
        budget=order_request.budget,
        deadline=order_request.deadline,
        category_id=order_request.category_id
    )

@router.post("/{order_id}/complete")
async def complete_order(
    order_id: int,
    caller: Caller = Security(get_current_user),
    manager: OrderManager = Depends(get_order_manager)
):
    """Mark an in-progress order as completed."""
    return await manager.complete_order(caller, order_id)

@router.get("/{order_id}")
async def get_order(
    order_id: int,
    caller: Caller = Security(get_current_user),
    manager: OrderManager = Depends(get_order_manager)
):
    """Get order details by ID."""
    return await manager.get_order(caller, order_id)

@router.put("/{order_id}")
async def update_order(
    order_id: int,
    update: UpdateOrderRequest,
    caller: Caller = Security(get_current_user),
    manager: OrderManager = Depends(get_order_manager)
):
    """Overwrite order fields (admin only)."""
    fields = update.model_dump(exclude_none=True)
    if 'status' in fields:
        fields['status'] = fields['status'].value
    return await manager.update_order(caller, order_id, fields)

@router.delete("/{order_id}")
async def delete_order(
    order_id: int,
    caller: Caller = Security(get_current_user),
    manager: OrderManager = Depends(get_order_manager)
):
    """Delete an order (admin only)."""
    return await manager.delete_order(caller, order_id)

# Export the router
__all__ = ['router']
