"""Order response (freelancer proposal) endpoints."""

from fastapi import APIRouter, Depends, Security, status
from typing import Optional
from decimal import Decimal
from pydantic import BaseModel, Field

from auth import get_current_user
from orders import OrderManager, ResponseStatus
from policy import Caller
from ..dependencies import get_order_manager

router = APIRouter(
    prefix="/order-responses",
    tags=["Order Responses"]
)

class CreateResponseRequest(BaseModel):
    """Request model for a freelancer's proposal."""
    order_id: int
    proposal: str = Field(..., min_length=1)
    price: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    estimated_time: Optional[int] = Field(None, ge=1, description="Estimated days of work")

class ResponseStatusRequest(BaseModel):
    """Request model for accepting or rejecting a response."""
    status: ResponseStatus

@router.get("/order/{order_id}")
async def get_order_responses(
    order_id: int,
    caller: Caller = Security(get_current_user),
    manager: OrderManager = Depends(get_order_manager)
):
    """Get all responses for an order (its customer or an admin)."""
    return await manager.list_order_responses(caller, order_id)

@router.get("/freelancer")
async def get_freelancer_responses(
    caller: Caller = Security(get_current_user),
    manager: OrderManager = Depends(get_order_manager)
):
    """Get the calling freelancer's responses."""
    return await manager.list_freelancer_responses(caller)

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_response(
    request: CreateResponseRequest,
    caller: Caller = Security(get_current_user),
    manager: OrderManager = Depends(get_order_manager)
):
    """Submit a proposal for an open order."""
    return await manager.create_response(
        caller,
        order_id=request.order_id,
        proposal=request.proposal,
        price=request.price,
        estimated_time=request.estimated_time
    )

@router.put("/{response_id}/status")
async def update_response_status(
    response_id: int,
    request: ResponseStatusRequest,
    caller: Caller = Security(get_current_user),
    manager: OrderManager = Depends(get_order_manager)
):
    """Accept or reject a response; accepting assigns the freelancer to the order."""
    return await manager.update_response_status(caller, response_id, request.status)

@router.delete("/{response_id}")
async def delete_response(
    response_id: int,
    caller: Caller = Security(get_current_user),
    manager: OrderManager = Depends(get_order_manager)
):
    """Withdraw one of the caller's pending responses."""
    return await manager.delete_response(caller, response_id)

__all__ = ['router']
