"""Messaging endpoints. Clients poll these; there is no push channel."""

from fastapi import APIRouter, Depends, Security, status
from pydantic import BaseModel, Field

from auth import get_current_user
from messaging import MessagingGateway
from policy import Caller
from ..dependencies import get_messaging_gateway

router = APIRouter(
    prefix="/messages",
    tags=["Messages"]
)

class MessageCreate(BaseModel):
    order_id: int
    receiver_id: int
    content: str = Field(..., min_length=1, max_length=5000)

class MessageEdit(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)

@router.get("")
async def get_messages(
    caller: Caller = Security(get_current_user),
    gateway: MessagingGateway = Depends(get_messaging_gateway)
):
    """Get all messages (admin only)."""
    return await gateway.list_messages(caller)

@router.get("/order/{order_id}/chat/{participant_id}")
async def get_chat(
    order_id: int,
    participant_id: int,
    caller: Caller = Security(get_current_user),
    gateway: MessagingGateway = Depends(get_messaging_gateway)
):
    """Get the conversation between the caller and a participant on an order."""
    return await gateway.thread(caller, order_id, participant_id)

@router.get("/order/{order_id}")
async def get_order_messages(
    order_id: int,
    caller: Caller = Security(get_current_user),
    gateway: MessagingGateway = Depends(get_messaging_gateway)
):
    """Get an order's messages, oldest first."""
    return await gateway.order_messages(caller, order_id)

@router.get("/chats/{order_id}")
async def get_chats(
    order_id: int,
    caller: Caller = Security(get_current_user),
    gateway: MessagingGateway = Depends(get_messaging_gateway)
):
    """List the caller's conversations on an order with unread counts."""
    return await gateway.chats(caller, order_id)

@router.get("/{message_id}")
async def get_message(
    message_id: int,
    caller: Caller = Security(get_current_user),
    gateway: MessagingGateway = Depends(get_messaging_gateway)
):
    """Get a message by ID (admin only)."""
    return await gateway.get_message(caller, message_id)

@router.post("", status_code=status.HTTP_201_CREATED)
async def send_message(
    message: MessageCreate,
    caller: Caller = Security(get_current_user),
    gateway: MessagingGateway = Depends(get_messaging_gateway)
):
    """Send a message to the other party of an order."""
    return await gateway.send_message(
        caller,
        order_id=message.order_id,
        receiver_id=message.receiver_id,
        content=message.content
    )

@router.put("/{message_id}")
async def edit_message(
    message_id: int,
    message: MessageEdit,
    caller: Caller = Security(get_current_user),
    gateway: MessagingGateway = Depends(get_messaging_gateway)
):
    """Edit a message (its sender or an admin)."""
    return await gateway.update_message(caller, message_id, message.content)

@router.delete("/{message_id}")
async def delete_message(
    message_id: int,
    caller: Caller = Security(get_current_user),
    gateway: MessagingGateway = Depends(get_messaging_gateway)
):
    """Delete a message (admin only)."""
    return await gateway.delete_message(caller, message_id)

__all__ = ['router']
