"""Messaging module for per-order conversations.

Customers talk to freelancers about a specific order. Clients poll for new
messages; there is no push delivery.
"""

import logging
from typing import Dict, List, Any

from asyncpg.exceptions import PostgresError

from database import get_pool
from errors import AuthorizationDenied, NotFound, PreconditionFailed, StoreFailure
from policy import Caller, Role, can_message, can_moderate, can_edit_message
from .threads import summarize_threads, count_unread

logger = logging.getLogger(__name__)

MESSAGE_SELECT = '''
    SELECT m.*,
        u1.username AS sender_name,
        u2.username AS receiver_name
    FROM messages m
    JOIN users u1 ON m.sender_id = u1.id
    JOIN users u2 ON m.receiver_id = u2.id
'''

class MessagingGateway:
    """Authorization-gated access to order conversations."""
    
    def __init__(self, pool=None):
        """Initialize the messaging gateway.
        
        Args:
            pool: Optional database pool. If not provided, will get from database module.
        """
        self.pool = pool
    
    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def _authorized_order(self, conn, caller: Caller, order_id: int):
        order = await conn.fetchrow('SELECT * FROM orders WHERE id = $1', order_id)
        if not order:
            raise NotFound("Order not found")
        if not (can_moderate(caller) or can_message(caller, order)):
            raise AuthorizationDenied("Not authorized to view messages for this order")
        return order

    async def list_messages(self, caller: Caller) -> List[Dict[str, Any]]:
        """Get all messages (admin only)."""
        if not can_moderate(caller):
            raise AuthorizationDenied("Access denied. Admin rights required.")
            
        await self.ensure_pool()
        
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    f'''
                    SELECT sub.*, o.title AS order_title
                    FROM ({MESSAGE_SELECT}) sub
                    JOIN orders o ON sub.order_id = o.id
                    ORDER BY sub.created_at DESC
                    '''
                )
                return [dict(row) for row in rows]
        except PostgresError as e:
            logger.error(f"Error fetching messages: {e}")
            raise StoreFailure("Error fetching messages") from e

    async def get_message(self, caller: Caller, message_id: int) -> Dict[str, Any]:
        """Get a message by ID (admin only)."""
        if not can_moderate(caller):
            raise AuthorizationDenied("Access denied. Admin rights required.")
            
        await self.ensure_pool()
        
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(f'{MESSAGE_SELECT} WHERE m.id = $1', message_id)
        except PostgresError as e:
            logger.error(f"Error fetching message {message_id}: {e}")
            raise StoreFailure("Error fetching message") from e
            
        if not row:
            raise NotFound("Message not found")
        return dict(row)

    async def order_messages(self, caller: Caller, order_id: int) -> List[Dict[str, Any]]:
        """Get an order's messages in the order they were sent.
        
        Admins see the whole order; everyone else sees the messages they sent
        or received.
        """
        await self.ensure_pool()
        
        try:
            async with self.pool.acquire() as conn:
                await self._authorized_order(conn, caller, order_id)
                
                if can_moderate(caller):
                    rows = await conn.fetch(
                        f'{MESSAGE_SELECT} WHERE m.order_id = $1 ORDER BY m.created_at ASC',
                        order_id
                    )
                else:
                    rows = await conn.fetch(
                        f'''{MESSAGE_SELECT}
                        WHERE m.order_id = $1
                        AND (m.sender_id = $2 OR m.receiver_id = $2)
                        ORDER BY m.created_at ASC''',
                        order_id,
                        caller.user_id
                    )
                return [dict(row) for row in rows]
        except PostgresError as e:
            logger.error(f"Error fetching order messages: {e}")
            raise StoreFailure("Error fetching order messages") from e

    async def thread(
        self,
        caller: Caller,
        order_id: int,
        participant_id: int
    ) -> List[Dict[str, Any]]:
        """Get the conversation between the caller and one participant on an order."""
        await self.ensure_pool()
        
        try:
            async with self.pool.acquire() as conn:
                await self._authorized_order(conn, caller, order_id)
                
                rows = await conn.fetch(
                    f'''{MESSAGE_SELECT}
                    WHERE m.order_id = $1
                    AND (
                        (m.sender_id = $2 AND m.receiver_id = $3)
                        OR (m.sender_id = $3 AND m.receiver_id = $2)
                    )
                    ORDER BY m.created_at ASC''',
                    order_id,
                    caller.user_id,
                    participant_id
                )
                return [dict(row) for row in rows]
        except PostgresError as e:
            logger.error(f"Error fetching chat messages: {e}")
            raise StoreFailure("Error fetching chat messages") from e

    async def chats(self, caller: Caller, order_id: int) -> List[Dict[str, Any]]:
        """List the caller's conversations on an order with unread counts."""
        await self.ensure_pool()
        
        try:
            async with self.pool.acquire() as conn:
                await self._authorized_order(conn, caller, order_id)
                
                rows = await conn.fetch(
                    f'''{MESSAGE_SELECT}
                    WHERE m.order_id = $1
                    AND (m.sender_id = $2 OR m.receiver_id = $2)
                    ORDER BY m.created_at ASC''',
                    order_id,
                    caller.user_id
                )
        except PostgresError as e:
            logger.error(f"Error fetching chats: {e}")
            raise StoreFailure("Error fetching chats") from e
            
        return summarize_threads(rows, caller.user_id)

    async def _check_receiver(self, conn, caller: Caller, order, receiver_id: int) -> None:
        """Verify that the receiver is the other party in the order."""
        if receiver_id == caller.user_id:
            raise PreconditionFailed("Invalid receiver for this order")
            
        if caller.role is Role.FREELANCER:
            if receiver_id != order['customer_id']:
                raise PreconditionFailed("Invalid receiver for this order")
            return
            
        if order['freelancer_id'] is not None:
            if receiver_id != order['freelancer_id']:
                raise PreconditionFailed("Invalid receiver for this order")
            return
            
        # Unassigned order: the customer may write to anyone who bid or wrote first
        is_party = await conn.fetchval(
            '''
            SELECT EXISTS(
                SELECT 1 FROM order_responses
                WHERE order_id = $1 AND freelancer_id = $2
            ) OR EXISTS(
                SELECT 1 FROM messages
                WHERE order_id = $1 AND sender_id = $2 AND receiver_id = $3
            )
            ''',
            order['id'],
            receiver_id,
            caller.user_id
        )
        if not is_party:
            raise PreconditionFailed("Invalid receiver for this order")

    async def send_message(
        self,
        caller: Caller,
        order_id: int,
        receiver_id: int,
        content: str
    ) -> Dict[str, Any]:
        """Send a message about an order.
        
        Raises:
            NotFound: If the order does not exist
            AuthorizationDenied: If the caller may not message on this order
            PreconditionFailed: If the receiver is not the other party
        """
        await self.ensure_pool()
        
        try:
            async with self.pool.acquire() as conn:
                order = await conn.fetchrow('SELECT * FROM orders WHERE id = $1', order_id)
                if not order:
                    raise NotFound("Order not found")
                if not can_message(caller, order):
                    raise AuthorizationDenied("Not authorized to send messages for this order")
                    
                await self._check_receiver(conn, caller, order, receiver_id)
                
                row = await conn.fetchrow(
                    '''
                    INSERT INTO messages (order_id, sender_id, receiver_id, content)
                    VALUES ($1, $2, $3, $4)
                    RETURNING *
                    ''',
                    order_id,
                    caller.user_id,
                    receiver_id,
                    content
                )
        except PostgresError as e:
            logger.error(f"Error creating message: {e}")
            raise StoreFailure("Error creating message") from e
            
        logger.debug(f"Message {row['id']} on order {order_id}: {caller.user_id} -> {receiver_id}")
        return dict(row)

    async def update_message(self, caller: Caller, message_id: int, content: str) -> Dict[str, Any]:
        """Edit a message's content (its sender or an admin)."""
        await self.ensure_pool()
        
        try:
            async with self.pool.acquire() as conn:
                message = await conn.fetchrow(
                    'SELECT * FROM messages WHERE id = $1',
                    message_id
                )
                if not message:
                    raise NotFound("Message not found")
                if not can_edit_message(caller, message):
                    raise AuthorizationDenied("Not authorized to update this message")
                    
                row = await conn.fetchrow(
                    '''
                    UPDATE messages
                    SET content = $1, updated_at = now()
                    WHERE id = $2
                    RETURNING *
                    ''',
                    content,
                    message_id
                )
                return dict(row)
        except PostgresError as e:
            logger.error(f"Error updating message {message_id}: {e}")
            raise StoreFailure("Error updating message") from e

    async def delete_message(self, caller: Caller, message_id: int) -> Dict[str, Any]:
        """Delete a message (admin only)."""
        if not can_moderate(caller):
            raise AuthorizationDenied("Access denied. Admin rights required.")
            
        await self.ensure_pool()
        
        try:
            async with self.pool.acquire() as conn:
                deleted = await conn.fetchval(
                    'DELETE FROM messages WHERE id = $1 RETURNING id',
                    message_id
                )
        except PostgresError as e:
            logger.error(f"Error deleting message {message_id}: {e}")
            raise StoreFailure("Error deleting message") from e
            
        if deleted is None:
            raise NotFound("Message not found")
        return {"message": "Message deleted successfully"}

__all__ = ['MessagingGateway', 'summarize_threads', 'count_unread']
