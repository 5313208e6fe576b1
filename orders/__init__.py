"""Orders module for managing marketplace orders and freelancer responses.

This module handles order creation, visibility, the response acceptance
transaction, completion and admin overrides. All state changes go through
the transition table in ``orders.lifecycle``.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Any

from asyncpg.pool import Pool
from asyncpg.exceptions import (
    PostgresError,
    UniqueViolationError,
    ForeignKeyViolationError,
    CheckViolationError
)

from database import get_pool
from errors import AuthorizationDenied, NotFound, PreconditionFailed, StoreFailure
from policy import (
    Caller,
    Role,
    can_view_order,
    can_manage_responses,
    can_complete_order,
    can_moderate
)
from .lifecycle import (
    OrderStatus,
    ResponseStatus,
    ASSIGNED_STATUSES,
    TRANSITIONS,
    check_transition,
    resolve_admin_update
)

logger = logging.getLogger(__name__)

# Order columns an admin may overwrite
ADMIN_MUTABLE_FIELDS = (
    'title',
    'description',
    'budget',
    'deadline',
    'status',
    'category_id',
    'freelancer_id'
)

ORDER_SELECT = '''
    SELECT o.*,
        u1.username AS customer_name,
        u2.username AS freelancer_name,
        c.name AS category_name
    FROM orders o
    LEFT JOIN users u1 ON o.customer_id = u1.id
    LEFT JOIN users u2 ON o.freelancer_id = u2.id
    LEFT JOIN categories c ON o.category_id = c.id
'''

class OrderError(PreconditionFailed):
    """Base class for order-related precondition errors."""
    pass

class DuplicateResponseError(OrderError):
    """Raised when a freelancer responds to the same order twice."""
    def __init__(self):
        super().__init__("You have already responded to this order")

class OrderNotOpenError(OrderError):
    """Raised when an order left the open status before the change could apply."""
    def __init__(self):
        super().__init__("Order is no longer open")

class OrderManager:
    """Manages order operations and state transitions."""
    
    def __init__(self, pool: Optional[Pool] = None) -> None:
        """Initialize order manager.
        
        Args:
            pool: Optional database connection pool. If not provided, will get from database module.
        """
        self.pool = pool
        
    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def _fetch_order(self, conn, order_id: int, lock: Optional[str] = None):
        """Read an order, optionally taking a row lock ('UPDATE' or 'SHARE')."""
        query = 'SELECT * FROM orders WHERE id = $1'
        if lock:
            query += f' FOR {lock}'
        row = await conn.fetchrow(query, order_id)
        if not row:
            raise NotFound("Order not found")
        return row

    async def list_orders(self, caller: Caller) -> List[Dict[str, Any]]:
        """List the orders a caller works with.
        
        Customers see their own orders, freelancers see open orders and the
        ones assigned to them, admins see everything.
        """
        await self.ensure_pool()
        
        if caller.role is Role.CUSTOMER:
            where, params = 'WHERE o.customer_id = $1', [caller.user_id]
        elif caller.role is Role.FREELANCER:
            where, params = "WHERE o.status = 'open' OR o.freelancer_id = $1", [caller.user_id]
        elif caller.role is Role.ADMIN:
            where, params = '', []
        else:
            raise AuthorizationDenied("Invalid user role")
            
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    f'{ORDER_SELECT} {where} ORDER BY o.created_at DESC',
                    *params
                )
                return [dict(row) for row in rows]
        except PostgresError as e:
            logger.error(f"Error fetching orders: {e}")
            raise StoreFailure("Error fetching orders") from e

    async def list_all_orders(self, caller: Caller) -> List[Dict[str, Any]]:
        """List every order (admin only)."""
        if not can_moderate(caller):
            raise AuthorizationDenied("Access denied. Admin rights required.")
        return await self.list_orders(caller)

    async def list_customer_orders(self, caller: Caller, customer_id: int) -> List[Dict[str, Any]]:
        """List a customer's orders, limited to the ones the caller may view."""
        await self.ensure_pool()
        
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    f'{ORDER_SELECT} WHERE o.customer_id = $1 ORDER BY o.created_at DESC',
                    customer_id
                )
        except PostgresError as e:
            logger.error(f"Error fetching customer orders: {e}")
            raise StoreFailure("Error fetching customer orders") from e
            
        return [dict(row) for row in rows if can_view_order(caller, row)]

    async def get_order(self, caller: Caller, order_id: int) -> Dict[str, Any]:
        """Get order details by ID.
        
        Raises:
            NotFound: If the order does not exist
            AuthorizationDenied: If the caller may not view it
        """
        await self.ensure_pool()
        
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(f'{ORDER_SELECT} WHERE o.id = $1', order_id)
        except PostgresError as e:
            logger.error(f"Error fetching order {order_id}: {e}")
            raise StoreFailure("Error fetching order") from e
            
        if not row:
            raise NotFound("Order not found")
        if not can_view_order(caller, row):
            raise AuthorizationDenied("Not authorized to view this order")
        return dict(row)

    async def create_order(
        self,
        caller: Caller,
        title: str,
        description: Optional[str],
        budget: Decimal,
        deadline: Optional[date],
        category_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """Create a new open order owned by the calling customer."""
        if caller.role is not Role.CUSTOMER:
            raise AuthorizationDenied("Only customers can create orders")
            
        await self.ensure_pool()
        
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    '''
                    INSERT INTO orders (
                        title, description, budget, deadline,
                        customer_id, category_id, status
                    ) VALUES ($1, $2, $3, $4, $5, $6, 'open')
                    RETURNING *
                    ''',
                    title,
                    description,
                    budget,
                    deadline,
                    caller.user_id,
                    category_id
                )
        except ForeignKeyViolationError:
            raise PreconditionFailed("Category not found")
        except PostgresError as e:
            logger.error(f"Error creating order: {e}")
            raise StoreFailure("Error creating order") from e
            
        logger.info(f"Customer {caller.user_id} created order {row['id']}")
        return dict(row)

    async def update_order(
        self,
        caller: Caller,
        order_id: int,
        updates: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Overwrite order fields (admin only), bypassing the normal transitions."""
        if not can_moderate(caller):
            raise AuthorizationDenied("Access denied. Admin rights required.")
            
        unknown = set(updates) - set(ADMIN_MUTABLE_FIELDS)
        if unknown:
            raise PreconditionFailed(f"Cannot update fields: {', '.join(sorted(unknown))}")
            
        await self.ensure_pool()
        
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    order = await self._fetch_order(conn, order_id, lock='UPDATE')
                    fields = resolve_admin_update(order, updates, caller.role)
                    
                    # Build update query dynamically based on resolved fields
                    assignments = []
                    params: List[Any] = [order_id]
                    for name in ADMIN_MUTABLE_FIELDS:
                        if name in fields:
                            params.append(fields[name])
                            assignments.append(f"{name} = ${len(params)}")
                            
                    row = await conn.fetchrow(
                        f'''
                        UPDATE orders
                        SET {", ".join(assignments)},
                            updated_at = now()
                        WHERE id = $1
                        RETURNING *
                        ''',
                        *params
                    )
        except (ForeignKeyViolationError, CheckViolationError) as e:
            raise PreconditionFailed(f"Invalid order update: {e}")
        except PostgresError as e:
            logger.error(f"Error updating order {order_id}: {e}")
            raise StoreFailure("Error updating order") from e
            
        return dict(row)

    async def delete_order(self, caller: Caller, order_id: int) -> Dict[str, Any]:
        """Delete an order with its responses and messages (admin only)."""
        if not can_moderate(caller):
            raise AuthorizationDenied("Access denied. Admin rights required.")
            
        await self.ensure_pool()
        
        try:
            async with self.pool.acquire() as conn:
                deleted = await conn.fetchval(
                    'DELETE FROM orders WHERE id = $1 RETURNING id',
                    order_id
                )
        except PostgresError as e:
            logger.error(f"Error deleting order {order_id}: {e}")
            raise StoreFailure("Error deleting order") from e
            
        if deleted is None:
            raise NotFound("Order not found")
        logger.info(f"Admin {caller.user_id} deleted order {order_id}")
        return {"message": "Order deleted successfully"}

    async def complete_order(self, caller: Caller, order_id: int) -> Dict[str, Any]:
        """Mark an in-progress order as completed."""
        await self.ensure_pool()
        
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    order = await self._fetch_order(conn, order_id, lock='UPDATE')
                    if not can_complete_order(caller, order):
                        raise AuthorizationDenied("Not authorized to complete this order")
                    transition = check_transition('complete', order['status'], caller.role)
                    
                    row = await conn.fetchrow(
                        '''
                        UPDATE orders
                        SET status = $2,
                            updated_at = now()
                        WHERE id = $1 AND status = $3
                        RETURNING *
                        ''',
                        order_id,
                        transition.target.value,
                        transition.source.value
                    )
                    if not row:
                        raise PreconditionFailed("Order is no longer in progress")
        except PostgresError as e:
            logger.error(f"Error completing order {order_id}: {e}")
            raise StoreFailure("Error completing order") from e
            
        logger.info(f"Order {order_id} completed")
        return dict(row)

    async def list_order_responses(self, caller: Caller, order_id: int) -> List[Dict[str, Any]]:
        """Get all responses for an order (its customer or an admin)."""
        await self.ensure_pool()
        
        try:
            async with self.pool.acquire() as conn:
                order = await self._fetch_order(conn, order_id)
                if not can_manage_responses(caller, order):
                    raise AuthorizationDenied("Not authorized to view responses for this order")
                    
                rows = await conn.fetch(
                    '''
                    SELECT r.*,
                        u.username AS freelancer_name
                    FROM order_responses r
                    JOIN users u ON r.freelancer_id = u.id
                    WHERE r.order_id = $1
                    ORDER BY r.created_at DESC
                    ''',
                    order_id
                )
                return [dict(row) for row in rows]
        except PostgresError as e:
            logger.error(f"Error fetching order responses: {e}")
            raise StoreFailure("Error fetching order responses") from e

    async def list_freelancer_responses(self, caller: Caller) -> List[Dict[str, Any]]:
        """Get the calling freelancer's responses with their order summary."""
        await self.ensure_pool()
        
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    '''
                    SELECT r.*,
                        o.title AS order_title,
                        o.status AS order_status,
                        u.username AS customer_name
                    FROM order_responses r
                    JOIN orders o ON r.order_id = o.id
                    JOIN users u ON o.customer_id = u.id
                    WHERE r.freelancer_id = $1
                    ORDER BY r.created_at DESC
                    ''',
                    caller.user_id
                )
                return [dict(row) for row in rows]
        except PostgresError as e:
            logger.error(f"Error fetching freelancer responses: {e}")
            raise StoreFailure("Error fetching freelancer responses") from e

    async def create_response(
        self,
        caller: Caller,
        order_id: int,
        proposal: str,
        price: Decimal,
        estimated_time: Optional[int] = None
    ) -> Dict[str, Any]:
        """Submit a freelancer's proposal for an open order.
        
        Raises:
            AuthorizationDenied: If the caller is not a freelancer
            NotFound: If the order does not exist
            OrderNotOpenError: If the order is not open
            DuplicateResponseError: If the freelancer already responded
        """
        if caller.role is not Role.FREELANCER:
            raise AuthorizationDenied("Only freelancers can respond to orders")
            
        await self.ensure_pool()
        
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    # Shared lock: an accept on this order waits for the insert, or commits first
                    order = await self._fetch_order(conn, order_id, lock='SHARE')
                    if order['status'] != OrderStatus.OPEN.value:
                        raise OrderNotOpenError()
                        
                    existing = await conn.fetchval(
                        '''
                        SELECT id FROM order_responses
                        WHERE order_id = $1 AND freelancer_id = $2
                        ''',
                        order_id,
                        caller.user_id
                    )
                    if existing is not None:
                        raise DuplicateResponseError()
                        
                    row = await conn.fetchrow(
                        '''
                        INSERT INTO order_responses (
                            order_id, freelancer_id, proposal, price, estimated_time
                        ) VALUES ($1, $2, $3, $4, $5)
                        RETURNING *
                        ''',
                        order_id,
                        caller.user_id,
                        proposal,
                        price,
                        estimated_time
                    )
        except UniqueViolationError:
            # Lost a race with a concurrent submission from the same freelancer
            raise DuplicateResponseError()
        except PostgresError as e:
            logger.error(f"Error creating order response: {e}")
            raise StoreFailure("Error creating order response") from e
            
        logger.info(f"Freelancer {caller.user_id} responded to order {order_id}")
        return dict(row)

    async def update_response_status(
        self,
        caller: Caller,
        response_id: int,
        status: ResponseStatus
    ) -> Dict[str, Any]:
        """Accept or reject a pending response.
        
        Accepting runs as one transaction: the response becomes accepted, the
        order moves to in_progress with the response's freelancer, and every
        sibling response is rejected. The order row is locked and its status
        re-checked inside the transaction, so of two concurrent accepts on the
        same order exactly one commits and the other applies nothing.
        
        Raises:
            NotFound: If the response does not exist
            AuthorizationDenied: If the caller is not the order's customer or an admin
            PreconditionFailed: If the order is not open or the response not pending
        """
        if status is ResponseStatus.PENDING:
            raise PreconditionFailed("Response status must be accepted or rejected")
            
        await self.ensure_pool()
        
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    order_id = await conn.fetchval(
                        'SELECT order_id FROM order_responses WHERE id = $1',
                        response_id
                    )
                    if order_id is None:
                        raise NotFound("Response not found")
                        
                    order = await self._fetch_order(conn, order_id, lock='UPDATE')
                    if not can_manage_responses(caller, order):
                        raise AuthorizationDenied("Not authorized to update this response")
                    if order['status'] != OrderStatus.OPEN.value:
                        raise OrderNotOpenError()
                        
                    # Re-read under lock; a concurrent withdrawal may have removed it
                    response = await conn.fetchrow(
                        'SELECT * FROM order_responses WHERE id = $1 FOR UPDATE',
                        response_id
                    )
                    if response is None:
                        raise NotFound("Response not found")
                    if response['status'] != ResponseStatus.PENDING.value:
                        raise PreconditionFailed("Response is no longer pending")
                        
                    if status is ResponseStatus.REJECTED:
                        row = await conn.fetchrow(
                            '''
                            UPDATE order_responses
                            SET status = 'rejected'
                            WHERE id = $1
                            RETURNING *
                            ''',
                            response_id
                        )
                    else:
                        row = await self._accept(conn, caller, order, response)
        except PostgresError as e:
            logger.error(f"Error updating response status: {e}")
            raise StoreFailure("Error updating response status") from e
            
        logger.info(f"Response {response_id} {status.value} by user {caller.user_id}")
        return dict(row)

    async def _accept(self, conn, caller: Caller, order, response):
        """Apply the acceptance writes; must run inside a transaction."""
        transition = check_transition('accept', order['status'], caller.role)
        
        result = await conn.execute(
            '''
            UPDATE orders
            SET status = $1,
                freelancer_id = $2,
                updated_at = now()
            WHERE id = $3 AND status = $4
            ''',
            transition.target.value,
            response['freelancer_id'],
            order['id'],
            transition.source.value
        )
        if result != 'UPDATE 1':
            raise OrderNotOpenError()
            
        await conn.execute(
            '''
            UPDATE order_responses
            SET status = 'rejected'
            WHERE order_id = $1 AND id != $2
            ''',
            order['id'],
            response['id']
        )
        
        # Siblings are rejected first; only one accepted response per order is allowed
        return await conn.fetchrow(
            '''
            UPDATE order_responses
            SET status = 'accepted'
            WHERE id = $1
            RETURNING *
            ''',
            response['id']
        )

    async def delete_response(self, caller: Caller, response_id: int) -> Dict[str, Any]:
        """Withdraw one of the caller's pending responses."""
        await self.ensure_pool()
        
        try:
            async with self.pool.acquire() as conn:
                response = await conn.fetchrow(
                    'SELECT * FROM order_responses WHERE id = $1',
                    response_id
                )
                if not response or not (
                    can_moderate(caller) or response['freelancer_id'] == caller.user_id
                ):
                    raise NotFound("Response not found or not authorized")
                if response['status'] != ResponseStatus.PENDING.value:
                    raise PreconditionFailed("Only pending responses can be withdrawn")

                result = await conn.execute(
                    "DELETE FROM order_responses WHERE id = $1 AND status = 'pending'",
                    response_id
                )
                if result != 'DELETE 1':
                    raise PreconditionFailed("Only pending responses can be withdrawn")
        except PostgresError as e:
            logger.error(f"Error deleting response {response_id}: {e}")
            raise StoreFailure("Error deleting response") from e
            
        return {"message": "Response deleted successfully"}

# Export public interface
__all__ = [
    'OrderManager',
    'OrderError',
    'DuplicateResponseError',
    'OrderNotOpenError',
    'OrderStatus',
    'ResponseStatus',
    'ASSIGNED_STATUSES',
    'TRANSITIONS'
]
