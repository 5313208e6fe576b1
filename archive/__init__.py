"""Archive module for completed orders.

Archiving copies a completed order into ``archived_orders`` with the
customer's rating and review, then deletes the live order. Both writes share
one transaction, so after any failure the order is in exactly one table.
"""

import logging
from typing import Dict, List, Optional, Any

from asyncpg.exceptions import PostgresError

from database import get_pool
from errors import AuthorizationDenied, NotFound, PreconditionFailed, StoreFailure
from policy import Caller, can_archive, can_moderate, can_view_archived, can_review_archived

logger = logging.getLogger(__name__)

ARCHIVE_SELECT = '''
    SELECT ao.*,
        c.name AS category_name,
        cu.username AS customer_name,
        f.username AS freelancer_name
    FROM archived_orders ao
    LEFT JOIN categories c ON ao.category_id = c.id
    LEFT JOIN users cu ON ao.customer_id = cu.id
    LEFT JOIN users f ON ao.freelancer_id = f.id
'''

class ArchiveManager:
    """Manages archived orders."""
    
    def __init__(self, pool=None):
        """Initialize the archive manager.
        
        Args:
            pool: Optional database pool. If not provided, will get from database module.
        """
        self.pool = pool
    
    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def _fetch(self, query: str, *params) -> List[Dict[str, Any]]:
        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(query, *params)
                return [dict(row) for row in rows]
        except PostgresError as e:
            logger.error(f"Error fetching archived orders: {e}")
            raise StoreFailure("Error fetching archived orders") from e

    async def list_archived(self, caller: Caller) -> List[Dict[str, Any]]:
        """Get all archived orders (admin only)."""
        if not can_moderate(caller):
            raise AuthorizationDenied("Not authorized")
        return await self._fetch(f'{ARCHIVE_SELECT} ORDER BY ao.completion_date DESC')

    async def list_user_archived(self, caller: Caller) -> List[Dict[str, Any]]:
        """Get archived orders where the caller was the customer or the freelancer."""
        return await self._fetch(
            f'''{ARCHIVE_SELECT}
            WHERE ao.customer_id = $1 OR ao.freelancer_id = $1
            ORDER BY ao.completion_date DESC''',
            caller.user_id
        )

    async def get_archived(self, caller: Caller, archived_id: int) -> Dict[str, Any]:
        rows = await self._fetch(f'{ARCHIVE_SELECT} WHERE ao.id = $1', archived_id)
        if not rows:
            raise NotFound("Archived order not found")
        if not can_view_archived(caller, rows[0]):
            raise AuthorizationDenied("Not authorized to view this archived order")
        return rows[0]

    async def archive_order(
        self,
        caller: Caller,
        order_id: int,
        rating: Optional[int],
        review: Optional[str]
    ) -> Dict[str, Any]:
        """Archive a completed order with a rating and review.
        
        Args:
            caller: The order's customer or an admin
            order_id: Live order to archive
            rating: 1-5 rating of the freelancer's work
            review: Free-text review
            
        Returns:
            The archived order row
            
        Raises:
            NotFound: If the order does not exist
            AuthorizationDenied: If the caller is neither the customer nor an admin
            PreconditionFailed: If the order is not completed
        """
        await self.ensure_pool()
        
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    order = await conn.fetchrow(
                        'SELECT * FROM orders WHERE id = $1 FOR UPDATE',
                        order_id
                    )
                    if not order:
                        raise NotFound("Order not found")
                    if not (can_moderate(caller) or order['customer_id'] == caller.user_id):
                        raise AuthorizationDenied("Not authorized to archive this order")
                    if not can_archive(caller, order):
                        raise PreconditionFailed("Order not completed")
                        
                    archived = await conn.fetchrow(
                        '''
                        INSERT INTO archived_orders (
                            order_id, title, description, budget, deadline,
                            category_id, customer_id, freelancer_id,
                            completion_date, rating, review
                        ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, now(), $9, $10)
                        RETURNING *
                        ''',
                        order['id'],
                        order['title'],
                        order['description'],
                        order['budget'],
                        order['deadline'],
                        order['category_id'],
                        order['customer_id'],
                        order['freelancer_id'],
                        rating,
                        review
                    )
                    
                    await conn.execute('DELETE FROM orders WHERE id = $1', order['id'])
        except PostgresError as e:
            logger.error(f"Error archiving order {order_id}: {e}")
            raise StoreFailure("Error archiving order") from e
            
        logger.info(f"Order {order_id} archived as {archived['id']}")
        return dict(archived)

    async def update_review(
        self,
        caller: Caller,
        archived_id: int,
        rating: Optional[int],
        review: Optional[str]
    ) -> Dict[str, Any]:
        """Update the rating and/or review of an archived order."""
        await self.ensure_pool()
        
        try:
            async with self.pool.acquire() as conn:
                archived = await conn.fetchrow(
                    'SELECT * FROM archived_orders WHERE id = $1',
                    archived_id
                )
                if not archived:
                    raise NotFound("Archived order not found")
                if not can_review_archived(caller, archived):
                    raise AuthorizationDenied("Not authorized to update this review")
                    
                row = await conn.fetchrow(
                    '''
                    UPDATE archived_orders
                    SET rating = COALESCE($1, rating),
                        review = COALESCE($2, review)
                    WHERE id = $3
                    RETURNING *
                    ''',
                    rating,
                    review,
                    archived_id
                )
                return dict(row)
        except PostgresError as e:
            logger.error(f"Error updating archived order review: {e}")
            raise StoreFailure("Error updating archived order review") from e

__all__ = ['ArchiveManager']
