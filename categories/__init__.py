"""Category tree management.

Categories form a tree through ``parent_id``. Reads are public; changes are
admin-only, and a category that still has children or orders cannot be deleted.
"""

import logging
from typing import Dict, List, Optional, Any

from asyncpg.exceptions import PostgresError, ForeignKeyViolationError

from database import get_pool
from errors import AuthorizationDenied, NotFound, PreconditionFailed, StoreFailure
from policy import Caller, can_moderate

logger = logging.getLogger(__name__)

CATEGORY_SELECT = '''
    SELECT c.*,
        p.name AS parent_name,
        (SELECT COUNT(*) FROM orders WHERE category_id = c.id) AS orders_count
    FROM categories c
    LEFT JOIN categories p ON c.parent_id = p.id
'''

class CategoryInUseError(PreconditionFailed):
    """Raised when deleting a category that still has children or orders."""
    pass

class CategoryManager:
    """Manager class for the category tree."""
    
    def __init__(self, pool=None):
        self.pool = pool
    
    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def list_categories(self) -> List[Dict[str, Any]]:
        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(f'{CATEGORY_SELECT} ORDER BY c.name')
                return [dict(row) for row in rows]
        except PostgresError as e:
            logger.error(f"Error fetching categories: {e}")
            raise StoreFailure("Error fetching categories") from e

    async def get_category(self, category_id: int) -> Dict[str, Any]:
        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(f'{CATEGORY_SELECT} WHERE c.id = $1', category_id)
        except PostgresError as e:
            logger.error(f"Error fetching category {category_id}: {e}")
            raise StoreFailure("Error fetching category") from e
            
        if not row:
            raise NotFound("Category not found")
        return dict(row)

    async def _check_parent(self, conn, parent_id: int, category_id: Optional[int] = None) -> None:
        """Verify the parent exists and would not create a cycle."""
        if category_id is not None and parent_id == category_id:
            raise PreconditionFailed("Category cannot be its own parent")
            
        exists = await conn.fetchval(
            'SELECT EXISTS(SELECT 1 FROM categories WHERE id = $1)',
            parent_id
        )
        if not exists:
            raise PreconditionFailed("Parent category not found")
            
        if category_id is None:
            return
            
        # Walk up from the new parent; reaching the category itself means a cycle
        is_descendant = await conn.fetchval(
            '''
            WITH RECURSIVE ancestors AS (
                SELECT id, parent_id FROM categories WHERE id = $1
                UNION ALL
                SELECT c.id, c.parent_id
                FROM categories c
                JOIN ancestors a ON c.id = a.parent_id
            )
            SELECT EXISTS(SELECT 1 FROM ancestors WHERE id = $2)
            ''',
            parent_id,
            category_id
        )
        if is_descendant:
            raise PreconditionFailed("Category cannot be moved under its own subcategory")

    async def create_category(
        self,
        caller: Caller,
        name: str,
        description: Optional[str] = None,
        parent_id: Optional[int] = None
    ) -> Dict[str, Any]:
        if not can_moderate(caller):
            raise AuthorizationDenied("Only admins can create categories")
            
        await self.ensure_pool()
        
        try:
            async with self.pool.acquire() as conn:
                if parent_id is not None:
                    await self._check_parent(conn, parent_id)
                row = await conn.fetchrow(
                    '''
                    INSERT INTO categories (name, description, parent_id)
                    VALUES ($1, $2, $3)
                    RETURNING *
                    ''',
                    name,
                    description,
                    parent_id
                )
                return dict(row)
        except PostgresError as e:
            logger.error(f"Error creating category: {e}")
            raise StoreFailure("Error creating category") from e

    async def update_category(
        self,
        caller: Caller,
        category_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        parent_id: Optional[int] = None
    ) -> Dict[str, Any]:
        if not can_moderate(caller):
            raise AuthorizationDenied("Only admins can update categories")
            
        await self.ensure_pool()
        
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    if parent_id is not None:
                        await self._check_parent(conn, parent_id, category_id)
                    row = await conn.fetchrow(
                        '''
                        UPDATE categories
                        SET name = COALESCE($1, name),
                            description = COALESCE($2, description),
                            parent_id = COALESCE($3, parent_id)
                        WHERE id = $4
                        RETURNING *
                        ''',
                        name,
                        description,
                        parent_id,
                        category_id
                    )
        except PostgresError as e:
            logger.error(f"Error updating category {category_id}: {e}")
            raise StoreFailure("Error updating category") from e
            
        if not row:
            raise NotFound("Category not found")
        return dict(row)

    async def delete_category(self, caller: Caller, category_id: int) -> Dict[str, Any]:
        """Delete a category that has no subcategories and no orders.
        
        Raises:
            CategoryInUseError: If subcategories or orders still reference it
        """
        if not can_moderate(caller):
            raise AuthorizationDenied("Only admins can delete categories")
            
        await self.ensure_pool()
        
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    exists = await conn.fetchval(
                        'SELECT id FROM categories WHERE id = $1 FOR UPDATE',
                        category_id
                    )
                    if exists is None:
                        raise NotFound("Category not found")
                        
                    children = await conn.fetchval(
                        'SELECT COUNT(*) FROM categories WHERE parent_id = $1',
                        category_id
                    )
                    if children > 0:
                        raise CategoryInUseError("Cannot delete category with subcategories")
                        
                    orders = await conn.fetchval(
                        'SELECT COUNT(*) FROM orders WHERE category_id = $1',
                        category_id
                    )
                    if orders > 0:
                        raise CategoryInUseError("Cannot delete category with existing orders")
                        
                    await conn.execute('DELETE FROM categories WHERE id = $1', category_id)
        except ForeignKeyViolationError:
            # A child or order appeared after the checks
            raise CategoryInUseError("Cannot delete category that is still referenced")
        except PostgresError as e:
            logger.error(f"Error deleting category {category_id}: {e}")
            raise StoreFailure("Error deleting category") from e
            
        logger.info(f"Category {category_id} deleted")
        return {"message": "Category deleted successfully"}

__all__ = ['CategoryManager', 'CategoryInUseError']
