"""User administration and self-service profiles."""

import logging
from typing import Dict, List, Optional, Any

from asyncpg.exceptions import PostgresError, UniqueViolationError, ForeignKeyViolationError

from database import get_pool
from errors import AuthorizationDenied, NotFound, PreconditionFailed, StoreFailure
from policy import Caller, Role, can_moderate

logger = logging.getLogger(__name__)

USER_COLUMNS = 'id, username, email, role, created_at'

class UserManager:
    """Manager class for user accounts."""
    
    def __init__(self, pool=None):
        self.pool = pool
    
    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    def _require_admin(self, caller: Caller) -> None:
        if not can_moderate(caller):
            raise AuthorizationDenied("Access denied. Admin rights required.")

    async def _fetchrow(self, action: str, query: str, *params) -> Optional[Dict[str, Any]]:
        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(query, *params)
                return dict(row) if row else None
        except UniqueViolationError:
            raise PreconditionFailed("Username or email already in use")
        except ForeignKeyViolationError:
            raise PreconditionFailed("User still has orders, responses or messages")
        except PostgresError as e:
            logger.error(f"Error {action}: {e}")
            raise StoreFailure(f"Error {action}") from e

    async def list_users(self, caller: Caller) -> List[Dict[str, Any]]:
        self._require_admin(caller)
        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(f'SELECT {USER_COLUMNS} FROM users ORDER BY id')
                return [dict(row) for row in rows]
        except PostgresError as e:
            logger.error(f"Error fetching users: {e}")
            raise StoreFailure("Error fetching users") from e

    async def list_users_by_role(self, caller: Caller, role: Role) -> List[Dict[str, Any]]:
        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    f'SELECT {USER_COLUMNS} FROM users WHERE role = $1 ORDER BY id',
                    role.value
                )
                return [dict(row) for row in rows]
        except PostgresError as e:
            logger.error(f"Error fetching users by role: {e}")
            raise StoreFailure("Error fetching users") from e

    async def get_user(self, caller: Caller, user_id: int) -> Dict[str, Any]:
        self._require_admin(caller)
        user = await self._fetchrow(
            "fetching user",
            f'SELECT {USER_COLUMNS} FROM users WHERE id = $1',
            user_id
        )
        if not user:
            raise NotFound("User not found")
        return user

    async def update_role(self, caller: Caller, user_id: int, role: Role) -> Dict[str, Any]:
        """Change a user's role (admin only)."""
        self._require_admin(caller)
        user = await self._fetchrow(
            "updating user",
            f'UPDATE users SET role = $1 WHERE id = $2 RETURNING {USER_COLUMNS}',
            role.value,
            user_id
        )
        if not user:
            raise NotFound("User not found")
        logger.info(f"Admin {caller.user_id} set role of user {user_id} to {role.value}")
        return user

    async def delete_user(self, caller: Caller, user_id: int) -> Dict[str, Any]:
        self._require_admin(caller)
        deleted = await self._fetchrow(
            "deleting user",
            'DELETE FROM users WHERE id = $1 RETURNING id',
            user_id
        )
        if not deleted:
            raise NotFound("User not found")
        logger.info(f"Admin {caller.user_id} deleted user {user_id}")
        return {"message": "User deleted successfully"}

    async def get_profile(self, caller: Caller) -> Dict[str, Any]:
        user = await self._fetchrow(
            "fetching user profile",
            f'SELECT {USER_COLUMNS} FROM users WHERE id = $1',
            caller.user_id
        )
        if not user:
            raise NotFound("User not found")
        return user

    async def update_profile(
        self,
        caller: Caller,
        username: Optional[str] = None,
        email: Optional[str] = None
    ) -> Dict[str, Any]:
        """Update the caller's username and/or email; the role is not editable here."""
        user = await self._fetchrow(
            "updating user profile",
            f'''
            UPDATE users
            SET username = COALESCE($1, username),
                email = COALESCE($2, email)
            WHERE id = $3
            RETURNING {USER_COLUMNS}
            ''',
            username,
            email.lower() if email else None,
            caller.user_id
        )
        if not user:
            raise NotFound("User not found")
        return user

__all__ = ['UserManager']
