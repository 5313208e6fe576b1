"""Authentication module using password login and signed bearer tokens.

This module provides:
1. Registration and password login for customers and freelancers
2. Stateless JWT bearer tokens carrying the user id and role
3. Dependency for protecting routes
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from asyncpg.exceptions import PostgresError, UniqueViolationError
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError, ExpiredSignatureError
from passlib.context import CryptContext

from config import settings_conf
from database import get_pool
from errors import AuthenticationMissing, PreconditionFailed, StoreFailure
from policy import Caller, Role

logger = logging.getLogger(__name__)

# Constants
TOKEN_EXPIRY_MINUTES = settings_conf['token_expiry_minutes']
JWT_SECRET = settings_conf['jwt_secret'] or secrets.token_urlsafe(32)
JWT_ALGORITHM = settings_conf['jwt_algorithm']

# Roles a user may pick at registration; admins are promoted by another admin
SELF_SERVICE_ROLES = (Role.CUSTOMER, Role.FREELANCER)

USER_COLUMNS = 'id, username, email, role, created_at'

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

class AuthError(AuthenticationMissing):
    """Base exception for authentication errors."""
    pass

class InvalidCredentialsError(AuthError):
    """Raised when email and password do not match a user."""
    pass

class InvalidTokenError(AuthError):
    """Raised when a bearer token fails verification."""
    def __init__(self, message: str = "Invalid token"):
        super().__init__(message, invalid=True)

class SessionExpiredError(InvalidTokenError):
    """Raised when a bearer token has expired."""
    def __init__(self, message: str = "Session has expired"):
        super().__init__(message)

class DuplicateUserError(PreconditionFailed):
    """Raised when the username or email is already registered."""
    pass

def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)

def create_token(user_id: int, role: Role, minutes: int = TOKEN_EXPIRY_MINUTES) -> Dict[str, Any]:
    """Sign a bearer token for a user.
    
    Returns:
        Dict containing the token and its expiry timestamp
    """
    expires_at = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    token = jwt.encode(
        {
            'sub': str(user_id),
            'role': role.value,
            'exp': expires_at
        },
        JWT_SECRET,
        algorithm=JWT_ALGORITHM
    )
    return {'token': token, 'expires_at': expires_at.isoformat()}

def verify_token(token: str) -> Caller:
    """Verify a bearer token and return the caller it identifies.
    
    Args:
        token: The encoded JWT
        
    Returns:
        The authenticated caller
        
    Raises:
        SessionExpiredError: If the token has expired
        InvalidTokenError: For any other verification failure
    """
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise SessionExpiredError()
    except JWTError as e:
        raise InvalidTokenError(f"Invalid token: {str(e)}")
        
    role = Role.parse(payload.get('role'))
    try:
        user_id = int(payload.get('sub'))
    except (TypeError, ValueError):
        user_id = None
        
    if role is None or user_id is None:
        raise InvalidTokenError("Invalid token: missing identity")
        
    return Caller(user_id=user_id, role=role)

class AuthManager:
    """Manages user registration and login."""
    
    def __init__(self, pool=None):
        """Initialize auth manager.
        
        Args:
            pool: Optional database pool. If not provided, will get from database module.
        """
        self.pool = pool
    
    async def ensure_pool(self):
        """Ensure database pool is available."""
        if not self.pool:
            self.pool = await get_pool()
    
    async def register(
        self,
        username: str,
        email: str,
        password: str,
        role: Role = Role.CUSTOMER
    ) -> Dict[str, Any]:
        """Register a new user and sign a token for them.
        
        Args:
            username: Unique display name
            email: Unique login email
            password: Plain text password
            role: customer or freelancer
            
        Returns:
            Dict containing:
                - token: Bearer token
                - expires_at: Token expiration timestamp
                - user: The created user row
                
        Raises:
            PreconditionFailed: If the role is not self-service
            DuplicateUserError: If the username or email is taken
        """
        if role not in SELF_SERVICE_ROLES:
            raise PreconditionFailed(f"Cannot register with role: {role.value}")
            
        await self.ensure_pool()
        
        try:
            async with self.pool.acquire() as conn:
                user = await conn.fetchrow(
                    f'''
                    INSERT INTO users (username, email, password_hash, role)
                    VALUES ($1, $2, $3, $4)
                    RETURNING {USER_COLUMNS}
                    ''',
                    username,
                    email.lower(),
                    hash_password(password),
                    role.value
                )
        except UniqueViolationError:
            raise DuplicateUserError("User with this username or email already exists")
        except PostgresError as e:
            logger.error(f"Error registering user: {e}")
            raise StoreFailure("Error registering user") from e
            
        logger.info(f"Registered {role.value} {user['id']}")
        return {**create_token(user['id'], role), 'user': dict(user)}
    
    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """Verify a password and sign a token.
        
        Raises:
            InvalidCredentialsError: If the email is unknown or the password is wrong
        """
        await self.ensure_pool()
        
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f'''
                    SELECT {USER_COLUMNS}, password_hash
                    FROM users
                    WHERE email = $1
                    ''',
                    email.lower()
                )
        except PostgresError as e:
            logger.error(f"Error logging in: {e}")
            raise StoreFailure("Error logging in") from e
            
        if not row or not verify_password(password, row['password_hash']):
            raise InvalidCredentialsError("Invalid email or password")
            
        user = {k: v for k, v in dict(row).items() if k != 'password_hash'}
        return {**create_token(user['id'], Role(user['role'])), 'user': user}

# FastAPI security scheme
auth_scheme = HTTPBearer(
    auto_error=False,  # Missing credentials are reported as AuthenticationMissing
    description="JWT Bearer token required"
)

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme)
) -> Caller:
    """FastAPI dependency for getting the authenticated caller.
    
    Raises:
        AuthenticationMissing: 401 without a token, 403 for a token that fails verification
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationMissing("Access denied")
    return verify_token(credentials.credentials)

# Export public interface
__all__ = [
    'AuthManager',
    'get_current_user',
    'create_token',
    'verify_token',
    'hash_password',
    'verify_password',
    'AuthError',
    'InvalidCredentialsError',
    'InvalidTokenError',
    'SessionExpiredError',
    'DuplicateUserError'
]
