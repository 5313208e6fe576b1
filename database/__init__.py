"""PostgreSQL access for the marketplace.

The module owns one asyncpg pool per process. ``init_db`` creates the database
when it is missing, opens the pool and brings the schema up to date; managers
receive the pool from ``get_pool`` (or through the API's dependencies).
"""

import logging
import ssl
from typing import Optional, Dict, Any
from urllib.parse import urlparse, parse_qs, urlunparse

import asyncpg
import backoff

from .lib.schema_manager import SchemaManager
from .exceptions import DatabaseError, DatabaseSchemaError

logger = logging.getLogger(__name__)

_pool: Optional[asyncpg.Pool] = None

# Errors worth retrying while the server starts up or the network settles
RETRYABLE_ERRORS = (
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.CannotConnectNowError,
    OSError
)

SSL_MODES = ('require', 'verify-ca', 'verify-full')

def _connection_kwargs(db_url: str) -> Dict[str, Any]:
    """asyncpg keyword arguments derived from the URL's ``sslmode``."""
    sslmode = parse_qs(urlparse(db_url).query).get('sslmode', ['prefer'])[0]

    kwargs: Dict[str, Any] = {
        'server_settings': {'statement_timeout': '300000'}  # 5 minutes
    }
    if sslmode in SSL_MODES:
        context = ssl.create_default_context()
        context.check_hostname = sslmode == 'verify-full'
        context.verify_mode = ssl.CERT_REQUIRED if sslmode != 'require' else ssl.CERT_NONE
        kwargs['ssl'] = context
    elif sslmode == 'disable':
        kwargs['ssl'] = False
    return kwargs

def database_name(db_url: str) -> str:
    return urlparse(db_url).path.strip('/') or 'postgres'

@backoff.on_exception(backoff.expo, RETRYABLE_ERRORS, max_tries=5)
async def create_database_if_not_exists(db_url: str) -> None:
    """Create the URL's database through the ``postgres`` maintenance database."""
    name = database_name(db_url)
    maintenance_url = urlunparse(urlparse(db_url)._replace(path='/postgres'))

    conn = await asyncpg.connect(maintenance_url, **_connection_kwargs(maintenance_url))
    try:
        exists = await conn.fetchval(
            'SELECT EXISTS(SELECT 1 FROM pg_database WHERE datname = $1)',
            name
        )
        if not exists:
            await conn.execute(f'CREATE DATABASE "{name}"')
            logger.info(f"Created database {name}")
    finally:
        await conn.close()

@backoff.on_exception(backoff.expo, RETRYABLE_ERRORS, max_tries=5)
async def init_db(db_url: Optional[str] = None, force_recreate: bool = False) -> None:
    """Open the pool and apply the schema.

    Args:
        db_url: Connection URL; defaults to ``db_url`` from settings
        force_recreate: Drop all tables and install the latest schema

    Raises:
        DatabaseError: If no URL is configured
        DatabaseSchemaError: If the schema cannot be applied
    """
    global _pool

    from config import settings_conf

    url = db_url or settings_conf.get('db_url')
    if not url:
        raise DatabaseError("Database URL not provided")

    if _pool is not None:
        await close()

    await create_database_if_not_exists(url)

    logger.info(f"Connecting to database {database_name(url)}")
    _pool = await asyncpg.create_pool(
        url,
        min_size=settings_conf['db_min_pool_size'],
        max_size=settings_conf['db_max_pool_size'],
        max_inactive_connection_lifetime=300.0,
        command_timeout=60.0,
        **_connection_kwargs(url)
    )

    try:
        await SchemaManager(_pool).initialize(force_recreate=force_recreate)
    except DatabaseSchemaError:
        await close()
        raise

async def get_pool() -> asyncpg.Pool:
    """Return the pool, initializing it from settings on first use."""
    if _pool is None:
        await init_db()
    return _pool

async def close() -> None:
    """Close the pool if it is open."""
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("Database pool closed")

__all__ = [
    'init_db',
    'get_pool',
    'close',
    'create_database_if_not_exists',
    'database_name',
    'DatabaseError',
    'DatabaseSchemaError'
]
