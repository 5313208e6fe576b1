"""Shared fixtures: an asyncpg pool double."""

from unittest.mock import AsyncMock, MagicMock

import pytest

@pytest.fixture
def conn():
    """Connection double; every query method is an AsyncMock."""
    conn = MagicMock()
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchrow = AsyncMock(return_value=None)
    conn.fetchval = AsyncMock(return_value=None)
    conn.execute = AsyncMock(return_value='UPDATE 1')
    
    transaction = MagicMock()
    transaction.__aenter__ = AsyncMock(return_value=None)
    transaction.__aexit__ = AsyncMock(return_value=False)
    conn.transaction.return_value = transaction
    return conn

@pytest.fixture
def pool(conn):
    """Pool double whose acquire() yields ``conn``."""
    pool = MagicMock()
    acquire = MagicMock()
    acquire.__aenter__ = AsyncMock(return_value=conn)
    acquire.__aexit__ = AsyncMock(return_value=False)
    pool.acquire.return_value = acquire
    return pool
