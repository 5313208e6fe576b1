"""Versioned schema installation.

Schemas are plain dicts in ``database/schema/vN.py``. A fresh database gets the
latest version installed directly; an older one runs the ``migrations`` SQL of
every newer version in order. Both happen in a single transaction.
"""
import importlib
import logging
from pathlib import Path
from typing import Dict, Any, List, Optional

from ..exceptions import DatabaseSchemaError

logger = logging.getLogger(__name__)

SCHEMA_DIR = Path(__file__).resolve().parent.parent / 'schema'
SCHEMA_PACKAGE = 'database.schema'

def column_ddl(col: Dict[str, Any]) -> str:
    parts = [col['name'], col['type']]
    if 'default' in col:
        parts.append(f"DEFAULT {col['default']}")
    if col.get('nullable') is False:
        parts.append('NOT NULL')
    return ' '.join(parts)

def table_ddl(table: Dict[str, Any]) -> str:
    """CREATE TABLE statement with columns, keys and CHECK constraints.

    Foreign keys are added separately once every table exists.
    """
    items: List[str] = [column_ddl(col) for col in table['columns']]

    for col in table['columns']:
        if col.get('primary_key'):
            items.append(f"PRIMARY KEY ({col['name']})")
        elif col.get('unique'):
            items.append(f"UNIQUE ({col['name']})")

    for check in table.get('checks', []):
        items.append(f"CONSTRAINT {check['name']} CHECK ({check['expression']})")

    body = ',\n    '.join(items)
    return f"CREATE TABLE {table['name']} (\n    {body}\n)"

def foreign_key_ddl(table_name: str, fk: Dict[str, Any]) -> str:
    columns = ', '.join(fk['columns'])
    sql = (
        f"ALTER TABLE {table_name} "
        f"ADD CONSTRAINT fk_{table_name}_{fk['columns'][0]} "
        f"FOREIGN KEY ({columns}) REFERENCES {fk['references']}"
    )
    if 'on_delete' in fk:
        sql += f" ON DELETE {fk['on_delete']}"
    return sql

def index_ddl(table_name: str, idx: Dict[str, Any]) -> str:
    unique = 'UNIQUE ' if idx.get('unique') else ''
    sql = f"CREATE {unique}INDEX {idx['name']} ON {table_name} ({', '.join(idx['columns'])})"
    if 'where' in idx:
        # Partial index
        sql += f" WHERE {idx['where']}"
    return sql

def load_schemas(schema_dir: Path = SCHEMA_DIR) -> Dict[int, Dict[str, Any]]:
    """Import every ``vN.py`` schema module, keyed and sorted by version.

    Raises:
        DatabaseSchemaError: If a module has no ``schema`` or its version
            does not match the file name
    """
    schemas: Dict[int, Dict[str, Any]] = {}

    for path in Path(schema_dir).glob('v*.py'):
        try:
            version = int(path.stem[1:])
        except ValueError:
            logger.warning(f"Ignoring schema file with invalid name: {path.name}")
            continue

        module = importlib.import_module(f"{SCHEMA_PACKAGE}.{path.stem}")
        schema = getattr(module, 'schema', None)
        if schema is None:
            raise DatabaseSchemaError(f"{path.name} does not define 'schema'")
        if schema.get('version') != version:
            raise DatabaseSchemaError(
                f"{path.name} declares version {schema.get('version')}, expected {version}"
            )
        schemas[version] = schema

    return dict(sorted(schemas.items()))

class SchemaManager:
    """Brings a database up to the latest schema version."""

    def __init__(self, pool, schema_dir: Optional[Path] = None) -> None:
        self.pool = pool
        self.schema_dir = Path(schema_dir) if schema_dir else SCHEMA_DIR
        self.current_version = 0

    async def initialize(self, force_recreate: bool = False) -> None:
        """Install or migrate the schema.

        Args:
            force_recreate: Drop every table and install the latest schema

        Raises:
            DatabaseSchemaError: If no schema is found or applying it fails
        """
        schemas = load_schemas(self.schema_dir)
        if not schemas:
            raise DatabaseSchemaError(f"No schema files found in {self.schema_dir}")
        latest = max(schemas)

        try:
            async with self.pool.acquire() as conn:
                if force_recreate:
                    logger.warning("Recreating database schema, all data will be lost")
                    await conn.execute('DROP TABLE IF EXISTS schema_version')

                await conn.execute('''
                    CREATE TABLE IF NOT EXISTS schema_version (
                        version INT8 PRIMARY KEY,
                        applied_at TIMESTAMP NOT NULL DEFAULT now()
                    )
                ''')
                self.current_version = await conn.fetchval(
                    'SELECT COALESCE(MAX(version), 0) FROM schema_version'
                )

                if self.current_version >= latest:
                    logger.info(f"Schema is at version {self.current_version}")
                    return

                async with conn.transaction():
                    if self.current_version == 0:
                        await self._install(conn, schemas[latest])
                    else:
                        await self._migrate(conn, schemas, latest)

        except DatabaseSchemaError:
            raise
        except Exception as e:
            logger.error(f"Schema initialization failed: {e}")
            raise DatabaseSchemaError(f"Failed to initialize schema: {e}") from e

        self.current_version = latest

    async def _install(self, conn, schema: Dict[str, Any]) -> None:
        await self._drop_tables(conn)

        tables = schema.get('tables', [])
        for table in tables:
            await conn.execute(table_ddl(table))
            logger.info(f"Created table {table['name']}")

        for table in tables:
            for fk in table.get('foreign_keys', []):
                await conn.execute(foreign_key_ddl(table['name'], fk))
            for idx in table.get('indexes', []):
                await conn.execute(index_ddl(table['name'], idx))

        await conn.execute('INSERT INTO schema_version (version) VALUES ($1)', schema['version'])
        logger.info(f"Installed schema version {schema['version']}")

    async def _migrate(self, conn, schemas: Dict[int, Dict[str, Any]], latest: int) -> None:
        for version in range(self.current_version + 1, latest + 1):
            if version not in schemas:
                continue
            for statement in schemas[version].get('migrations', []):
                await conn.execute(statement)
            await conn.execute('INSERT INTO schema_version (version) VALUES ($1)', version)
            logger.info(f"Migrated schema to version {version}")

    async def _drop_tables(self, conn) -> None:
        """Drop every public table except schema_version."""
        rows = await conn.fetch('''
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = 'public'
            AND table_type = 'BASE TABLE'
            AND table_name != 'schema_version'
        ''')
        for row in rows:
            await conn.execute(f'DROP TABLE IF EXISTS "{row["table_name"]}" CASCADE')
            logger.info(f"Dropped table {row['table_name']}")
