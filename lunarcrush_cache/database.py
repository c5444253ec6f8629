"""
Database connection management.
Raw asyncpg pool for the cache tables.
"""
import json
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import asyncpg
import structlog

from lunarcrush_cache.config import Settings

logger = structlog.get_logger()

MIGRATIONS_DIR = Path(__file__).parent.parent / "migrations"


async def _init_connection(conn: asyncpg.Connection) -> None:
    """Decode json/jsonb columns to Python objects."""
    for type_name in ("json", "jsonb"):
        await conn.set_type_codec(
            type_name,
            encoder=json.dumps,
            decoder=json.loads,
            schema="pg_catalog",
        )


class Database:
    """Database connection manager."""

    def __init__(self, settings: Settings):
        self._settings = settings
        self._pool: Optional[asyncpg.Pool] = None

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    async def connect(self) -> None:
        """Create the connection pool."""
        if self._pool is not None:
            return

        settings = self._settings
        self._pool = await asyncpg.create_pool(
            dsn=settings.database_url,
            password=settings.database_service_key,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            command_timeout=settings.db_command_timeout_seconds,
            init=_init_connection,
        )
        logger.info(
            "Created asyncpg connection pool",
            url=settings.masked_database_url,
            max_size=settings.db_pool_max_size,
        )

    async def disconnect(self) -> None:
        """Close the connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("Closed asyncpg pool")

    async def __aenter__(self) -> "Database":
        await self.connect()
        return self

    async def __aexit__(self, *args) -> None:
        await self.disconnect()

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[asyncpg.Connection]:
        """Get a raw database connection."""
        if not self._pool:
            raise RuntimeError("Database not connected. Call connect() first.")

        async with self._pool.acquire() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """Connection with an open transaction, committed on clean exit."""
        async with self.connection() as conn:
            async with conn.transaction():
                yield conn

    async def execute(self, query: str, *args) -> str:
        """Execute a query and return status."""
        async with self.connection() as conn:
            return await conn.execute(query, *args)

    async def fetchrow(self, query: str, *args) -> Optional[asyncpg.Record]:
        """Fetch a single row."""
        async with self.connection() as conn:
            return await conn.fetchrow(query, *args)

    async def health_check(self) -> bool:
        """Check database connectivity."""
        try:
            async with self.connection() as conn:
                result = await conn.fetchval("SELECT 1")
                return result == 1
        except (OSError, asyncpg.PostgresError, RuntimeError) as e:
            logger.error("Database health check failed", error=str(e))
            return False

    async def run_migrations(self, migrations_dir: Path = MIGRATIONS_DIR) -> list[str]:
        """
        Apply pending ``*.sql`` migrations in filename order.

        Returns:
            Filenames applied by this call
        """
        if not migrations_dir.exists():
            raise FileNotFoundError(f"Migrations directory not found: {migrations_dir}")

        applied_now = []
        async with self.connection() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS _migrations (
                    id SERIAL PRIMARY KEY,
                    filename TEXT UNIQUE NOT NULL,
                    applied_at TIMESTAMPTZ DEFAULT NOW()
                )
            """)

            applied = await conn.fetch("SELECT filename FROM _migrations")
            applied_set = {row["filename"] for row in applied}

            for migration_file in sorted(migrations_dir.glob("*.sql")):
                if migration_file.name in applied_set:
                    continue

                logger.info("Applying migration", filename=migration_file.name)
                async with conn.transaction():
                    await conn.execute(migration_file.read_text())
                    await conn.execute(
                        "INSERT INTO _migrations (filename) VALUES ($1)",
                        migration_file.name,
                    )
                applied_now.append(migration_file.name)
                logger.info("Applied migration", filename=migration_file.name)

        return applied_now
