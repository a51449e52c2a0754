"""
Database Migrator Entry Point.

Applies the SQL files under ``migrations/`` in name order, recording each
applied file in the ``_migrations`` table.
"""
import asyncio
import sys
from pathlib import Path

import asyncpg
from dotenv import load_dotenv

from config.settings import get_settings
from pkg.logger.logger import get_logger, setup_logging


# Load environment variables
load_dotenv()

settings = get_settings()

setup_logging(level=settings.log_level, json_format=settings.json_logs)

logger = get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).parent.parent.parent / "migrations"


async def get_applied_migrations(conn: asyncpg.Connection) -> set[str]:
    """
    Get the names of already applied migrations.

    Args:
        conn: Database connection.

    Returns:
        Set of applied migration file names.
    """
    await conn.execute("""
        CREATE TABLE IF NOT EXISTS _migrations (
            id SERIAL PRIMARY KEY,
            name VARCHAR(255) NOT NULL UNIQUE,
            applied_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    rows = await conn.fetch("SELECT name FROM _migrations")
    return {row["name"] for row in rows}


def pending_migrations(migrations_dir: Path, applied: set[str]) -> list[Path]:
    """SQL files in ``migrations_dir`` not yet applied, in name order."""
    if not migrations_dir.exists():
        return []
    return [
        path for path in sorted(migrations_dir.glob("*.sql"))
        if path.name not in applied
    ]


async def apply_migration(conn: asyncpg.Connection, migration_path: Path) -> None:
    """
    Apply one migration file and record it, atomically.

    Args:
        conn: Database connection.
        migration_path: Path to the migration SQL file.
    """
    sql = migration_path.read_text(encoding="utf-8")

    async with conn.transaction():
        await conn.execute(sql)
        await conn.execute(
            "INSERT INTO _migrations (name) VALUES ($1)",
            migration_path.name,
        )

    logger.info("Migration applied", migration=migration_path.name)


async def run_migrations() -> None:
    """Run all pending migrations."""
    if not MIGRATIONS_DIR.exists():
        logger.error("Migrations directory not found", path=str(MIGRATIONS_DIR))
        return

    conn = await asyncpg.connect(settings.database_url)
    try:
        applied = await get_applied_migrations(conn)
        pending = pending_migrations(MIGRATIONS_DIR, applied)

        if not pending:
            logger.info("All migrations already applied", applied=len(applied))
            return

        logger.info("Applying migrations", applied=len(applied), pending=len(pending))
        for migration_path in pending:
            await apply_migration(conn, migration_path)

        logger.info("All migrations applied successfully")
    finally:
        await conn.close()


async def rollback_migration(migration_name: str) -> None:
    """
    Forget a migration so that it is applied again on the next run.

    Only the tracking row is removed; schema changes must be reverted by hand.

    Args:
        migration_name: File name of the migration.
    """
    conn = await asyncpg.connect(settings.database_url)
    try:
        result = await conn.execute(
            "DELETE FROM _migrations WHERE name = $1",
            migration_name,
        )
    finally:
        await conn.close()

    if result == "DELETE 1":
        logger.info("Migration rolled back", migration=migration_name)
    else:
        logger.warning("Migration not found", migration=migration_name)


def main() -> None:
    """Main entry point."""
    if len(sys.argv) > 1:
        command = sys.argv[1]

        if command == "rollback" and len(sys.argv) > 2:
            asyncio.run(rollback_migration(sys.argv[2]))
        else:
            print(f"Unknown command: {command}")
            print("Usage:")
            print("  python main.py                            # Run all migrations")
            print("  python main.py rollback <migration_name>  # Forget a migration")
            sys.exit(1)
    else:
        asyncio.run(run_migrations())


if __name__ == "__main__":
    main()
