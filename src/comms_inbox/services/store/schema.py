"""
Schema Versioning for the SQLite Document Store.

The schema version is kept in ``PRAGMA user_version``. Each file
``migrations/NNN_description.sql`` moves the schema from version NNN-1 to
NNN. A file is applied in one transaction together with its version bump,
so a failing migration leaves the database at the previous version.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import aiosqlite

from ...core.logging import get_logger
from ..inbox.errors import SchemaError

logger = get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


@dataclass(frozen=True)
class Migration:
    """One schema step read from ``NNN_description.sql``."""

    version: int
    description: str
    sql: str

    @classmethod
    def from_file(cls, path: Path) -> Migration:
        number, _, description = path.stem.partition("_")
        if not number.isdigit() or not description:
            raise SchemaError(f"invalid migration file name: {path.name}")
        return cls(
            version=int(number),
            description=description.replace("_", " "),
            sql=path.read_text(),
        )


def load_migrations(directory: Path = MIGRATIONS_DIR) -> list[Migration]:
    """
    Read the migration files in version order.

    Raises:
        SchemaError: If a file name carries no version, or the versions are
            not exactly 1..N
    """
    migrations = sorted(
        (Migration.from_file(path) for path in directory.glob("*.sql")),
        key=lambda m: m.version,
    )
    versions = [m.version for m in migrations]
    if versions != list(range(1, len(migrations) + 1)):
        raise SchemaError(f"migration versions must run 1..N without gaps, found {versions}")
    return migrations


async def get_schema_version(db: aiosqlite.Connection) -> int:
    cursor = await db.execute("PRAGMA user_version")
    row = await cursor.fetchone()
    return int(row[0]) if row else 0


async def upgrade_schema(
    db: aiosqlite.Connection, migrations: list[Migration] | None = None
) -> list[int]:
    """
    Bring the database up to the latest schema version.

    Args:
        db: Open connection
        migrations: Steps to apply (defaults to the packaged migrations)

    Returns:
        Versions applied, oldest first; empty when already current

    Raises:
        SchemaError: If the database is newer than the known migrations, or
            a migration fails
    """
    if migrations is None:
        migrations = load_migrations()

    latest = migrations[-1].version if migrations else 0
    current = await get_schema_version(db)

    if current > latest:
        raise SchemaError(
            f"database schema version {current} is newer than the supported version {latest}"
        )

    applied: list[int] = []
    for migration in migrations[current:]:
        logger.info("Applying schema version %03d: %s", migration.version, migration.description)
        try:
            await db.executescript(
                f"BEGIN;\n{migration.sql}\nPRAGMA user_version = {migration.version};\nCOMMIT;"
            )
        except aiosqlite.Error as e:
            await db.rollback()
            raise SchemaError(
                f"schema version {migration.version} ({migration.description}) failed: {e}"
            ) from e
        applied.append(migration.version)

    if applied:
        logger.info("Schema upgraded from version %d to %d", current, latest)

    return applied
