"""Schema versioning for the persons table.

The schema version lives in SQLite's ``PRAGMA user_version``. Version 0 means
a brand-new database. Each :class:`Migration` moves the schema forward by one
or more versions and must be safe to re-run.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from loguru import logger
from sqlalchemy import Connection, inspect
from sqlmodel import SQLModel

from src.contacts.core.exceptions import MigrationFailureError
from src.contacts.entities.person.table import PERSONS_TABLE, PersonTable

CURRENT_SCHEMA_VERSION = 2


@dataclass(frozen=True)
class Migration:
    start_version: int
    end_version: int
    apply: Callable[[Connection], None]
    description: str = ""


def _table_columns(conn: Connection, table: str) -> set[str]:
    return {row[1] for row in conn.exec_driver_sql(f"PRAGMA table_info({table})")}


def _add_salary_column(conn: Connection) -> None:
    if "salary" in _table_columns(conn, PERSONS_TABLE):
        return
    conn.exec_driver_sql(
        f"ALTER TABLE {PERSONS_TABLE} ADD COLUMN salary REAL NOT NULL DEFAULT 0.0"
    )


MIGRATIONS: tuple[Migration, ...] = (
    Migration(1, 2, _add_salary_column, "add salary column"),
)


def get_schema_version(conn: Connection) -> int:
    return int(conn.exec_driver_sql("PRAGMA user_version").scalar() or 0)


def set_schema_version(conn: Connection, version: int) -> None:
    conn.exec_driver_sql(f"PRAGMA user_version = {int(version)}")


def find_migration_path(
    start: int, end: int, migrations: Sequence[Migration] = MIGRATIONS
) -> list[Migration] | None:
    """Return the chain of migrations leading from ``start`` to ``end``.

    Returns an empty list when the versions are equal and ``None`` when no
    chain exists. Downgrades are never supported.
    """
    path: list[Migration] = []
    version = start
    while version != end:
        step = next(
            (
                m
                for m in migrations
                if m.start_version == version and version < m.end_version <= end
            ),
            None,
        )
        if step is None:
            return None
        path.append(step)
        version = step.end_version
    return path


def _create_schema(conn: Connection, version: int) -> None:
    SQLModel.metadata.create_all(conn, tables=[PersonTable.__table__])
    set_schema_version(conn, version)


def ensure_schema(
    conn: Connection,
    allow_destructive: bool = False,
    target_version: int = CURRENT_SCHEMA_VERSION,
    migrations: Sequence[Migration] = MIGRATIONS,
) -> int:
    """Bring the database on ``conn`` to ``target_version``.

    Args:
        conn: Connection inside an open transaction
        allow_destructive: Drop and recreate the table when no migration path exists
        target_version: Schema version the code expects
        migrations: Available migrations

    Returns:
        The schema version found before any change was made

    Raises:
        MigrationFailureError: If no path exists and destructive fallback is off
    """
    found = get_schema_version(conn)
    has_table = inspect(conn).has_table(PERSONS_TABLE)

    if found == 0 and not has_table:
        logger.info("Creating persons schema at version {}", target_version)
        _create_schema(conn, target_version)
        return found

    if found == target_version:
        if not has_table:
            _create_schema(conn, target_version)
        return found

    path = find_migration_path(found, target_version, migrations) if has_table else None
    if path:
        for migration in path:
            logger.info(
                "Migrating schema {} -> {}: {}",
                migration.start_version,
                migration.end_version,
                migration.description,
            )
            migration.apply(conn)
            set_schema_version(conn, migration.end_version)
        return found

    if not allow_destructive:
        logger.error(
            "No migration path from schema version {} to {}", found, target_version
        )
        raise MigrationFailureError(found, target_version)

    logger.warning(
        "No migration path from schema version {} to {}; dropping and recreating "
        "the {} table. All stored persons are lost.",
        found,
        target_version,
        PERSONS_TABLE,
    )
    PersonTable.__table__.drop(conn, checkfirst=True)
    _create_schema(conn, target_version)
    return found
