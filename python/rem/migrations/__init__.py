"""Linear schema migrations with a persisted log table.

Example:
    >>> class CreateAccounts:
    ...     async def up(self, conn):
    ...         await use(Account).table_create(conn)
    ...     async def down(self, conn):
    ...         await use(Account).table_drop(conn)
    >>> logs = await migrate_up(conn, [CreateAccounts(), AddAccountEmail()])
"""

from __future__ import annotations

from rem.migrations.runner import (
    Migration,
    MigrationLogs,
    MigrationRunner,
    migrate_down,
    migrate_up,
    migration_name,
)

__all__ = [
    "Migration",
    "MigrationLogs",
    "MigrationRunner",
    "migrate_down",
    "migrate_up",
    "migration_name",
]
