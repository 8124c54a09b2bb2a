"""Migration runner - executes migrations against a database."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

from rem.base import Base
from rem.exceptions import MigrationError, NoRowsError
from rem.fields import Mapped, mapped_column
from rem.model import use

if TYPE_CHECKING:
    from rem.connection import Connection
    from rem.dialects.base import Dialect
    from rem.query import Query

logger = logging.getLogger("rem.migrations")


class Migration(Protocol):
    """One schema change. Migrations run in list order, and in reverse when going down."""

    async def up(self, conn: Any) -> None: ...

    async def down(self, conn: Any) -> None: ...


class MigrationLogs(Base):
    """Append-only record of every migration step that ran."""

    id: Mapped[int] = mapped_column(primary_key=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.now)
    direction: Mapped[str] = mapped_column(max_length=10)
    migration_type: Mapped[str] = mapped_column(max_length=255)


def migration_name(migration: Migration) -> str:
    """Identifier stored in the log table: the migration's qualified class name."""
    cls = type(migration)
    return f"{cls.__module__}.{cls.__qualname__}"


class MigrationRunner:
    """Execute migrations against a database.

    The latest log entry tells where the previous run stopped:

    - no entry: nothing has run
    - an ``up`` entry for migration *i*: migrations up to *i* are applied
    - a ``down`` entry for migration *i*: migrations before *i* are applied

    Example:
        runner = MigrationRunner(conn, [CreateAccounts(), AddAccountEmail()])
        await runner.upgrade()  # Apply all pending
        await runner.downgrade()  # Revert everything applied
    """

    def __init__(
        self,
        conn: Connection,
        migrations: Sequence[Migration],
        dialect: Dialect | None = None,
    ) -> None:
        """Initialize the migration runner.

        Args:
            conn: Connection migrations and log entries run on
            migrations: Every migration, oldest first
            dialect: Dialect for the log table (default dialect if omitted)
        """
        self.conn = conn
        self.migrations = list(migrations)
        self.dialect = dialect

    def _logs(self) -> Query[MigrationLogs]:
        return use(MigrationLogs).query().dialect(self.dialect)

    async def setup(self) -> int:
        """Create the log table if needed and return the index of the last applied migration.

        Returns:
            Index into ``migrations``, or -1 when none is applied
        """
        try:
            await self._logs().table_create(self.conn, if_not_exists=True)
        except Exception as exc:
            raise MigrationError("migrations setup: failed to create table for migration logs", []) from exc

        try:
            latest = await self._logs().sort("-id").first(self.conn)
        except NoRowsError:
            return -1
        except Exception as exc:
            raise MigrationError("migrations setup: failed to get migrations list", []) from exc

        for index, migration in enumerate(self.migrations):
            if migration_name(migration) == latest.migration_type:
                return index - 1 if latest.direction == "down" else index
        return -1

    async def upgrade(self) -> list[str]:
        """Apply every migration after the last applied one.

        Returns:
            One progress line per migration started
        """
        latest = await self.setup()
        logs: list[str] = []
        for migration in self.migrations[latest + 1 :]:
            await self._run(migration, "up", logs)
        return logs

    async def downgrade(self) -> list[str]:
        """Revert every applied migration, newest first.

        Returns:
            One progress line per migration started
        """
        latest = await self.setup()
        logs: list[str] = []
        for index in range(latest, -1, -1):
            await self._run(self.migrations[index], "down", logs)
        return logs

    async def _run(self, migration: Migration, direction: str, logs: list[str]) -> None:
        name = migration_name(migration)
        logs.append(f"Migrating {direction} to {name}...")
        logger.info("Migrating %s to %s", direction, name)

        step = migration.up if direction == "up" else migration.down
        try:
            await step(self.conn)
        except Exception as exc:
            raise MigrationError(f"migration {name}: failed", logs) from exc

        try:
            await self._logs().insert(self.conn, MigrationLogs(direction=direction, migration_type=name))
        except Exception as exc:
            raise MigrationError(f"migration {name}: failed to insert migration logs", logs) from exc


async def migrate_up(
    conn: Connection, migrations: Sequence[Migration], dialect: Dialect | None = None
) -> list[str]:
    """Apply pending migrations. See ``MigrationRunner.upgrade``."""
    return await MigrationRunner(conn, migrations, dialect).upgrade()


async def migrate_down(
    conn: Connection, migrations: Sequence[Migration], dialect: Dialect | None = None
) -> list[str]:
    """Revert applied migrations. See ``MigrationRunner.downgrade``."""
    return await MigrationRunner(conn, migrations, dialect).downgrade()
