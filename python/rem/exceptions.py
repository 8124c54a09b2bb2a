"""Exception types raised by rem."""

from __future__ import annotations


class RemError(Exception):
    """Base class for every error raised by rem itself."""


class FilterError(RemError, ValueError):
    """A filter clause is malformed or uses an unsupported operator."""


class QueryError(RemError, ValueError):
    """A query cannot be compiled for the active dialect."""


class UnsupportedTypeError(RemError, TypeError):
    """A Python type has no SQL representation."""


class ModelDefinitionError(RemError, TypeError):
    """A model class declares its columns inconsistently."""


class NoRowsError(RemError, LookupError):
    """A single-row query matched nothing."""


class DialectNotConfiguredError(RemError, RuntimeError):
    """No dialect was set on the query and no default dialect is registered."""

    def __init__(self) -> None:
        super().__init__(
            "no dialect registered. Use rem.set_dialect(dialect) to register a default for SQL queries"
        )


class QueryCancelledError(RemError):
    """The query context was cancelled."""


class DeadlineExceededError(QueryCancelledError):
    """The query context deadline passed."""


class MigrationError(RemError):
    """A migration step failed.

    ``logs`` holds the progress lines written before the failure. The
    triggering exception is chained as ``__cause__``.
    """

    def __init__(self, message: str, logs: list[str]) -> None:
        super().__init__(message)
        self.logs = logs
