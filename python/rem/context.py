"""Cancellation and deadlines for queries."""

from __future__ import annotations

import time

from rem.exceptions import DeadlineExceededError, QueryCancelledError


class QueryContext:
    """Cancellation flag plus an optional deadline shared by queries.

    Example:
        >>> ctx = QueryContext(timeout=2.0)
        >>> rows = await use(Account).query().context(ctx).all(conn)
    """

    def __init__(self, timeout: float | None = None) -> None:
        self.deadline = time.monotonic() + timeout if timeout is not None else None
        self._cancelled = False

    def __repr__(self) -> str:
        return f"QueryContext(cancelled={self._cancelled}, remaining={self.remaining()})"

    def cancel(self) -> None:
        self._cancelled = True

    def err(self) -> QueryCancelledError | None:
        """The error this context is done with, or None while it is live."""
        if self._cancelled:
            return QueryCancelledError("query cancelled")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            return DeadlineExceededError("query deadline exceeded")
        return None

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None without one."""
        if self.deadline is None:
            return None
        return max(self.deadline - time.monotonic(), 0.0)

    def check(self) -> None:
        """Raise the context error, if any."""
        error = self.err()
        if error is not None:
            raise error
