"""Re-entrancy guard.

Execution is single-threaded, so this is a call-depth assertion rather than a
lock: an external transfer may run attacker-controlled code that calls back
into the engine, and that nested call must be refused.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from lending_engine.core.errors import ReentrantCall


class ReentrancyGuard:
    """In-progress flag for one engine instance."""

    def __init__(self) -> None:
        self._active: str | None = None

    @property
    def busy(self) -> bool:
        return self._active is not None

    @property
    def active_operation(self) -> str | None:
        return self._active

    @contextmanager
    def enter(self, operation: str) -> Iterator[None]:
        """Hold the guard for the duration of an operation.

        Raises:
            ReentrantCall: If another operation is already in progress.
        """
        if self._active is not None:
            raise ReentrantCall(operation, self._active)
        self._active = operation
        try:
            yield
        finally:
            self._active = None
