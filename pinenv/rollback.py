"""Stack of compensating actions for multi-stage operations."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from .exceptions import PinenvError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RollbackFailure:
    description: str
    error: Exception

    def __str__(self) -> str:
        return f"{self.description}: {self.error}"


@dataclass
class Rollback:
    """Compensations pushed as stages complete, run newest-first on failure."""

    _actions: list[tuple[str, Callable[[], None]]] = field(default_factory=list)

    def push(self, description: str, action: Callable[[], None]) -> None:
        self._actions.append((description, action))

    def __len__(self) -> int:
        return len(self._actions)

    def unwind(self) -> list[RollbackFailure]:
        """Run every pending compensation; never raises."""

        failures: list[RollbackFailure] = []
        while self._actions:
            description, action = self._actions.pop()
            logger.debug("Rolling back: %s", description)
            try:
                action()
            except (OSError, PinenvError) as exc:
                logger.error("Rollback step failed (%s): %s", description, exc)
                failures.append(RollbackFailure(description, exc))
        return failures

    def discard(self) -> None:
        self._actions.clear()
