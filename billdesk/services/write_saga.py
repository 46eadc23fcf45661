from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass(frozen=True)
class _Compensation:
    step: str
    undo: Callable[[], None]


class WriteSaga:
    """Ordered remote writes with compensating undo actions.

    Each completed step may register an undo callback. When a later step
    raises, the registered callbacks run newest first and the original
    exception is re-raised unchanged. A failing undo is logged and skipped.
    """

    def __init__(self, label: str) -> None:
        self.label = label
        self._compensations: list[_Compensation] = []
        self.completed: list[str] = []

    def step(
        self,
        name: str,
        action: Callable[[], T],
        compensate: Callable[[T], Any] | None = None,
    ) -> T:
        try:
            result = action()
        except Exception:
            logger.warning('%s: step "%s" failed, rolling back %d step(s)', self.label, name, len(self._compensations))
            self.rollback()
            raise
        self.completed.append(name)
        if compensate is not None:
            self._compensations.append(_Compensation(step=name, undo=lambda: compensate(result)))
        return result

    def rollback(self) -> list[str]:
        failed: list[str] = []
        while self._compensations:
            compensation = self._compensations.pop()
            try:
                compensation.undo()
            except Exception:
                logger.exception('%s: compensation for "%s" failed', self.label, compensation.step)
                failed.append(compensation.step)
            else:
                logger.info('%s: compensated "%s"', self.label, compensation.step)
        return failed
