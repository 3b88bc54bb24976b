"""
Observable state containers.

The indexer, the bulk scheduler and the reviewer publish into these; readers
(the HTTP API, CLIs, tests) either read `.value` or subscribe for changes.
Writes are synchronous and immediately visible.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Generic, TypeVar

from repertoire.models import (
    Game,
    Mistake,
    OpeningStats,
    PositionKey,
    PositionNode,
    ReviewProgress,
    ScanProgress,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Observable(Generic[T]):
    """Holds one value and notifies subscribers whenever it is replaced."""

    def __init__(self, value: T):
        self._value = value
        self._subscribers: list[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        self._value = value
        self._notify()

    def update(self, fn: Callable[[T], T]) -> None:
        self.set(fn(self._value))

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register `callback`, call it once with the current value. Returns an unsubscribe hook."""
        self._subscribers.append(callback)
        callback(self._value)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        for callback in list(self._subscribers):
            try:
                callback(self._value)
            except Exception:
                logger.exception("State subscriber failed")


@dataclass
class User:
    username: str = ""
    platform: str = "lichess"


@dataclass
class ScannerState:
    user: Observable[User] = field(default_factory=lambda: Observable(User()))
    games: Observable[list[Game]] = field(default_factory=lambda: Observable([]))
    positions: Observable[dict[PositionKey, PositionNode]] = field(
        default_factory=lambda: Observable({})
    )
    openings: Observable[dict[str, OpeningStats]] = field(default_factory=lambda: Observable({}))
    analysis_queue: Observable[list[PositionKey]] = field(default_factory=lambda: Observable([]))
    scanning: Observable[bool] = field(default_factory=lambda: Observable(False))
    progress: Observable[ScanProgress] = field(default_factory=lambda: Observable(ScanProgress()))
    mistakes: Observable[list[Mistake]] = field(default_factory=lambda: Observable([]))
    reviewing: Observable[bool] = field(default_factory=lambda: Observable(False))
    review_progress: Observable[ReviewProgress] = field(
        default_factory=lambda: Observable(ReviewProgress())
    )

    def publish_queue(self, queue: deque) -> None:
        self.analysis_queue.set(list(queue))
