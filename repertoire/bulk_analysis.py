"""
Bulk Analysis

Scores the positions the subject reaches most often. Keys are queued once in
indexing order and drained strictly FIFO through a single engine session; each
result is written back onto its PositionNode and the analyzed counter advances.
"""

import asyncio
import enum
import logging
from collections import deque
from typing import Callable, Iterable

from repertoire.config import BULK_DEPTH
from repertoire.engine_session import EngineSession
from repertoire.errors import EngineCrashedError, EngineEvaluationError, EngineStartError
from repertoire.models import PositionKey, ScanProgress
from repertoire.state import ScannerState

logger = logging.getLogger(__name__)


class SchedulerStatus(enum.Enum):
    IDLE = "idle"
    AWAITING_HANDSHAKE = "awaiting-handshake"
    DRAINING = "draining"


class BulkAnalysisScheduler:
    """FIFO backlog of positions drained one at a time through one engine session."""

    def __init__(
        self,
        state: ScannerState,
        session_factory: Callable[[], EngineSession],
        depth: int = BULK_DEPTH,
    ):
        self.state = state
        self.session_factory = session_factory
        self.depth = depth
        self.queue: deque[PositionKey] = deque()
        self.status = SchedulerStatus.IDLE
        self.session: EngineSession | None = None
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def enqueue(self, keys: Iterable[PositionKey]) -> int:
        """Append keys to the back of the queue. Every key must already be indexed."""
        positions = self.state.positions.value
        added = 0
        for key in keys:
            if key not in positions:
                raise KeyError(f"position {key!r} is not in the position map")
            self.queue.append(key)
            added += 1
        self.state.publish_queue(self.queue)
        return added

    def start(self) -> None:
        """Begin draining in the background. Must be called from a running event loop."""
        if self.running:
            return
        if not self.queue:
            self.status = SchedulerStatus.IDLE
            return
        self.status = SchedulerStatus.AWAITING_HANDSHAKE
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def join(self) -> None:
        """Wait until the current run has drained the queue (or was stopped)."""
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def stop(self) -> None:
        """Terminate the session. The in-flight position is lost; the backlog stays queued."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._close_session()
        self.status = SchedulerStatus.IDLE
        logger.info("Bulk analysis stopped, %d positions still queued", len(self.queue))

    def clear(self) -> None:
        """Drop every queued key. Call after stop() when the position map is replaced."""
        self.queue.clear()
        self.state.publish_queue(self.queue)

    async def _run(self) -> None:
        self.session = self.session_factory()
        try:
            await self.session.start()
        except EngineStartError as e:
            logger.error("Bulk analysis aborted: %s", e)
            self.session = None
            self.status = SchedulerStatus.IDLE
            return

        self.status = SchedulerStatus.DRAINING
        try:
            while self.queue:
                await self._analyze_next()
        except EngineCrashedError as e:
            logger.error("Bulk analysis aborted, %d positions left queued: %s", len(self.queue), e)
        finally:
            self.status = SchedulerStatus.IDLE
            await self._close_session()

    async def _analyze_next(self) -> None:
        key = self.queue.popleft()
        self.state.publish_queue(self.queue)
        try:
            evaluation = await self.session.evaluate(key, self.depth)
        except EngineCrashedError:
            self.queue.appendleft(key)
            self.state.publish_queue(self.queue)
            raise
        except EngineEvaluationError as e:
            logger.warning("Skipping position %s: %s", key, e)
            return

        positions = self.state.positions.value
        node = positions.get(key)
        if node is not None:
            node.evaluation = evaluation
        self.state.positions.set(positions)
        self.state.progress.update(
            lambda p: ScanProgress(p.fetched, p.analyzed + 1, p.total, p.analyze_total)
        )

    async def _close_session(self) -> None:
        session, self.session = self.session, None
        if session is not None:
            await session.terminate()
