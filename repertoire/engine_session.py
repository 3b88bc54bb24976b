"""
Engine Session

Owns one UCI engine process (Stockfish) for its whole lifetime.

  session = EngineSession("stockfish")
  await session.start()                 # uci -> uciok, isready -> readyok
  ev = await session.evaluate(fen, 14)  # position fen ... / go depth 14 -> bestmove
  await session.terminate()

Scores are reported from the perspective of the side to move in the submitted
position, in pawns. Forced mates saturate to +/-100.
"""

import logging
from typing import Any, Awaitable, Callable

import chess
import chess.engine

from repertoire.errors import (
    EngineBusyError,
    EngineCrashedError,
    EngineEvaluationError,
    EngineNotReadyError,
    EngineStartError,
)
from repertoire.models import EngineEvaluation

logger = logging.getLogger(__name__)

MATE_SCORE = 100.0

Popen = Callable[[str], Awaitable[tuple[Any, chess.engine.Protocol]]]


def score_to_pawns(score: chess.engine.PovScore | None) -> float:
    """Side-to-move score in pawns. No score at all counts as 0.0."""
    if score is None:
        return 0.0
    relative = score.relative
    if relative.is_mate():
        return MATE_SCORE if relative > chess.engine.Cp(0) else -MATE_SCORE
    return relative.score() / 100


def to_evaluation(result: chess.engine.PlayResult, depth: int) -> EngineEvaluation:
    """Reduce a finished search (last info line + bestmove line) to an EngineEvaluation."""
    return EngineEvaluation(
        score=score_to_pawns(result.info.get("score")),
        best_move=result.move.uci() if result.move else "",
        depth=depth,
    )


class EngineSession:
    """One external engine process with at most one outstanding evaluation."""

    def __init__(
        self,
        engine_path: str = "stockfish",
        options: dict[str, Any] | None = None,
        popen: Popen = chess.engine.popen_uci,
    ):
        self.engine_path = engine_path
        self.options = options or {}
        self._popen = popen
        self._transport = None
        self._protocol: chess.engine.Protocol | None = None
        self._busy = False
        self.ready = False

    async def start(self) -> None:
        """Spawn the engine and complete the handshake. Idempotent once ready."""
        if self.ready:
            return
        try:
            self._transport, self._protocol = await self._popen(self.engine_path)
            if self.options:
                await self._protocol.configure(self.options)
            await self._protocol.ping()
        except (OSError, chess.engine.EngineError, chess.engine.EngineTerminatedError) as e:
            await self._release()
            raise EngineStartError(f"Could not start engine {self.engine_path!r}: {e}") from e
        self.ready = True
        logger.debug("Engine %s ready", self.engine_path)

    async def evaluate(self, fen: str, depth: int) -> EngineEvaluation:
        """Search `fen` to `depth` plies and return score and best move."""
        if not self.ready or self._protocol is None:
            raise EngineNotReadyError("evaluate() called before the engine handshake completed")
        if self._busy:
            raise EngineBusyError("an evaluation is already outstanding on this session")

        self._busy = True
        try:
            board = chess.Board(fen)
            result = await self._protocol.play(
                board, chess.engine.Limit(depth=depth), info=chess.engine.INFO_SCORE
            )
        except chess.engine.EngineTerminatedError as e:
            self.ready = False
            raise EngineCrashedError(f"Engine {self.engine_path!r} exited while searching {fen}: {e}") from e
        except (ValueError, chess.engine.EngineError) as e:
            raise EngineEvaluationError(f"Evaluation failed for {fen}: {e}") from e
        finally:
            self._busy = False
        return to_evaluation(result, depth)

    async def terminate(self) -> None:
        """Stop the engine process. Outstanding work is abandoned."""
        self.ready = False
        await self._release()

    async def _release(self) -> None:
        protocol, self._protocol, self._transport = self._protocol, None, None
        self._busy = False
        if protocol is None:
            return
        try:
            await protocol.quit()
        except (chess.engine.EngineError, chess.engine.EngineTerminatedError, OSError):
            logger.warning("Engine %s failed to quit cleanly", self.engine_path)

    async def __aenter__(self) -> "EngineSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.terminate()
