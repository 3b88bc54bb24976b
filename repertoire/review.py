#!/usr/bin/env python3
"""
Game Review

Find the subject's mistakes in one game.

Every position of the game is evaluated in order on a private engine session.
A move is a mistake when it drops the evaluation (from the mover's point of view)
by more than the threshold. For each mistake the engine's best move is reported
together with every legal move that scores within a small margin of it.

Usage:
  python -m repertoire.review game.pgn --color white
  STOCKFISH_PATH=/usr/bin/stockfish repertoire-review game.pgn --color black
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Callable

from repertoire.config import Settings
from repertoire.engine_session import EngineSession
from repertoire.errors import EngineEvaluationError, RepertoireError
from repertoire.models import EngineEvaluation, Game, Mistake, Ply, ReviewProgress
from repertoire.replay import apply_move, legal_moves, replay_pgn, uci_to_san
from repertoire.state import ScannerState

logger = logging.getLogger(__name__)

# Scores are cp/100 floats; differences are compared at this precision.
SCORE_DIGITS = 9


def user_eval_after(eval_after: float) -> float:
    """The position after the user's move is scored for the opponent; flip it."""
    return -eval_after


def eval_drop(user_eval_before: float, eval_after: float) -> float:
    return round(user_eval_before - user_eval_after(eval_after), SCORE_DIGITS)


def is_mistake(drop: float, threshold: float) -> bool:
    return drop > threshold


def is_acceptable(best_eval: float, move_eval: float, margin: float) -> bool:
    return round(best_eval - move_eval, SCORE_DIGITS) <= margin


def best_move_san(fen: str, best_move: str) -> str:
    """SAN for the engine's move, or the coordinate form if it does not translate."""
    try:
        return uci_to_san(fen, best_move)
    except ValueError:
        return best_move


class GameReviewer:
    def __init__(
        self,
        session_factory: Callable[[], EngineSession],
        settings: Settings | None = None,
        state: ScannerState | None = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or Settings()
        self.state = state

    async def review(self, game: Game) -> list[Mistake]:
        """Review one game. Raises MalformedNotationError before touching the engine."""
        plies = replay_pgn(game.pgn, game.id).plies
        if self.state is not None:
            self.state.reviewing.set(True)
        try:
            session = self.session_factory()
            try:
                await session.start()
                self._publish_start(len(plies))
                evals = await self._evaluate_plies(session, plies)
                mistakes = await self._find_mistakes(session, game, plies, evals)
            finally:
                await session.terminate()
        finally:
            if self.state is not None:
                self.state.reviewing.set(False)

        if self.state is not None:
            self.state.mistakes.set(mistakes)
        logger.info("Game %s: %d mistakes in %d plies", game.id, len(mistakes), len(plies))
        return mistakes

    def _publish_start(self, total: int) -> None:
        if self.state is None:
            return
        self.state.mistakes.set([])
        self.state.review_progress.set(ReviewProgress(0, total))

    async def _evaluate_plies(self, session: EngineSession, plies: list[Ply]) -> list[EngineEvaluation]:
        depth = self.settings.review_depth
        evals = []
        for i, ply in enumerate(plies):
            try:
                evals.append(await session.evaluate(ply.fen, depth))
            except EngineEvaluationError as e:
                logger.warning("Ply %d: evaluation failed, using 0.0 (%s)", ply.number, e)
                evals.append(EngineEvaluation(score=0.0, best_move="", depth=depth))
            if self.state is not None:
                self.state.review_progress.set(ReviewProgress(i + 1, len(plies)))
        return evals

    async def _find_mistakes(
        self,
        session: EngineSession,
        game: Game,
        plies: list[Ply],
        evals: list[EngineEvaluation],
    ) -> list[Mistake]:
        mistakes = []
        for i, ply in enumerate(plies):
            if ply.turn != game.player_color or i + 1 >= len(plies):
                continue
            before = evals[i].score
            drop = eval_drop(before, evals[i + 1].score)
            if not is_mistake(drop, self.settings.mistake_threshold):
                continue

            best = evals[i].best_move
            acceptable = await self.find_acceptable_moves(session, ply.fen, before)
            mistakes.append(
                Mistake(
                    fen=ply.fen,
                    move_number=i // 2 + 1,
                    user_move=ply.move_san,
                    user_move_uci=ply.move_uci,
                    best_move=best,
                    best_move_san=best_move_san(ply.fen, best),
                    acceptable_moves=acceptable,
                    eval_before=before,
                    eval_after=user_eval_after(evals[i + 1].score),
                    eval_drop=drop,
                    player_color=game.player_color,
                )
            )
        return mistakes

    async def find_acceptable_moves(self, session: EngineSession, fen: str, best_eval: float) -> list[str]:
        """Legal moves from `fen` whose resulting position stays within the margin of `best_eval`."""
        acceptable = []
        for uci in legal_moves(fen):
            try:
                result = await session.evaluate(apply_move(fen, uci), self.settings.acceptable_depth)
            except EngineEvaluationError as e:
                logger.debug("Candidate %s excluded: %s", uci, e)
                continue
            if is_acceptable(best_eval, user_eval_after(result.score), self.settings.acceptable_margin):
                acceptable.append(uci)
        return acceptable


async def review_game(
    game: Game,
    settings: Settings | None = None,
    state: ScannerState | None = None,
) -> list[Mistake]:
    """Review `game` with a fresh Stockfish session built from `settings`."""
    settings = settings or Settings.from_env()
    reviewer = GameReviewer(lambda: EngineSession(settings.stockfish_path), settings, state)
    return await reviewer.review(game)


def format_mistake(m: Mistake) -> str:
    dots = "." if m.player_color == "white" else "..."
    alternatives = ", ".join(m.acceptable_moves) or "-"
    return (
        f"{m.move_number}{dots} {m.user_move:<7} {m.eval_before:+6.2f} -> {m.eval_after:+6.2f} "
        f"(-{m.eval_drop:.2f})  best {m.best_move_san}  ok: {alternatives}"
    )


def main():
    parser = argparse.ArgumentParser(description="Find mistakes in a single game")
    parser.add_argument("pgn", help="Path to a PGN file (first game is reviewed)")
    parser.add_argument("--color", choices=["white", "black"], required=True)
    parser.add_argument("--depth", type=int, default=None, help="Review search depth")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    settings = Settings.from_env()
    if args.depth:
        settings.review_depth = args.depth

    path = Path(args.pgn)
    if not path.exists():
        print(f"Error: {path} not found.", file=sys.stderr)
        sys.exit(1)
    game = Game(id=path.stem, pgn=path.read_text(encoding="utf-8", errors="replace"), player_color=args.color)

    try:
        mistakes = asyncio.run(review_game(game, settings))
    except RepertoireError as e:
        print(f"Review failed: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Found {len(mistakes)} mistakes:")
    for m in mistakes:
        print(f"  {format_mistake(m)}")


if __name__ == "__main__":
    main()
