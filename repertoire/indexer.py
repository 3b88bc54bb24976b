"""
Position & Opening Indexing

Replays a batch of the subject's games and builds:
  - a position map: every position (move 3 to move 30) where the subject had to
    move, with how often it was reached and which moves were played from it;
  - opening stats: wins/losses/draws per opening name, split by color.

Transpositions merge because positions are keyed without move clocks.
"""

import logging
from typing import Iterable

from repertoire.config import MAX_PLY, MIN_PLY, MIN_VISITS
from repertoire.errors import MalformedNotationError
from repertoire.models import (
    UNKNOWN_OPENING,
    Game,
    OpeningStats,
    PositionKey,
    PositionModel,
    PositionNode,
)
from repertoire.replay import position_key, replay_pgn

logger = logging.getLogger(__name__)


def opening_name_for(game: Game, headers: dict[str, str]) -> str:
    """Metadata opening first, then the PGN header, then the catch-all."""
    for name in (game.opening_name, headers.get("Opening")):
        if name and name.strip() and name != "?":
            return name.strip()
    return UNKNOWN_OPENING


def record_outcome(stats: OpeningStats, game: Game) -> None:
    tally = stats.tally_for(game.player_color)
    tally.games += 1
    if game.result == "1-0":
        if game.player_color == "white":
            tally.wins += 1
        else:
            tally.losses += 1
    elif game.result == "0-1":
        if game.player_color == "black":
            tally.wins += 1
        else:
            tally.losses += 1
    else:
        tally.draws += 1


def index_game(
    game: Game,
    model: PositionModel,
    min_ply: int = MIN_PLY,
    max_ply: int = MAX_PLY,
) -> int:
    """Fold one game into `model`. Returns positions recorded.

    Raises MalformedNotationError if the PGN cannot be replayed; in that case the
    model is left untouched.
    """
    replayed = replay_pgn(game.pgn, game.id)

    name = opening_name_for(game, replayed.headers)
    stats = model.openings.get(name)
    if stats is None:
        stats = model.openings[name] = OpeningStats(name=name)
    record_outcome(stats, game)

    recorded = 0
    for ply in replayed.plies:
        if ply.number > max_ply:
            break
        if ply.number < min_ply or ply.turn != game.player_color:
            continue
        key = position_key(ply.fen)
        node = model.positions.get(key)
        if node is None:
            node = model.positions[key] = PositionNode(fen=key)
        node.record_move(ply.move_san)
        recorded += 1
    return recorded


def index_games(
    games: Iterable[Game],
    model: PositionModel | None = None,
    min_ply: int = MIN_PLY,
    max_ply: int = MAX_PLY,
) -> PositionModel:
    """Index a batch of games. Games that fail to replay are logged and skipped."""
    model = model if model is not None else PositionModel()
    indexed = skipped = 0
    for game in games:
        try:
            index_game(game, model, min_ply, max_ply)
        except MalformedNotationError as e:
            logger.warning("Skipping game %s: unreadable PGN (%s)", game.id, e)
            skipped += 1
            continue
        indexed += 1
    logger.info(
        "Indexed %d games (%d skipped): %d positions, %d openings",
        indexed, skipped, len(model.positions), len(model.openings),
    )
    return model


def select_candidates(model: PositionModel, min_visits: int = MIN_VISITS) -> list[PositionKey]:
    """Positions reached at least `min_visits` times, in the order they were first seen."""
    return [key for key, node in model.positions.items() if node.visit_count >= min_visits]
