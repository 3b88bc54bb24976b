"""
Move replay on top of python-chess.

Turns PGN text into the ordered list of positions a game went through and answers
the few board questions the analysis needs (legal moves, applying a move, SAN).
"""

import io
import logging
from dataclasses import dataclass, field

import chess
import chess.pgn

from repertoire.errors import MalformedNotationError
from repertoire.models import Ply, PositionKey

logger = logging.getLogger(__name__)


@dataclass
class ReplayedGame:
    headers: dict[str, str] = field(default_factory=dict)
    plies: list[Ply] = field(default_factory=list)


def position_key(fen: str) -> PositionKey:
    """Drop the halfmove clock and fullmove number so transpositions merge."""
    return " ".join(fen.split()[:4])


def color_name(turn: chess.Color) -> str:
    return "white" if turn == chess.WHITE else "black"


def replay_pgn(pgn: str, game_id: str | None = None) -> ReplayedGame:
    """Replay the mainline of a PGN. Raises MalformedNotationError on any parse error."""
    try:
        game = chess.pgn.read_game(io.StringIO(pgn or ""))
    except (ValueError, chess.InvalidMoveError, chess.AmbiguousMoveError) as e:
        raise MalformedNotationError(str(e), game_id) from e
    if game is None:
        raise MalformedNotationError("no game found in PGN", game_id)
    if game.errors:
        raise MalformedNotationError(str(game.errors[0]), game_id)

    board = game.board()
    plies = []
    for number, node in enumerate(game.mainline(), start=1):
        move = node.move
        plies.append(
            Ply(
                number=number,
                fen=board.fen(),
                turn=color_name(board.turn),
                move_san=board.san(move),
                move_uci=move.uci(),
            )
        )
        board.push(move)
    return ReplayedGame(headers=dict(game.headers), plies=plies)


def legal_moves(fen: str) -> list[str]:
    """All legal moves from `fen` in UCI notation."""
    board = chess.Board(fen)
    return [move.uci() for move in board.legal_moves]


def apply_move(fen: str, uci: str) -> str:
    """FEN after playing `uci` from `fen`. Raises ValueError if the move is illegal."""
    board = chess.Board(fen)
    board.push(board.parse_uci(uci))
    return board.fen()


def uci_to_san(fen: str, uci: str) -> str:
    """Translate a coordinate move to SAN. Raises ValueError if it is not legal."""
    board = chess.Board(fen)
    return board.san(board.parse_uci(uci))
