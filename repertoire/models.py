"""Data models for the repertoire scanner."""

from dataclasses import dataclass, field
from typing import Literal

Color = Literal["white", "black"]
Result = Literal["1-0", "0-1", "1/2-1/2", "*"]

# Normalized FEN: placement, side to move, castling, en passant. Clocks dropped.
PositionKey = str

UNKNOWN_OPENING = "Unknown Opening"


@dataclass(frozen=True)
class Game:
    """One finished game, seen from the subject player's side."""

    id: str
    pgn: str
    player_color: Color = "white"
    result: Result = "*"
    opening_name: str | None = None
    ply_count: int | None = None
    speed: str | None = None
    status: str | None = None
    duration_seconds: float | None = None
    platform: str = "lichess"
    white: str = ""
    black: str = ""
    date: str = ""
    url: str = ""
    my_rating: int | None = None
    opponent_name: str = ""
    opponent_rating: int | None = None


@dataclass(frozen=True)
class EngineEvaluation:
    """Engine verdict for one position, from the side to move's perspective.

    `score` is in pawns; forced mates collapse to +/-100.
    """

    score: float
    best_move: str
    depth: int


@dataclass
class PositionNode:
    """A recurring position the subject had to move in."""

    fen: PositionKey
    visit_count: int = 0
    user_moves: dict[str, int] = field(default_factory=dict)
    evaluation: EngineEvaluation | None = None

    def record_move(self, san: str) -> None:
        self.visit_count += 1
        self.user_moves[san] = self.user_moves.get(san, 0) + 1


@dataclass
class OutcomeTally:
    games: int = 0
    wins: int = 0
    losses: int = 0
    draws: int = 0


@dataclass
class OpeningStats:
    """Win/loss/draw tallies for one opening name, split by the subject's color."""

    name: str
    as_white: OutcomeTally = field(default_factory=OutcomeTally)
    as_black: OutcomeTally = field(default_factory=OutcomeTally)

    def tally_for(self, color: Color) -> OutcomeTally:
        return self.as_white if color == "white" else self.as_black

    @property
    def total_games(self) -> int:
        return self.as_white.games + self.as_black.games


@dataclass
class PositionModel:
    """Output of the indexer: position frequencies plus opening outcomes."""

    positions: dict[PositionKey, PositionNode] = field(default_factory=dict)
    openings: dict[str, OpeningStats] = field(default_factory=dict)


@dataclass(frozen=True)
class Ply:
    """One half-move of a replayed game. `fen` is the position before the move."""

    number: int
    fen: str
    turn: Color
    move_san: str
    move_uci: str


@dataclass(frozen=True)
class Mistake:
    """A user move that dropped the evaluation past the mistake threshold.

    Evaluations are from the user's perspective; `eval_drop` is always positive.
    """

    fen: str
    move_number: int
    user_move: str
    user_move_uci: str
    best_move: str
    best_move_san: str
    acceptable_moves: list[str]
    eval_before: float
    eval_after: float
    eval_drop: float
    player_color: Color


@dataclass
class ScanProgress:
    fetched: int = 0
    analyzed: int = 0
    total: int = 0
    analyze_total: int = 0


@dataclass
class ReviewProgress:
    current: int = 0
    total: int = 0
