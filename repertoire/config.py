"""Runtime settings, read from the environment.

  STOCKFISH_PATH=/usr/bin/stockfish LICHESS_TOKEN=xxx repertoire-scan <user>
"""

import os
from dataclasses import dataclass

LICHESS_API = "https://lichess.org"

BULK_DEPTH = 14
REVIEW_DEPTH = 12
ACCEPTABLE_DEPTH = 10
MIN_VISITS = 3
MISTAKE_THRESHOLD = 1.0  # pawns
ACCEPTABLE_MARGIN = 0.2  # pawns
MIN_PLY = 6  # skip the first three full moves
MAX_PLY = 60  # stop after move 30


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw else default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw else default


@dataclass
class Settings:
    stockfish_path: str = "stockfish"
    lichess_token: str | None = None
    lichess_api: str = LICHESS_API
    bulk_depth: int = BULK_DEPTH
    review_depth: int = REVIEW_DEPTH
    acceptable_depth: int = ACCEPTABLE_DEPTH
    min_visits: int = MIN_VISITS
    mistake_threshold: float = MISTAKE_THRESHOLD
    acceptable_margin: float = ACCEPTABLE_MARGIN
    min_ply: int = MIN_PLY
    max_ply: int = MAX_PLY

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            stockfish_path=os.environ.get("STOCKFISH_PATH", "stockfish"),
            lichess_token=os.environ.get("LICHESS_TOKEN") or None,
            lichess_api=os.environ.get("LICHESS_API", LICHESS_API),
            bulk_depth=_env_int("BULK_DEPTH", BULK_DEPTH),
            review_depth=_env_int("REVIEW_DEPTH", REVIEW_DEPTH),
            acceptable_depth=_env_int("ACCEPTABLE_DEPTH", ACCEPTABLE_DEPTH),
            min_visits=_env_int("MIN_VISITS", MIN_VISITS),
            mistake_threshold=_env_float("MISTAKE_THRESHOLD", MISTAKE_THRESHOLD),
            acceptable_margin=_env_float("ACCEPTABLE_MARGIN", ACCEPTABLE_MARGIN),
            min_ply=_env_int("MIN_PLY", MIN_PLY),
            max_ply=_env_int("MAX_PLY", MAX_PLY),
        )
