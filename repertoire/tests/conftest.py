"""Pytest configuration."""

import pytest

from repertoire.models import Game
from repertoire.state import ScannerState


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "engine: mark test as requiring a real Stockfish binary (skipped by default)"
    )


@pytest.fixture
def state():
    return ScannerState()


@pytest.fixture
def make_game():
    def _make(pgn: str, game_id: str = "g1", color: str = "white", result: str = "1-0", **kwargs) -> Game:
        return Game(id=game_id, pgn=pgn, player_color=color, result=result, **kwargs)

    return _make
