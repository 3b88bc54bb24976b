"""Tests for engine_session.py"""

import asyncio

import chess
import chess.engine
import pytest

from engine_fakes import FakeUciProtocol, make_popen
from repertoire.engine_session import EngineSession, score_to_pawns
from repertoire.errors import (
    EngineBusyError,
    EngineCrashedError,
    EngineEvaluationError,
    EngineNotReadyError,
    EngineStartError,
)
from repertoire.replay import position_key

START_KEY = position_key(chess.STARTING_FEN)


@pytest.mark.parametrize(
    "score, expected",
    [
        (chess.engine.Cp(35), 0.35),
        (chess.engine.Cp(-120), -1.2),
        (chess.engine.Mate(3), 100.0),
        (chess.engine.Mate(-2), -100.0),
        (chess.engine.Mate(0), -100.0),
        (chess.engine.MateGiven, 100.0),
    ],
)
def test_score_to_pawns_is_side_to_move_relative(score, expected):
    assert score_to_pawns(chess.engine.PovScore(score, chess.BLACK)) == expected


def test_score_to_pawns_defaults_to_zero_without_score():
    assert score_to_pawns(None) == 0.0


def test_negating_twice_returns_the_same_score():
    s = score_to_pawns(chess.engine.PovScore(chess.engine.Cp(-87), chess.WHITE))
    assert -(-s) == s


@pytest.mark.asyncio
async def test_start_completes_handshake():
    protocol = FakeUciProtocol()
    session = EngineSession("sf", options={"Threads": 1}, popen=make_popen(protocol))
    assert session.ready is False
    await session.start()
    assert session.ready is True
    assert protocol.pinged is True
    assert protocol.options == {"Threads": 1}


@pytest.mark.asyncio
async def test_start_failure_raises_engine_start_error():
    session = EngineSession("missing", popen=make_popen(None, FileNotFoundError("missing")))
    with pytest.raises(EngineStartError):
        await session.start()
    assert session.ready is False


@pytest.mark.asyncio
async def test_evaluate_before_handshake_is_rejected():
    session = EngineSession("sf", popen=make_popen(FakeUciProtocol()))
    with pytest.raises(EngineNotReadyError):
        await session.evaluate(chess.STARTING_FEN, 10)


@pytest.mark.asyncio
async def test_evaluate_returns_score_best_move_and_depth():
    protocol = FakeUciProtocol(scores={START_KEY: 25}, best_moves={START_KEY: "e2e4"})
    async with EngineSession("sf", popen=make_popen(protocol)) as session:
        result = await session.evaluate(chess.STARTING_FEN, 14)
    assert result.score == 0.25
    assert result.best_move == "e2e4"
    assert result.depth == 14
    assert protocol.played == [(START_KEY, 14)]
    assert protocol.quit_called is True


@pytest.mark.asyncio
async def test_missing_score_defaults_to_zero():
    protocol = FakeUciProtocol(scores={START_KEY: None}, best_moves={START_KEY: "d2d4"})
    async with EngineSession("sf", popen=make_popen(protocol)) as session:
        result = await session.evaluate(chess.STARTING_FEN, 8)
    assert result.score == 0.0
    assert result.best_move == "d2d4"


@pytest.mark.asyncio
async def test_second_outstanding_evaluation_is_a_contract_violation():
    gate = asyncio.Event()
    protocol = FakeUciProtocol(block=gate)
    session = EngineSession("sf", popen=make_popen(protocol))
    await session.start()

    first = asyncio.create_task(session.evaluate(chess.STARTING_FEN, 10))
    await asyncio.sleep(0)
    with pytest.raises(EngineBusyError):
        await session.evaluate(chess.STARTING_FEN, 10)

    gate.set()
    assert (await first).depth == 10
    # Slot is free again once the first request resolved.
    gate.set()
    await session.evaluate(chess.STARTING_FEN, 10)
    await session.terminate()


@pytest.mark.asyncio
async def test_engine_error_becomes_evaluation_error_and_session_survives():
    protocol = FakeUciProtocol(fail=[START_KEY])
    session = EngineSession("sf", popen=make_popen(protocol))
    await session.start()
    with pytest.raises(EngineEvaluationError):
        await session.evaluate(chess.STARTING_FEN, 10)
    after_e4 = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1"
    assert (await session.evaluate(after_e4, 10)).depth == 10
    await session.terminate()


@pytest.mark.asyncio
async def test_engine_exit_mid_search_is_a_session_failure():
    protocol = FakeUciProtocol(crash=[START_KEY])
    session = EngineSession("sf", popen=make_popen(protocol))
    await session.start()
    with pytest.raises(EngineCrashedError):
        await session.evaluate(chess.STARTING_FEN, 10)
    assert session.ready is False
    with pytest.raises(EngineNotReadyError):
        await session.evaluate(chess.STARTING_FEN, 10)
    await session.terminate()


@pytest.mark.asyncio
async def test_terminate_releases_process_and_clears_ready():
    protocol = FakeUciProtocol()
    session = EngineSession("sf", popen=make_popen(protocol))
    await session.start()
    await session.terminate()
    assert session.ready is False
    assert protocol.quit_called is True
    with pytest.raises(EngineNotReadyError):
        await session.evaluate(chess.STARTING_FEN, 10)


@pytest.mark.engine
@pytest.mark.asyncio
async def test_real_stockfish_handshake_and_search():
    """Runs against a real engine when one is installed."""
    import os
    import shutil

    path = os.environ.get("STOCKFISH_PATH") or shutil.which("stockfish")
    if not path:
        pytest.skip("Stockfish not installed, skipping engine integration test")
    async with EngineSession(path) as session:
        result = await session.evaluate(chess.STARTING_FEN, 6)
    assert -1.0 < result.score < 1.0
    assert chess.Move.from_uci(result.best_move) in chess.Board().legal_moves
