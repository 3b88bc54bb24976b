"""Tests for scan.py: fetch, index, queue and analyze end to end with fakes."""

import json

import httpx
import pytest

from engine_fakes import FakeUciProtocol, session_factory
from repertoire.bulk_analysis import SchedulerStatus
from repertoire.config import Settings
from repertoire.errors import GameNotFoundError, IngestionError
from repertoire.scan import Scanner
from test_lichess_client import make_export_line


def export_handler(lines):
    def handler(request):
        return httpx.Response(200, text="\n".join(json.dumps(line) for line in lines))

    return handler


@pytest.fixture
def protocol():
    return FakeUciProtocol(default=20)


def make_scanner(handler, protocol, **settings):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return Scanner(Settings(**settings), session_factory=session_factory(protocol), client=client)


@pytest.mark.asyncio
async def test_scan_indexes_games_and_analyzes_repeated_positions(protocol):
    lines = [make_export_line(f"g{i}", white="alice") for i in range(3)]
    scanner = make_scanner(export_handler(lines), protocol, min_visits=3)

    model = await scanner.scan("alice", limit=3)
    state = scanner.state
    assert state.scanning.value is False
    assert [g.id for g in state.games.value] == ["g0", "g1", "g2"]
    assert state.progress.value.fetched == 3
    assert state.progress.value.analyze_total == 6
    assert state.openings.value["Italian Game: Classical Variation"].as_white.wins == 3

    await scanner.scheduler.join()
    assert state.progress.value.analyzed == 6
    assert all(node.evaluation.score == 0.2 for node in model.positions.values())
    assert scanner.scheduler.status is SchedulerStatus.IDLE


@pytest.mark.asyncio
async def test_scan_without_repeats_queues_nothing(protocol):
    scanner = make_scanner(export_handler([make_export_line("g0", white="alice")]), protocol)
    await scanner.scan("alice", analyze=True)
    await scanner.scheduler.join()
    assert scanner.state.progress.value.analyze_total == 0
    assert protocol.played == []


@pytest.mark.asyncio
async def test_scan_surfaces_ingestion_errors(protocol):
    scanner = make_scanner(lambda request: httpx.Response(404), protocol)
    with pytest.raises(GameNotFoundError):
        await scanner.scan("ghost")
    assert scanner.state.scanning.value is False

    scanner = make_scanner(lambda request: httpx.Response(503), protocol)
    with pytest.raises(IngestionError):
        await scanner.scan("alice")


@pytest.mark.asyncio
async def test_review_runs_on_a_scanned_game(protocol):
    scanner = make_scanner(export_handler([make_export_line("g0", white="alice")]), protocol)
    await scanner.scan("alice", analyze=False)
    assert await scanner.review("g0") == []
    with pytest.raises(GameNotFoundError):
        await scanner.review("missing")


@pytest.mark.asyncio
async def test_rescan_replaces_the_previous_backlog(protocol):
    lines = [make_export_line(f"g{i}", white="alice") for i in range(3)]
    scanner = make_scanner(export_handler(lines), protocol, min_visits=3)
    await scanner.scan("alice", analyze=False)
    await scanner.scan("alice", analyze=False)
    assert len(scanner.scheduler.queue) == 6
    assert len(scanner.state.analysis_queue.value) == 6
