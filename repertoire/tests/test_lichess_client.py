"""Tests for lichess_client.py"""

import json

import httpx
import pytest

from engine_fakes import ITALIAN_PGN
from repertoire.errors import GameNotFoundError, IngestionError
from repertoire.lichess_client import fetch_user_games, parse_game


def make_export_line(game_id="abc123", white="Alice", black="Bob", winner="white", **extra) -> dict:
    data = {
        "id": game_id,
        "speed": "blitz",
        "status": "mate",
        "createdAt": 1_700_000_000_000,
        "lastMoveAt": 1_700_000_300_000,
        "players": {
            "white": {"user": {"name": white}, "rating": 1850},
            "black": {"user": {"name": black}, "rating": 1790},
        },
        "opening": {"eco": "C53", "name": "Italian Game: Classical Variation"},
        "moves": "e4 e5 Nf3 Nc6",
        "pgn": ITALIAN_PGN,
    }
    if winner:
        data["winner"] = winner
    data.update(extra)
    return data


def make_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_parse_game_from_subject_side():
    game = parse_game(make_export_line(winner="black"), "bob")
    assert game.player_color == "black"
    assert game.result == "0-1"
    assert game.opening_name == "Italian Game: Classical Variation"
    assert game.opponent_name == "Alice"
    assert (game.my_rating, game.opponent_rating) == (1790, 1850)
    assert game.duration_seconds == 300.0
    assert game.ply_count == 4
    assert game.url == "https://lichess.org/abc123"
    assert game.date.startswith("2023-11-14")


def test_parse_game_draw_and_anonymous_players():
    data = make_export_line(winner=None)
    data["players"]["black"] = {}
    game = parse_game(data, "alice")
    assert game.result == "1/2-1/2"
    assert game.black == "Anonymous"
    assert game.player_color == "white"


def test_parse_game_without_id_is_ignored():
    assert parse_game({"pgn": "1. e4"}, "alice") is None


@pytest.mark.asyncio
async def test_fetch_streams_ndjson_and_reports_progress():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = request.url
        captured["accept"] = request.headers.get("accept")
        captured["auth"] = request.headers.get("authorization")
        lines = [
            json.dumps(make_export_line("g1")),
            "",
            "{not json",
            json.dumps({"pgn": "1. e4"}),
            json.dumps(make_export_line("g2", winner="black")),
        ]
        return httpx.Response(200, text="\n".join(lines) + "\n")

    progress = []
    async with make_client(handler) as client:
        games = await fetch_user_games(
            "alice", limit=5, perf_type="blitz", token="secret", on_progress=progress.append, client=client
        )

    assert [g.id for g in games] == ["g1", "g2"]
    assert progress == [1, 2]
    assert captured["url"].path == "/api/games/user/alice"
    assert captured["url"].params["max"] == "5"
    assert captured["url"].params["perfType"] == "blitz"
    assert captured["url"].params["opening"] == "true"
    assert captured["accept"] == "application/x-ndjson"
    assert captured["auth"] == "Bearer secret"


@pytest.mark.asyncio
async def test_unknown_user_raises_not_found():
    async with make_client(lambda request: httpx.Response(404)) as client:
        with pytest.raises(GameNotFoundError):
            await fetch_user_games("nobody", client=client)


@pytest.mark.asyncio
async def test_server_error_raises_ingestion_error():
    async with make_client(lambda request: httpx.Response(500)) as client:
        with pytest.raises(IngestionError) as exc:
            await fetch_user_games("alice", client=client)
    assert not isinstance(exc.value, GameNotFoundError)


@pytest.mark.asyncio
async def test_transport_failure_raises_ingestion_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with make_client(handler) as client:
        with pytest.raises(IngestionError):
            await fetch_user_games("alice", client=client)
