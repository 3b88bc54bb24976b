"""
Lichess game export client.

Streams a user's finished games as NDJSON from the Lichess export endpoint and
turns each line into a Game seen from that user's side.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Callable

import httpx

from repertoire.config import LICHESS_API
from repertoire.errors import GameNotFoundError, IngestionError
from repertoire.models import Game

logger = logging.getLogger(__name__)

DEFAULT_PERF_TYPES = "blitz,rapid,classical,bullet"


def _player_name(data: dict, color: str) -> str:
    return (((data.get("players") or {}).get(color) or {}).get("user") or {}).get("name") or "Anonymous"


def _player_rating(data: dict, color: str) -> int | None:
    return ((data.get("players") or {}).get(color) or {}).get("rating")


def _iso_date(millis: int | None) -> str:
    if millis is None:
        return ""
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc).isoformat()


def parse_game(data: dict, username: str) -> Game | None:
    """Build a Game from one export line. Returns None for lines without an id."""
    game_id = data.get("id")
    if not game_id:
        return None

    white = _player_name(data, "white")
    black = _player_name(data, "black")
    is_white = white.lower() == username.lower()
    winner = data.get("winner")
    result = ("1-0" if winner == "white" else "0-1") if winner else "1/2-1/2"

    created, last_move = data.get("createdAt"), data.get("lastMoveAt")
    duration = (last_move - created) / 1000 if created is not None and last_move is not None else None
    moves = data.get("moves")

    return Game(
        id=game_id,
        pgn=data.get("pgn") or "",
        player_color="white" if is_white else "black",
        result=result,
        opening_name=(data.get("opening") or {}).get("name"),
        ply_count=len(moves.split()) if moves else None,
        speed=data.get("speed"),
        status=data.get("status"),
        duration_seconds=duration,
        platform="lichess",
        white=white,
        black=black,
        date=_iso_date(created),
        url=f"https://lichess.org/{game_id}",
        my_rating=_player_rating(data, "white" if is_white else "black"),
        opponent_name=black if is_white else white,
        opponent_rating=_player_rating(data, "black" if is_white else "white"),
    )


async def fetch_user_games(
    username: str,
    limit: int = 100,
    perf_type: str | None = None,
    since: int | None = None,
    token: str | None = None,
    on_progress: Callable[[int], None] | None = None,
    client: httpx.AsyncClient | None = None,
    api: str = LICHESS_API,
) -> list[Game]:
    """Fetch up to `limit` of `username`'s games, calling `on_progress` with the running count."""
    params = {
        "max": str(limit),
        "pgnInJson": "true",
        "clocks": "false",
        "evals": "false",
        "opening": "true",
        "perfType": perf_type or DEFAULT_PERF_TYPES,
    }
    if since is not None:
        params["since"] = str(since)
    headers = {"Accept": "application/x-ndjson"}
    if token:
        headers["Authorization"] = f"Bearer {token}"

    url = f"{api}/api/games/user/{username}"
    own_client = client is None
    if own_client:
        client = httpx.AsyncClient(timeout=30.0)

    games: list[Game] = []
    try:
        async with client.stream("GET", url, params=params, headers=headers) as resp:
            if resp.status_code == 404:
                raise GameNotFoundError(f"User {username} not found on Lichess")
            if resp.status_code != 200:
                raise IngestionError(f"Lichess API error: {resp.status_code} {resp.reason_phrase}")
            async for line in resp.aiter_lines():
                if not line.strip():
                    continue
                try:
                    game = parse_game(json.loads(line), username)
                except (ValueError, TypeError, AttributeError) as e:
                    logger.warning("Failed to parse game line: %s", e)
                    continue
                if game is None:
                    continue
                games.append(game)
                if on_progress:
                    on_progress(len(games))
    except httpx.HTTPError as e:
        raise IngestionError(f"Fetching games for {username} failed: {e}") from e
    finally:
        if own_client:
            await client.aclose()

    logger.info("Fetched %d games for %s", len(games), username)
    return games
