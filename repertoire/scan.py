#!/usr/bin/env python3
"""
Repertoire Scan

Fetch a player's games, index recurring positions and opening results, then score
the positions reached at least MIN_VISITS times with Stockfish.

Usage:
  python -m repertoire.scan DrNykterstein --limit 200 --perf blitz
  STOCKFISH_PATH=/usr/bin/stockfish repertoire-scan DrNykterstein --min-visits 5
"""

import argparse
import asyncio
import logging
import sys
from typing import Callable

import httpx

from repertoire.bulk_analysis import BulkAnalysisScheduler
from repertoire.config import Settings
from repertoire.engine_session import EngineSession
from repertoire.errors import GameNotFoundError, IngestionError, RepertoireError
from repertoire.indexer import index_games, select_candidates
from repertoire.lichess_client import fetch_user_games
from repertoire.models import Mistake, PositionModel, ScanProgress
from repertoire.review import GameReviewer
from repertoire.state import ScannerState, User

logger = logging.getLogger(__name__)


class Scanner:
    """Ties ingestion, indexing, bulk analysis and game review to one ScannerState."""

    def __init__(
        self,
        settings: Settings | None = None,
        state: ScannerState | None = None,
        session_factory: Callable[[], EngineSession] | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.settings = settings or Settings.from_env()
        self.state = state or ScannerState()
        self.session_factory = session_factory or (lambda: EngineSession(self.settings.stockfish_path))
        self.client = client
        self.scheduler = BulkAnalysisScheduler(self.state, self.session_factory, self.settings.bulk_depth)

    async def scan(
        self,
        username: str,
        limit: int = 100,
        perf_type: str | None = None,
        since: int | None = None,
        analyze: bool = True,
    ) -> PositionModel:
        """Fetch, index and queue. Bulk analysis keeps running in the background."""
        if not username:
            raise GameNotFoundError("No username given")

        state = self.state
        await self.scheduler.stop()
        self.scheduler.clear()
        state.scanning.set(True)
        state.progress.set(ScanProgress())
        state.games.set([])
        state.positions.set({})
        state.openings.set({})
        state.user.set(User(username=username, platform="lichess"))

        def on_progress(count: int) -> None:
            state.progress.update(lambda p: ScanProgress(count, p.analyzed, p.total, p.analyze_total))

        try:
            games = await fetch_user_games(
                username,
                limit=limit,
                perf_type=perf_type,
                since=since,
                token=self.settings.lichess_token,
                on_progress=on_progress,
                client=self.client,
                api=self.settings.lichess_api,
            )
            state.games.set(games)
            state.progress.update(lambda p: ScanProgress(len(games), p.analyzed, len(games), p.analyze_total))

            model = index_games(games, min_ply=self.settings.min_ply, max_ply=self.settings.max_ply)
            state.positions.set(model.positions)
            state.openings.set(model.openings)

            candidates = select_candidates(model, self.settings.min_visits)
            state.progress.update(
                lambda p: ScanProgress(p.fetched, p.analyzed, p.total, len(candidates))
            )
            self.scheduler.enqueue(candidates)
            logger.info("Queued %d positions for analysis", len(candidates))
        except IngestionError as e:
            logger.error("Scan failed: %s", e)
            raise
        finally:
            state.scanning.set(False)

        if analyze:
            self.scheduler.start()
        return model

    async def review(self, game_id: str) -> list[Mistake]:
        """Run the mistake review on one of the scanned games."""
        game = next((g for g in self.state.games.value if g.id == game_id), None)
        if game is None:
            raise GameNotFoundError(f"Game {game_id} is not part of the current scan")
        reviewer = GameReviewer(self.session_factory, self.settings, self.state)
        return await reviewer.review(game)


def print_report(model: PositionModel, top: int) -> None:
    print(f"\n{len(model.openings)} openings:")
    ranked = sorted(model.openings.values(), key=lambda s: -s.total_games)
    for stats in ranked[:top]:
        w, b = stats.as_white, stats.as_black
        print(
            f"  {stats.total_games:4d} | {stats.name[:50]:<50} "
            f"W {w.wins}/{w.draws}/{w.losses}  B {b.wins}/{b.draws}/{b.losses}"
        )

    nodes = sorted(model.positions.values(), key=lambda n: -n.visit_count)
    print(f"\n{len(model.positions)} positions, most frequent:")
    for node in nodes[:top]:
        played = ", ".join(f"{san} x{n}" for san, n in sorted(node.user_moves.items(), key=lambda kv: -kv[1]))
        ev = node.evaluation
        verdict = f"{ev.score:+.2f} best {ev.best_move}" if ev else "not analyzed"
        print(f"  {node.visit_count:4d} | {node.fen} | {played} | {verdict}")


async def main_async():
    parser = argparse.ArgumentParser(description="Scan a Lichess player's repertoire")
    parser.add_argument("username")
    parser.add_argument("--limit", type=int, default=100)
    parser.add_argument("--perf", default=None, help="Comma separated perf types (blitz,rapid,...)")
    parser.add_argument("--min-visits", type=int, default=None)
    parser.add_argument("--depth", type=int, default=None, help="Bulk analysis search depth")
    parser.add_argument("--no-engine", action="store_true", help="Index only, skip Stockfish")
    parser.add_argument("--top", type=int, default=20)
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)
    settings = Settings.from_env()
    if args.min_visits is not None:
        settings.min_visits = args.min_visits
    if args.depth:
        settings.bulk_depth = args.depth

    scanner = Scanner(settings)
    try:
        model = await scanner.scan(args.username, args.limit, args.perf, analyze=not args.no_engine)
    except RepertoireError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    progress = scanner.state.progress.value
    print(f"Fetched {progress.fetched} games, {progress.analyze_total} positions queued for analysis.")
    await scanner.scheduler.join()
    print_report(model, args.top)


def main():
    asyncio.run(main_async())


if __name__ == "__main__":
    main()
