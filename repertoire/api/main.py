"""
FastAPI surface for the repertoire scanner

Endpoints:
  POST /scan                   - Fetch + index a player's games, start bulk analysis
  GET  /progress               - Fetch / analysis counters
  GET  /positions              - Position map, most visited first
  GET  /position/fen/{fen}     - One position by FEN (spaces as underscores)
  GET  /openings               - Opening outcome stats
  GET  /queue                  - Positions still waiting for analysis
  POST /analysis/start         - Resume bulk analysis
  POST /analysis/stop          - Stop bulk analysis, keep the backlog
  POST /review/{game_id}       - Mistake review for one scanned game
  GET  /review                 - Last review result
"""

from dataclasses import asdict

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel

from repertoire.errors import (
    EngineSessionError,
    GameNotFoundError,
    IngestionError,
    MalformedNotationError,
)
from repertoire.replay import position_key
from repertoire.scan import Scanner

app = FastAPI(title="Repertoire Scanner API", version="1.0.0")

scanner = Scanner()


class ScanRequest(BaseModel):
    username: str
    limit: int = 100
    perf_type: str | None = None
    since: int | None = None
    analyze: bool = True


def node_to_response(node) -> dict:
    ev = node.evaluation
    return {
        "fen": node.fen,
        "visit_count": node.visit_count,
        "user_moves": dict(node.user_moves),
        "evaluation": asdict(ev) if ev else None,
    }


@app.post("/scan")
async def start_scan(body: ScanRequest):
    try:
        model = await scanner.scan(body.username, body.limit, body.perf_type, body.since, body.analyze)
    except GameNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except IngestionError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {
        "username": body.username,
        "games": len(scanner.state.games.value),
        "positions": len(model.positions),
        "openings": len(model.openings),
        "queued": len(scanner.scheduler.queue),
    }


@app.get("/progress")
def get_progress():
    return {
        **asdict(scanner.state.progress.value),
        "scanning": scanner.state.scanning.value,
        "status": scanner.scheduler.status.value,
    }


@app.get("/positions")
def get_positions(min_visits: int = Query(1, ge=1), limit: int = Query(100, le=1000)):
    nodes = [n for n in scanner.state.positions.value.values() if n.visit_count >= min_visits]
    nodes.sort(key=lambda n: -n.visit_count)
    return [node_to_response(n) for n in nodes[:limit]]


@app.get("/position/fen/{fen:path}")
def get_position(fen: str):
    key = position_key(fen.replace("_", " "))
    node = scanner.state.positions.value.get(key)
    if node is None:
        raise HTTPException(status_code=404, detail="Position not found")
    return node_to_response(node)


@app.get("/openings")
def get_openings():
    stats = sorted(scanner.state.openings.value.values(), key=lambda s: -s.total_games)
    return [asdict(s) for s in stats]


@app.get("/queue")
def get_queue():
    return {"status": scanner.scheduler.status.value, "queue": scanner.state.analysis_queue.value}


@app.post("/analysis/start")
async def start_analysis():
    scanner.scheduler.start()
    return {"status": scanner.scheduler.status.value, "queued": len(scanner.scheduler.queue)}


@app.post("/analysis/stop")
async def stop_analysis():
    await scanner.scheduler.stop()
    return {"status": scanner.scheduler.status.value}


@app.post("/review/{game_id}")
async def review_game(game_id: str):
    try:
        mistakes = await scanner.review(game_id)
    except GameNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except MalformedNotationError as e:
        raise HTTPException(status_code=422, detail=f"Unreadable PGN: {e}")
    except EngineSessionError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"game_id": game_id, "mistakes": [asdict(m) for m in mistakes]}


@app.get("/review")
def get_review():
    return {
        "reviewing": scanner.state.reviewing.value,
        "progress": asdict(scanner.state.review_progress.value),
        "mistakes": [asdict(m) for m in scanner.state.mistakes.value],
    }


@app.get("/health")
def health():
    return {"status": "ok"}
