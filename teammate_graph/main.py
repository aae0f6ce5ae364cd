from fastapi import FastAPI, Request, Query, Depends
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
import asyncio
import sqlite3
import logging

from teammate_graph import config, database
from teammate_graph.graph import GraphBuildError, GraphCache
from teammate_graph.models import (
    GraphStats, PathResponse, Player, PlayerSearchResponse, PlayerSearchResult
)
from teammate_graph.pathfinder import PlayerPathFinder

# Configure structured logging
logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler()
    ]
)

logger = logging.getLogger(__name__)

# Initialize rate limiter
limiter = Limiter(key_func=get_remote_address)

app = FastAPI(title=config.API_TITLE, version=config.API_VERSION)

# Add rate limit exception handler
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)

# One graph per process, shared by every query
app.state.graph_cache = GraphCache()
app.state.path_finder = PlayerPathFinder(app.state.graph_cache)


@app.middleware("http")
async def add_security_headers(request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


@app.on_event("startup")
async def warm_graph():
    """Build the teammate graph before serving traffic when EAGER_GRAPH_BUILD is set"""
    if config.EAGER_GRAPH_BUILD:
        await asyncio.to_thread(app.state.graph_cache.get)


def get_graph_cache(request: Request) -> GraphCache:
    return request.app.state.graph_cache


def get_path_finder(request: Request) -> PlayerPathFinder:
    return request.app.state.path_finder


@app.get("/api/path", response_model=PathResponse)
@limiter.limit(config.PATH_RATE_LIMIT)
async def find_path(
    request: Request,
    from_id: int = Query(..., alias="from", ge=0, description="Starting player id"),
    to_id: int = Query(..., alias="to", ge=0, description="Target player id"),
    finder: PlayerPathFinder = Depends(get_path_finder),
):
    """
    Find the shortest teammate chain between two players

    A missing connection is a successful response with found=false. The
    search itself is CPU-bound and runs in a worker thread.
    """
    logger.info("Starting path search", extra={"from_id": from_id, "to_id": to_id})

    try:
        result = await asyncio.to_thread(finder.find_shortest_path, from_id, to_id)
    except GraphBuildError as e:
        logger.error("Teammate graph unavailable", extra={"error": str(e)})
        return JSONResponse(
            status_code=503,
            content=PathResponse(success=False, error="Teammate graph is unavailable").model_dump()
        )

    return PathResponse(success=True, data=result)


@app.get("/api/search", response_model=PlayerSearchResponse)
async def search(
    q: str = Query(default="", max_length=100),
    limit: int = Query(default=10, ge=1, le=database.MAX_SEARCH_LIMIT),
):
    """
    Autocomplete players by name

    - **q**: Part of a player name, at least 2 characters (accents and case ignored)
    - **limit**: Maximum number of results (1-20, default: 10)
    """
    try:
        rows = database.search_players(q, limit)
    except sqlite3.Error as e:
        logger.error("Player search failed", extra={"error": str(e)})
        return JSONResponse(
            status_code=500,
            content=PlayerSearchResponse(success=False, error="Failed to search players").model_dump()
        )

    players = [Player.from_row(row) for row in rows]
    return PlayerSearchResponse(
        success=True,
        data=PlayerSearchResult(players=players, total=len(players))
    )


@app.get("/api/health", response_model=GraphStats)
async def health(graph_cache: GraphCache = Depends(get_graph_cache)):
    """
    Report whether the teammate graph is built and how big it is

    Never triggers a build.
    """
    return GraphStats(**graph_cache.get_stats())


if __name__ == '__main__':
    import uvicorn
    import os
    port = int(os.environ.get('PORT', 8000))
    uvicorn.run(app, host='0.0.0.0', port=port)
