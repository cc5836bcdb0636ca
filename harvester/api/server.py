"""
Read API server.

Serves what the crawl jobs left in Redis and PostgreSQL. Crawl failures
never surface here: endpoints answer with the last good snapshot, or 404
when there is none yet.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from harvester.api.deps import optional, require
from harvester.api.news_endpoints import router as news_router
from harvester.crawler.calendar_crawler import CALENDAR_PERIODS
from harvester.db.cache import QUOTES_KEY, calendar_key, historical_key
from harvester.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["market"])


@router.get("/calendar")
async def get_calendar(
    period: str = Query(default="today"),
) -> dict[str, Any]:
    """Cached calendar snapshot for one period bucket."""
    if period not in CALENDAR_PERIODS:
        raise HTTPException(status_code=400, detail=f"unknown period: {period}")
    cached = await require("cache").get_json(calendar_key(period))
    if cached is None:
        raise HTTPException(status_code=404, detail=f"no calendar snapshot for {period} yet")
    return cached


@router.get("/historical")
async def get_historical_all() -> dict[str, Any]:
    """Every cached per-symbol snapshot."""
    cache = require("cache")
    keys = await cache.keys("historical:*")
    data = []
    for key in sorted(keys):
        snapshot = await cache.get_json(key)
        if snapshot and isinstance(snapshot.get("data"), list):
            data.append({
                "symbol": snapshot.get("symbol"),
                "data": snapshot["data"],
                "updatedAt": snapshot.get("updatedAt"),
            })
    if not data:
        raise HTTPException(status_code=404, detail="no historical data cached yet")
    return {"status": "success", "totalSymbols": len(data), "data": data}


@router.get("/historical/{symbol}")
async def get_historical_symbol(symbol: str) -> dict[str, Any]:
    """One symbol: cached snapshot first, stored rows otherwise."""
    cached = await require("cache").get_json(historical_key(symbol))
    if cached is not None:
        return cached
    store = optional("historical_store")
    rows = await store.rows_for(symbol) if store is not None else []
    if not rows:
        raise HTTPException(status_code=404, detail=f"no data for {symbol}")
    return {"status": "success", "symbol": symbol, "data": rows, "updatedAt": None}


@router.get("/quotes")
async def get_quotes() -> dict[str, Any]:
    cached = await require("cache").get_json(QUOTES_KEY)
    if cached is None:
        return {"status": "empty", "updatedAt": None, "total": 0, "data": []}
    return cached


@router.get("/status")
async def get_status() -> dict[str, Any]:
    """Last run of every scheduled job."""
    recorder = require("status")
    jobs = {}
    for name in optional("job_names") or []:
        jobs[name] = await recorder.get(name)
    return {"status": "success", "jobs": jobs}


@router.delete("/cache")
async def delete_cache(
    pattern: str = Query(default="historical:*"),
) -> dict[str, Any]:
    """Drop cache keys matching a glob pattern."""
    if pattern.startswith(("lock:", "push:")):
        raise HTTPException(status_code=400, detail="lock and push keys cannot be cleared here")
    deleted = await require("cache").delete_pattern(pattern)
    return {"status": "success", "pattern": pattern, "deleted": deleted}


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@asynccontextmanager
async def lifespan(app: FastAPI):  # type: ignore[type-arg]
    logger.info("Read API starting up")
    yield
    logger.info("Read API shutting down")


app = FastAPI(
    title="Newsmaker Harvester API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "DELETE"],
    allow_headers=["*"],
)

app.include_router(news_router)
app.include_router(router)
