"""
News article listing endpoints.

Responses are cached per (language, category, search, page, fields) for a
few minutes; a news crawl that writes rows clears its language's entries.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Query

from harvester.api.deps import optional, require
from harvester.db.cache import NEWS_LIST_TTL, news_list_key
from harvester.db.store import news_to_dict
from harvester.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["news"])

_SUPPORTED_LANGUAGES = ("en", "id")


async def _list_news(
    language: str,
    category: str,
    search: str,
    page: int,
    page_size: int,
    fields: str,
) -> dict[str, Any]:
    if language not in _SUPPORTED_LANGUAGES:
        raise HTTPException(status_code=400, detail=f"unsupported language: {language}")

    cache = optional("cache")
    key = news_list_key(language, category, search, page, f"{fields}:{page_size}")
    if cache is not None:
        cached = await cache.get_json(key)
        if cached is not None:
            return cached

    store = require("news_store")
    try:
        total, articles = await store.list_news(
            language, category=category, search=search, page=page, page_size=page_size
        )
    except Exception as e:
        logger.error("News listing query failed: %s", e, exc_info=True)
        raise HTTPException(status_code=503, detail="news store unavailable") from e

    body = {
        "status": "success",
        "language": language,
        "page": page,
        "page_size": page_size,
        "total": total,
        "data": [news_to_dict(a, fields) for a in articles],
    }
    if cache is not None:
        await cache.set_json(key, body, ttl=NEWS_LIST_TTL)
    return body


@router.get("/news")
async def get_news(
    lang: str = Query(default="en"),
    category: str = Query(default="all"),
    search: str = Query(default=""),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    fields: str = Query(default="full", pattern="^(full|list)$"),
) -> dict[str, Any]:
    """Newest-first articles for one language."""
    return await _list_news(lang, category, search, page, page_size, fields)


@router.get("/news-id")
async def get_news_id(
    category: str = Query(default="all"),
    search: str = Query(default=""),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    fields: str = Query(default="full", pattern="^(full|list)$"),
) -> dict[str, Any]:
    """Indonesian listing under its historical path."""
    return await _list_news("id", category, search, page, page_size, fields)
