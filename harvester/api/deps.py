"""
Runtime dependency registry for the read API.

Populated at startup via ``set_dependencies()``; endpoints whose dependency
is missing answer 503.
"""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException

_deps: dict[str, Any] = {}


def set_dependencies(
    news_store: Any = None,
    historical_store: Any = None,
    cache: Any = None,
    status: Any = None,
    job_names: list[str] | None = None,
) -> None:
    """Inject runtime services from the main application.

    Args:
        news_store: ``NewsStore`` used for article listings.
        historical_store: ``HistoricalStore`` used when a snapshot expired.
        cache: ``CacheService`` for snapshots and the response cache.
        status: ``JobStatusRecorder`` behind ``/api/status``.
        job_names: Job names reported by ``/api/status``.
    """
    _deps.update(
        news_store=news_store,
        historical_store=historical_store,
        cache=cache,
        status=status,
        job_names=job_names or [],
    )


def require(name: str) -> Any:
    service = _deps.get(name)
    if service is None:
        raise HTTPException(status_code=503, detail=f"{name} not available")
    return service


def optional(name: str) -> Any:
    return _deps.get(name)
