from __future__ import annotations

import json

import pytest

from harvester.crawler.base_crawler import FetchResult
from harvester.crawler.errors import ParseAnomaly
from harvester.crawler.quotes_crawler import QuotesCrawler, quotes_url
from harvester.db.cache import QUOTES_KEY


class JsonFetcher:
    def __init__(self, body: str) -> None:
        self.body = body
        self.headers: dict | None = None

    async def fetch(self, url: str, language: str = "en", headers=None) -> FetchResult:
        self.headers = headers
        return FetchResult(body=self.body, status=200, url=url)


@pytest.mark.asyncio
async def test_refresh_caches_snapshot(cache) -> None:
    payload = [{"count": 1}, {"symbol": "LGD", "last": "3,650.20", "valueChange": "-2.1"}]
    fetcher = JsonFetcher(json.dumps(payload))

    document = await QuotesCrawler(fetcher, cache).refresh()

    assert fetcher.headers["Accept"].startswith("application/json")
    assert document["total"] == 1
    assert document["data"][0]["symbol"] == "LGD"
    assert document["data"][0]["last"] == 3650.2
    assert document["data"][0]["value_change"] == -2.1
    assert await cache.get_json(QUOTES_KEY) == document


@pytest.mark.asyncio
async def test_non_json_body_is_a_parse_anomaly(cache) -> None:
    with pytest.raises(ParseAnomaly):
        await QuotesCrawler(JsonFetcher("<html>maintenance</html>"), cache).refresh()
    assert await cache.get_json(QUOTES_KEY) is None


def test_quotes_url_lists_symbols() -> None:
    assert quotes_url(("LGD", "DJIA")).endswith("?s=LGD+DJIA")
