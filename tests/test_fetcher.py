from __future__ import annotations

import pytest

from harvester.crawler.base_crawler import (
    FetchResult,
    Fetcher,
    RetryPolicy,
    absolute_url,
    browser_headers,
    is_challenge_page,
)
from harvester.crawler.errors import HttpError, NetworkError


class ScriptedFetcher(Fetcher):
    """Fetcher whose single attempts replay a scripted list of outcomes."""

    def __init__(self, outcomes, **kwargs) -> None:
        self.sleeps: list[float] = []

        async def record_sleep(delay: float) -> None:
            self.sleeps.append(delay)

        super().__init__(retry=RetryPolicy(attempts=3, base_delay=0.5), sleep=record_sleep, **kwargs)
        self._outcomes = list(outcomes)
        self.calls: list[tuple[str, dict[str, str]]] = []

    async def _request(self, url, headers):
        self.calls.append((url, headers))
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return FetchResult(body=outcome, status=200, url=url)


@pytest.mark.asyncio
async def test_fetch_returns_first_success() -> None:
    fetcher = ScriptedFetcher(["<html>ok</html>"])
    result = await fetcher.fetch("https://www.newsmaker.id/a")
    assert result.body == "<html>ok</html>"
    assert len(fetcher.calls) == 1
    assert fetcher.sleeps == []


@pytest.mark.asyncio
async def test_transient_failures_are_retried_with_backoff() -> None:
    fetcher = ScriptedFetcher([
        NetworkError("timeout", "u"),
        HttpError(503, "u"),
        "<html>ok</html>",
    ])
    body = await fetcher.fetch_text("https://www.newsmaker.id/a")
    assert body == "<html>ok</html>"
    assert len(fetcher.calls) == 3
    assert fetcher.sleeps == [0.5, 1.0]


@pytest.mark.asyncio
async def test_gives_up_after_last_attempt() -> None:
    fetcher = ScriptedFetcher([HttpError(429, "u")] * 3)
    with pytest.raises(HttpError) as exc_info:
        await fetcher.fetch("https://www.newsmaker.id/a")
    assert exc_info.value.status == 429
    assert len(fetcher.calls) == 3
    # no sleep after the final attempt
    assert fetcher.sleeps == [0.5, 1.0]


@pytest.mark.asyncio
async def test_client_errors_are_not_retried() -> None:
    fetcher = ScriptedFetcher([HttpError(404, "u"), "never"])
    with pytest.raises(HttpError):
        await fetcher.fetch("https://www.newsmaker.id/missing")
    assert len(fetcher.calls) == 1


@pytest.mark.asyncio
async def test_language_selects_accept_language_and_extra_headers_merge() -> None:
    fetcher = ScriptedFetcher(["{}"])
    await fetcher.fetch("https://www.newsmaker.id/id/x", language="id", headers={"Accept": "application/json"})
    _, headers = fetcher.calls[0]
    assert headers["Accept-Language"].startswith("id-ID")
    assert headers["Accept"] == "application/json"
    assert headers["Referer"] == "https://www.newsmaker.id/"


def test_browser_headers_fall_back_to_english() -> None:
    assert browser_headers("fr")["Accept-Language"] == browser_headers("en")["Accept-Language"]


def test_http_error_retryable_classification() -> None:
    assert HttpError(500).retryable
    assert HttpError(429).retryable
    assert not HttpError(403).retryable
    assert not HttpError(404).retryable


@pytest.mark.parametrize(
    "html",
    [
        "<html><head><title>Just a moment...</title></head><body></body></html>",
        "<html><head><title>Attention Required! | Cloudflare</title></head></html>",
        "<html><body><h1>Access Denied</h1><p>Reference #18.abc</p></body></html>",
        "<html><body>Please verify you are human to continue</body></html>",
    ],
)
def test_challenge_pages_are_detected(html: str) -> None:
    assert is_challenge_page(html)


def test_long_article_mentioning_forbidden_is_not_a_challenge() -> None:
    filler = "<p>" + "Gold prices rose on Friday as the dollar weakened. " * 60 + "</p>"
    html = (
        "<html><head><title>Gold climbs</title></head><body>"
        + filler
        + "<p>Trading was forbidden during the holiday.</p></body></html>"
    )
    assert not is_challenge_page(html)


def test_script_text_is_not_read_as_a_block_notice() -> None:
    html = (
        "<html><head><title>Economic Calendar</title>"
        "<script>loadCaptcha('forbidden'); var msg = 'access denied';</script>"
        "</head><body><div id='app'>Loading calendar</div>"
        "<script>window.recaptcha = {};</script></body></html>"
    )
    assert not is_challenge_page(html)


def test_empty_body_is_not_a_challenge() -> None:
    assert not is_challenge_page("")
    assert not is_challenge_page(None)


def test_absolute_url() -> None:
    assert absolute_url("/index.php/en/x") == "https://www.newsmaker.id/index.php/en/x"
    assert absolute_url("index.php/en/x") == "https://www.newsmaker.id/index.php/en/x"
    assert absolute_url("//cdn.example.com/a.jpg") == "https://cdn.example.com/a.jpg"
    assert absolute_url("https://other.site/a") == "https://other.site/a"
    assert absolute_url(None) == ""
