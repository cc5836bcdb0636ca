"""
Crawler exception hierarchy.

Challenge pages and lock contention are ordinary outcomes, not exceptions:
the fetcher reports a challenge as an empty page and the lock returns a
not-acquired result.
"""


class CrawlError(Exception):
    """Base class for every harvester failure."""


class NetworkError(CrawlError):
    """Timeout, connection failure, truncated payload or redirect loop.

    Attributes:
        url: Target URL of the failed request.
    """

    def __init__(self, message: str, url: str = "") -> None:
        self.url = url
        super().__init__(message)


class HttpError(CrawlError):
    """Non-2xx HTTP response.

    Attributes:
        status: HTTP status code.
        url: Target URL of the failed request.
    """

    def __init__(self, status: int, url: str = "", message: str = "") -> None:
        self.status = status
        self.url = url
        super().__init__(message or f"HTTP {status} for {url}")

    @property
    def retryable(self) -> bool:
        """429 and 5xx are transient, everything else is permanent."""
        return self.status == 429 or self.status >= 500


class ParseAnomaly(CrawlError):
    """Expected container is missing from the page markup.

    Callers treat this as a page with zero items.
    """


class PersistenceError(CrawlError):
    """A single row could not be written.

    Attributes:
        key: Identity of the failing row (link or symbol/date).
        reason: Driver error text.
    """

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        self.reason = reason
        super().__init__(f"{key}: {reason}")


class NotificationDeliveryError(CrawlError):
    """Push channel rejected or failed a send.

    Attributes:
        topic: Topic the send targeted.
    """

    def __init__(self, topic: str, message: str) -> None:
        self.topic = topic
        super().__init__(message)


class ConfigurationError(CrawlError):
    """Required configuration (database or key-value store) is missing."""
