"""
Notification dispatcher for newly stored articles.

For each new row: claim the push dedup marker, look up the generated row id,
then send one message to the category topic and one to the language topic.
A lost claim means another instance (or an earlier run) already handled the
item. A failed send is logged and not retried; the marker stays claimed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from harvester.crawler.dedup import PushDedup, dedupe_key_for
from harvester.crawler.errors import NotificationDeliveryError
from harvester.crawler.vocabulary import DEFAULT_TOPIC_RULES, TopicRules
from harvester.db.models import PUSH_FAILED, PUSH_SENT, PUSH_SKIPPED
from harvester.db.store import NewsStore
from harvester.notify.push_sender import PushPayload, PushSender
from harvester.utils.config import get_settings
from harvester.utils.logger import get_logger

logger = get_logger(__name__)

BODY_PREVIEW_CHARS = 180


@dataclass
class DispatchOutcome:
    status: str
    topics: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    row_id: int | None = None


def _preview(text: str | None, limit: int = BODY_PREVIEW_CHARS) -> str:
    text = " ".join((text or "").split())
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + "…"


class NotificationDispatcher:
    """Send at most one push per new article across all instances.

    Args:
        store: Used to re-read the row id and record push state.
        sender: Delivery channel.
        dedup: Marker claimer.
        topics: Category keyword rules.
        deeplink_base: Prefix for ``{deeplink_base}/{id}`` links.
    """

    def __init__(
        self,
        store: NewsStore,
        sender: PushSender,
        dedup: PushDedup | None = None,
        topics: TopicRules = DEFAULT_TOPIC_RULES,
        deeplink_base: str | None = None,
    ) -> None:
        self._store = store
        self._sender = sender
        self._dedup = dedup or PushDedup()
        self._topics = topics
        self._deeplink_base = (deeplink_base or get_settings().push_deeplink_base).rstrip("/")

    async def dispatch_many(self, rows: list[dict[str, Any]]) -> dict[str, int]:
        """Dispatch sequentially and return a count per outcome status."""
        counts: dict[str, int] = {PUSH_SENT: 0, PUSH_FAILED: 0, PUSH_SKIPPED: 0}
        for row in rows:
            outcome = await self.dispatch(row)
            counts[outcome.status] = counts.get(outcome.status, 0) + 1
        if rows:
            logger.info(
                "[push] %d rows: %d sent, %d failed, %d skipped",
                len(rows), counts[PUSH_SENT], counts[PUSH_FAILED], counts[PUSH_SKIPPED],
            )
        return counts

    async def dispatch(self, row: dict[str, Any]) -> DispatchOutcome:
        """Claim, build and send the notification for one stored row."""
        link = row.get("link", "")
        language = row.get("language", "")
        claimed, dedupe_hash = await self._dedup.claim(dedupe_key_for(row))
        if not claimed:
            logger.debug("[push] already notified, skipping %s", link)
            return DispatchOutcome(status=PUSH_SKIPPED)

        row_id = await self._store.get_id(link, language)
        if row_id is None:
            logger.warning("[push] row vanished before dispatch: %s", link)
            await self._record(row, PUSH_FAILED, dedupe_hash=dedupe_hash)
            return DispatchOutcome(status=PUSH_FAILED, errors=["row not found"])

        category_topic = self._topics.topic_for(row.get("category"), language)
        language_topic = self._topics.language_topic(language)
        deeplink = f"{self._deeplink_base}/{row_id}"
        collapse_key = f"news_{language}_{row_id}"
        payload = PushPayload(
            title=row.get("title", ""),
            body=_preview(row.get("summary") or row.get("detail")),
            image=row.get("image") or None,
            collapse_key=collapse_key,
            data={
                "id": str(row_id),
                "link": link,
                "category": row.get("category") or "",
                "language": language,
                "deeplink": deeplink,
            },
        )

        outcome = DispatchOutcome(status=PUSH_SENT, row_id=row_id)
        for topic in (category_topic, language_topic):
            try:
                await self._sender.send(topic, payload)
                outcome.topics.append(topic)
            except NotificationDeliveryError as e:
                outcome.errors.append(f"{topic}: {e}")
                logger.error("[push] send to %s failed for %s: %s", topic, link, e)

        if outcome.errors:
            outcome.status = PUSH_FAILED

        await self._record(
            row,
            outcome.status,
            topic=category_topic,
            collapse_key=collapse_key,
            deeplink=deeplink,
            dedupe_hash=dedupe_hash,
        )
        return outcome

    async def _record(
        self,
        row: dict[str, Any],
        status: str,
        topic: str | None = None,
        collapse_key: str | None = None,
        deeplink: str | None = None,
        dedupe_hash: str | None = None,
    ) -> None:
        try:
            await self._store.update_push_state(
                row.get("link", ""),
                row.get("language", ""),
                push_status=status,
                push_topic=topic,
                push_collapse_key=collapse_key,
                push_deeplink=deeplink,
                push_dedupe_hash=dedupe_hash,
            )
        except Exception as e:
            logger.error("[push] could not record push state for %s: %s", row.get("link"), e)
