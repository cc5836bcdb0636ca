"""
Push delivery channels.

``FirebasePushSender`` sends topic messages through Firebase Cloud Messaging
using a base64-encoded service-account JSON from the environment. When no
credentials are configured, ``LoggingPushSender`` takes its place and only
logs what would have been sent (graceful degradation).
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Any, Protocol

import firebase_admin
from firebase_admin import credentials, messaging

from harvester.crawler.errors import ConfigurationError, NotificationDeliveryError
from harvester.utils.config import get_settings
from harvester.utils.logger import get_logger

logger = get_logger(__name__)

_FIREBASE_APP_NAME = "harvester"


@dataclass
class PushPayload:
    """Notification content for one article."""

    title: str
    body: str
    data: dict[str, str] = field(default_factory=dict)
    image: str | None = None
    collapse_key: str | None = None


class PushSender(Protocol):
    async def send(self, topic: str, payload: PushPayload) -> str:
        """Deliver to a topic and return the channel's message id."""
        ...


def _decode_service_account(encoded: str) -> dict[str, Any]:
    try:
        return json.loads(base64.b64decode(encoded).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise ConfigurationError(
            "FIREBASE_SERVICE_ACCOUNT_BASE64 is not valid base64-encoded JSON"
        ) from e


class FirebasePushSender:
    """Topic sends through the firebase-admin SDK.

    The SDK call is blocking, so it runs in a worker thread.
    """

    def __init__(self, service_account_b64: str) -> None:
        info = _decode_service_account(service_account_b64)
        try:
            self._app = firebase_admin.get_app(_FIREBASE_APP_NAME)
        except ValueError:
            self._app = firebase_admin.initialize_app(
                credentials.Certificate(info), name=_FIREBASE_APP_NAME
            )
        logger.info("FCM push enabled (project=%s)", info.get("project_id", "?"))

    def _build_message(self, topic: str, payload: PushPayload) -> messaging.Message:
        return messaging.Message(
            topic=topic,
            notification=messaging.Notification(
                title=payload.title,
                body=payload.body,
                image=payload.image,
            ),
            data=payload.data,
            android=messaging.AndroidConfig(
                priority="high",
                collapse_key=payload.collapse_key,
            ),
            apns=messaging.APNSConfig(
                headers={"apns-collapse-id": payload.collapse_key or topic},
            ),
        )

    async def send(self, topic: str, payload: PushPayload) -> str:
        message = self._build_message(topic, payload)
        try:
            return await asyncio.to_thread(messaging.send, message, app=self._app)
        except Exception as e:
            raise NotificationDeliveryError(topic, str(e)) from e


class LoggingPushSender:
    """Log-only sender used when push credentials are missing."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, PushPayload]] = []

    async def send(self, topic: str, payload: PushPayload) -> str:
        self.sent.append((topic, payload))
        logger.info("[push:log-only] topic=%s title='%.80s'", topic, payload.title)
        return f"log-only:{len(self.sent)}"


def build_push_sender() -> PushSender:
    """Pick the FCM sender when credentials are configured, else log-only."""
    settings = get_settings()
    if not settings.push_enabled:
        logger.warning("Push disabled: FIREBASE_SERVICE_ACCOUNT_BASE64 not set, logging only")
        return LoggingPushSender()
    return FirebasePushSender(settings.firebase_service_account_base64)
