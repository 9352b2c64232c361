from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Protocol

import httpx

from worldsim.common.db import DataStore
from worldsim.common.timeutil import to_iso, utcnow

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    def notify(
        self,
        *,
        category: str,
        title: str,
        message: str,
        profile_id: int | None = None,
        band_id: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> dict: ...

    def close(self) -> None: ...


class StoreNotificationSink:
    """Writes player-facing notices into the ``notifications`` table."""

    def __init__(self, store: DataStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self._clock = clock

    def notify(
        self,
        *,
        category: str,
        title: str,
        message: str,
        profile_id: int | None = None,
        band_id: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> dict:
        return self.store.insert(
            "notifications",
            {
                "profile_id": profile_id,
                "band_id": band_id,
                "category": category,
                "title": title,
                "message": message,
                "metadata": metadata or {},
                "created_at": self._clock(),
            },
        )

    def close(self) -> None:
        return None


class HttpFeedGateway:
    def __init__(self, base_url: str, client: httpx.Client | None = None):
        self.base_url = base_url.rstrip("/")
        self._external_client = client
        self._client = client or httpx.Client(base_url=self.base_url, timeout=10.0)

    @property
    def client(self) -> httpx.Client:
        return self._client

    def notify(
        self,
        *,
        category: str,
        title: str,
        message: str,
        profile_id: int | None = None,
        band_id: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> dict:
        if profile_id is None and band_id is None:
            # Nobody to deliver to; the feed rejects ownerless items.
            return {"id": -1, "category": category, "skipped": True}
        payload: dict[str, Any] = {
            "activity_type": category,
            "title": title,
            "message": message,
            "metadata": metadata or {},
            "created_at": to_iso(utcnow()),
        }
        if profile_id is not None:
            payload["profile_id"] = profile_id
        if band_id is not None:
            payload["band_id"] = band_id
        response = self.client.post("/activity-feed", json=payload)
        response.raise_for_status()
        return response.json()

    def close(self) -> None:
        if self._external_client is None:
            self._client.close()


def build_notifier(store: DataStore, feed_base_url: str | None, clock: Callable[[], datetime] = utcnow) -> NotificationSink:
    if feed_base_url:
        logger.info("Delivering notifications to activity feed at %s", feed_base_url)
        return HttpFeedGateway(base_url=feed_base_url)
    return StoreNotificationSink(store, clock=clock)
