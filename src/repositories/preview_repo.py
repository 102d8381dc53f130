"""
Preview repository: process-local, TTL-bounded preview storage.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from src.core.constants import PREVIEW_TTL_SECONDS
from src.core.logging import get_logger
from src.core.security import generate_preview_id
from src.domain.preview import PreviewContent, PreviewEntry

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class InMemoryPreviewRepository:
    """
    In-memory preview store.

    Expired entries are purged lazily at the start of every ``create`` and
    ``get``; there is no eviction timer. Entries whose ``created_at`` cannot
    be parsed count as expired.
    """

    def __init__(
        self,
        ttl_seconds: int = PREVIEW_TTL_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """
        Initialize the store.

        Args:
            ttl_seconds: Lifetime of an entry
            clock: Returns the current aware datetime (injectable for tests)
        """
        self._previews: dict[str, PreviewEntry] = {}
        self._lock = threading.Lock()
        self.ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock

    def _purge_expired(self) -> None:
        # Caller holds the lock.
        now = self._clock()
        expired_ids = []
        for preview_id, entry in self._previews.items():
            created_at = _parse_timestamp(entry.created_at)
            if created_at is None or now - created_at > self.ttl:
                expired_ids.append(preview_id)

        for preview_id in expired_ids:
            del self._previews[preview_id]

        if expired_ids:
            logger.debug("Purged expired previews", count=len(expired_ids))

    async def create(self, content: PreviewContent) -> PreviewEntry:
        """Store preview content under a fresh ID."""
        with self._lock:
            self._purge_expired()

            preview_id = generate_preview_id()
            while preview_id in self._previews:
                preview_id = generate_preview_id()

            entry = PreviewEntry(
                id=preview_id,
                name=content.name,
                view_xml=content.view_xml,
                controller=content.controller,
                model_data=content.model_data,
                created_at=self._clock().isoformat(),
            )
            self._previews[preview_id] = entry

        logger.debug("Preview stored", preview_id=preview_id)
        return entry

    async def get(self, id: str) -> Optional[PreviewEntry]:
        """Get a live preview by ID."""
        with self._lock:
            self._purge_expired()
            return self._previews.get(id)

    async def get_stats(self) -> dict[str, Any]:
        """Get store statistics."""
        with self._lock:
            self._purge_expired()
            return {"active_entries": len(self._previews)}
