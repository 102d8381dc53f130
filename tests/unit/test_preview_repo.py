"""
Unit tests for the in-memory preview repository.
"""

from datetime import timedelta

import pytest

from src.domain.preview import PreviewContent
from src.repositories.preview_repo import InMemoryPreviewRepository


def _content(name: str = "Report") -> PreviewContent:
    return PreviewContent(name=name, view_xml="<mvc:View />", model_data={"items": [{"a": 1}]})


@pytest.mark.asyncio
async def test_create_and_get(fake_clock) -> None:
    repo = InMemoryPreviewRepository(clock=fake_clock)

    entry = await repo.create(_content())

    assert entry.created_at == fake_clock.now.isoformat()
    assert await repo.get(entry.id) == entry
    assert await repo.get("missing") is None


@pytest.mark.asyncio
async def test_ids_are_unique(fake_clock) -> None:
    repo = InMemoryPreviewRepository(clock=fake_clock)

    ids = {(await repo.create(_content())).id for _ in range(25)}

    assert len(ids) == 25


@pytest.mark.asyncio
async def test_entry_expires_after_ttl(fake_clock) -> None:
    """Entries live for one hour: present at 59 minutes, gone at 61."""
    repo = InMemoryPreviewRepository(clock=fake_clock)
    entry = await repo.create(_content())
    start = fake_clock.now

    fake_clock.now = start + timedelta(minutes=59)
    assert await repo.get(entry.id) is not None

    fake_clock.now = start + timedelta(minutes=61)
    assert await repo.get(entry.id) is None


@pytest.mark.asyncio
async def test_expired_entries_are_purged_on_create(fake_clock) -> None:
    repo = InMemoryPreviewRepository(ttl_seconds=60, clock=fake_clock)
    await repo.create(_content("old"))

    fake_clock.now = fake_clock.now + timedelta(seconds=120)
    fresh = await repo.create(_content("new"))

    assert await repo.get_stats() == {"active_entries": 1}
    assert await repo.get(fresh.id) is not None


@pytest.mark.asyncio
async def test_unparsable_timestamp_counts_as_expired(fake_clock) -> None:
    repo = InMemoryPreviewRepository(clock=fake_clock)
    entry = await repo.create(_content())
    entry.created_at = "not-a-date"

    assert await repo.get(entry.id) is None
