"""Tests for feed enrichment and the media feed."""

import asyncio

import pytest

from mediahub.core.exceptions import StoreError, StoreErrorKind
from mediahub.models.auth import AppUser, Tier
from mediahub.models.media import MediaItem, MediaType
from mediahub.services.feed_service import FeedEnricher, MediaFeed, filter_items, is_locked


def items_from(rows):
    return [MediaItem(**row) for row in rows]


@pytest.mark.asyncio
async def test_enrich_empty_list(media_store):
    assert await FeedEnricher(media_store).enrich([], viewer_id="someone") == []


@pytest.mark.asyncio
async def test_enrich_without_viewer_uses_defaults_and_no_store_access(backend, media_store):
    backend.add_media(3)
    backend.likes.add(("other-user", backend.media[0]["id"]))

    enriched = await FeedEnricher(media_store).enrich(items_from(backend.media))

    assert media_store.calls == []
    assert all(item.likes_count == 0 for item in enriched)
    assert not any(item.is_liked or item.is_following for item in enriched)


@pytest.mark.asyncio
async def test_enrich_with_viewer_and_no_likes(backend, media_store, viewer_id):
    backend.add_media(10)

    enriched = await FeedEnricher(media_store).enrich(items_from(backend.media), viewer_id)

    assert len(enriched) == 10
    assert all(item.likes_count == 0 and not item.is_liked and not item.is_following for item in enriched)


@pytest.mark.asyncio
async def test_enrich_reports_likes_and_follows(backend, media_store, viewer_id):
    rows = backend.add_media(2)
    backend.likes.update({(viewer_id, rows[0]["id"]), ("other-user", rows[0]["id"])})
    backend.follows.add((viewer_id, rows[1]["creator_name"]))

    first, second = await FeedEnricher(media_store).enrich(items_from(rows), viewer_id)

    assert first.likes_count == 2
    assert first.is_liked
    assert not first.is_following
    assert second.likes_count == 0
    assert second.is_following


@pytest.mark.asyncio
async def test_one_failing_item_does_not_affect_the_rest(backend, media_store, viewer_id):
    rows = backend.add_media(10)
    for row in rows:
        backend.likes.add(("other-user", row["id"]))
    media_store.failing_media_ids.add(rows[4]["id"])

    enriched = await FeedEnricher(media_store).enrich(items_from(rows), viewer_id)

    assert enriched[4].likes_count == 0
    assert [item.likes_count for i, item in enumerate(enriched) if i != 4] == [1] * 9


@pytest.mark.asyncio
async def test_enrich_preserves_order(backend, media_store, viewer_id):
    rows = backend.add_media(6)

    enriched = await FeedEnricher(media_store).enrich(items_from(rows), viewer_id)

    assert [item.id for item in enriched] == [row["id"] for row in rows]


@pytest.mark.asyncio
async def test_refresh_loads_tab_newest_first(backend, media_store, viewer_id):
    backend.add_media(3, media_type="stream")
    backend.add_media(2, media_type="blog", category="interviews", content_type="article")
    feed = MediaFeed(media_store)

    items = await feed.refresh(MediaType.STREAM, viewer_id)

    assert len(items) == 3
    assert all(item.type == MediaType.STREAM for item in items)
    assert [item.title for item in items] == ["Media 2", "Media 1", "Media 0"]
    assert not feed.loading


@pytest.mark.asyncio
async def test_refresh_skips_malformed_rows(backend, media_store):
    backend.add_media(2)
    backend.media[0]["title"] = None

    items = await MediaFeed(media_store).refresh(MediaType.STREAM, None)

    assert len(items) == 1


@pytest.mark.asyncio
async def test_refresh_error_propagates_and_resets_loading(media_store):
    media_store.errors["list_media"] = StoreError(StoreErrorKind.AUTH_EXPIRED, "JWT expired", code="PGRST303")
    feed = MediaFeed(media_store)

    with pytest.raises(StoreError) as exc_info:
        await feed.refresh(MediaType.STREAM, "viewer")

    assert exc_info.value.is_auth_expired
    assert not feed.loading


@pytest.mark.asyncio
async def test_stale_refresh_result_is_discarded(backend, media_store, viewer_id):
    backend.add_media(2, media_type="stream")
    backend.add_media(1, media_type="blog", category="interviews", content_type="article")
    feed = MediaFeed(media_store)

    media_store.list_delay = 0.05
    slow = asyncio.create_task(feed.refresh(MediaType.STREAM, viewer_id))
    await asyncio.sleep(0.01)
    media_store.list_delay = 0
    await feed.refresh(MediaType.BLOG, viewer_id)
    stream_items = await slow

    assert feed.tab == MediaType.BLOG
    assert [item.type for item in feed.items] == [MediaType.BLOG]
    # the caller of the superseded refresh still gets its own tab
    assert [item.type for item in stream_items] == [MediaType.STREAM, MediaType.STREAM]


@pytest.mark.asyncio
async def test_invalidate_orphans_in_flight_refresh(backend, media_store, viewer_id):
    backend.add_media(2)
    feed = MediaFeed(media_store)

    media_store.list_delay = 0.02
    pending = asyncio.create_task(feed.refresh(MediaType.STREAM, viewer_id))
    await asyncio.sleep(0)
    feed.invalidate()
    await pending

    assert feed.items == []
    assert feed.viewer_id is None


@pytest.mark.asyncio
async def test_filtered_by_category_and_query(backend, media_store):
    backend.add_media(1, title="Night Drive", category="music-video")
    backend.add_media(1, title="Ocean Deep", category="documentaries", description="A night dive")
    backend.add_media(1, title="Morning", category="movie", creator_name="NightOwl")
    feed = MediaFeed(media_store)
    await feed.refresh(MediaType.STREAM, None)

    assert {item.title for item in feed.filtered(query="NIGHT")} == {"Night Drive", "Ocean Deep", "Morning"}
    assert [item.title for item in feed.filtered("documentaries", "night")] == ["Ocean Deep"]
    assert [item.title for item in feed.filtered("movie")] == ["Morning"]
    assert len(feed.filtered()) == 3


@pytest.mark.asyncio
async def test_update_items_returns_updated_copies(backend, media_store):
    rows = backend.add_media(3, creator_name="Same Creator")
    feed = MediaFeed(media_store)
    await feed.refresh(MediaType.STREAM, None)

    updated = feed.update_items(lambda m: m.creator_name == "Same Creator", lambda m: {"is_following": True})

    assert len(updated) == 3
    assert all(item.is_following for item in feed.items)
    assert feed.find_item(rows[0]["id"]).is_following


def test_is_locked():
    item = MediaItem(
        id="m1", title="Pro cut", creator_name="C", category="movie",
        type=MediaType.STREAM, content_type="video", is_premium=True,
    )
    free = AppUser(id="u1", name="Free", email="f@example.com", tier=Tier.FREE)
    premium = AppUser(id="u2", name="Paid", email="p@example.com", tier=Tier.PREMIUM)

    assert not is_locked(item, None)
    assert is_locked(item, free)
    assert not is_locked(item, premium)
    assert not is_locked(item.model_copy(update={"is_premium": False}), free)


@pytest.mark.asyncio
async def test_filter_items_leaves_feed_untouched(backend, media_store):
    backend.add_media(1, title="Night Drive", category="music-video")
    backend.add_media(1, title="Day Trip", category="movie", creator_name="Night Owl")
    feed = MediaFeed(media_store)
    loaded = await feed.refresh(MediaType.STREAM, None)

    assert [item.title for item in filter_items(loaded, query="NIGHT")] == ["Day Trip", "Night Drive"]
    assert [item.title for item in filter_items(loaded, "music-video", "night")] == ["Night Drive"]
    assert filter_items(loaded, "movie", "drive") == []
    assert len(feed.items) == 2
