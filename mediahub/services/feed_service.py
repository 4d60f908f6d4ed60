"""
Feed Service - per-viewer enrichment of media rows and the feed state of one viewer

Enrichment is a pure per-item map: like count, viewer-liked and viewer-follows
lookups run concurrently for every item, and one failing item falls back to the
empty defaults without affecting the others.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from mediahub.core.exceptions import StoreError
from mediahub.database.base import MediaStore
from mediahub.models.auth import AppUser, Tier
from mediahub.models.media import ALL_CATEGORIES, EnrichedMediaItem, MediaItem, MediaType

logger = logging.getLogger(__name__)

EMPTY_SOCIAL_FIELDS = {"likes_count": 0, "is_liked": False, "is_following": False}


def with_defaults(item: MediaItem) -> EnrichedMediaItem:
    return EnrichedMediaItem(**{**item.model_dump(), **EMPTY_SOCIAL_FIELDS})


class FeedEnricher:
    def __init__(self, store: MediaStore):
        self.store = store

    async def enrich(self, items: List[MediaItem], viewer_id: Optional[str] = None) -> List[EnrichedMediaItem]:
        if not viewer_id:
            return [with_defaults(item) for item in items]
        return list(await asyncio.gather(*(self._enrich_item(item, viewer_id) for item in items)))

    async def _enrich_item(self, item: MediaItem, viewer_id: str) -> EnrichedMediaItem:
        results = await asyncio.gather(
            self.store.count_likes(item.id),
            self.store.has_like(viewer_id, item.id),
            self.store.has_follow(viewer_id, item.creator_name),
            return_exceptions=True,
        )
        failure = next((result for result in results if isinstance(result, BaseException)), None)
        if failure is not None:
            logger.error(f"Error enriching media item {item.id}: {failure}")
            return with_defaults(item)

        likes_count, is_liked, is_following = results
        return EnrichedMediaItem(**{
            **item.model_dump(),
            "likes_count": likes_count or 0,
            "is_liked": bool(is_liked),
            "is_following": bool(is_following),
        })


def is_locked(item: MediaItem, user: Optional[AppUser]) -> bool:
    """Premium items are locked for signed-in free-tier viewers; anonymous viewers see them unlocked"""
    return item.is_premium and user is not None and user.tier == Tier.FREE


def filter_items(
    items: List[EnrichedMediaItem],
    category: str = ALL_CATEGORIES,
    query: str = "",
) -> List[EnrichedMediaItem]:
    """Category match (or all) and case-insensitive query match on title, creator or description"""
    needle = query.lower()

    def matches(item: EnrichedMediaItem) -> bool:
        if category != ALL_CATEGORIES and item.category != category:
            return False
        return (
            needle in item.title.lower()
            or needle in item.creator_name.lower()
            or needle in (item.description or "").lower()
        )

    return [item for item in items if matches(item)]


class MediaFeed:
    """Enriched items of one tab, as currently seen by one viewer"""

    def __init__(self, store: MediaStore, enricher: Optional[FeedEnricher] = None):
        self.store = store
        self.enricher = enricher or FeedEnricher(store)
        self.tab: Optional[MediaType] = None
        self.viewer_id: Optional[str] = None
        self.items: List[EnrichedMediaItem] = []
        self.loading = False
        self._generation = 0

    async def refresh(self, tab: MediaType, viewer_id: Optional[str]) -> List[EnrichedMediaItem]:
        """Load and enrich a tab

        Always returns this call's own result; it is installed as the feed's items
        only if no newer refresh started and the viewer did not change meanwhile.
        """
        self._generation += 1
        generation = self._generation
        self.tab = tab
        self.viewer_id = viewer_id
        self.loading = True

        try:
            rows = await self.store.list_media(tab.value)
            items = self._parse_rows(rows)
            enriched = await self.enricher.enrich(items, viewer_id)
        except StoreError as e:
            if e.is_auth_expired:
                logger.info("FEED: Session expired, user needs to re-authenticate")
            else:
                logger.error(f"Error fetching media: {e}")
            raise
        finally:
            if generation == self._generation:
                self.loading = False

        if generation != self._generation or viewer_id != self.viewer_id:
            logger.debug(f"FEED: Not installing stale {tab.value} result for {viewer_id}")
            return enriched

        self.items = enriched
        return enriched

    def invalidate(self) -> None:
        """Forget items enriched for a previous viewer and orphan in-flight refreshes"""
        self._generation += 1
        self.viewer_id = None
        self.items = []
        self.loading = False

    def _parse_rows(self, rows: List[Dict[str, Any]]) -> List[MediaItem]:
        items = []
        for row in rows:
            try:
                items.append(MediaItem(**row))
            except ValidationError as e:
                logger.warning(f"FEED: Skipping malformed media row {row.get('id')}: {e}")
        return items

    def filtered(self, category: str = ALL_CATEGORIES, query: str = "") -> List[EnrichedMediaItem]:
        return filter_items(self.items, category, query)

    def find_item(self, item_id: str) -> Optional[EnrichedMediaItem]:
        return next((item for item in self.items if item.id == item_id), None)

    def find_by_creator(self, creator_name: str) -> Optional[EnrichedMediaItem]:
        return next((item for item in self.items if item.creator_name == creator_name), None)

    def update_items(
        self,
        predicate: Callable[[EnrichedMediaItem], bool],
        changes: Callable[[EnrichedMediaItem], Dict[str, Any]],
    ) -> List[EnrichedMediaItem]:
        """Replace matching items with updated copies; returns the updated ones"""
        updated = []
        items = []
        for item in self.items:
            if predicate(item):
                item = item.model_copy(update=changes(item))
                updated.append(item)
            items.append(item)
        self.items = items
        return updated
