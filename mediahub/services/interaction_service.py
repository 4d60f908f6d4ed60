"""
Interaction Service - like / follow toggles applied to the store and the feed together
"""
import logging
from typing import Awaitable, Optional

from mediahub.core.exceptions import StoreError, StoreErrorKind
from mediahub.models.media import EnrichedMediaItem, ToggleOutcome, ToggleResult
from mediahub.services.feed_service import MediaFeed

logger = logging.getLogger(__name__)

SESSION_EXPIRED_MESSAGE = "Your session has expired. Please sign in again."


class InteractionToggler:
    def __init__(self, feed: MediaFeed):
        self.feed = feed
        self.store = feed.store

    async def toggle_like(self, item_id: str, viewer_id: Optional[str]) -> ToggleResult:
        if not viewer_id:
            return ToggleResult(outcome=ToggleOutcome.SIGN_IN_REQUIRED, message="Please sign in to like content.")

        item = self.feed.find_item(item_id)
        if item is None:
            return ToggleResult(outcome=ToggleOutcome.NOT_FOUND, message="Media item not in the current feed")

        if item.is_liked:
            write = self.store.delete_like(viewer_id, item_id)
        else:
            write = self.store.insert_like(viewer_id, item_id)

        failure = await self._write(write, inserting=not item.is_liked, action="like")
        if failure is not None:
            return failure

        liked = not item.is_liked
        updated = self.feed.update_items(
            lambda m: m.id == item_id,
            lambda m: {
                "is_liked": liked,
                "likes_count": m.likes_count + 1 if liked else max(0, m.likes_count - 1),
            },
        )
        return self._applied(updated)

    async def toggle_follow(self, creator_name: str, viewer_id: Optional[str]) -> ToggleResult:
        if not viewer_id:
            return ToggleResult(outcome=ToggleOutcome.SIGN_IN_REQUIRED, message="Please sign in to follow creators.")

        item = self.feed.find_by_creator(creator_name)
        if item is None:
            return ToggleResult(outcome=ToggleOutcome.NOT_FOUND, message="Creator not in the current feed")

        if item.is_following:
            write = self.store.delete_follow(viewer_id, creator_name)
        else:
            write = self.store.insert_follow(viewer_id, creator_name)

        failure = await self._write(write, inserting=not item.is_following, action="follow")
        if failure is not None:
            return failure

        following = not item.is_following
        updated = self.feed.update_items(
            lambda m: m.creator_name == creator_name,
            lambda m: {"is_following": following},
        )
        return self._applied(updated)

    async def _write(
        self,
        write: Awaitable[None],
        inserting: bool,
        action: str,
    ) -> Optional[ToggleResult]:
        """Run the edge write; a ToggleResult is returned only when it failed"""
        try:
            await write
        except StoreError as e:
            if e.kind == StoreErrorKind.AUTH_EXPIRED:
                logger.info(f"Session expired while toggling {action}")
                return ToggleResult(outcome=ToggleOutcome.REAUTH_REQUIRED, message=SESSION_EXPIRED_MESSAGE)
            if e.kind == StoreErrorKind.CONFLICT and inserting:
                # edge already exists - the unique constraint already gives the wanted state
                logger.debug(f"Duplicate {action} edge treated as applied")
                return None
            logger.error(f"Error toggling {action}: {e}")
            return ToggleResult(
                outcome=ToggleOutcome.FAILED,
                message=f"Failed to update {action}. Please try again.",
            )
        return None

    @staticmethod
    def _applied(updated: list) -> ToggleResult:
        item: Optional[EnrichedMediaItem] = updated[0] if updated else None
        return ToggleResult(outcome=ToggleOutcome.APPLIED, item=item)
