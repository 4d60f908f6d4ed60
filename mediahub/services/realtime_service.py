"""
Realtime Service - re-enrich the feed when likes or follows change anywhere

Listens on the media_likes and creator_follows change streams. A channel error
triggers a resubscribe after an increasing delay (retry_delay * attempt); the
attempt counter is shared by both channels and bounded by max_retries.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from mediahub.core.config import settings
from mediahub.core.exceptions import StoreError
from mediahub.database.base import ChangeChannel, ChannelStatus, MediaStore

logger = logging.getLogger(__name__)

WATCHED_TABLES = (
    ("media_likes_changes", "media_likes"),
    ("creator_follows_changes", "creator_follows"),
)


class FeedChangeListener:
    def __init__(
        self,
        store: MediaStore,
        on_change: Callable[[], Awaitable[Any]],
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ):
        self.store = store
        self.on_change = on_change
        self.max_retries = settings.REALTIME_MAX_RETRIES if max_retries is None else max_retries
        self.retry_delay = settings.REALTIME_RETRY_DELAY if retry_delay is None else retry_delay

        self.active = False
        self.retry_count = 0
        self._channels: List[ChangeChannel] = []
        self._tasks: Set[asyncio.Task] = set()
        self._pending_retry: Optional[asyncio.Task] = None

    async def start(self) -> None:
        if self.active:
            return
        self.active = True
        self.retry_count = 0
        await self._subscribe()

    async def stop(self) -> None:
        self.active = False
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        self._pending_retry = None
        await self._close_channels()

    async def _subscribe(self) -> None:
        try:
            for channel_name, table in WATCHED_TABLES:
                channel = await self.store.subscribe_table_changes(
                    channel_name, table, self._handle_change, self._handle_status
                )
                self._channels.append(channel)
            logger.info("REALTIME: Subscribed to like/follow changes")
        except StoreError as e:
            logger.error(f"Error setting up subscriptions: {e}")
            self._handle_status(ChannelStatus.CHANNEL_ERROR)

    async def _close_channels(self) -> None:
        channels, self._channels = self._channels, []
        for channel in channels:
            try:
                await channel.close()
            except StoreError as e:
                logger.warning(f"REALTIME: Failed to close channel: {e}")

    def _handle_change(self, payload: Dict[str, Any]) -> None:
        if not self.active:
            return
        logger.debug(f"REALTIME: Change received on {payload.get('table', 'unknown table')}")
        self._spawn(self._refresh())

    def _handle_status(self, status: ChannelStatus) -> None:
        if status != ChannelStatus.CHANNEL_ERROR or not self.active:
            return
        if self._pending_retry is not None and not self._pending_retry.done():
            return
        if self.retry_count >= self.max_retries:
            logger.error(f"REALTIME: Giving up on change streams after {self.retry_count} retries")
            return

        self.retry_count += 1
        delay = self.retry_delay * self.retry_count
        logger.warning(f"REALTIME: Channel error, resubscribing in {delay:.1f}s (attempt {self.retry_count})")
        self._pending_retry = self._spawn(self._resubscribe(delay))

    async def _resubscribe(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._pending_retry = None
        if not self.active:
            return
        await self._close_channels()
        await self._subscribe()

    async def _refresh(self) -> None:
        try:
            await self.on_change()
        except StoreError as e:
            logger.error(f"REALTIME: Re-enrichment after change failed: {e}")

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
