"""
Viewer Session - one signed-in (or anonymous) viewer held by the API process

Each viewer gets its own Supabase client so row-level security sees that
viewer's JWT. The session bundles the auth synchronizer, the media feed, the
interaction toggler and the realtime listener, and is looked up through an
opaque bearer token handed out by the SessionRegistry.
"""
import asyncio
import logging
import secrets
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from mediahub.core.config import settings
from mediahub.database.base import AuthProvider, MediaStore
from mediahub.database.supabase_client import (
    SupabaseAuthProvider,
    SupabaseMediaStore,
    create_viewer_client,
)
from mediahub.models.auth import AppUser, SessionState
from mediahub.models.media import EnrichedMediaItem, MediaType, ToggleResult
from mediahub.services.auth_synchronizer import AuthSynchronizer
from mediahub.services.feed_service import MediaFeed
from mediahub.services.interaction_service import InteractionToggler
from mediahub.services.realtime_service import FeedChangeListener

logger = logging.getLogger(__name__)


class ViewerSession:
    def __init__(
        self,
        provider: AuthProvider,
        store: MediaStore,
        client: Any = None,
        realtime_enabled: Optional[bool] = None,
    ):
        self.client = client
        self.provider = provider
        self.store = store
        self.auth = AuthSynchronizer(provider, store)
        self.feed = MediaFeed(store)
        self.toggler = InteractionToggler(self.feed)
        self.realtime_enabled = settings.ENABLE_REALTIME if realtime_enabled is None else realtime_enabled
        self.listener: Optional[FeedChangeListener] = None
        self.last_seen = time.monotonic()

        self._tasks: Set[asyncio.Task] = set()
        # one feed operation at a time: refresh, ensure + toggle, realtime re-enrichment
        self._feed_lock = asyncio.Lock()
        self._subscription = self.auth.session_store.subscribe(self._on_session_change)

    @property
    def user(self) -> Optional[AppUser]:
        return self.auth.user

    @property
    def viewer_id(self) -> Optional[str]:
        user = self.auth.user
        return user.id if user else None

    def touch(self) -> None:
        self.last_seen = time.monotonic()

    async def start(self) -> None:
        await self.auth.start()

    async def close(self) -> None:
        self._subscription.dispose()
        await self._stop_listener()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.auth.dispose()
        await self.provider.release()
        await self.store.close()

    # ------------------------------------------------------------------
    # Feed
    # ------------------------------------------------------------------

    async def show_feed(self, tab: MediaType) -> List[EnrichedMediaItem]:
        """Items of the tab as loaded by this call, whatever other requests did meanwhile"""
        async with self._feed_lock:
            return await self._load(tab)

    async def toggle_like(self, tab: MediaType, item_id: str) -> ToggleResult:
        async with self._feed_lock:
            await self._ensure_feed(tab)
            return await self.toggler.toggle_like(item_id, self.viewer_id)

    async def toggle_follow(self, tab: MediaType, creator_name: str) -> ToggleResult:
        async with self._feed_lock:
            await self._ensure_feed(tab)
            return await self.toggler.toggle_follow(creator_name, self.viewer_id)

    async def _load(self, tab: MediaType) -> List[EnrichedMediaItem]:
        items = await self.feed.refresh(tab, self.viewer_id)
        await self._bind_listener()
        return items

    async def _ensure_feed(self, tab: MediaType) -> None:
        """Load the tab unless the feed already shows it to the current viewer"""
        if self.viewer_id is None:
            return
        if self.feed.tab != tab or self.feed.viewer_id != self.viewer_id:
            await self._load(tab)

    async def _bind_listener(self) -> None:
        if not self.realtime_enabled or self.viewer_id is None:
            await self._stop_listener()
            return
        if self.listener is not None and self.listener.active:
            return
        self.listener = FeedChangeListener(self.store, self._refresh_current_feed)
        await self.listener.start()

    async def _refresh_current_feed(self) -> None:
        async with self._feed_lock:
            if self.feed.tab is not None:
                await self.feed.refresh(self.feed.tab, self.viewer_id)

    async def _stop_listener(self) -> None:
        listener, self.listener = self.listener, None
        if listener is not None:
            await listener.stop()

    def _on_session_change(self, state: SessionState) -> None:
        if state.is_loading:
            return
        viewer_id = state.user.id if state.user else None
        if self.feed.tab is not None and viewer_id != self.feed.viewer_id:
            # enriched fields belong to the previous viewer
            self.feed.invalidate()
        if viewer_id is None and self.listener is not None and self.listener.active:
            self.listener.active = False
            self._spawn(self._stop_listener())

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task


SessionFactory = Callable[[], Awaitable[ViewerSession]]


async def create_supabase_session() -> ViewerSession:
    client = await create_viewer_client()
    return ViewerSession(SupabaseAuthProvider(client), SupabaseMediaStore(client), client=client)


class SessionRegistry:
    """Bearer token -> ViewerSession"""

    def __init__(self, factory: SessionFactory = create_supabase_session, idle_timeout: Optional[int] = None):
        self.factory = factory
        self.idle_timeout = settings.SESSION_IDLE_TIMEOUT if idle_timeout is None else idle_timeout
        self._sessions: Dict[str, ViewerSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    async def open(self) -> Tuple[str, ViewerSession]:
        await self.prune_idle()
        session = await self.factory()
        await session.start()
        token = secrets.token_urlsafe(32)
        self._sessions[token] = session
        logger.debug(f"SESSIONS: Opened viewer session ({len(self._sessions)} active)")
        return token, session

    def get(self, token: str) -> Optional[ViewerSession]:
        session = self._sessions.get(token)
        if session is not None:
            session.touch()
        return session

    async def discard(self, token: str) -> None:
        session = self._sessions.pop(token, None)
        if session is not None:
            await session.close()

    async def prune_idle(self) -> int:
        cutoff = time.monotonic() - self.idle_timeout
        expired = [token for token, session in self._sessions.items() if session.last_seen < cutoff]
        for token in expired:
            await self.discard(token)
        if expired:
            logger.info(f"SESSIONS: Closed {len(expired)} idle viewer sessions")
        return len(expired)

    async def close_all(self) -> None:
        for token in list(self._sessions):
            await self.discard(token)

    @asynccontextmanager
    async def anonymous(self) -> AsyncIterator[ViewerSession]:
        """Throw-away session for requests that carry no bearer token"""
        session = await self.factory()
        await session.start()
        try:
            yield session
        finally:
            await session.close()


session_registry = SessionRegistry()
