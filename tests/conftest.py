"""Test configuration and fixtures."""

import asyncio
import os
import tempfile
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Set, Tuple

import pytest

os.environ["SUPABASE_URL"] = ""
os.environ["SUPABASE_ANON_KEY"] = ""
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="mediahub-logs-")
os.environ["ENABLE_REALTIME"] = "false"
os.environ["SIGNUP_PROFILE_POLL_MAX_DELAY"] = "0"

from mediahub.core.exceptions import AuthenticationFailedError, StoreError, StoreErrorKind
from mediahub.database.base import (
    AuthListener,
    AuthProvider,
    ChangeCallback,
    ChangeChannel,
    ChannelStatus,
    MediaStore,
    StatusCallback,
    Unsubscribe,
)
from mediahub.models.auth import AuthEvent, AuthSession, SessionUser
from mediahub.services.viewer_session import SessionRegistry, ViewerSession

TEST_PASSWORD = "secret123"


class FakeBackend:
    """Shared state of the fake auth service and database"""

    def __init__(self):
        self.accounts: Dict[str, Dict[str, str]] = {}
        self.profiles: Dict[str, Dict[str, Any]] = {}
        # user_id -> (row, fetches that still miss) for trigger-provisioned rows
        self.pending_profiles: Dict[str, Tuple[Dict[str, Any], int]] = {}
        self.media: List[Dict[str, Any]] = []
        self.likes: Set[Tuple[str, str]] = set()
        self.follows: Set[Tuple[str, str]] = set()
        self.provision_delay = 0
        self.require_confirmation = False

    def add_account(self, email: str, name: str = "Test Viewer", password: str = TEST_PASSWORD, **profile) -> str:
        user_id = str(uuid.uuid4())
        self.accounts[email] = {"id": user_id, "password": password}
        self.profiles[user_id] = profile_row(user_id, name, **profile)
        return user_id

    def provision(self, user_id: str, metadata: Dict[str, Any]) -> None:
        """What the handle_new_user trigger does on auth.users insert"""
        account_type = metadata.get("accountType", "creator")
        row = profile_row(user_id, metadata.get("name", "New User"), account_type=account_type, role=account_type)
        self.pending_profiles[user_id] = (row, self.provision_delay)

    def add_media(self, count: int = 1, media_type: str = "stream", **fields) -> List[Dict[str, Any]]:
        rows = [media_row(media_type=media_type, index=len(self.media) + i, **fields) for i in range(count)]
        self.media.extend(rows)
        return rows


def profile_row(user_id: str, name: str, **fields) -> Dict[str, Any]:
    row = {
        "id": user_id,
        "name": name,
        "tier": "free",
        "loyalty_points": 0,
        "profile_image": None,
        "account_type": "creator",
        "role": "creator",
        "is_verified": False,
        "joined_date": "2024-01-01T00:00:00+00:00",
    }
    row.update(fields)
    return row


def media_row(media_type: str = "stream", index: int = 0, **fields) -> Dict[str, Any]:
    created = datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=index)
    row = {
        "id": str(uuid.uuid4()),
        "title": f"Media {index}",
        "creator_name": f"Creator {index}",
        "creator_id": None,
        "thumbnail_url": None,
        "content_url": None,
        "duration": None,
        "read_time": None,
        "category": "movie",
        "type": media_type,
        "content_type": "video",
        "description": f"Description {index}",
        "price": None,
        "rating": 4.5,
        "is_premium": False,
        "views_count": 0,
        "plays_count": 0,
        "sales_count": 0,
        "created_at": created.isoformat(),
        "updated_at": created.isoformat(),
    }
    row.update(fields)
    return row


class FakeAuthProvider(AuthProvider):
    """In-memory auth service that reports lifecycle events like Supabase does"""

    def __init__(self, backend: FakeBackend):
        self.backend = backend
        self.session: Optional[AuthSession] = None
        self.listeners: Dict[int, AuthListener] = {}
        self.get_session_error: Optional[Exception] = None
        self.sign_out_error: Optional[Exception] = None
        self.emit_events = True
        self.released = False
        self._next_key = 0

    def emit(self, event: AuthEvent, session: Optional[AuthSession]) -> None:
        for listener in list(self.listeners.values()):
            listener(event, session)

    def session_for(self, email: str) -> AuthSession:
        account = self.backend.accounts[email]
        return AuthSession(
            access_token=f"access-{account['id']}",
            refresh_token=f"refresh-{account['id']}",
            user=SessionUser(id=account["id"], email=email),
        )

    async def get_session(self) -> Optional[AuthSession]:
        await asyncio.sleep(0)
        if self.get_session_error is not None:
            raise self.get_session_error
        return self.session

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        await asyncio.sleep(0)
        account = self.backend.accounts.get(email)
        if account is None or account["password"] != password:
            raise AuthenticationFailedError("Invalid login credentials", status=400)
        self.session = self.session_for(email)
        if self.emit_events:
            self.emit(AuthEvent.SIGNED_IN, self.session)
        return self.session

    async def sign_up(self, email: str, password: str, metadata: Dict[str, Any]) -> Optional[AuthSession]:
        await asyncio.sleep(0)
        if email in self.backend.accounts:
            raise AuthenticationFailedError("User already registered", status=422)
        user_id = str(uuid.uuid4())
        self.backend.accounts[email] = {"id": user_id, "password": password}
        self.backend.provision(user_id, metadata)
        if self.backend.require_confirmation:
            return None
        self.session = self.session_for(email)
        if self.emit_events:
            self.emit(AuthEvent.SIGNED_IN, self.session)
        return self.session

    async def sign_out(self) -> None:
        await asyncio.sleep(0)
        if self.sign_out_error is not None:
            raise self.sign_out_error
        self.session = None
        if self.emit_events:
            self.emit(AuthEvent.SIGNED_OUT, None)

    async def release(self) -> None:
        self.session = None
        self.released = True

    def on_auth_state_change(self, listener: AuthListener) -> Unsubscribe:
        key = self._next_key
        self._next_key += 1
        self.listeners[key] = listener
        return lambda: self.listeners.pop(key, None)


class FakeChannel(ChangeChannel):
    def __init__(self, name: str, table: str, on_change: ChangeCallback, on_status: StatusCallback):
        self.name = name
        self.table = table
        self.on_change = on_change
        self.on_status = on_status
        self.closed = False

    async def close(self) -> None:
        self.closed = True


class FakeMediaStore(MediaStore):
    """In-memory tables with failure injection per operation"""

    def __init__(self, backend: FakeBackend):
        self.backend = backend
        self.calls: List[str] = []
        self.errors: Dict[str, StoreError] = {}
        self.failing_media_ids: Set[str] = set()
        self.profile_delays: Dict[str, float] = {}
        self.list_delay = 0.0
        self.subscribe_failures = 0
        self.channels: List[FakeChannel] = []
        self.closed = False

    def _record(self, op: str) -> None:
        self.calls.append(op)
        if op in self.errors:
            raise self.errors[op]

    async def fetch_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        self._record("fetch_profile")
        await asyncio.sleep(self.profile_delays.get(user_id, 0))
        if user_id in self.backend.pending_profiles:
            row, misses = self.backend.pending_profiles[user_id]
            if misses > 0:
                self.backend.pending_profiles[user_id] = (row, misses - 1)
                return None
            del self.backend.pending_profiles[user_id]
            self.backend.profiles[user_id] = row
        row = self.backend.profiles.get(user_id)
        return dict(row) if row else None

    async def update_profile(self, user_id: str, changes: Dict[str, Any]) -> None:
        self._record("update_profile")
        await asyncio.sleep(0)
        if user_id in self.backend.profiles:
            self.backend.profiles[user_id].update(changes)

    async def list_media(self, media_type: str) -> List[Dict[str, Any]]:
        self._record("list_media")
        await asyncio.sleep(self.list_delay)
        rows = [dict(row) for row in self.backend.media if row["type"] == media_type]
        return sorted(rows, key=lambda row: row["created_at"], reverse=True)

    async def count_likes(self, media_id: str) -> int:
        self._record("count_likes")
        await asyncio.sleep(0)
        if media_id in self.failing_media_ids:
            raise StoreError(StoreErrorKind.TRANSIENT, "connection reset")
        return sum(1 for _, liked in self.backend.likes if liked == media_id)

    async def has_like(self, user_id: str, media_id: str) -> bool:
        self._record("has_like")
        await asyncio.sleep(0)
        return (user_id, media_id) in self.backend.likes

    async def has_follow(self, follower_id: str, creator_name: str) -> bool:
        self._record("has_follow")
        await asyncio.sleep(0)
        return (follower_id, creator_name) in self.backend.follows

    async def insert_like(self, user_id: str, media_id: str) -> None:
        self._record("insert_like")
        await asyncio.sleep(0)
        if (user_id, media_id) in self.backend.likes:
            raise StoreError(StoreErrorKind.CONFLICT, "duplicate key value", code="23505")
        self.backend.likes.add((user_id, media_id))

    async def delete_like(self, user_id: str, media_id: str) -> None:
        self._record("delete_like")
        await asyncio.sleep(0)
        self.backend.likes.discard((user_id, media_id))

    async def insert_follow(self, follower_id: str, creator_name: str) -> None:
        self._record("insert_follow")
        await asyncio.sleep(0)
        if (follower_id, creator_name) in self.backend.follows:
            raise StoreError(StoreErrorKind.CONFLICT, "duplicate key value", code="23505")
        self.backend.follows.add((follower_id, creator_name))

    async def delete_follow(self, follower_id: str, creator_name: str) -> None:
        self._record("delete_follow")
        await asyncio.sleep(0)
        self.backend.follows.discard((follower_id, creator_name))

    async def subscribe_table_changes(
        self,
        channel_name: str,
        table: str,
        on_change: ChangeCallback,
        on_status: StatusCallback,
    ) -> ChangeChannel:
        self._record("subscribe_table_changes")
        if self.subscribe_failures > 0:
            self.subscribe_failures -= 1
            raise StoreError(StoreErrorKind.TRANSIENT, "realtime unavailable")
        channel = FakeChannel(channel_name, table, on_change, on_status)
        self.channels.append(channel)
        on_status(ChannelStatus.SUBSCRIBED)
        return channel

    async def close(self) -> None:
        for channel in self.channels:
            channel.closed = True
        self.closed = True

    def open_channels(self) -> List[FakeChannel]:
        return [channel for channel in self.channels if not channel.closed]


@pytest.fixture
def backend():
    """Fake Supabase project shared by provider and store."""
    return FakeBackend()


@pytest.fixture
def viewer_email():
    return "viewer@example.com"


@pytest.fixture
def viewer_id(backend, viewer_email):
    """Registered account with a provisioned profile."""
    return backend.add_account(viewer_email, name="Viewer One")


@pytest.fixture
def auth_provider(backend):
    return FakeAuthProvider(backend)


@pytest.fixture
def media_store(backend):
    return FakeMediaStore(backend)


@pytest.fixture
def registry(backend):
    """Session registry whose viewer sessions run on the fakes."""
    providers: List[FakeAuthProvider] = []
    stores: List[FakeMediaStore] = []

    async def factory() -> ViewerSession:
        provider = FakeAuthProvider(backend)
        store = FakeMediaStore(backend)
        providers.append(provider)
        stores.append(store)
        return ViewerSession(provider, store, realtime_enabled=False)

    registry = SessionRegistry(factory=factory, idle_timeout=3600)
    registry.providers = providers
    registry.stores = stores
    return registry
