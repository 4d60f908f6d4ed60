"""
Supabase adapters - auth provider and row store for one viewer

Every failure leaving this module is a StoreError whose kind is decided here from
PostgREST / GoTrue error codes, so callers never inspect error messages.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx
from supabase import (
    AsyncClient,
    AuthApiError,
    AuthError,
    AuthSessionMissingError,
    PostgrestAPIError,
    acreate_client,
)

from mediahub.core.config import settings
from mediahub.core.exceptions import (
    AuthenticationFailedError,
    ConfigurationException,
    StoreError,
    StoreErrorKind,
)
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

logger = logging.getLogger(__name__)

# PostgREST JWT errors (invalid / anonymous disabled / expired claims)
AUTH_EXPIRED_CODES = {"PGRST301", "PGRST302", "PGRST303"}
# .single() with zero rows
NOT_FOUND_CODES = {"PGRST116"}
# unique_violation
CONFLICT_CODES = {"23505"}


def classify_store_error(error: Exception) -> StoreError:
    """Map a client-library exception onto the StoreErrorKind taxonomy"""
    if isinstance(error, StoreError):
        return error

    if isinstance(error, PostgrestAPIError):
        code = str(error.code or "")
        if code in AUTH_EXPIRED_CODES:
            kind = StoreErrorKind.AUTH_EXPIRED
        elif code in NOT_FOUND_CODES:
            kind = StoreErrorKind.NOT_FOUND
        elif code in CONFLICT_CODES:
            kind = StoreErrorKind.CONFLICT
        else:
            kind = StoreErrorKind.TRANSIENT
        return StoreError(kind, error.message or "", code=code or None)

    if isinstance(error, AuthSessionMissingError):
        return StoreError(StoreErrorKind.AUTH_EXPIRED, "No active session")

    if isinstance(error, AuthApiError) and error.status == 401:
        return StoreError(StoreErrorKind.AUTH_EXPIRED, error.message, code=str(error.status))

    if isinstance(error, (AuthError, httpx.HTTPError)):
        return StoreError(StoreErrorKind.TRANSIENT, str(error))

    return StoreError(StoreErrorKind.TRANSIENT, f"{type(error).__name__}: {error}")


def to_auth_session(session) -> Optional[AuthSession]:
    """Reduce a GoTrue session to the fields the application uses"""
    if session is None or getattr(session, "user", None) is None:
        return None
    return AuthSession(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        user=SessionUser(id=str(session.user.id), email=session.user.email),
    )


async def create_viewer_client() -> AsyncClient:
    """Create a Supabase client dedicated to one viewer session"""
    if not settings.SUPABASE_URL or not settings.SUPABASE_ANON_KEY:
        logger.error("ERROR: SUPABASE_URL / SUPABASE_ANON_KEY not configured")
        raise ConfigurationException("Supabase credentials not configured")

    client = await acreate_client(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY)
    logger.debug("SUCCESS: Supabase viewer client created")
    return client


class SupabaseAuthProvider(AuthProvider):
    """Supabase Auth behind the AuthProvider interface"""

    def __init__(self, client: AsyncClient):
        self.client = client

    async def get_session(self) -> Optional[AuthSession]:
        try:
            session = await self.client.auth.get_session()
        except Exception as e:
            raise classify_store_error(e) from e
        return to_auth_session(session)

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        try:
            response = await self.client.auth.sign_in_with_password({
                "email": email,
                "password": password
            })
        except AuthApiError as e:
            logger.warning(f"AUTH: Supabase rejected sign-in for {email}: {e.message}")
            raise AuthenticationFailedError(e.message, status=e.status) from e
        except Exception as e:
            raise classify_store_error(e) from e

        session = to_auth_session(response.session)
        if session is None:
            raise AuthenticationFailedError("Invalid email or password")
        return session

    async def sign_up(self, email: str, password: str, metadata: Dict[str, Any]) -> Optional[AuthSession]:
        try:
            response = await self.client.auth.sign_up({
                "email": email,
                "password": password,
                "options": {"data": metadata}
            })
        except AuthApiError as e:
            logger.warning(f"AUTH: Supabase rejected sign-up for {email}: {e.message}")
            raise AuthenticationFailedError(e.message, status=e.status) from e
        except Exception as e:
            raise classify_store_error(e) from e

        if response.user is None:
            raise AuthenticationFailedError("Sign-up did not create a user")
        return to_auth_session(response.session)

    async def sign_out(self) -> None:
        try:
            await self.client.auth.sign_out()
        except Exception as e:
            raise classify_store_error(e) from e

    async def release(self) -> None:
        # local scope removes the stored session, which also cancels the refresh timer
        try:
            await self.client.auth.sign_out({"scope": "local"})
        except Exception as e:
            logger.warning(f"AUTH: Failed to release viewer session: {classify_store_error(e).message}")

    def on_auth_state_change(self, listener: AuthListener) -> Unsubscribe:
        def forward(event, session):
            try:
                auth_event = AuthEvent(event)
            except ValueError:
                logger.debug(f"AUTH: Ignoring provider event {event}")
                return
            listener(auth_event, to_auth_session(session))

        subscription = self.client.auth.on_auth_state_change(forward)
        return subscription.unsubscribe


class SupabaseChangeChannel(ChangeChannel):
    def __init__(self, client: AsyncClient, channel):
        self.client = client
        self.channel = channel

    async def close(self) -> None:
        try:
            await self.client.remove_channel(self.channel)
        except Exception as e:
            raise classify_store_error(e) from e


class SupabaseMediaStore(MediaStore):
    """PostgREST access for the media tables, executed with the viewer's JWT"""

    def __init__(self, client: AsyncClient):
        self.client = client

    async def _execute(self, query):
        try:
            return await query.execute()
        except Exception as e:
            error = classify_store_error(e)
            logger.debug(f"STORE: Query failed ({error.kind.value}): {error.message}")
            raise error from e

    async def fetch_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        result = await self._execute(
            self.client.table("profiles").select("*").eq("id", user_id).limit(1)
        )
        if result.data:
            return result.data[0]
        return None

    async def update_profile(self, user_id: str, changes: Dict[str, Any]) -> None:
        await self._execute(
            self.client.table("profiles").update(changes).eq("id", user_id)
        )

    async def list_media(self, media_type: str) -> List[Dict[str, Any]]:
        result = await self._execute(
            self.client.table("media_content")
            .select("*")
            .eq("type", media_type)
            .order("created_at", desc=True)
        )
        return result.data or []

    async def count_likes(self, media_id: str) -> int:
        result = await self._execute(
            self.client.table("media_likes")
            .select("id", count="exact", head=True)
            .eq("media_id", media_id)
        )
        return result.count or 0

    async def has_like(self, user_id: str, media_id: str) -> bool:
        result = await self._execute(
            self.client.table("media_likes")
            .select("id")
            .eq("media_id", media_id)
            .eq("user_id", user_id)
            .limit(1)
        )
        return bool(result.data)

    async def has_follow(self, follower_id: str, creator_name: str) -> bool:
        result = await self._execute(
            self.client.table("creator_follows")
            .select("id")
            .eq("creator_name", creator_name)
            .eq("follower_id", follower_id)
            .limit(1)
        )
        return bool(result.data)

    async def insert_like(self, user_id: str, media_id: str) -> None:
        await self._execute(
            self.client.table("media_likes").insert({"media_id": media_id, "user_id": user_id})
        )

    async def delete_like(self, user_id: str, media_id: str) -> None:
        await self._execute(
            self.client.table("media_likes").delete().eq("media_id", media_id).eq("user_id", user_id)
        )

    async def insert_follow(self, follower_id: str, creator_name: str) -> None:
        await self._execute(
            self.client.table("creator_follows").insert({"creator_name": creator_name, "follower_id": follower_id})
        )

    async def delete_follow(self, follower_id: str, creator_name: str) -> None:
        await self._execute(
            self.client.table("creator_follows")
            .delete()
            .eq("creator_name", creator_name)
            .eq("follower_id", follower_id)
        )

    async def subscribe_table_changes(
        self,
        channel_name: str,
        table: str,
        on_change: ChangeCallback,
        on_status: StatusCallback,
    ) -> ChangeChannel:
        def report(state, error=None):
            if error is not None:
                logger.warning(f"REALTIME: {channel_name} reported {error}")
            on_status(ChannelStatus(getattr(state, "value", state)))

        try:
            channel = self.client.channel(channel_name)
            channel.on_postgres_changes("*", schema="public", table=table, callback=on_change)
            await channel.subscribe(report)
        except Exception as e:
            raise classify_store_error(e) from e
        return SupabaseChangeChannel(self.client, channel)

    async def close(self) -> None:
        try:
            await self.client.remove_all_channels()
        except Exception as e:
            logger.warning(f"REALTIME: Failed to remove channels: {classify_store_error(e).message}")
        try:
            await self.client.postgrest.aclose()
        except Exception as e:
            logger.warning(f"STORE: Failed to close PostgREST client: {classify_store_error(e).message}")
