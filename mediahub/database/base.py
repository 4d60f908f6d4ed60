"""Boundary interfaces for the auth provider and the media data store."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from mediahub.models.auth import AuthEvent, AuthSession


AuthListener = Callable[[AuthEvent, Optional[AuthSession]], None]
Unsubscribe = Callable[[], None]


class ChannelStatus(str, Enum):
    """Subscription states reported by a change stream"""
    SUBSCRIBED = "SUBSCRIBED"
    TIMED_OUT = "TIMED_OUT"
    CLOSED = "CLOSED"
    CHANNEL_ERROR = "CHANNEL_ERROR"


ChangeCallback = Callable[[Dict[str, Any]], None]
StatusCallback = Callable[[ChannelStatus], None]


class ChangeChannel(ABC):
    """Handle for an open change stream."""

    @abstractmethod
    async def close(self) -> None:
        pass


class AuthProvider(ABC):
    """External session service the auth synchronizer is driven by."""

    @abstractmethod
    async def get_session(self) -> Optional[AuthSession]:
        """Return the persisted session, if any."""
        pass

    @abstractmethod
    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        """Sign in. Raises AuthenticationFailedError on rejection."""
        pass

    @abstractmethod
    async def sign_up(self, email: str, password: str, metadata: Dict[str, Any]) -> Optional[AuthSession]:
        """Create an account.

        Returns:
            The new session, or None when the account still needs email confirmation
        """
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        pass

    @abstractmethod
    async def release(self) -> None:
        """Drop the locally held session and stop background token refresh."""
        pass

    @abstractmethod
    def on_auth_state_change(self, listener: AuthListener) -> Unsubscribe:
        """Attach a lifecycle listener; the returned callable detaches it."""
        pass


class MediaStore(ABC):
    """Row access to profiles, media_content, media_likes and creator_follows.

    Implementations raise StoreError with a classified kind on any failure.
    """

    @abstractmethod
    async def fetch_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    async def update_profile(self, user_id: str, changes: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def list_media(self, media_type: str) -> List[Dict[str, Any]]:
        """Media rows of one type, newest first."""
        pass

    @abstractmethod
    async def count_likes(self, media_id: str) -> int:
        pass

    @abstractmethod
    async def has_like(self, user_id: str, media_id: str) -> bool:
        pass

    @abstractmethod
    async def has_follow(self, follower_id: str, creator_name: str) -> bool:
        pass

    @abstractmethod
    async def insert_like(self, user_id: str, media_id: str) -> None:
        pass

    @abstractmethod
    async def delete_like(self, user_id: str, media_id: str) -> None:
        pass

    @abstractmethod
    async def insert_follow(self, follower_id: str, creator_name: str) -> None:
        pass

    @abstractmethod
    async def delete_follow(self, follower_id: str, creator_name: str) -> None:
        pass

    @abstractmethod
    async def subscribe_table_changes(
        self,
        channel_name: str,
        table: str,
        on_change: ChangeCallback,
        on_status: StatusCallback,
    ) -> ChangeChannel:
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close open change streams and the connection pool."""
        pass
