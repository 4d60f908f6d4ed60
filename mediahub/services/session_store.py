"""
Session Store - the single piece of shared mutable state of a viewer session

Holds an immutable, versioned SessionState. Writers replace the whole snapshot
(last update wins); subscribers are notified synchronously and detach through the
Subscription token they were handed.
"""
import logging
from typing import Callable, Dict, Optional

from mediahub.models.auth import AppUser, AuthSession, AuthStatus, SessionState

logger = logging.getLogger(__name__)

StateListener = Callable[[SessionState], None]


class Subscription:
    """Disposal token returned by SessionStore.subscribe"""

    def __init__(self, store: "SessionStore", key: int):
        self._store = store
        self._key = key
        self.active = True

    def dispose(self) -> None:
        if self.active:
            self.active = False
            self._store._listeners.pop(self._key, None)


class SessionStore:
    def __init__(self):
        self._state = SessionState(status=AuthStatus.LOADING)
        self._listeners: Dict[int, StateListener] = {}
        self._next_key = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def user(self) -> Optional[AppUser]:
        return self._state.user

    @property
    def version(self) -> int:
        return self._state.version

    def subscribe(self, listener: StateListener) -> Subscription:
        key = self._next_key
        self._next_key += 1
        self._listeners[key] = listener
        return Subscription(self, key)

    def set_loading(self) -> SessionState:
        return self._replace(AuthStatus.LOADING, self._state.user, self._state.session)

    def set_authenticated(self, user: AppUser, session: Optional[AuthSession]) -> SessionState:
        return self._replace(AuthStatus.AUTHENTICATED, user, session)

    def set_unauthenticated(self, session: Optional[AuthSession] = None) -> SessionState:
        return self._replace(AuthStatus.UNAUTHENTICATED, None, session)

    def set_user(self, user: AppUser) -> SessionState:
        """Swap the user view while keeping the current session"""
        return self._replace(AuthStatus.AUTHENTICATED, user, self._state.session)

    def restore(self, state: SessionState) -> SessionState:
        """Re-apply an earlier snapshot's content under a new version"""
        return self._replace(state.status, state.user, state.session)

    def _replace(self, status: AuthStatus, user: Optional[AppUser], session: Optional[AuthSession]) -> SessionState:
        self._state = SessionState(
            status=status,
            user=user,
            session=session,
            version=self._state.version + 1,
        )
        for listener in list(self._listeners.values()):
            try:
                listener(self._state)
            except Exception as e:
                logger.error(f"ERROR: Session listener failed: {e}")
        return self._state
