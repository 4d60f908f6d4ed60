"""
Auth Synchronizer - drives the session store from auth provider lifecycle events

States: UNAUTHENTICATED, LOADING, AUTHENTICATED. Provider events are queued and
applied one at a time in arrival order by a single worker task, so a slow profile
fetch can never let a later event be overtaken by an earlier one. Results that
arrive after dispose() are dropped.
"""
import asyncio
import logging
from typing import Optional, Tuple

from tenacity import AsyncRetrying, retry_if_result, stop_after_attempt, wait_exponential

from mediahub.core.config import settings
from mediahub.core.exceptions import AuthenticationFailedError, NoActiveSessionError, StoreError
from mediahub.database.base import AuthProvider, MediaStore, Unsubscribe
from mediahub.models.auth import (
    AppUser, AuthEvent, AuthSession, AuthStatus, ProfileUpdate, SignUpRequest
)
from mediahub.services.profile_loader import ProfileLoader
from mediahub.services.session_store import SessionStore

logger = logging.getLogger(__name__)

PROFILE_EVENTS = {AuthEvent.SIGNED_IN, AuthEvent.TOKEN_REFRESHED, AuthEvent.USER_UPDATED}
SIGN_OUT_EVENTS = {AuthEvent.SIGNED_OUT, AuthEvent.USER_DELETED, AuthEvent.TOKEN_REFRESH_FAILED}


class AuthSynchronizer:
    def __init__(
        self,
        provider: AuthProvider,
        data_store: MediaStore,
        session_store: Optional[SessionStore] = None,
        loader: Optional[ProfileLoader] = None,
        poll_attempts: Optional[int] = None,
        poll_max_delay: Optional[float] = None,
    ):
        self.provider = provider
        self.data_store = data_store
        self.session_store = session_store or SessionStore()
        self.loader = loader or ProfileLoader(data_store)
        self.poll_attempts = poll_attempts or settings.SIGNUP_PROFILE_POLL_ATTEMPTS
        self.poll_max_delay = settings.SIGNUP_PROFILE_POLL_MAX_DELAY if poll_max_delay is None else poll_max_delay

        self.active = False
        self._events: "asyncio.Queue[Tuple[AuthEvent, Optional[AuthSession]]]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Unsubscribe] = None

    @property
    def user(self) -> Optional[AppUser]:
        return self.session_store.user

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Restore the persisted session, then start applying provider events"""
        if self.active:
            return
        self.active = True
        self.session_store.set_loading()

        # Events fired while the initial session is being read are buffered, not lost
        self._unsubscribe = self.provider.on_auth_state_change(self._enqueue)
        await self._restore_initial_session()

        if self.active:
            self._worker = asyncio.create_task(self._drain_events())

    async def dispose(self) -> None:
        self.active = False
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

    def _enqueue(self, event: AuthEvent, session: Optional[AuthSession]) -> None:
        if self.active:
            self._events.put_nowait((event, session))

    async def _restore_initial_session(self) -> None:
        try:
            session = await self.provider.get_session()
            if not self.active:
                return
            if session is None:
                self.session_store.set_unauthenticated()
                return

            user = await self.loader.load(session.user.id, session.user.email or "")
            if self.active:
                self._apply_profile(user, session)
        except Exception as e:
            logger.error(f"Error getting initial session: {e}")
            if self.active:
                self.session_store.set_unauthenticated()

    async def _drain_events(self) -> None:
        while True:
            event, session = await self._events.get()
            try:
                await self.handle_event(event, session)
            except Exception as e:
                logger.error(f"ERROR: Failed to apply auth event {event.value}: {e}")
            finally:
                self._events.task_done()

    async def _settle(self) -> None:
        """Wait until every event queued so far has been applied"""
        if self._worker is not None and not self._worker.done():
            await self._events.join()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def handle_event(self, event: AuthEvent, session: Optional[AuthSession]) -> None:
        if not self.active:
            return
        logger.info(f"AUTH: Auth event: {event.value}")

        if event in PROFILE_EVENTS and session is not None:
            user = await self.loader.load(session.user.id, session.user.email or "")
            if self.active:
                self._apply_profile(user, session)
        elif event in SIGN_OUT_EVENTS:
            self.session_store.set_unauthenticated()

    def _apply_profile(self, user: Optional[AppUser], session: AuthSession) -> None:
        if user is None:
            logger.warning(f"SYNC: No profile available for {session.user.id}, treating viewer as signed out")
            # provider session kept: signed in upstream, but no profile to act as
            self.session_store.set_unauthenticated(session)
        else:
            self.session_store.set_authenticated(user, session)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def sign_in(self, email: str, password: str) -> Optional[AppUser]:
        previous = self.session_store.state
        self.session_store.set_loading()
        try:
            session = await self.provider.sign_in_with_password(email, password)
        except (AuthenticationFailedError, StoreError):
            self.session_store.restore(previous)
            raise

        await self._settle()
        if self.session_store.state.status == AuthStatus.LOADING:
            # provider did not report SIGNED_IN through the listener
            await self.handle_event(AuthEvent.SIGNED_IN, session)

        logger.info(f"AUTH: Signed in {email}")
        return self.session_store.user

    async def sign_up(self, request: SignUpRequest) -> Optional[AppUser]:
        """Create the account and wait for its trigger-provisioned profile row

        Returns None while email confirmation is pending or when the profile row
        did not appear within the polling budget.
        """
        previous = self.session_store.state
        self.session_store.set_loading()
        try:
            session = await self.provider.sign_up(
                request.email,
                request.password,
                {"name": request.name, "accountType": request.account_type.value},
            )
        except (AuthenticationFailedError, StoreError):
            self.session_store.restore(previous)
            raise

        if session is None:
            logger.info(f"AUTH: Sign-up for {request.email} awaiting email confirmation")
            self.session_store.restore(previous)
            return None

        await self._settle()
        current = self.session_store.user
        if current is not None and current.id == session.user.id:
            return current

        user = await self._await_provisioned_profile(session)
        if not self.active:
            return None
        if user is None:
            logger.warning(f"SYNC: Profile for {session.user.id} not provisioned after {self.poll_attempts} attempts")
        self._apply_profile(user, session)
        return user

    async def _await_provisioned_profile(self, session: AuthSession) -> Optional[AppUser]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.poll_attempts),
            wait=wait_exponential(multiplier=0.1, max=self.poll_max_delay),
            retry=retry_if_result(lambda user: user is None),
            retry_error_callback=lambda retry_state: None,
        )
        return await retrying(self.loader.load, session.user.id, session.user.email or "")

    async def sign_out(self) -> None:
        self.session_store.set_loading()
        try:
            await self.provider.sign_out()
        except StoreError as e:
            logger.error(f"Error during sign out: {e}")

        await self._settle()
        self.session_store.set_unauthenticated()
        logger.info("AUTH: Signed out")

    async def update_user(self, changes: ProfileUpdate) -> AppUser:
        """Write a partial profile update, then re-read the full row"""
        user = self.session_store.user
        if user is None:
            logger.error("No user found for update")
            raise NoActiveSessionError("No signed-in viewer to update")

        payload = changes.changes()
        if payload:
            try:
                await self.data_store.update_profile(user.id, payload)
            except StoreError as e:
                logger.error(f"Error updating user profile: {e}")
                raise

        refreshed = await self.loader.load(user.id, user.email)
        current = self.session_store.user
        if refreshed is not None and self.active and current is not None and current.id == user.id:
            self.session_store.set_user(refreshed)
        return self.session_store.user or refreshed or user

    async def switch_role(self) -> AppUser:
        user = self.session_store.user
        if user is None:
            logger.error("No user found for role switch")
            raise NoActiveSessionError("No signed-in viewer to switch")

        new_role = user.role.flipped()
        return await self.update_user(ProfileUpdate(role=new_role, account_type=new_role))
