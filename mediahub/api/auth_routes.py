"""
Authentication API routes
Sign-in, sign-up, sign-out and profile management for viewer sessions
"""
from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials
import logging

from mediahub.core.exceptions import (
    AuthenticationFailedError,
    NoActiveSessionError,
    ServiceUnavailableException,
    SignInRequiredException,
    StoreError,
    to_http_exception,
)
from mediahub.middleware.auth_middleware import get_session_registry, get_viewer_session, security
from mediahub.models.auth import (
    AppUser,
    ProfileUpdate,
    SessionResponse,
    SignInRequest,
    SignUpRequest,
    ViewerStateResponse,
)
from mediahub.services.viewer_session import SessionRegistry, ViewerSession

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/signin", response_model=SessionResponse)
async def sign_in(
    credentials: SignInRequest,
    registry: SessionRegistry = Depends(get_session_registry),
):
    """
    Sign in with email and password

    Returns an opaque session token to send as `Authorization: Bearer <token>`
    """
    token, session = await registry.open()
    try:
        user = await session.auth.sign_in(credentials.email, credentials.password)
    except (AuthenticationFailedError, StoreError) as e:
        await registry.discard(token)
        logger.warning(f"AUTH: Sign-in failed for {credentials.email}: {e}")
        raise to_http_exception(e)

    if user is None:
        await registry.discard(token)
        raise SignInRequiredException("No profile found for this account.")

    logger.info(f"User signed in: {user.email}")
    return SessionResponse(session_token=token, user=user)


@router.post("/signup", response_model=SessionResponse)
async def sign_up(
    request: SignUpRequest,
    registry: SessionRegistry = Depends(get_session_registry),
):
    """
    Create an account

    - **email**: Valid email address
    - **password**: Minimum 6 characters
    - **name**: Display name
    - **account_type**: `creator` (default) or `member`

    When the project requires email confirmation no session is opened and
    `email_confirmation_required` is true.
    """
    token, session = await registry.open()
    try:
        user = await session.auth.sign_up(request)
    except (AuthenticationFailedError, StoreError) as e:
        await registry.discard(token)
        logger.warning(f"AUTH: Sign-up failed for {request.email}: {e}")
        raise to_http_exception(e)

    if user is not None:
        logger.info(f"New user signed up: {user.email}")
        return SessionResponse(session_token=token, user=user)

    pending_confirmation = session.auth.session_store.state.session is None
    await registry.discard(token)
    if pending_confirmation:
        return SessionResponse(email_confirmation_required=True)
    raise ServiceUnavailableException("Account created but the profile is not ready yet. Please sign in shortly.")


@router.post("/signout")
async def sign_out(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    session: ViewerSession = Depends(get_viewer_session),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """
    Sign out and close the viewer session
    """
    await session.auth.sign_out()
    await registry.discard(credentials.credentials)
    return {"message": "Successfully signed out"}


@router.get("/me", response_model=ViewerStateResponse)
async def get_current_viewer(session: ViewerSession = Depends(get_viewer_session)):
    """
    Current session state; `user` is null once the session ended upstream
    """
    state = session.auth.session_store.state
    return ViewerStateResponse(status=state.status, user=state.user, version=state.version)


@router.patch("/me", response_model=AppUser)
async def update_current_viewer(
    changes: ProfileUpdate,
    session: ViewerSession = Depends(get_viewer_session),
):
    """
    Partially update the profile; only the fields sent are written
    """
    try:
        return await session.auth.update_user(changes)
    except (NoActiveSessionError, StoreError) as e:
        raise to_http_exception(e)


@router.post("/switch-role", response_model=AppUser)
async def switch_role(session: ViewerSession = Depends(get_viewer_session)):
    """
    Flip between creator and member (role and account type change together)
    """
    try:
        user = await session.auth.switch_role()
    except (NoActiveSessionError, StoreError) as e:
        raise to_http_exception(e)

    logger.info(f"AUTH: {user.email} switched role to {user.role.value}")
    return user
