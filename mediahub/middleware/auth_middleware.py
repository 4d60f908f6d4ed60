"""
Authentication middleware for FastAPI
Resolves the opaque bearer token of a request to its viewer session
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import AsyncIterator, Optional
import logging

from mediahub.services.viewer_session import SessionRegistry, ViewerSession, session_registry

logger = logging.getLogger(__name__)

security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


def get_session_registry() -> SessionRegistry:
    return session_registry


async def get_viewer_session(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    registry: SessionRegistry = Depends(get_session_registry),
) -> ViewerSession:
    """
    Dependency to get the viewer session a bearer token belongs to
    """
    session = registry.get(credentials.credentials)
    if session is None:
        logger.warning("AUTH: Unknown or expired viewer session token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return session


async def get_optional_viewer_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
    registry: SessionRegistry = Depends(get_session_registry),
) -> AsyncIterator[ViewerSession]:
    """
    Optional authentication - the caller's session if the token is known,
    otherwise a throw-away anonymous session closed after the request
    """
    session = registry.get(credentials.credentials) if credentials else None
    if session is not None:
        yield session
        return

    async with registry.anonymous() as anonymous_session:
        yield anonymous_session
