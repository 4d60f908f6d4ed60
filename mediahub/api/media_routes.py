"""
Media API routes
Categorized feeds enriched for the calling viewer, plus like / follow toggles
"""
from fastapi import APIRouter, Depends, Query
import logging

from mediahub.core.exceptions import (
    NotFoundException,
    ServiceUnavailableException,
    SessionExpiredException,
    SignInRequiredException,
    StoreError,
    ValidationException,
    to_http_exception,
)
from mediahub.middleware.auth_middleware import get_optional_viewer_session
from mediahub.models.media import (
    ALL_CATEGORIES,
    CATEGORIES,
    FeedItemResponse,
    FeedResponse,
    MediaType,
    ToggleOutcome,
    ToggleResponse,
    ToggleResult,
)
from mediahub.services.feed_service import filter_items, is_locked
from mediahub.services.viewer_session import ViewerSession

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/media", tags=["Media"])


def toggle_response(result: ToggleResult) -> ToggleResponse:
    if result.outcome == ToggleOutcome.APPLIED:
        return ToggleResponse(outcome=result.outcome, item=result.item)
    if result.outcome == ToggleOutcome.REAUTH_REQUIRED:
        raise SessionExpiredException(result.message)
    if result.outcome == ToggleOutcome.SIGN_IN_REQUIRED:
        raise SignInRequiredException(result.message)
    if result.outcome == ToggleOutcome.NOT_FOUND:
        raise NotFoundException(result.message)
    raise ServiceUnavailableException(result.message)


@router.get("/categories")
async def list_categories():
    """Categories offered on every tab"""
    return {
        "success": True,
        "categories": {tab.value: categories for tab, categories in CATEGORIES.items()},
    }


@router.get("/{tab}", response_model=FeedResponse)
async def get_feed(
    tab: MediaType,
    category: str = Query(ALL_CATEGORIES, description="Category of the tab, or 'all'"),
    q: str = Query("", description="Case-insensitive match on title, creator or description"),
    session: ViewerSession = Depends(get_optional_viewer_session),
):
    """
    Media of one tab, newest first

    Without a session token the feed is anonymous: like counts stay at 0 and
    nothing is liked or followed.
    """
    if category not in CATEGORIES[tab]:
        raise ValidationException(f"Unknown category '{category}' for tab '{tab.value}'")

    try:
        loaded = await session.show_feed(tab)
    except StoreError as e:
        raise to_http_exception(e)

    user = session.user
    items = [
        FeedItemResponse(**item.model_dump(), locked=is_locked(item, user))
        for item in filter_items(loaded, category, q)
    ]
    return FeedResponse(tab=tab, category=category, query=q, items=items, total_count=len(items))


@router.post("/{tab}/items/{item_id}/like", response_model=ToggleResponse)
async def toggle_like(
    tab: MediaType,
    item_id: str,
    session: ViewerSession = Depends(get_optional_viewer_session),
):
    """
    Like the item, or remove the like if the viewer already liked it
    """
    try:
        result = await session.toggle_like(tab, item_id)
    except StoreError as e:
        raise to_http_exception(e)
    return toggle_response(result)


@router.post("/{tab}/creators/{creator_name}/follow", response_model=ToggleResponse)
async def toggle_follow(
    tab: MediaType,
    creator_name: str,
    session: ViewerSession = Depends(get_optional_viewer_session),
):
    """
    Follow the creator, or unfollow if already followed
    """
    try:
        result = await session.toggle_follow(tab, creator_name)
    except StoreError as e:
        raise to_http_exception(e)
    return toggle_response(result)
