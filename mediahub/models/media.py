"""
Media feed models - persisted media rows, per-viewer enrichment and toggle results
"""
from pydantic import BaseModel, ConfigDict
from typing import Optional, List, Dict
from datetime import datetime
from enum import Enum


class MediaType(str, Enum):
    """Feed tabs (media_content.type)"""
    STREAM = "stream"
    LISTEN = "listen"
    BLOG = "blog"
    GALLERY = "gallery"
    RESOURCES = "resources"


ALL_CATEGORIES = "all"

CATEGORIES: Dict[MediaType, List[str]] = {
    MediaType.STREAM: [ALL_CATEGORIES, "movie", "music-video", "documentaries", "lifestyle", "Go Live"],
    MediaType.LISTEN: [
        ALL_CATEGORIES, "greatest-of-all-time", "latest-release", "new-talent", "DJ-mixtapes",
        "UG-Unscripted", "Afrobeat", "hip-hop", "RnB", "Others",
    ],
    MediaType.BLOG: [ALL_CATEGORIES, "interviews", "lifestyle", "product-reviews", "others"],
    MediaType.GALLERY: [ALL_CATEGORIES, "design", "photography", "art", "others"],
    MediaType.RESOURCES: [ALL_CATEGORIES, "templates", "ebooks", "software", "presets"],
}


class MediaItem(BaseModel):
    """Row of the media_content table"""
    model_config = ConfigDict(extra="ignore")

    id: str
    title: str
    creator_name: str
    creator_id: Optional[str] = None
    thumbnail_url: Optional[str] = None
    content_url: Optional[str] = None
    duration: Optional[str] = None
    read_time: Optional[str] = None
    category: str
    type: MediaType
    content_type: str
    description: Optional[str] = None
    price: Optional[int] = None
    rating: float = 0
    is_premium: bool = False
    views_count: int = 0
    plays_count: int = 0
    sales_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class EnrichedMediaItem(MediaItem):
    """Media row joined with the viewer-specific social fields (never written back)"""
    likes_count: int = 0
    is_liked: bool = False
    is_following: bool = False


class ToggleOutcome(str, Enum):
    APPLIED = "applied"
    REAUTH_REQUIRED = "reauth_required"
    FAILED = "failed"
    SIGN_IN_REQUIRED = "sign_in_required"
    NOT_FOUND = "not_found"


class ToggleResult(BaseModel):
    outcome: ToggleOutcome
    item: Optional[EnrichedMediaItem] = None
    message: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.outcome == ToggleOutcome.APPLIED


class FeedItemResponse(EnrichedMediaItem):
    """Feed item as served to the client"""
    locked: bool = False


class FeedResponse(BaseModel):
    success: bool = True
    tab: MediaType
    category: str = ALL_CATEGORIES
    query: str = ""
    items: List[FeedItemResponse]
    total_count: int


class ToggleResponse(BaseModel):
    success: bool = True
    outcome: ToggleOutcome
    item: Optional[EnrichedMediaItem] = None
