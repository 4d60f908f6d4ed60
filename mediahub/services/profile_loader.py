"""
Profile Loader - profiles row merged with the session email
"""
import logging
from typing import Optional

from pydantic import ValidationError

from mediahub.core.exceptions import StoreError
from mediahub.database.base import MediaStore
from mediahub.models.auth import AppUser

logger = logging.getLogger(__name__)


class ProfileLoader:
    def __init__(self, store: MediaStore):
        self.store = store

    async def load(self, user_id: str, email: str) -> Optional[AppUser]:
        """Fetch the profile for user_id; None when missing or on any store error"""
        try:
            profile = await self.store.fetch_profile(user_id)
        except StoreError as e:
            logger.error(f"Error fetching profile {user_id}: {e}")
            return None

        if not profile:
            return None

        try:
            return AppUser(**{**profile, "email": email})
        except ValidationError as e:
            logger.error(f"Error in profile row {user_id}: {e}")
            return None
