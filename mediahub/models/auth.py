"""
Authentication models for viewer sessions and profiles
"""
from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from typing import Optional
from datetime import datetime
from enum import Enum


class Tier(str, Enum):
    """Loyalty tiers, each unlocked at a loyalty-point threshold"""
    FREE = "free"
    PREMIUM = "premium"
    PROFESSIONAL = "professional"
    ELITE = "elite"

    @property
    def threshold(self) -> int:
        return TIER_POINTS[self]


TIER_POINTS = {
    Tier.FREE: 0,
    Tier.PREMIUM: 1000,
    Tier.PROFESSIONAL: 5000,
    Tier.ELITE: 20000,
}


def tier_for_points(points: int) -> Tier:
    """Highest tier whose threshold the given loyalty points reach"""
    reached = [tier for tier, threshold in TIER_POINTS.items() if points >= threshold]
    return max(reached, key=lambda tier: tier.threshold) if reached else Tier.FREE


class AccountRole(str, Enum):
    """Account type / role (the two columns always move together)"""
    CREATOR = "creator"
    MEMBER = "member"

    def flipped(self) -> "AccountRole":
        return AccountRole.MEMBER if self == AccountRole.CREATOR else AccountRole.CREATOR


class AuthEvent(str, Enum):
    """Session lifecycle events emitted by the auth provider"""
    SIGNED_IN = "SIGNED_IN"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    TOKEN_REFRESH_FAILED = "TOKEN_REFRESH_FAILED"
    USER_UPDATED = "USER_UPDATED"
    SIGNED_OUT = "SIGNED_OUT"
    USER_DELETED = "USER_DELETED"


class AuthStatus(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    LOADING = "loading"
    AUTHENTICATED = "authenticated"


class Profile(BaseModel):
    """Row of the profiles table"""
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    tier: Tier = Tier.FREE
    loyalty_points: int = Field(0, ge=0)
    profile_image: Optional[str] = None
    account_type: AccountRole = AccountRole.CREATOR
    role: AccountRole = AccountRole.CREATOR
    is_verified: bool = False
    joined_date: Optional[datetime] = None


class AppUser(Profile):
    """Profile merged with the email of the auth session"""
    email: str


class SessionUser(BaseModel):
    id: str
    email: Optional[str] = None


class AuthSession(BaseModel):
    """Provider session record - only what the application reads from it"""
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    user: SessionUser


class SessionState(BaseModel):
    """Immutable snapshot held by the session store"""
    model_config = ConfigDict(frozen=True)

    status: AuthStatus = AuthStatus.LOADING
    user: Optional[AppUser] = None
    session: Optional[AuthSession] = None
    version: int = 0

    @property
    def is_authenticated(self) -> bool:
        return self.status == AuthStatus.AUTHENTICATED and self.user is not None

    @property
    def is_loading(self) -> bool:
        return self.status == AuthStatus.LOADING


class SignInRequest(BaseModel):
    """Sign-in request model"""
    email: EmailStr
    password: str


class SignUpRequest(BaseModel):
    """Sign-up request model"""
    email: EmailStr
    password: str = Field(..., min_length=6)
    name: str = Field(..., min_length=1)
    account_type: AccountRole = AccountRole.CREATOR


class ProfileUpdate(BaseModel):
    """Partial profile update - only the fields that are set get written"""
    name: Optional[str] = None
    profile_image: Optional[str] = None
    account_type: Optional[AccountRole] = None
    role: Optional[AccountRole] = None

    @model_validator(mode="after")
    def keep_role_and_account_type_linked(self) -> "ProfileUpdate":
        if self.role and self.account_type and self.role != self.account_type:
            raise ValueError("role and account_type must match")
        linked = self.role or self.account_type
        if linked is not None:
            self.role = linked
            self.account_type = linked
        return self

    def changes(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


class SessionResponse(BaseModel):
    """Returned on sign-in / sign-up"""
    session_token: Optional[str] = None
    token_type: str = "bearer"
    user: Optional[AppUser] = None
    email_confirmation_required: bool = False


class ViewerStateResponse(BaseModel):
    """Current session state of the calling viewer"""
    status: AuthStatus
    user: Optional[AppUser] = None
    version: int = 0
