"""Data models and schemas for the SocialNet API."""

from enum import Enum
from pydantic import BaseModel, Field, EmailStr, ConfigDict
from typing import Dict, List, Optional
from datetime import datetime

from .constants import (
    CONFIG_KEY_PATTERN,
    MIN_USERNAME_LENGTH,
    MAX_USERNAME_LENGTH,
    MIN_PASSWORD_LENGTH,
    MAX_POST_LENGTH,
    MAX_COMMENT_LENGTH,
    MAX_CONFIG_VALUE_LENGTH,
)


# =============================================================================
# Enums
# =============================================================================

class UserRole(str, Enum):
    ADMIN = "ADMIN"
    MODERATOR = "MODERATOR"
    USER = "USER"


class PostStatus(str, Enum):
    APPROVED = "APPROVED"
    FLAGGED = "FLAGGED"
    REJECTED = "REJECTED"


class ReportStatus(str, Enum):
    PENDING = "PENDING"
    RESOLVED = "RESOLVED"
    DISMISSED = "DISMISSED"


# =============================================================================
# Authentication Models
# =============================================================================

class UserCreate(BaseModel):
    """Schema for creating a new user."""
    username: str = Field(..., min_length=MIN_USERNAME_LENGTH, max_length=MAX_USERNAME_LENGTH)
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)
    email: Optional[EmailStr] = None
    name: Optional[str] = Field(None, max_length=255)


class UserLogin(BaseModel):
    """Schema for user login."""
    username: str
    password: str


class Token(BaseModel):
    """JWT token response."""
    access_token: str
    token_type: str = "bearer"


class User(BaseModel):
    """Authenticated user as seen by route handlers."""
    id: int
    username: str
    role: UserRole = UserRole.USER


class UserSummary(BaseModel):
    """Public profile fields shown in lists and recommendations."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    name: Optional[str] = None
    avatar: Optional[str] = None
    bio: Optional[str] = None


class UserProfile(UserSummary):
    email: Optional[str] = None
    role: UserRole
    is_verified: bool = False
    created_at: datetime


# =============================================================================
# Posts
# =============================================================================

class PostCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=MAX_POST_LENGTH)


class PostAuthor(UserSummary):
    is_verified: bool = False


class PostResponse(BaseModel):
    id: int
    content: str
    status: PostStatus
    created_at: datetime
    author: PostAuthor
    likes_count: int = 0
    comments_count: int = 0
    liked_by_me: bool = False


class PostInsights(BaseModel):
    post_id: int
    summary: str
    language: str


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=MAX_COMMENT_LENGTH)


class CommentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    post_id: int
    author_id: int
    content: str
    created_at: datetime


class ReportCreate(BaseModel):
    reason: str = Field(..., min_length=1, max_length=MAX_COMMENT_LENGTH)


# =============================================================================
# Dynamic Configuration
# =============================================================================

class EnvVariableIn(BaseModel):
    """Create/update request for a configuration variable."""
    model_config = ConfigDict(populate_by_name=True)

    key: str = Field(
        ...,
        min_length=1,
        pattern=CONFIG_KEY_PATTERN,
        description="Uppercase letters, numbers and underscores only",
    )
    value: str = Field(..., max_length=MAX_CONFIG_VALUE_LENGTH)
    description: Optional[str] = None
    is_secret: Optional[bool] = Field(None, alias="isSecret")
    category: Optional[str] = None


class EnvVariableOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    key: str
    value: str
    description: Optional[str] = None
    is_secret: bool
    category: str


class FeatureFlag(BaseModel):
    key: str
    enabled: bool
    description: Optional[str] = None


class FeatureFlagUpdate(BaseModel):
    key: str = Field(..., pattern=CONFIG_KEY_PATTERN)
    enabled: bool


class FeatureFlagsUpdate(BaseModel):
    features: List[FeatureFlagUpdate]


class BulkSettingItem(BaseModel):
    key: str = Field(..., min_length=1, pattern=CONFIG_KEY_PATTERN)
    value: str = Field(..., max_length=MAX_CONFIG_VALUE_LENGTH)
    category: Optional[str] = None


class BulkUpdateRequest(BaseModel):
    settings: List[BulkSettingItem]


class ImportRequest(BaseModel):
    content: str = Field(..., min_length=1)


class ImportResponse(BaseModel):
    success: bool
    imported: int
    errors: List[str]


class AuditLogEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    action: str
    entity_type: str
    entity_id: str
    previous_value: Optional[str] = None
    new_value: Optional[str] = None
    user_id: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    timestamp: datetime


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class AuditLogPage(BaseModel):
    audit_logs: List[AuditLogEntry]
    pagination: Pagination


# =============================================================================
# Admin
# =============================================================================

class ReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    post_id: Optional[int] = None
    reporter_id: Optional[int] = None
    reason: str
    categories: Optional[List[str]] = None
    status: ReportStatus
    created_at: datetime
    resolved_at: Optional[datetime] = None


class ReportResolution(BaseModel):
    status: ReportStatus = ReportStatus.RESOLVED
    remove_post: bool = Field(False, description="Mark the reported post as REJECTED")


class GrowthPoint(BaseModel):
    period: str
    new_users: int


class EngagementStats(BaseModel):
    post_count: int
    comment_count: int
    like_count: int
    avg_likes_per_post: float


class AdminStats(BaseModel):
    """Site totals plus activity over the reporting period (7d, 30d, 90d or 1y)."""
    period: str
    total_users: int
    total_posts: int
    flagged_posts: int
    total_reports: int
    pending_reports: int
    total_likes: int
    total_comments: int
    config_variables: int
    new_users: int
    active_users: int
    growth_rate: float
    new_posts: int
    new_comments: int
    new_likes: int
    likes_per_post: float
    comments_per_post: float
    user_growth: List[GrowthPoint] = []
    engagement: EngagementStats


# =============================================================================
# Setup
# =============================================================================

class SetupStatus(BaseModel):
    setup_complete: bool


class SetupAdmin(BaseModel):
    username: str = Field(..., min_length=MIN_USERNAME_LENGTH, max_length=MAX_USERNAME_LENGTH)
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)
    email: EmailStr
    name: Optional[str] = None


class SetupSite(BaseModel):
    site_name: str = Field("SocialNet", min_length=1)
    site_url: str = "http://localhost:3000"
    allow_registration: bool = True


class SetupRequest(BaseModel):
    admin: SetupAdmin
    site: SetupSite = Field(default_factory=SetupSite)
    features: Dict[str, bool] = Field(default_factory=dict)
