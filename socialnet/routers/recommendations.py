"""
Recommendations Router for the SocialNet backend.

Endpoints:
- GET /recommendations/users - People you may know
- GET /recommendations/posts - Posts you may like
"""

from typing import List
from fastapi import APIRouter, Depends, Query, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from ..config import settings
from ..constants import DEFAULT_RECOMMENDED_USERS, DEFAULT_RECOMMENDED_POSTS, MAX_RECOMMENDATIONS
from ..database import get_db
from ..dependencies import get_current_user
from ..models import PostResponse, User, UserSummary
from ..recommendation import get_recommended_posts, get_recommended_users

limiter = Limiter(key_func=get_remote_address)

RECOMMENDATION_RATE_LIMIT = "1000/minute" if settings.testing else "60/minute"

router = APIRouter(
    prefix="/recommendations",
    tags=["recommendations"],
    responses={401: {"description": "Unauthorized"}},
)


@router.get("/users", response_model=List[UserSummary])
@limiter.limit(RECOMMENDATION_RATE_LIMIT)
async def recommended_users(
    request: Request,
    limit: int = Query(DEFAULT_RECOMMENDED_USERS, ge=1, le=MAX_RECOMMENDATIONS),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Friends of friends ranked by similarity of liked posts."""
    return get_recommended_users(db, current_user.id, limit=limit)


@router.get("/posts", response_model=List[PostResponse])
@limiter.limit(RECOMMENDATION_RATE_LIMIT)
async def recommended_posts(
    request: Request,
    limit: int = Query(DEFAULT_RECOMMENDED_POSTS, ge=1, le=MAX_RECOMMENDATIONS),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Approved posts the user's friends liked, most-liked first."""
    return get_recommended_posts(db, current_user.id, limit=limit)
