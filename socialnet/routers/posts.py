"""
Posts Router for the SocialNet backend.

Endpoints:
- POST /posts - Create a post (moderated when CONTENT_MODERATION_ENABLED)
- GET /posts - Feed of the user's and friends' approved posts
- GET /posts/{post_id} - Single post
- GET /posts/{post_id}/insights - AI summary and detected language
- POST/DELETE /posts/{post_id}/like - Like / unlike
- POST /posts/{post_id}/comments - Comment on a post
- POST /posts/{post_id}/report - Report a post to moderators
"""

import logging
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from .. import social_service
from ..config import settings
from ..content_moderation import detect_content_language, generate_content_summary
from ..constants import DEFAULT_FEED_LIMIT, MAX_FEED_LIMIT, MAX_COMMENT_LENGTH
from ..database import get_db
from ..dependencies import get_current_user
from ..exceptions import ContentRejectedError, NotFoundError
from ..models import (
    CommentCreate,
    CommentResponse,
    PostCreate,
    PostInsights,
    PostResponse,
    ReportCreate,
    ReportResponse,
    User,
)
from ..sanitization import sanitize_text_content

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)

POST_RATE_LIMIT = "1000/minute" if settings.testing else "30/minute"
INSIGHTS_RATE_LIMIT = "1000/minute" if settings.testing else "10/minute"

router = APIRouter(
    prefix="/posts",
    tags=["posts"],
    responses={401: {"description": "Unauthorized"}, 404: {"description": "Post not found"}},
)


@router.post("", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(POST_RATE_LIMIT)
async def create_post(
    request: Request,
    post: PostCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create a post.

    Raises:
        HTTPException 400: Content is empty or was rejected by moderation
    """
    content = sanitize_text_content(post.content)
    try:
        return await social_service.create_post(db, current_user, content)
    except ContentRejectedError as e:
        raise HTTPException(
            status_code=400,
            detail={"message": "Content rejected by moderation", "categories": e.categories},
        )


@router.get("", response_model=List[PostResponse])
async def get_feed(
    limit: int = Query(DEFAULT_FEED_LIMIT, ge=1, le=MAX_FEED_LIMIT),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return social_service.get_feed(db, current_user, limit=limit, offset=offset)


@router.get("/{post_id}", response_model=PostResponse)
async def get_post(
    post_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        post = social_service.get_post(db, post_id, viewer_id=current_user.id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return social_service.serialize_posts(db, [post], viewer_id=current_user.id)[0]


@router.get("/{post_id}/insights", response_model=PostInsights)
@limiter.limit(INSIGHTS_RATE_LIMIT)
async def get_post_insights(
    request: Request,
    post_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Short AI summary and detected language of a post.

    Falls back to "Summary unavailable" / "en" when the AI service can't be reached.
    """
    try:
        post = social_service.get_post(db, post_id, viewer_id=current_user.id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return PostInsights(
        post_id=post.id,
        summary=await generate_content_summary(db, post.content),
        language=await detect_content_language(db, post.content),
    )

# =============================================================================
# Likes
# =============================================================================

@router.post("/{post_id}/like")
async def like_post(
    post_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        return social_service.like_post(db, current_user, post_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.delete("/{post_id}/like")
async def unlike_post(
    post_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return social_service.unlike_post(db, current_user, post_id)

# =============================================================================
# Comments & Reports
# =============================================================================

@router.post("/{post_id}/comments", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(POST_RATE_LIMIT)
async def add_comment(
    request: Request,
    post_id: int,
    comment: CommentCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    content = sanitize_text_content(comment.content, max_length=MAX_COMMENT_LENGTH)
    try:
        return social_service.add_comment(db, current_user, post_id, content)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{post_id}/report", response_model=ReportResponse, status_code=status.HTTP_201_CREATED)
async def report_post(
    post_id: int,
    report: ReportCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        return social_service.report_post(db, current_user, post_id, report.reason.strip())
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
