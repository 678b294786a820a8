"""
Social graph and post operations.

Handles:
- Posts (with optional automatic moderation), feed, likes, comments, reports
- Friendships (stored as two directed rows)
- Recommendation cache invalidation when likes, friendships or a post's status change
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import config_store
from .content_moderation import ModerationResult, moderate_content
from .db_models import DBComment, DBFriend, DBLike, DBPost, DBReport, DBUser
from .exceptions import ContentRejectedError, InvalidOperationError, NotFoundError
from .models import PostAuthor, PostResponse, PostStatus, User, UserSummary
from .redis_client import invalidate_recommendations

logger = logging.getLogger(__name__)


# =============================================================================
# Helpers
# =============================================================================

def get_user_by_username(db: Session, username: str) -> DBUser:
    user = db.query(DBUser).filter(DBUser.username == username).first()
    if user is None:
        raise NotFoundError("User", username)
    return user


def friend_ids(db: Session, user_id: int) -> List[int]:
    return [fid for (fid,) in db.query(DBFriend.friend_id).filter(DBFriend.user_id == user_id).all()]


def _count_by_post(db: Session, column, post_ids: List[int]) -> Dict[int, int]:
    if not post_ids:
        return {}
    rows = db.query(column, func.count()).filter(column.in_(post_ids)).group_by(column).all()
    return dict(rows)


def serialize_posts(db: Session, posts: Iterable[DBPost], viewer_id: Optional[int] = None) -> List[dict]:
    """
    Render posts with author, like/comment counts and liked_by_me.

    Counts are fetched with one grouped query each instead of per post.
    """
    posts = list(posts)
    post_ids = [p.id for p in posts]

    likes = _count_by_post(db, DBLike.post_id, post_ids)
    comments = _count_by_post(db, DBComment.post_id, post_ids)
    liked = set()
    if viewer_id is not None and post_ids:
        liked = {
            pid for (pid,) in db.query(DBLike.post_id)
            .filter(DBLike.user_id == viewer_id, DBLike.post_id.in_(post_ids))
            .all()
        }

    return [
        PostResponse(
            id=post.id,
            content=post.content,
            status=PostStatus(post.status),
            created_at=post.created_at,
            author=PostAuthor.model_validate(post.author),
            likes_count=likes.get(post.id, 0),
            comments_count=comments.get(post.id, 0),
            liked_by_me=post.id in liked,
        ).model_dump(mode="json")
        for post in posts
    ]


def _invalidate_for(db: Session, *user_ids: int) -> None:
    """Drop cached recommendations for the users and everyone adjacent to them."""
    affected = set(user_ids)
    for user_id in user_ids:
        affected.update(friend_ids(db, user_id))
    for user_id in affected:
        invalidate_recommendations(user_id)


def _invalidate_post_audience(db: Session, post_id: int) -> None:
    """Drop cached post recommendations that could contain this post (its likers' friends)."""
    likers = [uid for (uid,) in db.query(DBLike.user_id).filter(DBLike.post_id == post_id).all()]
    if likers:
        _invalidate_for(db, *likers)


# =============================================================================
# Posts
# =============================================================================

async def create_post(db: Session, author: User, content: str) -> dict:
    """
    Create a post, moderating it first when CONTENT_MODERATION_ENABLED is on.

    Raises:
        ContentRejectedError: moderation rejected the content
    """
    status = PostStatus.APPROVED
    moderation = None

    if config_store.get_bool(db, "CONTENT_MODERATION_ENABLED", default=False):
        moderation = await moderate_content(db, content)
        if moderation.result == ModerationResult.REJECTED:
            logger.info(f"Post by {author.username} rejected: {moderation.categories}")
            raise ContentRejectedError(moderation.categories, moderation.explanation)
        if moderation.result == ModerationResult.FLAGGED:
            status = PostStatus.FLAGGED

    post = DBPost(author_id=author.id, content=content, status=status.value)
    db.add(post)
    db.flush()

    if status == PostStatus.FLAGGED:
        db.add(DBReport(
            post_id=post.id,
            reporter_id=None,
            reason=moderation.explanation or "Flagged by automatic moderation",
            categories=moderation.categories,
        ))

    db.commit()
    db.refresh(post)
    logger.info(f"Created post {post.id} by {author.username} ({status.value})")

    return serialize_posts(db, [post], viewer_id=author.id)[0]


def get_post(db: Session, post_id: int, viewer_id: Optional[int] = None) -> DBPost:
    """Fetch a post visible to the viewer (approved, or the viewer's own)."""
    post = db.query(DBPost).filter(DBPost.id == post_id).first()
    if post is None:
        raise NotFoundError("Post", post_id)
    if post.status != PostStatus.APPROVED.value and post.author_id != viewer_id:
        raise NotFoundError("Post", post_id)
    return post


def get_feed(db: Session, user: User, limit: int = 20, offset: int = 0) -> List[dict]:
    """Approved posts by the user and their friends, newest first."""
    authors = [user.id, *friend_ids(db, user.id)]
    posts = (
        db.query(DBPost)
        .filter(DBPost.author_id.in_(authors), DBPost.status == PostStatus.APPROVED.value)
        .order_by(DBPost.created_at.desc(), DBPost.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return serialize_posts(db, posts, viewer_id=user.id)


def like_post(db: Session, user: User, post_id: int) -> dict:
    """Like a post. Liking twice is a no-op."""
    get_post(db, post_id, viewer_id=user.id)

    exists = db.query(DBLike.id).filter(DBLike.user_id == user.id, DBLike.post_id == post_id).first()
    if exists is None:
        db.add(DBLike(user_id=user.id, post_id=post_id))
        try:
            db.commit()
        except IntegrityError:
            # concurrent duplicate like
            db.rollback()
        else:
            _invalidate_for(db, user.id)

    return _like_state(db, user, post_id)


def unlike_post(db: Session, user: User, post_id: int) -> dict:
    deleted = db.query(DBLike).filter(DBLike.user_id == user.id, DBLike.post_id == post_id).delete()
    db.commit()
    if deleted:
        _invalidate_for(db, user.id)
    return _like_state(db, user, post_id)


def _like_state(db: Session, user: User, post_id: int) -> dict:
    likes_count = db.query(func.count(DBLike.id)).filter(DBLike.post_id == post_id).scalar() or 0
    liked = db.query(DBLike.id).filter(DBLike.user_id == user.id, DBLike.post_id == post_id).first() is not None
    return {"post_id": post_id, "likes_count": likes_count, "liked_by_me": liked}


def add_comment(db: Session, user: User, post_id: int, content: str) -> DBComment:
    get_post(db, post_id, viewer_id=user.id)
    comment = DBComment(post_id=post_id, author_id=user.id, content=content)
    db.add(comment)
    db.commit()
    db.refresh(comment)
    return comment


def report_post(db: Session, user: User, post_id: int, reason: str) -> DBReport:
    """File a user report against a post."""
    get_post(db, post_id, viewer_id=user.id)
    report = DBReport(post_id=post_id, reporter_id=user.id, reason=reason)
    db.add(report)
    db.commit()
    db.refresh(report)
    logger.info(f"User {user.username} reported post {post_id}")
    return report


# =============================================================================
# Friendships
# =============================================================================

def are_friends(db: Session, user_id: int, other_id: int) -> bool:
    return db.query(DBFriend.id).filter(
        DBFriend.user_id == user_id, DBFriend.friend_id == other_id
    ).first() is not None


def add_friend(db: Session, user: User, username: str) -> DBUser:
    """Create a symmetric friendship. Adding an existing friend is a no-op."""
    other = get_user_by_username(db, username)
    if other.id == user.id:
        raise InvalidOperationError("You cannot add yourself as a friend")

    if not are_friends(db, user.id, other.id):
        db.add_all([
            DBFriend(user_id=user.id, friend_id=other.id),
            DBFriend(user_id=other.id, friend_id=user.id),
        ])
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
        else:
            logger.info(f"{user.username} and {other.username} are now friends")
            _invalidate_for(db, user.id, other.id)

    return other


def remove_friend(db: Session, user: User, username: str) -> bool:
    other = get_user_by_username(db, username)
    # invalidate before the edges disappear so both old neighbourhoods are covered
    _invalidate_for(db, user.id, other.id)

    deleted = db.query(DBFriend).filter(
        or_(
            (DBFriend.user_id == user.id) & (DBFriend.friend_id == other.id),
            (DBFriend.user_id == other.id) & (DBFriend.friend_id == user.id),
        )
    ).delete(synchronize_session=False)
    db.commit()
    return deleted > 0


def list_friends(db: Session, user: User) -> List[dict]:
    friends = (
        db.query(DBUser)
        .join(DBFriend, DBFriend.friend_id == DBUser.id)
        .filter(DBFriend.user_id == user.id)
        .order_by(DBUser.username)
        .all()
    )
    return [UserSummary.model_validate(f).model_dump(mode="json") for f in friends]


def resolve_report(db: Session, report_id: int, moderator: User, status: str, remove_post: bool = False) -> DBReport:
    """Close a moderation report, optionally taking the post down."""
    report = db.query(DBReport).filter(DBReport.id == report_id).first()
    if report is None:
        raise NotFoundError("Report", report_id)

    report.status = status
    report.resolved_at = datetime.utcnow()
    report.resolved_by = moderator.id

    status_changed = False
    if report.post_id is not None:
        post = db.query(DBPost).filter(DBPost.id == report.post_id).first()
        if post is not None:
            previous_status = post.status
            if remove_post:
                post.status = PostStatus.REJECTED.value
            elif post.status == PostStatus.FLAGGED.value:
                post.status = PostStatus.APPROVED.value
            status_changed = post.status != previous_status

    db.commit()
    db.refresh(report)
    if status_changed:
        _invalidate_post_audience(db, report.post_id)
    logger.info(f"Report {report_id} {status.lower()} by {moderator.username}")
    return report
