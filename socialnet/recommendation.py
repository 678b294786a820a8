"""
Friend and post recommendations.

People you may know:
    Candidates are friends of friends. Each is scored by the Jaccard
    similarity of the posts the two users liked (|A ∩ B| / |A ∪ B|), ties
    broken by number of mutual friends.

Posts you may like:
    Approved posts liked by the user's friends that the user hasn't liked,
    ranked by how many friends liked them.

Both lists are cached in Redis per user and invalidated when the user's
likes or friendships change, or when a post they could contain changes status.
"""

import logging
from collections import Counter
from typing import Dict, Iterable, List, Set

from sqlalchemy import func, distinct
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import settings
from .constants import MAX_RECOMMENDATIONS, DEFAULT_RECOMMENDED_USERS, DEFAULT_RECOMMENDED_POSTS
from .db_models import DBFriend, DBLike, DBPost, DBUser
from .models import PostStatus, UserSummary
from .redis_client import (
    get_cache,
    set_cache,
    recommended_users_key,
    recommended_posts_key,
    invalidate_recommendations,
)
from .social_service import serialize_posts

logger = logging.getLogger(__name__)

__all__ = [
    "jaccard_similarity",
    "calculate_user_similarity",
    "get_recommended_users",
    "get_recommended_posts",
    "invalidate_recommendations",
]


# =============================================================================
# Similarity
# =============================================================================

def jaccard_similarity(a: Iterable, b: Iterable) -> float:
    """Intersection over union of two collections; 0.0 when both are empty."""
    set_a, set_b = set(a), set(b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


def _liked_post_ids(db: Session, user_ids: Iterable[int]) -> Dict[int, Set[int]]:
    """Liked post ids per user, fetched in one query."""
    user_ids = list(user_ids)
    likes: Dict[int, Set[int]] = {user_id: set() for user_id in user_ids}
    if not user_ids:
        return likes

    rows = db.query(DBLike.user_id, DBLike.post_id).filter(DBLike.user_id.in_(user_ids)).all()
    for user_id, post_id in rows:
        likes[user_id].add(post_id)
    return likes


def _friend_ids(db: Session, user_id: int) -> Set[int]:
    return {friend_id for (friend_id,) in db.query(DBFriend.friend_id).filter(DBFriend.user_id == user_id).all()}


def calculate_user_similarity(db: Session, user_id: int, other_user_id: int) -> float:
    """Jaccard similarity of the two users' liked posts."""
    likes = _liked_post_ids(db, [user_id, other_user_id])
    return jaccard_similarity(likes[user_id], likes[other_user_id])


# =============================================================================
# People You May Know
# =============================================================================

def _rank_users(db: Session, user_id: int) -> List[dict]:
    friend_ids = _friend_ids(db, user_id)
    if not friend_ids:
        return []

    rows = (
        db.query(DBFriend.friend_id)
        .filter(
            DBFriend.user_id.in_(friend_ids),
            DBFriend.friend_id != user_id,
            DBFriend.friend_id.notin_(friend_ids),
        )
        .all()
    )
    mutual_friends = Counter(candidate_id for (candidate_id,) in rows)
    if not mutual_friends:
        return []

    likes = _liked_post_ids(db, [user_id, *mutual_friends])
    candidates = db.query(DBUser).filter(DBUser.id.in_(mutual_friends.keys())).all()

    scored = [
        (jaccard_similarity(likes[user_id], likes[candidate.id]), mutual_friends[candidate.id], candidate)
        for candidate in candidates
    ]
    scored.sort(key=lambda item: (-item[0], -item[1], item[2].username))

    return [
        UserSummary.model_validate(candidate).model_dump(mode="json")
        for _, _, candidate in scored[:MAX_RECOMMENDATIONS]
    ]


def get_recommended_users(db: Session, user_id: int, limit: int = DEFAULT_RECOMMENDED_USERS) -> List[dict]:
    """
    Suggest friends of friends, most similar taste first.

    Returns public user summaries (id, username, name, avatar, bio).
    """
    cache_key = recommended_users_key(user_id)
    cached = get_cache(cache_key)
    if cached is not None:
        return cached[:limit]

    try:
        ranked = _rank_users(db, user_id)
    except SQLAlchemyError as e:
        logger.error(f"Error getting recommended users for {user_id}: {e}")
        return []

    set_cache(cache_key, ranked, ttl=settings.recommended_users_cache_ttl)
    return ranked[:limit]


# =============================================================================
# Posts You May Like
# =============================================================================

def _rank_posts(db: Session, user_id: int) -> List[dict]:
    friend_ids = _friend_ids(db, user_id)
    if not friend_ids:
        return []

    liked_by_user = _liked_post_ids(db, [user_id])[user_id]

    query = (
        db.query(DBLike.post_id, func.count(distinct(DBLike.user_id)).label("friend_likes"))
        .join(DBPost, DBPost.id == DBLike.post_id)
        .filter(
            DBLike.user_id.in_(friend_ids),
            DBPost.status == PostStatus.APPROVED.value,
            DBPost.author_id != user_id,
        )
    )
    if liked_by_user:
        query = query.filter(DBLike.post_id.notin_(liked_by_user))

    friend_likes = dict(query.group_by(DBLike.post_id).all())
    if not friend_likes:
        return []

    posts = db.query(DBPost).filter(DBPost.id.in_(friend_likes.keys())).all()
    posts.sort(key=lambda p: (-friend_likes[p.id], -p.created_at.timestamp(), -p.id))

    return serialize_posts(db, posts[:MAX_RECOMMENDATIONS], viewer_id=user_id)


def _still_approved(db: Session, posts: List[dict]) -> List[dict]:
    """Drop cached posts that have since been taken down or held for review."""
    post_ids = [post["id"] for post in posts]
    if not post_ids:
        return posts
    approved = {
        post_id for (post_id,) in db.query(DBPost.id)
        .filter(DBPost.id.in_(post_ids), DBPost.status == PostStatus.APPROVED.value)
        .all()
    }
    return [post for post in posts if post["id"] in approved]


def get_recommended_posts(db: Session, user_id: int, limit: int = DEFAULT_RECOMMENDED_POSTS) -> List[dict]:
    """
    Suggest posts the user's friends liked.

    Each item carries the author summary, likes_count and comments_count.
    """
    cache_key = recommended_posts_key(user_id)
    cached = get_cache(cache_key)
    if cached is not None:
        try:
            return _still_approved(db, cached)[:limit]
        except SQLAlchemyError as e:
            logger.error(f"Error checking cached recommended posts for {user_id}: {e}")
            return []

    try:
        ranked = _rank_posts(db, user_id)
    except SQLAlchemyError as e:
        logger.error(f"Error getting recommended posts for {user_id}: {e}")
        return []

    set_cache(cache_key, ranked, ttl=settings.recommended_posts_cache_ttl)
    return ranked[:limit]
