"""
Celery Background Tasks for the SocialNet backend.

- refresh_user_recommendations: drop and recompute a user's cached
  recommendations so the next request is served warm
- ensure_default_config: seed any default configuration keys that are missing
"""

import logging

from .celery_app import celery_app
from . import config_store
from .database import get_db_context
from .recommendation import get_recommended_posts, get_recommended_users, invalidate_recommendations

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="socialnet.tasks.refresh_user_recommendations", max_retries=3)
def refresh_user_recommendations(self, user_id: int) -> dict:
    """
    Recompute both recommendation lists for a user.

    Returns:
        Counts of recommended users and posts now cached
    """
    invalidate_recommendations(user_id)

    with get_db_context() as db:
        users = get_recommended_users(db, user_id)
        posts = get_recommended_posts(db, user_id)

    logger.info(f"Refreshed recommendations for user {user_id}: {len(users)} users, {len(posts)} posts")
    return {"user_id": user_id, "users": len(users), "posts": len(posts)}


@celery_app.task(bind=True, name="socialnet.tasks.ensure_default_config")
def ensure_default_config(self) -> dict:
    with get_db_context() as db:
        created = config_store.initialize_default_env_variables(db)
    return {"created": created}
