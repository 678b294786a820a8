"""
Analytics service for the admin dashboard.

Provides:
- Site overview over a reporting period (7d, 30d, 90d, 1y)
- User growth time series, bucketed by day, ISO week or month
- Content engagement (posts, comments, likes) over a date range
"""

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, union
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .constants import DEFAULT_STATS_PERIOD, STATS_PERIODS
from .db_models import DBComment, DBEnvironmentVariable, DBLike, DBPost, DBReport, DBUser
from .models import PostStatus, ReportStatus

logger = logging.getLogger(__name__)

INTERVAL_FORMATS = {
    "day": "%Y-%m-%d",
    "week": "%G-W%V",
    "month": "%Y-%m",
}


def period_start(period: str, now: Optional[datetime] = None) -> datetime:
    """Start of a reporting period; unknown periods fall back to 30 days."""
    now = now or datetime.utcnow()
    days = STATS_PERIODS.get(period, STATS_PERIODS[DEFAULT_STATS_PERIOD])
    return now - timedelta(days=days)


def _ratio(numerator: int, denominator: int) -> float:
    return numerator / denominator if denominator else 0.0


class AnalyticsService:
    """Service for generating admin analytics."""

    def __init__(self, db: Session):
        self.db = db

    def _count(self, column, *criteria) -> int:
        return self.db.query(func.count(column)).filter(*criteria).scalar() or 0

    def get_user_growth(self, start: datetime, end: datetime, interval: str = "day") -> List[Dict[str, Any]]:
        """
        New users per period between start and end, oldest period first.

        Bucketing is done in Python so the same code runs on SQLite and Postgres.
        Returns an empty list if the database cannot be read.
        """
        date_format = INTERVAL_FORMATS.get(interval, INTERVAL_FORMATS["day"])

        try:
            joined = self.db.query(DBUser.created_at).filter(
                DBUser.created_at >= start,
                DBUser.created_at <= end,
            ).all()
        except SQLAlchemyError as e:
            logger.error(f"Error getting user growth analytics: {e}")
            return []

        buckets = Counter(created_at.strftime(date_format) for (created_at,) in joined)
        return [{"period": period, "new_users": count} for period, count in sorted(buckets.items())]

    def get_content_engagement(self, start: datetime, end: datetime) -> Dict[str, Any]:
        """Posts, comments and likes created between start and end, with likes per new post."""
        try:
            post_count = self._count(DBPost.id, DBPost.created_at >= start, DBPost.created_at <= end)
            comment_count = self._count(DBComment.id, DBComment.created_at >= start, DBComment.created_at <= end)
            like_count = self._count(DBLike.id, DBLike.created_at >= start, DBLike.created_at <= end)
            likes_on_new_posts = (
                self.db.query(func.count(DBLike.id))
                .join(DBPost, DBPost.id == DBLike.post_id)
                .filter(DBPost.created_at >= start, DBPost.created_at <= end)
                .scalar()
            ) or 0
        except SQLAlchemyError as e:
            logger.error(f"Error getting content engagement analytics: {e}")
            return {"post_count": 0, "comment_count": 0, "like_count": 0, "avg_likes_per_post": 0.0}

        return {
            "post_count": post_count,
            "comment_count": comment_count,
            "like_count": like_count,
            "avg_likes_per_post": _ratio(likes_on_new_posts, post_count),
        }

    def _active_users(self, start: datetime) -> int:
        """Distinct users who posted, commented or liked since start."""
        activity = union(
            select(DBPost.author_id.label("user_id")).where(DBPost.created_at >= start),
            select(DBComment.author_id.label("user_id")).where(DBComment.created_at >= start),
            select(DBLike.user_id.label("user_id")).where(DBLike.created_at >= start),
        ).subquery()
        return self.db.execute(select(func.count()).select_from(activity)).scalar() or 0

    def get_overview_stats(
        self,
        period: str = DEFAULT_STATS_PERIOD,
        interval: str = "day",
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Site totals plus what changed during the reporting period.

        Raises SQLAlchemyError; the admin router turns it into a 500.
        """
        now = now or datetime.utcnow()
        start = period_start(period, now)

        total_users = self._count(DBUser.id)
        total_posts = self._count(DBPost.id)
        total_comments = self._count(DBComment.id)
        total_likes = self._count(DBLike.id)
        new_users = self._count(DBUser.id, DBUser.created_at >= start)

        return {
            "period": period if period in STATS_PERIODS else DEFAULT_STATS_PERIOD,
            "total_users": total_users,
            "total_posts": total_posts,
            "flagged_posts": self._count(DBPost.id, DBPost.status == PostStatus.FLAGGED.value),
            "total_reports": self._count(DBReport.id),
            "pending_reports": self._count(DBReport.id, DBReport.status == ReportStatus.PENDING.value),
            "total_likes": total_likes,
            "total_comments": total_comments,
            "config_variables": self._count(DBEnvironmentVariable.id),
            "new_users": new_users,
            "active_users": self._active_users(start),
            "growth_rate": _ratio(new_users, total_users) * 100,
            "new_posts": self._count(DBPost.id, DBPost.created_at >= start),
            "new_comments": self._count(DBComment.id, DBComment.created_at >= start),
            "new_likes": self._count(DBLike.id, DBLike.created_at >= start),
            "likes_per_post": _ratio(total_likes, total_posts),
            "comments_per_post": _ratio(total_comments, total_posts),
            "user_growth": self.get_user_growth(start, now, interval),
            "engagement": self.get_content_engagement(start, now),
        }
