"""
Admin Router for the SocialNet backend.

Endpoints for moderators and administrators:
- GET /admin/stats - Site-wide counts, growth and engagement over a period
- GET /admin/reports - Moderation queue
- POST /admin/reports/{report_id}/resolve - Resolve or dismiss a report
"""

import logging
from typing import List, Literal, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import social_service
from ..analytics_service import AnalyticsService
from ..constants import DEFAULT_STATS_PERIOD
from ..database import get_db
from ..db_models import DBReport
from ..dependencies import require_staff
from ..exceptions import NotFoundError
from ..models import AdminStats, ReportResolution, ReportResponse, ReportStatus, User

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    responses={401: {"description": "Unauthorized"}, 403: {"description": "Forbidden"}},
)


@router.get("/stats", response_model=AdminStats)
async def get_stats(
    period: Literal["7d", "30d", "90d", "1y"] = Query(DEFAULT_STATS_PERIOD),
    interval: Literal["day", "week", "month"] = Query("day"),
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db),
):
    """
    Site totals plus growth and engagement over the period.

    Raises:
        HTTPException 500: Database error
    """
    try:
        return AnalyticsService(db).get_overview_stats(period=period, interval=interval)
    except SQLAlchemyError as e:
        logger.error(f"Error fetching admin stats: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch admin stats")


@router.get("/reports", response_model=List[ReportResponse])
async def list_reports(
    report_status: Optional[ReportStatus] = Query(ReportStatus.PENDING, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db),
):
    """Reports, oldest first, so the queue is worked in arrival order."""
    query = db.query(DBReport)
    if report_status is not None:
        query = query.filter(DBReport.status == report_status.value)
    return query.order_by(DBReport.created_at.asc(), DBReport.id.asc()).limit(limit).all()


@router.post("/reports/{report_id}/resolve", response_model=ReportResponse)
async def resolve_report(
    report_id: int,
    resolution: ReportResolution,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db),
):
    """
    Close a report.

    remove_post=true takes the post down; otherwise a post held as FLAGGED is approved.
    """
    if resolution.status == ReportStatus.PENDING:
        raise HTTPException(status_code=400, detail="Resolution status must be RESOLVED or DISMISSED")

    try:
        return social_service.resolve_report(
            db, report_id, current_user, resolution.status.value, remove_post=resolution.remove_post
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
