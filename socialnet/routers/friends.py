"""
Friends Router for the SocialNet backend.

Endpoints:
- GET /friends - List the current user's friends
- POST /friends/{username} - Add a friend (symmetric)
- DELETE /friends/{username} - Remove a friend
"""

import logging
from typing import List
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .. import social_service
from ..database import get_db
from ..dependencies import get_current_user
from ..exceptions import InvalidOperationError, NotFoundError
from ..models import User, UserSummary
from ..sanitization import sanitize_username

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/friends",
    tags=["friends"],
    responses={401: {"description": "Unauthorized"}},
)


@router.get("", response_model=List[UserSummary])
async def list_friends(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return social_service.list_friends(db, current_user)


@router.post("/{username}", response_model=UserSummary)
async def add_friend(
    username: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Add a friend.

    Raises:
        HTTPException 404: No such user
        HTTPException 400: Befriending yourself
    """
    username = sanitize_username(username)
    try:
        friend = social_service.add_friend(db, current_user, username)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidOperationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return UserSummary.model_validate(friend)


@router.delete("/{username}")
async def remove_friend(
    username: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    username = sanitize_username(username)
    try:
        removed = social_service.remove_friend(db, current_user, username)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"removed": removed}
