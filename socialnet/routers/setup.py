"""
Setup Router for the SocialNet backend.

Endpoints:
- GET /setup/status - Whether first-run setup has been completed
- POST /setup/complete - Create the admin account and initial configuration
"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Request, status
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..exceptions import ConfigStoreError, InvalidOperationError, SetupAlreadyCompleteError
from ..models import SetupRequest, SetupStatus, User, UserRole
from ..setup_service import complete_setup, is_setup_complete

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)

SETUP_RATE_LIMIT = "1000/minute" if settings.testing else "5/minute"

router = APIRouter(prefix="/setup", tags=["setup"])


@router.get("/status", response_model=SetupStatus)
async def setup_status(db: Session = Depends(get_db)):
    return SetupStatus(setup_complete=is_setup_complete(db))


@router.post("/complete", status_code=status.HTTP_201_CREATED)
@limiter.limit(SETUP_RATE_LIMIT)
async def run_setup(
    request: Request,
    setup_request: SetupRequest,
    db: Session = Depends(get_db),
):
    """
    Complete first-run setup. Only succeeds once.

    Raises:
        HTTPException 409: Setup has already been completed
        HTTPException 400: Admin username or email already in use
    """
    try:
        admin = complete_setup(db, setup_request)
    except SetupAlreadyCompleteError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except InvalidOperationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ConfigStoreError as e:
        logger.error(f"Setup failed: {e}")
        raise HTTPException(status_code=500, detail="Setup failed while saving configuration")

    return {
        "success": True,
        "admin": User(id=admin.id, username=admin.username, role=UserRole(admin.role)).model_dump(mode="json"),
    }
