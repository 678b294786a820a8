"""
Authentication Router for the SocialNet backend.

Endpoints:
- POST /users - Register new user (when ENABLE_REGISTRATION is on)
- POST /token - Login and get JWT token
- GET /me - Current user's profile
"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Request, status
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from .. import config_store
from ..auth import hash_password, verify_password, create_access_token
from ..config import settings
from ..database import get_db
from ..db_models import DBUser
from ..dependencies import get_current_user
from ..models import User, UserCreate, UserLogin, UserProfile, UserRole, Token
from ..sanitization import sanitize_username

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)

REGISTER_RATE_LIMIT = "1000/minute" if settings.testing else "3/minute"
LOGIN_RATE_LIMIT = "1000/minute" if settings.testing else "5/minute"

router = APIRouter(
    prefix="",
    tags=["authentication"],
    responses={401: {"description": "Unauthorized"}},
)

# =============================================================================
# Registration Endpoint
# =============================================================================

@router.post("/users", response_model=User, status_code=status.HTTP_201_CREATED)
@limiter.limit(REGISTER_RATE_LIMIT)
async def create_user(
    request: Request,
    user_create: UserCreate,
    db: Session = Depends(get_db),
) -> User:
    """
    Register new user.

    Rate limited to 3 attempts per minute in production (1000/min in tests).

    Raises:
        HTTPException 403: Registration is disabled in the configuration store
        HTTPException 400: Username or email already in use, or username invalid
    """
    if not config_store.get_bool(db, "ENABLE_REGISTRATION", default=True):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Registration is currently disabled")

    username = sanitize_username(user_create.username)

    if db.query(DBUser.id).filter(DBUser.username == username).first():
        raise HTTPException(status_code=400, detail="Username already exists")
    if user_create.email and db.query(DBUser.id).filter(DBUser.email == user_create.email).first():
        raise HTTPException(status_code=400, detail="Email already registered")

    db_user = DBUser(
        username=username,
        email=user_create.email,
        name=user_create.name or username,
        hashed_password=hash_password(user_create.password),
        role=UserRole.USER.value,
    )
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    logger.info(f"Created user: {username}")

    return User(id=db_user.id, username=db_user.username, role=UserRole(db_user.role))

# =============================================================================
# Login Endpoint
# =============================================================================

@router.post("/token", response_model=Token)
@limiter.limit(LOGIN_RATE_LIMIT)
async def login(
    request: Request,
    user_login: UserLogin,
    db: Session = Depends(get_db),
) -> Token:
    """
    Login and get JWT token.

    Raises:
        HTTPException 401: If credentials are invalid
    """
    username = sanitize_username(user_login.username)
    db_user = db.query(DBUser).filter(DBUser.username == username).first()

    if not db_user or not verify_password(user_login.password, db_user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password"
        )

    access_token = create_access_token(data={"sub": username})
    return Token(access_token=access_token)


@router.get("/me", response_model=UserProfile)
async def read_me(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    db_user = db.query(DBUser).filter(DBUser.id == current_user.id).first()
    return UserProfile.model_validate(db_user)
