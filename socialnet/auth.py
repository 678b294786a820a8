"""
Authentication Module for the SocialNet backend.

Provides:
- Password hashing (bcrypt with unique salts)
- JWT token creation and verification
"""

from datetime import datetime, timedelta
from passlib.context import CryptContext
from jose import JWTError, jwt

from .config import settings
from .constants import JWT_ALGORITHM
from .exceptions import AuthenticationError

SECRET_KEY = settings.secret_key
TOKEN_EXPIRE_MINUTES = settings.token_expire_minutes

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# =============================================================================
# Password Hashing
# =============================================================================

def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with automatic per-user salt generation.

    Args:
        password: Plain text password

    Returns:
        Bcrypt hash string
    """
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)

# =============================================================================
# JWT Token Management
# =============================================================================

def create_access_token(data: dict) -> str:
    """
    Create a signed JWT access token.

    Args:
        data: Claims to embed (e.g., {"sub": "alice", "role": "USER"})

    Returns:
        JWT token string
    """
    to_encode = data.copy()
    expire = datetime.utcnow() + timedelta(minutes=TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})

    return jwt.encode(to_encode, SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Decode and verify JWT token.

    Raises:
        AuthenticationError: If token is invalid or expired
    """
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise AuthenticationError("Invalid token")
