"""
Input Sanitization Module

Validates and normalises user-supplied identifiers and text before they reach
the database. Raises HTTPException(400) so routers can call these directly.
"""

import re
from fastapi import HTTPException

from .constants import MIN_USERNAME_LENGTH, MAX_USERNAME_LENGTH, MAX_POST_LENGTH

USERNAME_PATTERN = re.compile(r'^[a-zA-Z0-9_-]+$')


def sanitize_username(username: str) -> str:
    """
    Sanitize username to prevent injection through identifiers.

    Examples:
        >>> sanitize_username("  john_doe ")
        "john_doe"
        >>> sanitize_username("john'; DROP TABLE users; --")
        HTTPException (400)
    """
    if not username or not username.strip():
        raise HTTPException(status_code=400, detail="Username cannot be empty")

    username = username.strip()

    if len(username) < MIN_USERNAME_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Username must be at least {MIN_USERNAME_LENGTH} characters"
        )

    if len(username) > MAX_USERNAME_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Username too long. Maximum {MAX_USERNAME_LENGTH} characters."
        )

    if not USERNAME_PATTERN.match(username):
        raise HTTPException(
            status_code=400,
            detail="Username can only contain letters, numbers, underscores and hyphens"
        )

    return username


def sanitize_text_content(content: str, max_length: int = MAX_POST_LENGTH) -> str:
    """
    Validate post/comment text.

    HTML is not stripped here; escaping happens at render time in the frontend.
    Null bytes are rejected and line endings normalised to Unix style.
    """
    if not content or not content.strip():
        raise HTTPException(status_code=400, detail="Content cannot be empty")

    if len(content) > max_length:
        raise HTTPException(
            status_code=400,
            detail=f"Content too long. Maximum {max_length} characters."
        )

    if '\x00' in content:
        raise HTTPException(status_code=400, detail="Content contains forbidden null bytes")

    return content.replace('\r\n', '\n').replace('\r', '\n').strip()
