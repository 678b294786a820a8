"""
Custom Exceptions for the SocialNet backend.

Services raise these; routers translate them into HTTP responses.
"""


class SocialNetError(Exception):
    """Base exception for all SocialNet errors."""
    pass


# =============================================================================
# Lookup Exceptions
# =============================================================================

class NotFoundError(SocialNetError):
    """Raised when a requested entity does not exist."""

    def __init__(self, entity: str, identifier=None):
        self.entity = entity
        self.identifier = identifier
        msg = f"{entity} not found"
        if identifier is not None:
            msg += f": {identifier}"
        super().__init__(msg)


# =============================================================================
# Configuration Store Exceptions
# =============================================================================

class ConfigStoreError(SocialNetError):
    """Raised when a configuration write cannot be persisted."""

    def __init__(self, key: str = None, reason: str = None):
        self.key = key
        self.reason = reason
        msg = "Configuration store error"
        if key:
            msg += f" for {key}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class MissingAPIKeyError(SocialNetError):
    """Raised when a third-party API key has not been configured."""

    def __init__(self, key_name: str):
        self.key_name = key_name
        super().__init__(f"Configuration error: {key_name} (API key not configured)")


# =============================================================================
# Content Exceptions
# =============================================================================

class ContentRejectedError(SocialNetError):
    """Raised when moderation rejects user content."""

    def __init__(self, categories: list = None, explanation: str = None):
        self.categories = categories or []
        self.explanation = explanation
        super().__init__(explanation or "Content rejected by moderation")


class InvalidOperationError(SocialNetError):
    """Raised when a request is well-formed but not allowed (e.g. befriending yourself)."""
    pass


# =============================================================================
# Authentication Exceptions
# =============================================================================

class AuthenticationError(SocialNetError):
    """Raised when a token cannot be verified."""
    pass


# =============================================================================
# Setup Exceptions
# =============================================================================

class SetupAlreadyCompleteError(SocialNetError):
    """Raised when the first-run setup is attempted a second time."""

    def __init__(self):
        super().__init__("Setup has already been completed")
