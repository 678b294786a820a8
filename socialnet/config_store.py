"""
Dynamic configuration store for the SocialNet backend.

Runtime-editable settings (site name, registration switch, feature flags,
third-party API keys) are kept in the environment_variables table so admins
can change them without a redeploy. Reads go through a bounded in-process
LRU cache with sliding expiry; writes are audited and invalidate the cache
locally and, through Redis pub/sub, in every other API process.

Usage:
    from socialnet import config_store

    site_name = config_store.env(db, "SITE_NAME", "SocialNet")
    if config_store.is_feature_enabled(db, "marketplace"):
        ...
"""

import logging
import math
import os
import re
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple

from cachetools import TTLCache
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import settings
from .constants import (
    REDACTED,
    DEFAULT_CONFIG_CATEGORY,
    FEATURE_CATEGORY,
    FEATURE_PREFIX,
    SYSTEM_ACTOR,
    ENTITY_ENVIRONMENT_VARIABLE,
    IMPORTABLE_ENV_KEYS,
    SECRET_KEY_MARKERS,
)
from .db_models import DBEnvironmentVariable, DBConfigAuditLog
from .exceptions import ConfigStoreError
from .redis_client import notify_config_changed

logger = logging.getLogger(__name__)

ENV_LINE_PATTERN = re.compile(r"^([^=]+)=(.*)$")
TRUTHY_VALUES = ("true", "1")

_MISSING = object()


# =============================================================================
# Records
# =============================================================================

@dataclass(frozen=True)
class EnvVariable:
    """A configuration value as seen by callers (detached from the ORM session)."""
    key: str
    value: str
    description: Optional[str] = None
    is_secret: bool = False
    category: str = DEFAULT_CONFIG_CATEGORY


@dataclass
class AuditContext:
    """Who made a configuration change, and from where."""
    user_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @property
    def actor(self) -> str:
        return self.user_id or SYSTEM_ACTOR


@dataclass
class EnvUpdate:
    key: str
    value: str
    description: Optional[str] = None
    is_secret: Optional[bool] = None
    category: Optional[str] = None


@dataclass
class ImportResult:
    success: bool
    imported: int
    errors: List[str] = field(default_factory=list)


# =============================================================================
# In-memory Cache
# =============================================================================

class ConfigCache:
    """
    Bounded LRU cache with a time-to-live that restarts on every read.

    Backed by cachetools.TTLCache, which already evicts the least recently
    used entry when full. Re-inserting on a hit restarts the entry's TTL.

    Every delete bumps a per-key generation. Readers take the generation
    before going to the database and fill with set_if_current, so a value
    read before a concurrent write is never cached after that write's
    invalidation.
    """

    def __init__(self, maxsize: int, ttl: float, timer=time.monotonic):
        self._cache = TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)
        self._generations: Dict[str, int] = {}
        self._epoch = 0
        self._lock = threading.RLock()

    def get(self, key: str, default=_MISSING):
        with self._lock:
            try:
                value = self._cache[key]
            except KeyError:
                return default
            self._cache[key] = value
            return value

    def generation(self, key: str) -> Tuple[int, int]:
        with self._lock:
            return self._epoch, self._generations.get(key, 0)

    def set(self, key: str, value) -> None:
        with self._lock:
            self._cache[key] = value

    def set_if_current(self, key: str, value, generation: Tuple[int, int]) -> bool:
        """Cache value only if key has not been invalidated since generation was taken."""
        with self._lock:
            if self.generation(key) != generation:
                return False
            self._cache[key] = value
            return True

    def delete(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._cache.pop(key, None)
                self._generations[key] = self._generations.get(key, 0) + 1

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._generations.clear()
            self._epoch += 1

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._cache

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)


config_cache = ConfigCache(
    maxsize=settings.config_cache_max_entries,
    ttl=settings.config_cache_ttl_seconds,
)


def _list_cache_key(category: Optional[str] = None) -> str:
    return f"config:env_vars:{category}" if category else "config:env_vars"


def _key_cache_key(key: str) -> str:
    return f"config:env_var:{key}"


def invalidate_cached(key: Optional[str] = None, *categories: Optional[str]) -> None:
    """Drop cached entries touched by a write to `key` in the given categories."""
    stale = [_list_cache_key()]
    if key:
        stale.append(_key_cache_key(key))
    stale.extend(_list_cache_key(c) for c in set(categories) if c)
    config_cache.delete(*stale)


def clear_config_cache() -> None:
    config_cache.clear()


# =============================================================================
# Reads
# =============================================================================

def _to_env_variable(row: DBEnvironmentVariable) -> EnvVariable:
    return EnvVariable(
        key=row.key,
        value=row.value,
        description=row.description,
        is_secret=bool(row.is_secret),
        category=row.category,
    )


def get_env_variables(db: Session, category: Optional[str] = None) -> List[EnvVariable]:
    """
    Get all configuration variables, optionally restricted to one category.

    Ordered by key. Returns an empty list if the database cannot be read.
    """
    cache_key = _list_cache_key(category)
    cached = config_cache.get(cache_key)
    if cached is not _MISSING:
        return list(cached)
    generation = config_cache.generation(cache_key)

    try:
        query = db.query(DBEnvironmentVariable)
        if category:
            query = query.filter(DBEnvironmentVariable.category == category)
        variables = tuple(_to_env_variable(row) for row in query.order_by(DBEnvironmentVariable.key.asc()).all())
    except SQLAlchemyError as e:
        logger.error(f"Error getting environment variables: {e}")
        return []

    config_cache.set_if_current(cache_key, variables, generation)
    return list(variables)


def get_env_variable(db: Session, key: str) -> Optional[str]:
    """
    Get a single configuration value.

    Looks in the database first and falls back to the process environment.
    Absent keys are cached as None so unknown lookups stay cheap.
    """
    cache_key = _key_cache_key(key)
    cached = config_cache.get(cache_key)
    if cached is not _MISSING:
        return cached
    generation = config_cache.generation(cache_key)

    try:
        row = db.query(DBEnvironmentVariable.value).filter(DBEnvironmentVariable.key == key).first()
    except SQLAlchemyError as e:
        logger.error(f"Error getting environment variable {key}: {e}")
        return os.environ.get(key) or None

    value = row.value if row is not None else (os.environ.get(key) or None)
    config_cache.set_if_current(cache_key, value, generation)
    return value


def env(db: Session, key: str, default: str = "") -> str:
    """Get a configuration value with a fallback."""
    value = get_env_variable(db, key)
    return value if value is not None else default


def get_bool(db: Session, key: str, default: bool = False) -> bool:
    """Interpret a configuration value as a boolean ("true"/"1")."""
    value = get_env_variable(db, key)
    if value is None:
        return default
    return value.strip().lower() in TRUTHY_VALUES


def is_feature_enabled(db: Session, feature: str) -> bool:
    """Check a feature flag, e.g. is_feature_enabled(db, "marketplace") reads FEATURE_MARKETPLACE."""
    value = get_env_variable(db, f"{FEATURE_PREFIX}{feature.upper()}")
    return value in TRUTHY_VALUES


def get_feature_flags(db: Session) -> Dict[str, bool]:
    """All flags in the features category, keyed without the FEATURE_ prefix."""
    flags = {}
    for variable in get_env_variables(db, FEATURE_CATEGORY):
        name = variable.key[len(FEATURE_PREFIX):] if variable.key.startswith(FEATURE_PREFIX) else variable.key
        flags[name] = variable.value in TRUTHY_VALUES
    return flags


def mask_variable(variable: EnvVariable) -> EnvVariable:
    """Copy of the variable with its value hidden when secret."""
    if variable.is_secret:
        return replace(variable, value=REDACTED)
    return variable


def filter_variables(variables: List[EnvVariable], search: Optional[str]) -> List[EnvVariable]:
    """
    Case-insensitive search over key, description, category and (non-secret) value.
    """
    if not search:
        return variables

    query = search.lower()
    matches = []
    for variable in variables:
        if (
            query in variable.key.lower()
            or (not variable.is_secret and query in variable.value.lower())
            or (variable.description and query in variable.description.lower())
            or query in variable.category.lower()
        ):
            matches.append(variable)
    return matches


# =============================================================================
# Writes
# =============================================================================

def _redact(value: Optional[str], is_secret: bool) -> Optional[str]:
    if value is None:
        return None
    return REDACTED if is_secret else value


def _record_audit(
    db: Session,
    action: str,
    entity_id: int,
    context: AuditContext,
    previous_value: Optional[str] = None,
    new_value: Optional[str] = None,
) -> None:
    db.add(DBConfigAuditLog(
        action=action,
        entity_type=ENTITY_ENVIRONMENT_VARIABLE,
        entity_id=str(entity_id),
        previous_value=previous_value,
        new_value=new_value,
        user_id=context.actor,
        ip_address=context.ip_address,
        user_agent=context.user_agent,
    ))


def _apply_set(db: Session, update: EnvUpdate, context: AuditContext) -> Tuple[EnvVariable, Optional[str]]:
    """
    Stage a create/update and its audit row without committing.

    Returns the resulting variable and the category it had before (None on create).
    """
    existing = db.query(DBEnvironmentVariable).filter(DBEnvironmentVariable.key == update.key).first()

    if existing is not None:
        previous_category = existing.category
        previous_value = _redact(existing.value, existing.is_secret)

        existing.value = update.value
        if update.description is not None:
            existing.description = update.description
        if update.is_secret is not None:
            existing.is_secret = update.is_secret
        if update.category:
            existing.category = update.category
        existing.updated_by = context.user_id
        db.flush()

        _record_audit(
            db, "UPDATE", existing.id, context,
            previous_value=previous_value,
            new_value=_redact(update.value, existing.is_secret),
        )
        return _to_env_variable(existing), previous_category

    row = DBEnvironmentVariable(
        key=update.key,
        value=update.value,
        description=update.description,
        is_secret=bool(update.is_secret),
        category=update.category or DEFAULT_CONFIG_CATEGORY,
        created_by=context.user_id,
    )
    db.add(row)
    db.flush()

    _record_audit(db, "CREATE", row.id, context, new_value=_redact(update.value, row.is_secret))
    return _to_env_variable(row), None


def set_env_variable(
    db: Session,
    key: str,
    value: str,
    description: Optional[str] = None,
    is_secret: Optional[bool] = None,
    category: Optional[str] = None,
    context: Optional[AuditContext] = None,
) -> EnvVariable:
    """
    Create or update a configuration variable.

    On update, description/is_secret/category keep their stored values unless given.
    Raises ConfigStoreError (after rolling back) if the write fails.
    """
    context = context or AuditContext()
    update = EnvUpdate(key=key, value=value, description=description, is_secret=is_secret, category=category)

    try:
        variable, previous_category = _apply_set(db, update, context)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error setting environment variable {key}: {e}")
        raise ConfigStoreError(key, str(e)) from e

    invalidate_cached(key, variable.category, previous_category)
    notify_config_changed(key)
    logger.info(f"Config variable {key} set by {context.actor}")
    return variable


def delete_env_variable(db: Session, key: str, context: Optional[AuditContext] = None) -> bool:
    """
    Delete a configuration variable.

    Returns False if the key does not exist.
    """
    context = context or AuditContext()

    try:
        row = db.query(DBEnvironmentVariable).filter(DBEnvironmentVariable.key == key).first()
        if row is None:
            return False

        category = row.category
        _record_audit(db, "DELETE", row.id, context, previous_value=_redact(row.value, row.is_secret))
        db.delete(row)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deleting environment variable {key}: {e}")
        raise ConfigStoreError(key, str(e)) from e

    invalidate_cached(key, category)
    notify_config_changed(key)
    logger.info(f"Config variable {key} deleted by {context.actor}")
    return True


def stage_env_updates(
    db: Session,
    updates: List[EnvUpdate],
    context: Optional[AuditContext] = None,
) -> List[Tuple[EnvVariable, Optional[str]]]:
    """
    Stage several updates and their audit rows in the caller's transaction.

    Nothing is committed or invalidated; the caller commits and then passes
    the result to publish_env_changes. SQLAlchemyError propagates.
    """
    context = context or AuditContext()
    return [_apply_set(db, update, context) for update in updates]


def publish_env_changes(staged: List[Tuple[EnvVariable, Optional[str]]]) -> None:
    """Invalidate caches for committed changes returned by stage_env_updates."""
    for variable, previous_category in staged:
        invalidate_cached(variable.key, variable.category, previous_category)
        notify_config_changed(variable.key)


def bulk_update_env_variables(
    db: Session,
    updates: List[EnvUpdate],
    context: Optional[AuditContext] = None,
) -> List[EnvVariable]:
    """
    Apply several updates atomically: either every one is committed or none is.
    """
    context = context or AuditContext()

    try:
        staged = stage_env_updates(db, updates, context)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Bulk configuration update failed, rolled back {len(updates)} changes: {e}")
        raise ConfigStoreError(reason=str(e)) from e

    publish_env_changes(staged)
    logger.info(f"Bulk updated {len(staged)} config variables by {context.actor}")
    return [variable for variable, _ in staged]


# =============================================================================
# .env Import / Export
# =============================================================================

def export_env_variables(db: Session, include_secrets: bool = False) -> str:
    """Render the store as KEY=value lines, ordered by key."""
    return "\n".join(
        f"{v.key}={v.value}"
        for v in get_env_variables(db)
        if include_secrets or not v.is_secret
    )


def parse_env_content(content: str) -> Tuple[List[EnvUpdate], List[str]]:
    """Split .env text into updates and per-line format errors."""
    updates = []
    errors = []

    for line in content.split("\n"):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue

        match = ENV_LINE_PATTERN.match(line)
        if match:
            key, value = match.groups()
            updates.append(EnvUpdate(key=key.strip(), value=value.strip()))
        else:
            errors.append(f"Invalid format: {line}")

    return updates, errors


def import_env_variables(db: Session, content: str, context: Optional[AuditContext] = None) -> ImportResult:
    """Import .env formatted text. Malformed lines are reported, not fatal."""
    updates, errors = parse_env_content(content)

    try:
        bulk_update_env_variables(db, updates, context)
    except ConfigStoreError as e:
        logger.error(f"Error importing environment variables: {e}")
        errors.append("Database error during import")
        return ImportResult(success=False, imported=0, errors=errors)

    return ImportResult(success=True, imported=len(updates), errors=errors)


# =============================================================================
# Defaults
# =============================================================================

def _imported_category(key: str) -> str:
    if "EMAIL" in key:
        return "email"
    if "S3" in key:
        return "storage"
    if "DATABASE" in key:
        return "database"
    return "auth"


def default_env_variables() -> List[EnvUpdate]:
    """The baseline configuration plus anything importable from the process environment."""
    defaults = [
        EnvUpdate("SITE_NAME", "SocialNet", "The name of the site", False, "general"),
        EnvUpdate("SITE_URL", os.environ.get("SITE_URL", "http://localhost:3000"), "The URL of the site", False, "general"),
        EnvUpdate("ADMIN_EMAIL", os.environ.get("ADMIN_EMAIL", "admin@example.com"),
                  "The email address for admin notifications", False, "general"),
        EnvUpdate("ENABLE_REGISTRATION", "true", "Whether new user registration is enabled", False, "security"),
        EnvUpdate("MAX_UPLOAD_SIZE", "10485760", "Maximum file upload size in bytes", False, "media"),
        EnvUpdate("ALLOWED_FILE_TYPES", "jpg,jpeg,png,gif,mp4,mp3,pdf",
                  "Comma-separated list of allowed file extensions", False, "media"),
        EnvUpdate("ENABLE_EMAIL_NOTIFICATIONS", "true", "Whether to send email notifications", False, "notifications"),
        EnvUpdate("ENABLE_PUSH_NOTIFICATIONS", "true", "Whether to send push notifications", False, "notifications"),
        EnvUpdate("FEATURE_STORIES", "true", "Enable stories feature", False, FEATURE_CATEGORY),
        EnvUpdate("FEATURE_MARKETPLACE", "true", "Enable marketplace feature", False, FEATURE_CATEGORY),
        EnvUpdate("FEATURE_EVENTS", "true", "Enable events feature", False, FEATURE_CATEGORY),
        EnvUpdate("FEATURE_GROUPS", "true", "Enable groups feature", False, FEATURE_CATEGORY),
        EnvUpdate("CONTENT_MODERATION_ENABLED", "true" if os.environ.get("OPENAI_API_KEY") else "false",
                  "Enable automatic content moderation", False, "security"),
    ]

    for key in IMPORTABLE_ENV_KEYS:
        value = os.environ.get(key)
        if value:
            defaults.append(EnvUpdate(
                key=key,
                value=value,
                description="Imported from environment",
                is_secret=any(marker in key for marker in SECRET_KEY_MARKERS),
                category=_imported_category(key),
            ))

    return defaults


def missing_default_env_variables(db: Session) -> List[EnvUpdate]:
    """Defaults whose keys are not in the table yet."""
    existing = {key for (key,) in db.query(DBEnvironmentVariable.key).all()}
    return [update for update in default_env_variables() if update.key not in existing]


def initialize_default_env_variables(db: Session, context: Optional[AuditContext] = None) -> int:
    """
    Seed missing default variables. Existing values are left untouched.

    Returns the number of variables created.
    """
    missing = missing_default_env_variables(db)

    if missing:
        bulk_update_env_variables(db, missing, context)

    logger.info(f"Default environment variables initialized ({len(missing)} created)")
    return len(missing)


# =============================================================================
# Audit Log
# =============================================================================

def list_audit_logs(
    db: Session,
    page: int = 1,
    limit: int = 20,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    user_id: Optional[str] = None,
) -> dict:
    """Paginated audit trail, newest first."""
    query = db.query(DBConfigAuditLog)
    if entity_type:
        query = query.filter(DBConfigAuditLog.entity_type == entity_type)
    if entity_id:
        query = query.filter(DBConfigAuditLog.entity_id == entity_id)
    if user_id:
        query = query.filter(DBConfigAuditLog.user_id == user_id)

    total = query.count()
    logs = (
        query.order_by(DBConfigAuditLog.timestamp.desc(), DBConfigAuditLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return {
        "audit_logs": logs,
        "pagination": {
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit) if limit else 0,
        },
    }
