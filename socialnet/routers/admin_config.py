"""
Configuration Admin Router for the SocialNet backend.

Endpoints (all under /admin/config):
- GET / - List variables (secrets masked), filter by category or search term
- POST / - Create or update a variable
- DELETE /?key= - Delete a variable
- GET /features, POST /features - Read / toggle feature flags
- POST /bulk - Update several variables atomically
- GET /export - Download as a .env file
- POST /import - Load a .env file
- GET /audit - Paginated change history

Reads and bulk updates are open to ADMIN and MODERATOR; everything else is ADMIN only.
"""

import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from .. import config_store
from ..config import settings
from ..config_store import EnvUpdate
from ..constants import DEFAULT_AUDIT_PAGE_SIZE, MAX_AUDIT_PAGE_SIZE, FEATURE_CATEGORY, FEATURE_PREFIX
from ..database import get_db
from ..dependencies import require_admin, require_staff, audit_context
from ..exceptions import ConfigStoreError
from ..models import (
    User,
    EnvVariableIn,
    EnvVariableOut,
    FeatureFlag,
    FeatureFlagsUpdate,
    BulkUpdateRequest,
    ImportRequest,
    ImportResponse,
    AuditLogPage,
)

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)

CONFIG_WRITE_RATE_LIMIT = "1000/minute" if settings.testing else "30/minute"
EXPORT_FILENAME = "environment-variables.env"

router = APIRouter(
    prefix="/admin/config",
    tags=["admin-config"],
    responses={401: {"description": "Unauthorized"}, 403: {"description": "Forbidden"}},
)


def _store_error(e: ConfigStoreError) -> HTTPException:
    return HTTPException(status_code=500, detail=f"Failed to update configuration: {e}")


def _feature_key(name: str) -> str:
    key = name.upper()
    return key if key.startswith(FEATURE_PREFIX) else f"{FEATURE_PREFIX}{key}"


def _feature_flags(db: Session) -> List[FeatureFlag]:
    return [
        FeatureFlag(
            key=variable.key,
            enabled=variable.value in config_store.TRUTHY_VALUES,
            description=variable.description,
        )
        for variable in config_store.get_env_variables(db, FEATURE_CATEGORY)
    ]

# =============================================================================
# Variables
# =============================================================================

@router.get("", response_model=List[EnvVariableOut])
async def list_variables(
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db),
):
    """List configuration variables with secret values replaced by [REDACTED]."""
    variables = config_store.get_env_variables(db, category)
    variables = config_store.filter_variables(variables, search)
    return [EnvVariableOut.model_validate(config_store.mask_variable(v)) for v in variables]


@router.post("", response_model=EnvVariableOut)
@limiter.limit(CONFIG_WRITE_RATE_LIMIT)
async def set_variable(
    request: Request,
    variable: EnvVariableIn,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Create or update a variable.

    Raises:
        HTTPException 422: Key is not uppercase letters, digits and underscores
        HTTPException 500: The write could not be persisted
    """
    try:
        saved = config_store.set_env_variable(
            db,
            variable.key,
            variable.value,
            description=variable.description,
            is_secret=variable.is_secret,
            category=variable.category,
            context=audit_context(request, current_user),
        )
    except ConfigStoreError as e:
        raise _store_error(e)
    return EnvVariableOut.model_validate(config_store.mask_variable(saved))


@router.delete("")
@limiter.limit(CONFIG_WRITE_RATE_LIMIT)
async def delete_variable(
    request: Request,
    key: str = Query(..., min_length=1),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        deleted = config_store.delete_env_variable(db, key, audit_context(request, current_user))
    except ConfigStoreError as e:
        raise _store_error(e)

    if not deleted:
        raise HTTPException(status_code=404, detail=f"Environment variable {key} not found")
    return {"success": True, "key": key}

# =============================================================================
# Feature Flags
# =============================================================================

@router.get("/features", response_model=List[FeatureFlag])
async def list_features(
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db),
):
    return _feature_flags(db)


@router.post("/features", response_model=List[FeatureFlag])
@limiter.limit(CONFIG_WRITE_RATE_LIMIT)
async def update_features(
    request: Request,
    body: FeatureFlagsUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Toggle feature flags. Keys without the FEATURE_ prefix get it added."""
    updates = [
        EnvUpdate(key=_feature_key(flag.key), value="true" if flag.enabled else "false", category=FEATURE_CATEGORY)
        for flag in body.features
    ]
    try:
        config_store.bulk_update_env_variables(db, updates, audit_context(request, current_user))
    except ConfigStoreError as e:
        raise _store_error(e)
    return _feature_flags(db)

# =============================================================================
# Bulk, Import & Export
# =============================================================================

@router.post("/bulk")
@limiter.limit(CONFIG_WRITE_RATE_LIMIT)
async def bulk_update(
    request: Request,
    body: BulkUpdateRequest,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db),
):
    """Apply every setting or none of them."""
    updates = [EnvUpdate(key=item.key, value=item.value, category=item.category) for item in body.settings]
    try:
        updated = config_store.bulk_update_env_variables(db, updates, audit_context(request, current_user))
    except ConfigStoreError as e:
        raise _store_error(e)
    return {"success": True, "updated": len(updated)}


@router.get("/export", response_class=PlainTextResponse)
async def export_variables(
    include_secrets: bool = Query(False),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    content = config_store.export_env_variables(db, include_secrets=include_secrets)
    logger.info(f"Configuration exported by {current_user.username} (secrets: {include_secrets})")
    return PlainTextResponse(
        content,
        headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'},
    )


@router.post("/import", response_model=ImportResponse)
@limiter.limit(CONFIG_WRITE_RATE_LIMIT)
async def import_variables(
    request: Request,
    body: ImportRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Import KEY=value lines. Blank lines and # comments are skipped; malformed
    lines are reported in `errors` without aborting the import.
    """
    result = config_store.import_env_variables(db, body.content, audit_context(request, current_user))
    return ImportResponse(success=result.success, imported=result.imported, errors=result.errors)

# =============================================================================
# Audit Log
# =============================================================================

@router.get("/audit", response_model=AuditLogPage)
async def audit_log(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_AUDIT_PAGE_SIZE, ge=1, le=MAX_AUDIT_PAGE_SIZE),
    entity_type: Optional[str] = Query(None),
    entity_id: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return config_store.list_audit_logs(
        db,
        page=page,
        limit=limit,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
    )
