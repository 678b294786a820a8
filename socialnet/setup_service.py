"""
First-run setup.

A fresh install has no admin and no configuration. complete_setup creates the
admin account, seeds the default configuration and records SETUP_COMPLETED so
the setup endpoint cannot be replayed.
"""

import logging
from typing import List
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from . import config_store
from .auth import hash_password
from .config_store import AuditContext, EnvUpdate
from .constants import FEATURE_CATEGORY, FEATURE_PREFIX
from .db_models import DBEnvironmentVariable, DBUser
from .exceptions import ConfigStoreError, SetupAlreadyCompleteError, InvalidOperationError
from .models import SetupRequest, UserRole

logger = logging.getLogger(__name__)


def is_setup_complete(db: Session) -> bool:
    """
    Setup is complete once SETUP_COMPLETED is "true" or an admin exists.

    Reads the table directly (not through the config cache) and treats a
    missing or unreachable database as "not set up".
    """
    try:
        flag = db.query(DBEnvironmentVariable.value).filter(
            DBEnvironmentVariable.key == "SETUP_COMPLETED"
        ).first()
        if flag is not None and flag.value == "true":
            return True

        return db.query(DBUser.id).filter(DBUser.role == UserRole.ADMIN.value).first() is not None
    except SQLAlchemyError as e:
        logger.warning(f"Could not determine setup status: {e}")
        return False


def _setup_updates(request: SetupRequest) -> List[EnvUpdate]:
    updates = [
        EnvUpdate("SITE_NAME", request.site.site_name, category="general"),
        EnvUpdate("SITE_URL", request.site.site_url, category="general"),
        EnvUpdate("ENABLE_REGISTRATION", "true" if request.site.allow_registration else "false", category="security"),
    ]
    for name, enabled in request.features.items():
        key = name.upper()
        if not key.startswith(FEATURE_PREFIX):
            key = f"{FEATURE_PREFIX}{key}"
        updates.append(EnvUpdate(key, "true" if enabled else "false", category=FEATURE_CATEGORY))
    updates.append(EnvUpdate("SETUP_COMPLETED", "true", "Whether first-run setup has finished", category="system"))
    return updates


def complete_setup(db: Session, request: SetupRequest) -> DBUser:
    """
    Create the admin user and the initial configuration in one transaction.

    If any part fails nothing is committed, so the install stays un-set-up
    and the request can be retried. Two concurrent runs both insert the
    unique SETUP_COMPLETED key, so only one of them can commit.

    Raises:
        SetupAlreadyCompleteError: setup already ran
        InvalidOperationError: the admin username or email is taken
        ConfigStoreError: the transaction failed and was rolled back
    """
    if is_setup_complete(db):
        raise SetupAlreadyCompleteError()

    taken = db.query(DBUser.id).filter(
        (DBUser.username == request.admin.username) | (DBUser.email == request.admin.email)
    ).first()
    if taken is not None:
        raise InvalidOperationError("Admin username or email already in use")

    try:
        admin = DBUser(
            username=request.admin.username,
            email=request.admin.email,
            name=request.admin.name or request.admin.username,
            hashed_password=hash_password(request.admin.password),
            role=UserRole.ADMIN.value,
            is_verified=True,
        )
        db.add(admin)
        db.flush()

        context = AuditContext(user_id=str(admin.id))
        updates = config_store.missing_default_env_variables(db) + _setup_updates(request)
        staged = config_store.stage_env_updates(db, updates, context)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if is_setup_complete(db):
            raise SetupAlreadyCompleteError() from e
        logger.error(f"Setup failed and was rolled back: {e}")
        raise ConfigStoreError(reason=str(e)) from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Setup failed and was rolled back: {e}")
        raise ConfigStoreError(reason=str(e)) from e

    db.refresh(admin)
    config_store.publish_env_changes(staged)
    logger.info(f"Setup completed; admin user {admin.username} created")
    return admin
