"""
FastAPI backend for SocialNet.

This main file handles app initialization and router mounting.
All endpoints are organized in the routers/ directory.
"""

import logging
import threading
from pathlib import Path
from datetime import datetime
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load environment variables
env_paths = [
    Path(__file__).parent.parent / '.env',
    Path(__file__).parent / '.env',
]
for env_path in env_paths:
    if env_path.exists():
        load_dotenv(env_path)
        break

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from redis.exceptions import RedisError

from .routers import auth, posts, friends, recommendations, admin_config, admin, setup
from . import config_store
from . import redis_client as redis_module
from .config import settings
from .constants import CONFIG_CHANGED_CHANNEL, LISTENER_RETRY_BASE_DELAY, LISTENER_RETRY_MAX_DELAY
from .database import init_db, check_database_health, get_db_context
from .security_middleware import SecurityHeadersMiddleware, HTTPSRedirectMiddleware, RequestIDMiddleware

# =============================================================================
# Configuration
# =============================================================================

ALLOWED_ORIGINS = settings.allowed_origins
TESTING = settings.testing

logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
logger = logging.getLogger(__name__)

# =============================================================================
# Config Invalidation Subscriber (Redis Pub/Sub)
# =============================================================================

_listener_stop = threading.Event()


def listen_for_config_changes(stop_event: threading.Event = None):
    """
    Background thread that drops the local config cache whenever another
    process publishes a configuration change.

    Redis errors are retried with exponential backoff. The cache is cleared
    after every reconnect since notifications may have been missed while
    disconnected. Exits when the subscription ends or stop_event is set.
    """
    stop_event = stop_event or _listener_stop
    client = redis_module.redis_client
    if not client:
        logger.warning("Redis not available, cross-process config invalidation disabled")
        return

    failures = 0
    while not stop_event.is_set():
        try:
            pubsub = client.pubsub()
            pubsub.subscribe(CONFIG_CHANGED_CHANNEL)
            logger.info("Subscribed to config change notifications")
            if failures:
                config_store.clear_config_cache()
                failures = 0

            for message in pubsub.listen():
                if message['type'] == 'message':
                    logger.debug(f"Config changed ({message.get('data')}), clearing config cache")
                    config_store.clear_config_cache()
            return
        except RedisError as e:
            delay = min(LISTENER_RETRY_BASE_DELAY * (2 ** failures), LISTENER_RETRY_MAX_DELAY)
            failures += 1
            logger.warning(f"Config change listener lost Redis ({e}), retrying in {delay:.0f}s")
            if stop_event.wait(delay):
                return
        except Exception as e:
            logger.error(f"Config change listener error: {e}")
            return

# =============================================================================
# Lifespan Event Handler
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: create tables, seed default configuration, start the listener.
    """
    try:
        init_db()
        logger.info("Database initialized")

        with get_db_context() as db:
            created = config_store.initialize_default_env_variables(db)
        logger.info(f"Seeded {created} default configuration variables")
    except Exception as e:
        logger.error(f"Startup initialization failed: {e}")

    _listener_stop.clear()
    listener_thread = threading.Thread(target=listen_for_config_changes, daemon=True)
    listener_thread.start()

    yield

    _listener_stop.set()
    logger.info("Application shutting down")

# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="SocialNet API",
    description="Social network backend with friend/post recommendations and runtime configuration",
    version="1.0.0",
    lifespan=lifespan
)


async def custom_rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """
    Custom handler for rate limit exceeded errors.
    Includes Retry-After header for better client handling.
    """
    detail = str(exc.detail)
    retry_after = 60
    if 'hour' in detail.lower():
        retry_after = 3600
    elif 'second' in detail.lower():
        retry_after = 1

    return JSONResponse(
        status_code=429,
        content={
            "detail": detail,
            "error": "rate_limit_exceeded",
            "retry_after_seconds": retry_after,
            "message": f"Rate limit exceeded. Please wait {retry_after} seconds before retrying."
        },
        headers={"Retry-After": str(retry_after)}
    )


limiter = Limiter(key_func=get_remote_address, enabled=not TESTING)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, custom_rate_limit_handler)
logger.info(f"Rate limiting {'disabled (test mode)' if TESTING else 'enabled'}")

# CORS
origins = ALLOWED_ORIGINS.split(',') if ALLOWED_ORIGINS != '*' else ['*']

if origins == ['*']:
    logger.warning(
        "CORS is set to allow ALL origins (*). "
        "Set SOCIALNET_ALLOWED_ORIGINS to specific domains in production."
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

environment = settings.environment
logger.info(f"Running in {environment} environment")

app.add_middleware(SecurityHeadersMiddleware, environment=environment)

if environment == "production":
    app.add_middleware(HTTPSRedirectMiddleware, environment=environment)

app.add_middleware(RequestIDMiddleware)

# =============================================================================
# Mount Routers
# =============================================================================

app.include_router(setup.router)
app.include_router(auth.router)
app.include_router(posts.router)
app.include_router(friends.router)
app.include_router(recommendations.router)
app.include_router(admin_config.router)
app.include_router(admin.router)

# =============================================================================
# Health Check Endpoint
# =============================================================================

@app.get("/health", tags=["health"])
async def health_check():
    """System status and dependency health for monitoring."""
    database = check_database_health()
    redis_connected = False
    if redis_module.redis_client:
        try:
            redis_connected = bool(redis_module.redis_client.ping())
        except Exception as e:
            logger.warning(f"Redis health check failed: {e}")

    return {
        "status": "healthy" if database.get("database_connected") else "degraded",
        "timestamp": datetime.utcnow().isoformat(),
        "dependencies": {
            "database": database,
            "redis_connected": redis_connected,
            "config_cache_entries": len(config_store.config_cache),
        },
    }
