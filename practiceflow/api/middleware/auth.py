"""
API Key Authentication Middleware

Authenticates practice API keys with a Redis cache in front of the
database, and exposes the authenticated practice through a ContextVar
and ``request.state.practice``.
"""

import hmac
import json
import logging
from contextvars import ContextVar
from typing import Optional
from uuid import UUID

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.middleware.base import BaseHTTPMiddleware

from practiceflow.config import settings
from practiceflow.core.accounts.credentials import (
    hash_api_key,
    mask_api_key,
    verify_api_key_format,
)
from practiceflow.infra.database import get_db_context
from practiceflow.infra.redis import get_redis, namespaced
from practiceflow.models.database import SubscriptionStatus, User

logger = logging.getLogger(__name__)

# API Key header scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# ContextVar for practice context (accessible anywhere without passing)
_practice_context: ContextVar[Optional["PracticeContext"]] = ContextVar(
    "practice_context",
    default=None
)

# Redis cache settings
AUTH_CACHE_NAMESPACE = "auth"
AUTH_CACHE_TTL = 300  # 5 minutes

DEV_API_KEY = "pf_test_dev"


class PracticeContext:
    """
    Authenticated practice context.

    Carries what feature access decisions need (plan, addon, status) so
    routes do not reload the user row.
    """

    def __init__(
        self,
        id: UUID,
        username: str,
        plan: str,
        status: str,
        addon: Optional[str] = None,
        addon_changed_this_cycle: bool = False,
        api_key_hash: Optional[str] = None,
    ):
        self.id = id
        self.username = username
        self.plan = plan
        self.status = status
        self.addon = addon
        self.addon_changed_this_cycle = addon_changed_this_cycle
        self.api_key_hash = api_key_hash

    @classmethod
    def from_user(cls, user: User, api_key_hash: Optional[str] = None) -> "PracticeContext":
        """Create context from User model."""
        status_value = user.subscription_status
        if isinstance(status_value, SubscriptionStatus):
            status_value = status_value.value
        return cls(
            id=user.id,
            username=user.username,
            plan=user.subscription_plan,
            status=status_value,
            addon=user.selected_addon,
            addon_changed_this_cycle=bool(user.addon_changed_this_cycle),
            api_key_hash=api_key_hash,
        )

    def to_cache_dict(self) -> dict:
        """Convert to dict for Redis caching."""
        return {
            "id": str(self.id),
            "username": self.username,
            "plan": self.plan,
            "status": self.status,
            "addon": self.addon,
            "addon_changed_this_cycle": self.addon_changed_this_cycle,
        }

    @classmethod
    def from_cache_dict(cls, data: dict, api_key_hash: Optional[str] = None) -> "PracticeContext":
        """Create context from cached dict."""
        return cls(
            id=UUID(data["id"]),
            username=data["username"],
            plan=data["plan"],
            status=data["status"],
            addon=data.get("addon"),
            addon_changed_this_cycle=data.get("addon_changed_this_cycle", False),
            api_key_hash=api_key_hash,
        )

    def __repr__(self) -> str:
        return f"<PracticeContext(id={self.id}, username='{self.username}', plan='{self.plan}')>"


async def get_cached_practice(key_hash: str) -> Optional[PracticeContext]:
    """
    Get practice context from Redis cache.

    Returns None if not cached or Redis unavailable.
    """
    try:
        redis = await get_redis()
        if redis is None:
            logger.debug("Redis unavailable for auth cache lookup")
            return None

        data = await redis.get(namespaced(AUTH_CACHE_NAMESPACE, key_hash))
        if data is None:
            return None

        return PracticeContext.from_cache_dict(json.loads(data), api_key_hash=key_hash)

    except (RedisError, ValueError, KeyError) as e:
        logger.warning(f"Failed to get auth cache: {e}")
        return None


async def set_cached_practice(key_hash: str, context: PracticeContext) -> None:
    """
    Cache practice context in Redis.

    Silently fails if Redis unavailable.
    """
    try:
        redis = await get_redis()
        if redis is None:
            return

        await redis.setex(
            namespaced(AUTH_CACHE_NAMESPACE, key_hash),
            AUTH_CACHE_TTL,
            json.dumps(context.to_cache_dict()),
        )
        logger.debug(f"Cached auth for practice {context.id}")

    except RedisError as e:
        logger.warning(f"Failed to set auth cache: {e}")


async def invalidate_cached_practice(key_hash: Optional[str]) -> None:
    """
    Invalidate cached practice context.

    Call when the practice's plan, addon or API key changes.
    """
    if not key_hash:
        return
    try:
        redis = await get_redis()
        if redis is None:
            return

        await redis.delete(namespaced(AUTH_CACHE_NAMESPACE, key_hash))

    except RedisError as e:
        logger.warning(f"Failed to invalidate auth cache: {e}")


async def get_user_by_api_key(api_key: str, db: AsyncSession) -> Optional[User]:
    """
    Look up an active practice user by API key hash.

    Uses constant-time comparison for security.
    """
    key_hash = hash_api_key(api_key)

    result = await db.execute(
        select(User).where(
            User.api_key_hash == key_hash,
            User.is_active.is_(True),
        )
    )
    user = result.scalar_one_or_none()

    if user is None:
        return None

    # Constant-time comparison (prevents timing attacks)
    if not hmac.compare_digest(user.api_key_hash, key_hash):
        return None

    return user


def get_current_practice_context() -> PracticeContext:
    """
    Get current practice context.

    Raises RuntimeError if called without authentication.
    """
    context = _practice_context.get()
    if context is None:
        raise RuntimeError("No practice context - called outside authenticated request")
    return context


def set_practice_context(context: Optional[PracticeContext]) -> None:
    """Set practice context (used by the middleware)."""
    _practice_context.set(context)


def clear_practice_context() -> None:
    """
    Clear practice context.

    Called at end of request to prevent context leaking.
    """
    _practice_context.set(None)


async def require_practice(request: Request) -> PracticeContext:
    """
    FastAPI dependency returning the authenticated practice.

    The middleware has already rejected unauthenticated requests; this
    only guards routes mounted under a skipped path by mistake.

    Usage:
        @router.get("/protected")
        async def protected(practice: PracticeContext = Depends(require_practice)):
            print(practice.id)
    """
    context = getattr(request.state, "practice", None)
    if context is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key required",
            headers={"WWW-Authenticate": "ApiKey"},
        )
    return context


class AuthMiddleware(BaseHTTPMiddleware):
    """
    Authentication middleware.

    Validates API keys and sets PracticeContext for downstream handlers.
    Signup and portal registration are public.
    """

    # Paths that skip authentication
    SKIP_AUTH_PATHS: set[str] = {
        "/",
        "/health",
        "/health/ready",
        "/health/live",
        "/health/detailed",
        "/docs",
        "/redoc",
        "/openapi.json",
        "/api/v1/accounts",
        "/api/v1/portal/register",
    }

    async def dispatch(self, request: Request, call_next):
        # Skip auth for health/docs/public endpoints
        if request.url.path in self.SKIP_AUTH_PATHS:
            return await call_next(request)

        api_key = request.headers.get("X-API-Key")

        # Development bypass: allow pf_test_dev key in development mode
        if settings.is_development and api_key == DEV_API_KEY:
            dev_context = PracticeContext(
                id=UUID("00000000-0000-0000-0000-000000000001"),
                username="dev-practice",
                plan="complete",
                status="active",
            )
            set_practice_context(dev_context)
            request.state.practice = dev_context
            logger.debug("Dev auth bypass enabled")
            return await call_next(request)

        if not api_key:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"error": "unauthorized", "message": "X-API-Key header required"},
                headers={"WWW-Authenticate": "ApiKey"},
            )

        client_ip = request.client.host if request.client else "unknown"

        if not verify_api_key_format(api_key):
            masked = mask_api_key(api_key) if len(api_key) > 5 else "***"
            logger.warning(f"Auth failed: Invalid key format | Key: {masked} | IP: {client_ip}")
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"error": "unauthorized", "message": "Invalid API key format"},
                headers={"WWW-Authenticate": "ApiKey"},
            )

        key_hash = hash_api_key(api_key)

        # Try cache first
        context = await get_cached_practice(key_hash)

        if context is None:
            try:
                async with get_db_context() as db:
                    user = await get_user_by_api_key(api_key, db)
            except (SQLAlchemyError, OSError) as e:
                logger.error(f"Auth middleware error: {e}")
                return JSONResponse(
                    status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                    content={
                        "error": "service_unavailable",
                        "message": "Authentication service unavailable",
                    },
                )

            if user is None:
                logger.warning(
                    f"Auth failed: Invalid API key | Key: {mask_api_key(api_key)} | IP: {client_ip}"
                )
                return JSONResponse(
                    status_code=status.HTTP_403_FORBIDDEN,
                    content={"error": "forbidden", "message": "Invalid API key"},
                )

            context = PracticeContext.from_user(user, api_key_hash=key_hash)
            await set_cached_practice(key_hash, context)

        set_practice_context(context)
        request.state.practice = context
        logger.debug(f"Auth success | Practice: {context.id} | IP: {client_ip}")

        return await call_next(request)
