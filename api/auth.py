"""
Authentication, scope checks and rate limiting dependencies for the API.
"""

import hashlib
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

import structlog
from fastapi import Request
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncEngine

from api.config import config as api_config
from catalog.database import create_session_factory
from catalog.exceptions import AuthenticationError, AuthorizationError, RateLimitExceededError
from catalog.models import ApiKey, OAuthToken
from ratelimit.limiter import RateLimitDecision, resolve_identity

logger = structlog.get_logger(__name__)


@dataclass
class AuthContext:
    """Authenticated caller."""

    type: str  # api_key or oauth
    scopes: List[str] = field(default_factory=list)
    api_key_id: Optional[str] = None
    client_id: Optional[str] = None


def hash_api_key(api_key: str) -> str:
    """SHA-256 digest under which API keys are stored."""
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()


def generate_api_key(prefix: str = api_config.api_key_prefix) -> str:
    """Generate a new API key."""
    return f"{prefix}{secrets.token_hex(32)}"


class CredentialVerifier:
    """Looks up API keys and OAuth tokens in the relational store."""

    def __init__(self, engine: AsyncEngine, api_key_prefix: str = api_config.api_key_prefix):
        self.session_factory = create_session_factory(engine)
        self.api_key_prefix = api_key_prefix

    async def verify_api_key(self, api_key: str) -> AuthContext:
        """
        Verify an API key.

        Args:
            api_key: Raw key from the X-API-Key header

        Returns:
            AuthContext for the key

        Raises:
            AuthenticationError: If the key is malformed, unknown, inactive or expired
        """
        if not api_key.startswith(self.api_key_prefix):
            raise AuthenticationError("Invalid API key format", code="INVALID_API_KEY")

        now = datetime.now(timezone.utc)
        async with self.session_factory() as session:
            key = (await session.execute(
                select(ApiKey).where(
                    ApiKey.key_hash == hash_api_key(api_key),
                    ApiKey.active.is_(True),
                    (ApiKey.expires_at.is_(None)) | (ApiKey.expires_at > now),
                )
            )).scalar_one_or_none()

            if key is None:
                logger.warning("Invalid API key attempted", api_key=api_key[:10] + "...")
                raise AuthenticationError("Invalid or expired API key", code="INVALID_API_KEY")

            await session.execute(update(ApiKey).where(ApiKey.id == key.id).values(last_used_at=now))
            await session.commit()

        return AuthContext(type="api_key", api_key_id=key.id, scopes=list(key.scopes or []))

    async def verify_bearer(self, token: str) -> AuthContext:
        """
        Verify an OAuth access token.

        Raises:
            AuthenticationError: If the token is unknown or expired
        """
        async with self.session_factory() as session:
            row = (await session.execute(
                select(OAuthToken).where(OAuthToken.token == token)
            )).scalar_one_or_none()

        if row is None:
            raise AuthenticationError("Invalid access token", code="INVALID_TOKEN")
        if row.expires_at < datetime.now(timezone.utc):
            raise AuthenticationError("Access token has expired", code="TOKEN_EXPIRED")

        return AuthContext(type="oauth", client_id=row.client_id, scopes=list(row.scopes or []))


async def get_auth_context(request: Request) -> Optional[AuthContext]:
    """
    Resolve the caller from X-API-Key or a bearer token.

    Anonymous requests resolve to None; a credential that is present but
    invalid is rejected.
    """
    verifier: CredentialVerifier = request.app.state.credentials
    auth = None

    api_key = request.headers.get("X-API-Key")
    authorization = request.headers.get("Authorization", "")
    if api_key:
        auth = await verifier.verify_api_key(api_key)
    elif authorization.startswith("Bearer "):
        auth = await verifier.verify_bearer(authorization[len("Bearer "):])

    request.state.auth = auth
    return auth


def check_scopes(auth: Optional[AuthContext], required: List[str]) -> None:
    """
    Enforce required scopes.

    Raises:
        AuthenticationError: If scopes are required and the caller is anonymous
        AuthorizationError: If the caller lacks any required scope
    """
    if not required:
        return
    if auth is None:
        raise AuthenticationError("Authentication is required for this endpoint")
    missing = [scope for scope in required if scope not in auth.scopes]
    if missing:
        raise AuthorizationError(f"Required scope(s): {', '.join(required)}")


async def authorize(request: Request) -> Optional[AuthContext]:
    """Authenticate the caller and enforce the configured catalog scopes."""
    auth = await get_auth_context(request)
    check_scopes(auth, api_config.required_scopes)
    return auth


async def enforce_rate_limit(request: Request) -> Optional[RateLimitDecision]:
    """
    Admission check; runs after authentication and before any catalog work.

    Raises:
        RateLimitExceededError: If the caller's quota for the window is spent
    """
    if not api_config.rate_limit_enabled:
        return None

    auth: Optional[AuthContext] = getattr(request.state, "auth", None)
    identity = resolve_identity(
        api_key_id=auth.api_key_id if auth else None,
        client_id=auth.client_id if auth else None,
        client_host=request.client.host if request.client else None,
    )

    decision = await request.app.state.rate_limiter.check(identity)
    request.state.rate_limit = decision
    if not decision.allowed:
        raise RateLimitExceededError(
            "Too many requests, please try again later",
            retry_after=decision.retry_after,
            limit=decision.limit,
        )
    return decision


def get_rate_limit_headers(request: Request) -> dict:
    """Rate limit headers for an admitted response."""
    decision: Optional[RateLimitDecision] = getattr(request.state, "rate_limit", None)
    return decision.headers() if decision else {}
