"""
Admission control for API requests.

Charge-then-check: every request increments its caller's counter before the
limit is compared, so two racing requests can overshoot the limit by one.
That overshoot is accepted rather than corrected.
"""

import math
import time
from dataclasses import dataclass
from typing import Dict, Optional

import structlog

from ratelimit.store import RedisCounterStore

logger = structlog.get_logger(__name__)


def resolve_identity(
    api_key_id: Optional[str] = None,
    client_id: Optional[str] = None,
    client_host: Optional[str] = None,
) -> str:
    """
    Derive the single identity a request is counted against.

    Precedence is API key, then OAuth client, then source address.
    """
    if api_key_id:
        return f"api_key:{api_key_id}"
    if client_id:
        return f"oauth:{client_id}"
    return f"ip:{client_host or 'unknown'}"


@dataclass
class RateLimitDecision:
    """Outcome of one admission check."""

    allowed: bool
    limit: int
    remaining: int
    retry_after: int
    reset_at: int
    hits: int = 0

    def headers(self) -> Dict[str, str]:
        """Standard rate limit response headers."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class RateLimiter:
    """Fixed-window request limiter keyed by caller identity."""

    def __init__(self, store: RedisCounterStore, default_limit: int):
        """
        Initialize the limiter.

        Args:
            store: Counter store shared by all requests
            default_limit: Requests per window when no override is set
        """
        self.store = store
        self.default_limit = default_limit

    async def check(self, identity: str) -> RateLimitDecision:
        """
        Charge one request and decide admission.

        Args:
            identity: Identity from resolve_identity

        Returns:
            RateLimitDecision; rejected decisions carry a retry hint derived
            from the counter's remaining time-to-live
        """
        state = await self.store.increment(identity)
        limit = state.override_limit or self.default_limit
        allowed = state.hits <= limit
        retry_after = max(1, math.ceil(state.ttl_ms / 1000))

        decision = RateLimitDecision(
            allowed=allowed,
            limit=limit,
            remaining=max(0, limit - state.hits),
            retry_after=0 if allowed else retry_after,
            reset_at=int(time.time()) + retry_after,
            hits=state.hits,
        )

        if not allowed:
            logger.warning(
                "Rate limit exceeded",
                identity=identity,
                hits=state.hits,
                limit=limit,
                retry_after=retry_after,
            )
        return decision

    async def refund(self, identity: str) -> int:
        """Give back one charged request, e.g. for a request later found invalid."""
        remaining_hits = await self.store.decrement(identity)
        logger.info("Rate limit charge refunded", identity=identity, hits=remaining_hits)
        return remaining_hits

    async def reset(self, identity: str) -> None:
        """Clear an identity's counter."""
        await self.store.reset(identity)
        logger.info("Rate limit counter reset", identity=identity)
