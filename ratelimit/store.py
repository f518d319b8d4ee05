"""
Redis-backed request counters.

Every charge runs INCR, PEXPIRE, PTTL and the override GET inside one
MULTI/EXEC transaction, so a counter is never observable without its expiry
and an admission decision costs a single round trip.
"""

from dataclasses import dataclass
from typing import Optional

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from catalog.exceptions import CounterStoreError

logger = structlog.get_logger(__name__)

KEY_PREFIX = "rate_limit"


def counter_key(identity: str) -> str:
    return f"{KEY_PREFIX}:{identity}"


def override_key(identity: str) -> str:
    return f"{KEY_PREFIX}:override:{identity}"


@dataclass
class CounterState:
    """Counter value after a charge."""

    hits: int
    ttl_ms: int
    override_limit: Optional[int] = None


def _parse_limit(raw) -> Optional[int]:
    if raw is None:
        return None
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring malformed rate limit override", value=raw)
        return None
    return value if value > 0 else None


class RedisCounterStore:
    """Atomic per-identity counters with a sliding expiry."""

    def __init__(self, redis: Redis, window_ms: int):
        """
        Initialize the counter store.

        Args:
            redis: Shared Redis client
            window_ms: Counter time-to-live, refreshed on every increment
        """
        self.redis = redis
        self.window_ms = window_ms

    async def increment(self, identity: str) -> CounterState:
        """
        Charge one request to an identity.

        Args:
            identity: Resolved caller identity

        Returns:
            CounterState with the new hit count, remaining TTL and any
            per-identity limit override

        Raises:
            CounterStoreError: If the transaction fails; never retried here
        """
        key = counter_key(identity)
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                pipe.pexpire(key, self.window_ms)
                pipe.pttl(key)
                pipe.get(override_key(identity))
                results = await pipe.execute()
        except RedisError as e:
            logger.error("Rate limit counter transaction failed", key=key, error=str(e))
            raise CounterStoreError("Rate limit counter transaction failed") from e

        if not results:
            logger.error("Rate limit counter transaction aborted", key=key)
            raise CounterStoreError("Rate limit counter transaction failed")

        hits, _, ttl_ms, override = results
        if ttl_ms is None or ttl_ms < 0:
            ttl_ms = self.window_ms
        return CounterState(hits=int(hits), ttl_ms=int(ttl_ms), override_limit=_parse_limit(override))

    async def current(self, identity: str) -> int:
        """Current hit count; an expired counter reads as 0."""
        raw = await self.redis.get(counter_key(identity))
        return int(raw) if raw is not None else 0

    async def ttl_ms(self, identity: str) -> int:
        """Remaining window in milliseconds, 0 when the counter is absent."""
        ttl = await self.redis.pttl(counter_key(identity))
        return max(0, int(ttl))

    async def decrement(self, identity: str) -> int:
        """
        Give back one request, never going below zero.

        Runs as a WATCH/MULTI transaction on the counter key; a charge that
        lands between the read and the write makes redis-py retry it.
        """
        key = counter_key(identity)

        async def refund(pipe) -> int:
            raw = await pipe.get(key)
            hits = int(raw) if raw is not None else 0
            pipe.multi()
            if hits <= 1:
                pipe.delete(key)
            else:
                pipe.decr(key)
            return max(0, hits - 1)

        return await self.redis.transaction(refund, key, value_from_callable=True)

    async def reset(self, identity: str) -> None:
        """Drop the counter for an identity."""
        await self.redis.delete(counter_key(identity))

    async def get_override(self, identity: str) -> Optional[int]:
        return _parse_limit(await self.redis.get(override_key(identity)))

    async def set_override(self, identity: str, limit: Optional[int]) -> None:
        """Set or clear a per-identity limit override."""
        if limit is None:
            await self.redis.delete(override_key(identity))
        else:
            await self.redis.set(override_key(identity), int(limit))
