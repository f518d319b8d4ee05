#!/usr/bin/env python3
"""
Catalog Management Utility

This script provides administrative operations for the catalog:
- Create the PostGIS schema
- Issue API keys
- Set or clear per-identity rate limit overrides
- Reset a caller's rate limit counter
"""

import asyncio
import sys
import uuid
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from redis import asyncio as aioredis

from api.auth import generate_api_key, hash_api_key
from api.config import config as api_config
from catalog.database import create_engine, create_session_factory, init_db
from catalog.models import ApiKey
from ratelimit.limiter import RateLimiter
from ratelimit.store import RedisCounterStore
from utilities.config import config
from utilities.logger import get_logger, setup_logging

logger = get_logger(__name__)


async def create_schema():
    """Enable PostGIS and create all catalog tables."""
    engine = create_engine(config.database_url, pool_size=1)
    try:
        await init_db(engine)
        logger.info("Catalog schema created")
        print("Schema created")
    finally:
        await engine.dispose()


async def create_key(name: str, scopes: list):
    """Issue a new API key; the raw key is shown once and stored only as a hash."""
    engine = create_engine(config.database_url, pool_size=1)
    raw_key = generate_api_key(api_config.api_key_prefix)
    key_id = uuid.uuid4().hex
    try:
        async with create_session_factory(engine)() as session:
            session.add(ApiKey(
                id=key_id,
                key_hash=hash_api_key(raw_key),
                name=name,
                scopes=scopes,
                active=True,
            ))
            await session.commit()
    finally:
        await engine.dispose()

    logger.info("API key issued", key_id=key_id, name=name, scopes=scopes)
    print(f"Key id:   {key_id}")
    print(f"API key:  {raw_key}")
    print(f"Identity: api_key:{key_id}")


async def _with_limiter(action):
    redis = aioredis.from_url(config.redis_url, socket_timeout=config.redis_socket_timeout, decode_responses=True)
    try:
        store = RedisCounterStore(redis, api_config.rate_limit_window_ms)
        await action(store, RateLimiter(store, api_config.rate_limit_max_requests))
    finally:
        await redis.aclose()


async def set_limit(identity: str, limit):
    """Set (or clear, when limit is None) a rate limit override."""
    async def action(store, _):
        await store.set_override(identity, limit)
        logger.info("Rate limit override updated", identity=identity, limit=limit)
        current = await store.get_override(identity)
        print(f"{identity}: limit {current if current is not None else api_config.rate_limit_max_requests}")
    await _with_limiter(action)


async def reset_counter(identity: str):
    """Clear the current window's counter for an identity."""
    async def action(store, limiter):
        before = await store.current(identity)
        ttl_ms = await store.ttl_ms(identity)
        await limiter.reset(identity)
        print(f"{identity}: counter reset (was {before}, {ttl_ms} ms left in window)")
    await _with_limiter(action)


def usage():
    print("Usage: python manage_catalog.py [init-db|create-key|set-limit|clear-limit|reset] [args]")
    print()
    print("Commands:")
    print("  init-db                          - Create PostGIS extension and tables")
    print("  create-key <name> [scope,...]    - Issue an API key")
    print("  set-limit <identity> <limit>     - Override requests per window")
    print("  clear-limit <identity>           - Remove an override")
    print("  reset <identity>                 - Reset the rate limit counter")
    print()
    print("Identities look like api_key:<id>, oauth:<client_id> or ip:<address>")


async def main():
    """Main function."""
    if len(sys.argv) < 2:
        usage()
        sys.exit(1)

    command = sys.argv[1].lower()
    args = sys.argv[2:]

    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.log_file,
        debug=config.debug
    )

    if command == "init-db":
        await create_schema()
    elif command == "create-key" and args:
        scopes = [s for s in args[1].split(",") if s] if len(args) > 1 else []
        await create_key(args[0], scopes)
    elif command == "set-limit" and len(args) == 2:
        await set_limit(args[0], int(args[1]))
    elif command == "clear-limit" and len(args) == 1:
        await set_limit(args[0], None)
    elif command == "reset" and len(args) == 1:
        await reset_counter(args[0])
    else:
        usage()
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
