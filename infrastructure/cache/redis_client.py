"""Redis connection for OTP challenges and rate counters.

create_redis_client() yields None when Redis is unset or unreachable at
startup; create_store() then falls back to the in-process store.
"""

from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from shared.logging import get_logger

log = get_logger(__name__)


def _public_host(redis_uri: str) -> str:
    return redis_uri.rsplit("@", 1)[-1]


async def create_redis_client(
    redis_uri: Optional[str], socket_timeout: float = 2.0
) -> Optional[aioredis.Redis]:
    if not redis_uri:
        log.info("redis_not_configured")
        return None
    client: aioredis.Redis = aioredis.from_url(
        redis_uri,
        decode_responses=True,
        socket_timeout=socket_timeout,
        health_check_interval=30,
    )
    try:
        await client.ping()
    except RedisError as e:
        log.warning(
            "redis_unavailable",
            host=_public_host(redis_uri),
            error_type=type(e).__name__,
        )
        await client.aclose()
        return None
    log.info("redis_connected", host=_public_host(redis_uri))
    return client
