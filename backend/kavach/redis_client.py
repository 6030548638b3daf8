# kavach/redis_client.py
# ------------------------------------------------------------
# Centralized Redis connection helper.
#
# Only used when state_backend == "redis": the update feed and the
# translation cache then live in Redis so several workers can share
# them. Domain state (trains, alerts, counters) stays in-process.
# ------------------------------------------------------------

from typing import Optional

import redis

from .config import settings


def get_redis(url: Optional[str] = None) -> redis.Redis:
    """
    Returns a Redis client instance.

    - decode_responses=True ensures all values are returned as str
      (important for JSON handling and SSE payloads).
    """
    return redis.Redis.from_url(
        url or settings.redis_url,
        decode_responses=True,
    )
