# backend/medbook/redis_client.py

import redis

from .config import settings

# None when no REDIS_URL is configured; event emission is then disabled
redis_client = (
    redis.from_url(settings.redis_url, decode_responses=True)
    if settings.redis_url
    else None
)
