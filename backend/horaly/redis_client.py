# backend/horaly/redis_client.py

from redis import Redis

from .config import settings

# None when REDIS_URL is not configured: slot grids are then computed
# on every request and events are only logged.
redis_client: Redis | None = (
    Redis.from_url(settings.redis_url, socket_timeout=2.0) if settings.redis_url else None
)


def get_redis() -> Redis | None:
    return redis_client
