import redis.asyncio as redis

from seatlock.config import settings

# connections are opened lazily on first command
redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)


async def get_redis() -> redis.Redis:
    return redis_client
