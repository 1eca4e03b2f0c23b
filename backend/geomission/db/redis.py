from redis.asyncio import Redis

from ..core.config import settings


class RedisConnectionManager:
    """참여 스냅샷과 카탈로그 캐시가 공유하는 Redis 커넥션"""

    client: Redis | None = None

    @classmethod
    def get_client(cls) -> Redis:
        if cls.client is None:
            cls.client = Redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
        return cls.client

    @classmethod
    async def ping(cls) -> bool:
        try:
            return bool(await cls.get_client().ping())
        except Exception:
            return False

    @classmethod
    async def close(cls) -> None:
        if cls.client:
            await cls.client.aclose()
            cls.client = None
