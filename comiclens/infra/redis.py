from redis.asyncio import Redis

from comiclens.config import get_settings


class _RedisHolder:
    client: Redis | None = None


def get_redis() -> Redis:
    if _RedisHolder.client is None:
        settings = get_settings()
        _RedisHolder.client = Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            db=settings.redis_db,
            decode_responses=True,
        )
    return _RedisHolder.client


async def close_redis() -> None:
    if _RedisHolder.client is not None:
        await _RedisHolder.client.aclose()
        _RedisHolder.client = None


def set_redis(client: Redis | None) -> None:
    _RedisHolder.client = client
