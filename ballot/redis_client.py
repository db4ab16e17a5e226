from fastapi import Request
from redis.asyncio import Redis

from ballot.config import REDIS_URL


def create_redis() -> Redis:
    return Redis.from_url(REDIS_URL, decode_responses=True)


def get_redis(request: Request) -> Redis:
    return request.app.state.redis
