"""
基于 Redis 的固定窗口限流器

用于匿名生成请求：按客户端 IP 计数，超出窗口配额即拒绝。
Redis 不可用时放行并记录告警，不影响主流程。
"""
import logging
from typing import Optional

import redis.asyncio as redis
from fastapi import Request

from svgmotion.exceptions import RateLimitError

logger = logging.getLogger(__name__)


class RateLimiter:
    def __init__(self, redis_client: Optional[redis.Redis], times: int = 5, seconds: int = 60):
        """
        Args:
            redis_client: Redis 客户端，为 None 时不限流
            times: 时间窗口内允许的请求次数
            seconds: 时间窗口（秒）
        """
        self.redis_client = redis_client
        self.times = times
        self.seconds = seconds

    @property
    def enabled(self) -> bool:
        return self.redis_client is not None and self.times > 0

    async def hit(self, key: str) -> None:
        """记录一次请求，超过配额抛出 RateLimitError"""
        if not self.enabled:
            return

        key = f"rate_limit:{key}"
        try:
            current = await self.redis_client.get(key)
            if current and int(current) >= self.times:
                raise RateLimitError()

            async with self.redis_client.pipeline() as pipe:
                await pipe.incr(key)
                if not current:
                    await pipe.expire(key, self.seconds)
                await pipe.execute()
        except RateLimitError:
            raise
        except redis.RedisError as exc:
            logger.warning("Rate limiter unavailable, allowing request: %s", exc)


def get_client_ip(request: Request) -> str:
    # X-Forwarded-For 可能包含多个 IP，取第一个
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"
