"""
Redis 客户端
"""
from typing import Optional

import redis.asyncio as redis

from svgmotion.config import Settings


def create_redis_client(settings: Settings) -> Optional[redis.Redis]:
    """未配置 REDIS_URL 时返回 None（限流随之关闭）"""
    if not settings.redis_url:
        return None

    # 连接池配置，防止高并发下连接池耗尽
    return redis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
        socket_timeout=5,
        socket_connect_timeout=5,
        retry_on_timeout=True,
        health_check_interval=30,
    )
