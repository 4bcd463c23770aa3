"""Redis 客户端配置模块"""

from redis import Redis
from redis.asyncio import Redis as AsyncRedis
from redlock import Redlock

from app.core.config import settings

REDIS_URL = settings.redis_url

# 基础 Redis 客户端（优惠券缓存）
redis_client = Redis.from_url(REDIS_URL, decode_responses=True)
async_redis = AsyncRedis.from_url(REDIS_URL, decode_responses=True)


# Redlock 配置（支持单实例和多实例）
def create_redlock(redis_hosts: str = None) -> Redlock:
    """根据配置动态创建 Redlock 实例"""
    redis_hosts = redis_hosts if redis_hosts is not None else settings.REDIS_HOSTS

    if redis_hosts and "," in redis_hosts:  # 多实例模式
        hosts = [h.strip() for h in redis_hosts.split(",") if h.strip()]
    else:  # 单实例模式
        hosts = [redis_hosts.strip() if redis_hosts else settings.REDIS_HOST]

    servers = [
        {"host": host, "port": settings.REDIS_PORT, "db": settings.REDIS_DB}
        for host in hosts
    ]
    return Redlock(servers)


redlock = create_redlock()

# 导出
__all__ = [
    "redis_client",
    "async_redis",
    "redlock",
    "create_redlock",
    "REDIS_URL",
]
