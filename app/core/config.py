import os
from typing import Optional
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # 数据库配置
    POSTGRES_USER: str = os.getenv("POSTGRES_USER", "postgres")
    POSTGRES_PASSWORD: str = os.getenv("POSTGRES_PASSWORD", "123456")
    POSTGRES_HOST: str = os.getenv("POSTGRES_HOST", "localhost")
    POSTGRES_PORT: int = int(os.getenv("POSTGRES_PORT", "5432"))
    POSTGRES_DB: str = os.getenv("POSTGRES_DB", "tagshop")
    
    # Redis 配置
    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    # 多实例 Redlock，逗号分隔
    REDIS_HOSTS: str = os.getenv("REDIS_HOSTS", "")

    # 支付通道（远程函数）配置
    PAYMENT_RAILS_BASE_URL: str = os.getenv("PAYMENT_RAILS_BASE_URL", "http://localhost:54321/functions/v1")
    PAYMENT_RAILS_API_KEY: str = os.getenv("PAYMENT_RAILS_API_KEY", "")
    # None 表示不设置客户端超时
    PAYMENT_RAILS_TIMEOUT: Optional[float] = None

    # 卡支付轮询
    POLL_INTERVAL_SECONDS: float = 2.0
    POLL_MAX_ATTEMPTS: int = 30

    # 支付发起失败时是否删除订单及明细
    COMPENSATE_ON_PAYMENT_FAILURE: bool = True

    COUPON_CACHE_TTL: int = 300
    IDEMPOTENCY_TTL_HOURS: int = 24

    # 结算会话回收（秒）：空闲会话 / 已出结果的会话 / 扫描间隔
    CHECKOUT_SESSION_IDLE_TTL: float = 1800.0
    CHECKOUT_SESSION_TERMINAL_TTL: float = 300.0
    CHECKOUT_SWEEP_INTERVAL: float = 60.0

    # 运营通知
    OPERATOR_WHATSAPP: str = os.getenv("OPERATOR_WHATSAPP", "")
    OPERATOR_WEBHOOK_URL: str = os.getenv("OPERATOR_WEBHOOK_URL", "")

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+psycopg://"
            f"{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/"
            f"{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

settings = Settings()
