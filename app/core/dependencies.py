"""依赖注入配置模块"""

import logging
from typing import Optional

from fastapi import Depends
from redis import Redis
from redlock import Redlock

# 数据库会话依赖
from app.db.session import SessionLocal
from sqlalchemy.orm import Session

# Redis 依赖
from app.core.config import settings
from app.core.redis import redis_client, redlock, async_redis

from app.services.cart import Cart
from app.services.checkout_orchestrator import CheckoutOrchestrator
from app.services.checkout_registry import CheckoutRegistry
from app.services.coupon_service import CouponReservationClient, CouponService
from app.services.idempotency_service import IdempotencyService
from app.services.notification_service import OperatorNotifier
from app.services.order_store import OrderStore
from app.services.payment_rails import HttpPaymentRails, PaymentRails

logger = logging.getLogger(__name__)

_payment_rails: Optional[PaymentRails] = None


def get_redis() -> Optional[Redis]:
    """获取同步 Redis 客户端，不可用时返回 None（按无缓存处理）"""
    try:
        redis_client.ping()
    except Exception as e:
        logger.warning(f"Redis 不可用，跳过缓存: {str(e)}")
        return None
    return redis_client


def get_async_redis():
    """获取异步 Redis 客户端"""
    return async_redis


def get_redlock() -> Optional[Redlock]:
    """获取 Redlock 分布式锁实例，未配置节点时返回 None"""
    if not getattr(redlock, "servers", None):
        return None
    return redlock


def get_db() -> Session:
    """获取数据库会话"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_coupon_service(
    db: Session = Depends(get_db),
    redis = Depends(get_redis),
    rlock = Depends(get_redlock)
) -> CouponService:
    """获取优惠券服务实例（依赖注入）"""
    return CouponService(db=db, redis=redis, rlock=rlock, cache_ttl=settings.COUPON_CACHE_TTL)


def get_idempotency_service(db: Session = Depends(get_db)) -> IdempotencyService:
    return IdempotencyService(db=db, ttl_hours=settings.IDEMPOTENCY_TTL_HOURS)


def get_payment_rails() -> PaymentRails:
    """支付通道客户端（进程内共享）"""
    global _payment_rails
    if _payment_rails is None:
        _payment_rails = HttpPaymentRails(
            settings.PAYMENT_RAILS_BASE_URL,
            api_key=settings.PAYMENT_RAILS_API_KEY,
            timeout=settings.PAYMENT_RAILS_TIMEOUT,
        )
    return _payment_rails


async def close_payment_rails() -> None:
    global _payment_rails
    if _payment_rails is not None:
        await _payment_rails.aclose()
        _payment_rails = None


def build_orchestrator(session_id: str, cart: Cart, user_id: Optional[str] = None) -> CheckoutOrchestrator:
    """按配置组装结算编排器"""
    return CheckoutOrchestrator(
        session_id=session_id,
        cart=cart,
        order_store=OrderStore(SessionLocal),
        coupons=CouponReservationClient(SessionLocal, redis_client, redlock),
        rails=get_payment_rails(),
        notifier=OperatorNotifier(settings.OPERATOR_WHATSAPP),
        user_id=user_id,
        poll_interval=settings.POLL_INTERVAL_SECONDS,
        poll_max_attempts=settings.POLL_MAX_ATTEMPTS,
        compensate_on_payment_failure=settings.COMPENSATE_ON_PAYMENT_FAILURE,
    )


checkout_registry = CheckoutRegistry(
    build_orchestrator,
    idle_ttl=settings.CHECKOUT_SESSION_IDLE_TTL,
    terminal_ttl=settings.CHECKOUT_SESSION_TERMINAL_TTL,
)


def get_checkout_registry() -> CheckoutRegistry:
    return checkout_registry


# 常用的依赖注入别名
DatabaseDep = Depends(get_db)
RedisDep = Depends(get_redis)
AsyncRedisDep = Depends(get_async_redis)
RedlockDep = Depends(get_redlock)
CouponServiceDep = Depends(get_coupon_service)
IdempotencyServiceDep = Depends(get_idempotency_service)
CheckoutRegistryDep = Depends(get_checkout_registry)
