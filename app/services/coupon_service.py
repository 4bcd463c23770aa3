"""优惠券服务

预占（reserve）是 current_uses 唯一的写入口：条件 UPDATE 原子递增，
外加 Redlock 串行化同一张券的并发请求。
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

from fastapi import HTTPException
from redis import Redis
from redlock import Redlock
from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from app.models.coupon import Coupon
from app.schemas.checkout import AppliedCoupon
from app.schemas.coupon import ReservationResult
from app.services.pricing import compute_discount, money

logger = logging.getLogger(__name__)

MSG_INVALID = "优惠券无效或不存在"
MSG_NOT_STARTED = "该优惠券尚未生效"
MSG_EXPIRED = "该优惠券已过期"
MSG_EXHAUSTED = "该优惠券已达到最大使用次数"
MSG_LOCK_CONFLICT = "优惠券使用冲突，请稍后重试"
MSG_RESERVED = "优惠券已使用"


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def _as_aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _decimal_or_none(value) -> Optional[str]:
    return str(value) if value is not None else None


def _iso_or_none(value: Optional[datetime]) -> Optional[str]:
    return _as_aware(value).isoformat() if value is not None else None


class CouponService:
    """优惠券核心服务类"""

    def __init__(self, db: Session, redis: Redis = None, rlock: Redlock = None, cache_ttl: int = 300):
        self.db = db
        self.redis = redis
        self.rlock = rlock
        self.cache_ttl = cache_ttl

    @staticmethod
    def cache_key(code: str) -> str:
        return f"coupon:code:{normalize_code(code)}"

    def get_coupon_snapshot(self, code: str) -> Optional[dict]:
        """按券码查询有效优惠券（带缓存）"""
        code = normalize_code(code)
        cache_key = self.cache_key(code)

        if self.redis:
            cached = self.redis.get(cache_key)
            if cached is not None:
                logger.debug(f"Cache hit for coupon {code}")
                return json.loads(cached)

        coupon = self.db.execute(
            select(Coupon).where(Coupon.code == code, Coupon.is_active.is_(True))
        ).scalar_one_or_none()
        if coupon is None:
            return None

        snapshot = {
            "id": coupon.id,
            "code": coupon.code,
            "discount_type": coupon.discount_type.value,
            "discount_value": str(coupon.discount_value),
            "min_order_value": _decimal_or_none(coupon.min_order_value),
            "max_discount": _decimal_or_none(coupon.max_discount),
            "max_uses": coupon.max_uses,
            "current_uses": coupon.current_uses,
            "valid_from": _iso_or_none(coupon.valid_from),
            "valid_until": _iso_or_none(coupon.valid_until),
        }

        # 设置缓存（5分钟过期）
        if self.redis:
            self.redis.setex(cache_key, self.cache_ttl, json.dumps(snapshot))
            logger.debug(f"Cache set for coupon {code}")

        return snapshot

    def preview(self, code: str, order_total: Decimal) -> AppliedCoupon:
        """校验优惠券并计算折扣（只读，不占用次数）"""
        snapshot = self.get_coupon_snapshot(code)
        if snapshot is None:
            raise HTTPException(status_code=404, detail=MSG_INVALID)

        now = datetime.now(timezone.utc)
        if snapshot["valid_from"] and datetime.fromisoformat(snapshot["valid_from"]) > now:
            raise HTTPException(status_code=400, detail=MSG_NOT_STARTED)
        if snapshot["valid_until"] and datetime.fromisoformat(snapshot["valid_until"]) < now:
            raise HTTPException(status_code=400, detail=MSG_EXPIRED)
        if snapshot["max_uses"] is not None and snapshot["current_uses"] >= snapshot["max_uses"]:
            raise HTTPException(status_code=400, detail=MSG_EXHAUSTED)

        min_order_value = snapshot["min_order_value"]
        if min_order_value is not None and money(order_total) < money(min_order_value):
            raise HTTPException(
                status_code=400,
                detail=f"订单金额需满 R$ {money(min_order_value):.2f} 才能使用该优惠券",
            )

        discount = compute_discount(
            order_total,
            snapshot["discount_type"],
            Decimal(snapshot["discount_value"]),
            max_discount=Decimal(snapshot["max_discount"]) if snapshot["max_discount"] else None,
        )
        return AppliedCoupon(
            id=snapshot["id"],
            code=snapshot["code"],
            discount_type=snapshot["discount_type"],
            discount_value=Decimal(snapshot["discount_value"]),
            min_order_value=Decimal(min_order_value) if min_order_value else None,
            max_discount=Decimal(snapshot["max_discount"]) if snapshot["max_discount"] else None,
            discount_amount=discount,
        )

    def reserve(self, coupon_id: str) -> ReservationResult:
        """原子预占一次使用次数（带分布式锁）"""
        lock_key = f"lock:coupon:{coupon_id}"
        lock = None

        # 获取分布式锁
        if self.rlock:
            lock = self.rlock.lock(lock_key, ttl=10000)  # 10秒TTL
            if not lock:
                logger.warning(f"优惠券加锁失败: coupon_id={coupon_id}")
                return ReservationResult(success=False, message=MSG_LOCK_CONFLICT)

        try:
            now = datetime.now(timezone.utc)
            result = self.db.execute(
                update(Coupon)
                .where(
                    Coupon.id == coupon_id,
                    Coupon.is_active.is_(True),
                    or_(Coupon.valid_from.is_(None), Coupon.valid_from <= now),
                    or_(Coupon.valid_until.is_(None), Coupon.valid_until >= now),
                    or_(Coupon.max_uses.is_(None), Coupon.current_uses < Coupon.max_uses),
                )
                .values(current_uses=Coupon.current_uses + 1)
                .execution_options(synchronize_session=False)
            )

            if result.rowcount != 1:
                self.db.rollback()
                message = self._rejection_reason(coupon_id, now)
                logger.info(f"优惠券预占被拒绝: coupon_id={coupon_id}, reason={message}")
                return ReservationResult(success=False, message=message)

            self.db.commit()
            logger.info(f"优惠券预占成功: coupon_id={coupon_id}")

        except Exception as e:
            self.db.rollback()
            logger.error(f"优惠券预占失败: coupon_id={coupon_id}, error: {str(e)}")
            raise
        finally:
            # 释放分布式锁
            if self.rlock and lock:
                self.rlock.unlock(lock)

        # 已提交，缓存失效失败不影响结果
        self._invalidate_cache(coupon_id)
        return ReservationResult(success=True, message=MSG_RESERVED)

    def _invalidate_cache(self, coupon_id: str) -> None:
        if not self.redis:
            return
        try:
            code = self.db.execute(
                select(Coupon.code).where(Coupon.id == coupon_id)
            ).scalar_one_or_none()
            if code:
                self.redis.delete(self.cache_key(code))
                logger.debug(f"Cache invalidated for coupon {code}")
        except Exception as e:
            logger.warning(f"优惠券缓存失效失败: coupon_id={coupon_id}, error: {str(e)}")

    def _rejection_reason(self, coupon_id: str, now: datetime) -> str:
        coupon = self.db.get(Coupon, coupon_id)
        if coupon is None or not coupon.is_active:
            return MSG_INVALID
        if coupon.valid_from is not None and _as_aware(coupon.valid_from) > now:
            return MSG_NOT_STARTED
        if coupon.valid_until is not None and _as_aware(coupon.valid_until) < now:
            return MSG_EXPIRED
        if coupon.max_uses is not None and coupon.current_uses >= coupon.max_uses:
            return MSG_EXHAUSTED
        return MSG_INVALID


class CouponReservationClient:
    """结算编排器使用的预占入口，每次调用使用独立会话"""

    def __init__(self, session_factory: Callable[[], Session], redis: Redis = None, rlock: Redlock = None):
        self.session_factory = session_factory
        self.redis = redis
        self.rlock = rlock

    def reserve(self, coupon_id: str) -> ReservationResult:
        db = self.session_factory()
        try:
            return CouponService(db, self.redis, self.rlock).reserve(coupon_id)
        finally:
            db.close()
