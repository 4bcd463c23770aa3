"""订单写入（结算流程中的订单聚合）

每个方法使用独立会话、独立提交；跨步骤的一致性由结算编排器的补偿保证。
"""

import logging
import re
from typing import Callable, Iterable, Optional

from pydantic import BaseModel
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.order import Order, OrderItem, OrderStatus, PaymentStatus
from app.schemas.checkout import CartLine, CheckoutForm, OrderTotals

logger = logging.getLogger(__name__)

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_valid_product_ref(product_id: Optional[str]) -> bool:
    return bool(product_id) and bool(UUID_PATTERN.match(product_id))


def format_address_line(form: CheckoutForm) -> str:
    """街道, 门牌号[ - 补充] - 街区"""
    line = f"{form.address}, {form.number}"
    if form.complement:
        line += f" - {form.complement}"
    return f"{line} - {form.neighborhood}"


class OrderDraft(BaseModel):
    """创建订单所需的数据"""
    user_id: Optional[str] = None
    totals: OrderTotals
    form: CheckoutForm
    coupon_id: Optional[str] = None
    idempotency_key: str

    @property
    def payment_method_label(self) -> str:
        if self.form.payment_method.value == "direct_transfer":
            return "direct_transfer"
        return self.form.billing_type.value


class OrderStore:
    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def create_order(self, draft: OrderDraft) -> str:
        """插入 pending 订单，返回订单ID；同一幂等键重复提交时返回已有订单"""
        db = self.session_factory()
        try:
            existing = self._find_by_key(db, draft.idempotency_key)
            if existing is not None:
                logger.info(f"幂等键已存在，复用订单: order_id={existing}")
                return existing

            form = draft.form
            shipping = form.shipping_option
            order = Order(
                user_id=draft.user_id,
                total_amount=draft.totals.total_amount,
                status=OrderStatus.PENDING.value,
                payment_status=PaymentStatus.PENDING.value,
                payment_method=draft.payment_method_label,
                shipping_name=form.name,
                shipping_phone=form.phone,
                shipping_address=format_address_line(form),
                shipping_city=form.city,
                shipping_state=form.state,
                shipping_zip=form.zip,
                shipping_cost=draft.totals.shipping_cost,
                shipping_method=f"{shipping.carrier} - {shipping.service}" if shipping else None,
                coupon_id=draft.coupon_id,
                discount_amount=draft.totals.discount_amount,
                idempotency_key=draft.idempotency_key,
            )
            db.add(order)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                existing = self._find_by_key(db, draft.idempotency_key)
                if existing is None:
                    raise
                return existing

            logger.info(f"创建订单成功: order_id={order.id}, total={draft.totals.total_amount}")
            return order.id
        except Exception as e:
            db.rollback()
            logger.error(f"创建订单失败: {str(e)}")
            raise
        finally:
            db.close()

    def create_items(self, order_id: str, lines: Iterable[CartLine]) -> int:
        """写入订单明细，非法商品ID写入 NULL"""
        db = self.session_factory()
        try:
            count = 0
            for line in lines:
                product_id = line.product.id if is_valid_product_ref(line.product.id) else None
                if product_id is None:
                    logger.warning(f"商品ID格式非法，按空值写入: {line.product.id}")
                db.add(OrderItem(
                    order_id=order_id,
                    product_id=product_id,
                    quantity=line.quantity,
                    unit_price=line.product.price,
                ))
                count += 1
            db.commit()
            logger.info(f"写入订单明细: order_id={order_id}, count={count}")
            return count
        except Exception as e:
            db.rollback()
            logger.error(f"写入订单明细失败: order_id={order_id}, error: {str(e)}")
            raise
        finally:
            db.close()

    def delete_order(self, order_id: str) -> bool:
        """补偿：先删明细再删订单"""
        db = self.session_factory()
        try:
            db.execute(delete(OrderItem).where(OrderItem.order_id == order_id))
            result = db.execute(delete(Order).where(Order.id == order_id))
            db.commit()
            deleted = result.rowcount > 0
            logger.info(f"回滚订单: order_id={order_id}, deleted={deleted}")
            return deleted
        except Exception as e:
            db.rollback()
            logger.error(f"回滚订单失败: order_id={order_id}, error: {str(e)}")
            raise
        finally:
            db.close()

    @staticmethod
    def _find_by_key(db: Session, key: str) -> Optional[str]:
        return db.execute(
            select(Order.id).where(Order.idempotency_key == key)
        ).scalar_one_or_none()
