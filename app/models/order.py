import enum
import uuid

from sqlalchemy import (
    Column,
    String,
    Integer,
    Numeric,
    Text,
    TIMESTAMP,
    ForeignKey,
    Index,
    func,
)
from app.db.base import Base



# 1️ 订单状态（履约流程由后台维护，结算只创建 pending）

class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    REFUNDED = "refunded"



# 2️ 订单表（聚合根）

class Order(Base):
    __tablename__ = "orders"

    id = Column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    user_id = Column(
        String(36),
        nullable=True,
        index=True,
        comment="下单用户",
    )

    total_amount = Column(
        Numeric(10, 2),
        nullable=False,
        comment="应付总额 = 小计 - 折扣 + 运费",
    )

    status = Column(
        String(32),
        nullable=False,
        default=OrderStatus.PENDING.value,
        server_default=OrderStatus.PENDING.value,
    )

    payment_status = Column(
        String(32),
        nullable=False,
        default=PaymentStatus.PENDING.value,
        server_default=PaymentStatus.PENDING.value,
    )

    payment_method = Column(
        String(32),
        nullable=True,
        comment="direct_transfer / transfer / voucher / card",
    )

    # 收货信息快照
    shipping_name = Column(String(255), nullable=True)
    shipping_phone = Column(String(32), nullable=True)
    shipping_address = Column(String(512), nullable=True)
    shipping_city = Column(String(128), nullable=True)
    shipping_state = Column(String(8), nullable=True)
    shipping_zip = Column(String(16), nullable=True)
    shipping_cost = Column(Numeric(10, 2), nullable=False, default=0)
    shipping_method = Column(String(128), nullable=True)

    coupon_id = Column(
        String(36),
        ForeignKey("coupons.id", ondelete="SET NULL"),
        nullable=True,
    )

    discount_amount = Column(
        Numeric(10, 2),
        nullable=False,
        default=0,
    )

    tracking_code = Column(String(64), nullable=True)
    gateway_payment_id = Column(String(64), nullable=True)
    gateway_payment_link = Column(String(512), nullable=True)
    notes = Column(Text, nullable=True)

    # 每次结算尝试一个，防止重复下单
    idempotency_key = Column(
        String(128),
        nullable=True,
        unique=True,
        comment="结算尝试幂等键",
    )

    created_at = Column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at = Column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )



# 3️ 订单明细（必须依附于未回滚的订单）

class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # 非法的商品引用写入 NULL
    product_id = Column(
        String(36),
        nullable=True,
    )

    quantity = Column(
        Integer,
        nullable=False,
    )

    unit_price = Column(
        Numeric(10, 2),
        nullable=False,
    )

    created_at = Column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


Index(
    "idx_orders_user_created_desc",
    Order.user_id,
    Order.created_at.desc(),
)
