import enum
import uuid

from sqlalchemy import (
    Column,
    String,
    Integer,
    Numeric,
    Boolean,
    true,
    TIMESTAMP,
    Enum,
    CheckConstraint,
    Index,
    func,
)
from app.db.base import Base



# 1️ 折扣类型枚举

class DiscountType(str, enum.Enum):
    PERCENTAGE = "percentage"  # 百分比
    FIXED = "fixed"            # 固定金额



# 2️ 优惠券表（使用次数只能经由预占服务原子递增）

class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    code = Column(
        String(64),
        nullable=False,
        unique=True,
        comment="券码（大写存储）",
    )

    description = Column(
        String(255),
        nullable=True,
    )

    discount_type = Column(
        Enum(
            DiscountType,
            name="discount_type",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        comment="折扣类型",
    )

    discount_value = Column(
        Numeric(10, 2),
        nullable=False,
        comment="折扣值（百分比或金额）",
    )

    min_order_value = Column(
        Numeric(10, 2),
        nullable=True,
        comment="最低订单金额",
    )

    max_discount = Column(
        Numeric(10, 2),
        nullable=True,
        comment="最高折扣金额",
    )

    max_uses = Column(
        Integer,
        nullable=True,
        comment="最大使用次数，为空表示不限",
    )

    current_uses = Column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
        comment="已使用次数",
    )

    valid_from = Column(TIMESTAMP(timezone=True), nullable=True)
    valid_until = Column(TIMESTAMP(timezone=True), nullable=True)

    is_active = Column(
        Boolean,
        nullable=False,
        default=True,
        server_default=true(),
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

    __table_args__ = (
        CheckConstraint(
            "current_uses >= 0",
            name="ck_coupon_current_uses_non_negative",
        ),
        CheckConstraint(
            "max_uses IS NULL OR current_uses <= max_uses",
            name="ck_coupon_uses_within_limit",
        ),
    )



# 3️ 按券码查询索引

Index(
    "idx_coupons_code_active",
    Coupon.code,
    Coupon.is_active,
)
