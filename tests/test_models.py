"""模型单元测试"""
import pytest
from decimal import Decimal
from sqlalchemy.exc import IntegrityError

from app.models.coupon import Coupon, DiscountType
from app.models.idempotency_keys import IdempotencyKey, IdempotencyStatus
from app.models.order import Order, OrderItem


class TestModels:
    """数据模型测试类"""

    def test_coupon_model(self, mock_db_session):
        """测试优惠券模型默认值"""
        coupon = Coupon(code="WELCOME", discount_type=DiscountType.FIXED, discount_value=Decimal("15"))
        mock_db_session.add(coupon)
        mock_db_session.commit()

        saved = mock_db_session.query(Coupon).first()
        assert saved.id is not None
        assert saved.current_uses == 0
        assert saved.is_active is True
        assert saved.discount_type == DiscountType.FIXED
        assert saved.created_at is not None

    def test_coupon_code_unique(self, mock_db_session):
        mock_db_session.add(Coupon(code="DUP", discount_type=DiscountType.FIXED, discount_value=Decimal("1")))
        mock_db_session.commit()
        mock_db_session.add(Coupon(code="DUP", discount_type=DiscountType.FIXED, discount_value=Decimal("2")))

        with pytest.raises(IntegrityError):
            mock_db_session.commit()
        mock_db_session.rollback()

    def test_coupon_uses_cannot_exceed_limit(self, mock_db_session):
        """current_uses 不能超过 max_uses"""
        mock_db_session.add(Coupon(
            code="LIMIT", discount_type=DiscountType.FIXED, discount_value=Decimal("1"),
            max_uses=1, current_uses=2,
        ))

        with pytest.raises(IntegrityError):
            mock_db_session.commit()
        mock_db_session.rollback()

    def test_order_and_items(self, mock_db_session):
        """测试订单与明细模型"""
        order = Order(total_amount=Decimal("105.90"), idempotency_key="attempt-1")
        mock_db_session.add(order)
        mock_db_session.flush()
        mock_db_session.add(OrderItem(order_id=order.id, product_id=None, quantity=2, unit_price=Decimal("50")))
        mock_db_session.commit()

        saved = mock_db_session.query(Order).first()
        assert saved.status == "pending"
        assert saved.payment_status == "pending"
        assert saved.discount_amount == Decimal("0")
        assert mock_db_session.query(OrderItem).count() == 1

    def test_order_idempotency_key_unique(self, mock_db_session):
        mock_db_session.add(Order(total_amount=Decimal("1"), idempotency_key="same"))
        mock_db_session.commit()
        mock_db_session.add(Order(total_amount=Decimal("1"), idempotency_key="same"))

        with pytest.raises(IntegrityError):
            mock_db_session.commit()
        mock_db_session.rollback()

    def test_idempotency_key_model(self, mock_db_session):
        """测试幂等键模型"""
        mock_db_session.add(IdempotencyKey(
            key="checkout:s1:k1",
            session_id="s1",
            request_hash="a" * 64,
            response_snapshot={"ok": True},
        ))
        mock_db_session.commit()

        saved = mock_db_session.get(IdempotencyKey, "checkout:s1:k1")
        assert saved.status == IdempotencyStatus.PROCESSING
        assert saved.session_id == "s1"
        assert saved.request_hash == "a" * 64
        assert saved.response_snapshot == {"ok": True}
        assert saved.created_at is not None
