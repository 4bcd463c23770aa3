"""优惠券路由单元测试"""
import pytest
from decimal import Decimal
from unittest.mock import Mock, patch
from fastapi import HTTPException
from fastapi.testclient import TestClient

from app.core.dependencies import get_coupon_service
from app.main import app
from app.schemas.checkout import AppliedCoupon
from app.schemas.coupon import ReservationResult


class TestCouponRouter:
    """优惠券路由测试类"""

    @pytest.fixture
    def mock_service(self):
        """创建模拟优惠券服务"""
        service_mock = Mock()
        app.dependency_overrides[get_coupon_service] = lambda: service_mock
        try:
            yield service_mock
        finally:
            app.dependency_overrides.clear()

    @pytest.fixture
    def client(self, mock_service):
        """创建测试客户端"""
        return TestClient(app)

    def test_validate_coupon_success(self, client, mock_service):
        mock_service.preview.return_value = AppliedCoupon(
            id="c1", code="PROMO10", discount_type="percentage",
            discount_value=Decimal("10"), discount_amount=Decimal("10.00"),
        )

        response = client.post("/api/v1/coupons/validate", json={"code": "promo10", "order_total": "100.00"})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["coupon"]["code"] == "PROMO10"
        mock_service.preview.assert_called_once_with("promo10", Decimal("100.00"))

    def test_validate_coupon_http_exception(self, client, mock_service):
        """服务抛出的 HTTPException 透传"""
        mock_service.preview.side_effect = HTTPException(status_code=400, detail="该优惠券已过期")

        response = client.post("/api/v1/coupons/validate", json={"code": "OLD", "order_total": "100"})

        assert response.status_code == 400
        assert response.json()["message"] == "该优惠券已过期"

    def test_validate_coupon_unknown_exception(self, client, mock_service):
        """未知异常统一返回 500"""
        mock_service.preview.side_effect = Exception("数据库错误")

        response = client.post("/api/v1/coupons/validate", json={"code": "X", "order_total": "100"})

        assert response.status_code == 500
        assert "数据库错误" in response.json()["message"]

    def test_validate_coupon_invalid_total(self, client):
        response = client.post("/api/v1/coupons/validate", json={"code": "X", "order_total": "0"})
        assert response.status_code == 422

    def test_reserve_coupon(self, client, mock_service):
        mock_service.reserve.return_value = ReservationResult(success=False, message="该优惠券已达到最大使用次数")

        response = client.post("/api/v1/coupons/c1/reserve")

        assert response.status_code == 200
        assert response.json() == {"success": False, "message": "该优惠券已达到最大使用次数"}
        mock_service.reserve.assert_called_once_with("c1")
