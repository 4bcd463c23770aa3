"""依赖注入单元测试"""
import pytest
from unittest.mock import Mock, patch
from sqlalchemy.orm import Session
from redis import Redis
from redlock import Redlock

from app.core.dependencies import (
    build_orchestrator,
    get_checkout_registry,
    get_coupon_service,
    get_db,
    get_redis,
    get_redlock,
)
from app.services.cart import Cart
from app.services.checkout_orchestrator import CheckoutOrchestrator
from app.services.checkout_registry import CheckoutRegistry
from app.services.coupon_service import CouponService


class TestDependencies:
    """依赖注入测试类"""

    def test_get_db(self):
        """测试数据库会话依赖"""
        with patch('app.core.dependencies.SessionLocal') as mock_session_local:
            db_mock = Mock(spec=Session)
            mock_session_local.return_value = db_mock

            # 获取生成器
            gen = get_db()
            db = next(gen)

            assert db == db_mock
            mock_session_local.assert_called_once()

            # 测试清理
            gen.close()
            db_mock.close.assert_called_once()

    def test_get_redis_success(self):
        """测试 Redis 连接成功"""
        with patch('app.core.dependencies.redis_client') as mock_redis_client:
            mock_redis_client.ping.return_value = True

            redis_conn = get_redis()

            assert redis_conn == mock_redis_client
            mock_redis_client.ping.assert_called_once()

    def test_get_redis_failure(self):
        """测试 Redis 连接失败"""
        with patch('app.core.dependencies.redis_client') as mock_redis_client:
            mock_redis_client.ping.side_effect = Exception("连接失败")

            # 连接失败应该返回 None
            assert get_redis() is None

    def test_get_redlock_success(self):
        """测试 Redlock 有节点配置"""
        with patch('app.core.dependencies.redlock') as mock_redlock:
            mock_redlock.servers = [Mock()]
            assert get_redlock() == mock_redlock

    def test_get_redlock_failure(self):
        """测试 Redlock 无节点配置"""
        with patch('app.core.dependencies.redlock') as mock_redlock:
            mock_redlock.servers = []
            assert get_redlock() is None

    def test_get_coupon_service(self):
        """测试优惠券服务依赖注入"""
        db_mock = Mock(spec=Session)
        redis_mock = Mock(spec=Redis)
        redlock_mock = Mock(spec=Redlock)

        service = get_coupon_service(db=db_mock, redis=redis_mock, rlock=redlock_mock)

        assert isinstance(service, CouponService)
        assert service.db == db_mock
        assert service.redis == redis_mock
        assert service.rlock == redlock_mock
        assert service.cache_ttl == 300

    def test_get_coupon_service_partial_deps(self):
        """测试部分依赖不可用时的服务创建"""
        service = get_coupon_service(db=Mock(spec=Session), redis=None, rlock=None)

        assert service.redis is None
        assert service.rlock is None

    def test_build_orchestrator_uses_settings(self):
        orchestrator = build_orchestrator("s1", Cart(), "user-1")

        assert isinstance(orchestrator, CheckoutOrchestrator)
        assert orchestrator.poll_interval == 2.0
        assert orchestrator.poll_max_attempts == 30
        assert orchestrator.compensate_on_payment_failure is True
        assert orchestrator.user_id == "user-1"

    def test_checkout_registry_is_shared(self):
        assert isinstance(get_checkout_registry(), CheckoutRegistry)
        assert get_checkout_registry() is get_checkout_registry()
        assert get_checkout_registry().idle_ttl == 1800.0
        assert get_checkout_registry().terminal_ttl == 300.0
