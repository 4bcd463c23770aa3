"""结算会话注册表单元测试"""
import asyncio
import pytest
from unittest.mock import Mock

from app.core.exceptions import CheckoutSessionNotFound
from app.schemas.checkout_state import CompletedState, ProcessingState
from app.services.checkout_orchestrator import CheckoutOrchestrator
from app.services.checkout_registry import CheckoutRegistry


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestCheckoutRegistry:
    """会话注册表测试类"""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def registry(self, clock, fake_rails):
        def factory(session_id, cart, user_id=None):
            return CheckoutOrchestrator(
                session_id=session_id,
                cart=cart,
                order_store=Mock(),
                coupons=Mock(),
                rails=fake_rails,
                user_id=user_id,
            )
        return CheckoutRegistry(factory, idle_ttl=600, terminal_ttl=60, clock=clock)

    def test_create_and_get(self, registry, sample_cart):
        orchestrator = registry.create(sample_cart, "user-1")

        assert registry.get(orchestrator.session_id) is orchestrator
        assert orchestrator.user_id == "user-1"
        assert len(registry) == 1

    def test_idle_session_is_swept(self, registry, clock, sample_cart):
        orchestrator = registry.create(sample_cart)
        clock.now += 599

        assert asyncio.run(registry.sweep()) == 0

        clock.now += 1
        assert asyncio.run(registry.sweep()) == 1
        assert orchestrator.closed
        with pytest.raises(CheckoutSessionNotFound):
            registry.get(orchestrator.session_id)

    def test_get_refreshes_idle_timer(self, registry, clock, sample_cart):
        orchestrator = registry.create(sample_cart)
        clock.now += 500
        registry.get(orchestrator.session_id)
        clock.now += 500

        assert asyncio.run(registry.sweep()) == 0
        assert len(registry) == 1

    def test_terminal_session_uses_shorter_ttl(self, registry, clock, sample_cart):
        """已出结果的会话按 terminal_ttl 回收"""
        finished = registry.create(sample_cart)
        finished.state = CompletedState(order_id="order-1")
        open_session = registry.create(sample_cart)
        clock.now += 60

        assert registry.expired_sessions() == [finished.session_id]
        assert asyncio.run(registry.sweep()) == 1
        assert registry.get(open_session.session_id) is open_session

    def test_busy_session_is_not_swept(self, registry, clock, sample_cart):
        orchestrator = registry.create(sample_cart)
        orchestrator.state = ProcessingState()
        clock.now += 10000

        assert asyncio.run(registry.sweep()) == 0
        assert not orchestrator.closed

    def test_close_unknown_session(self, registry):
        with pytest.raises(CheckoutSessionNotFound):
            asyncio.run(registry.close("missing"))

    def test_close_all(self, registry, sample_cart):
        sessions = [registry.create(sample_cart) for _ in range(3)]

        asyncio.run(registry.close_all())

        assert len(registry) == 0
        assert all(orchestrator.closed for orchestrator in sessions)
