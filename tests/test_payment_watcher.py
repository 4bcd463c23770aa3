"""支付轮询单元测试"""
import asyncio
import pytest

from app.core.exceptions import TransportFailure
from app.services.payment_watcher import PaymentWatcher, PollOutcome


def _watch(rails, interval=0, max_attempts=30):
    outcomes = []

    async def on_outcome(outcome, status):
        outcomes.append((outcome, status))

    async def run():
        watcher = PaymentWatcher(rails, "pay_1", on_outcome, interval=interval, max_attempts=max_attempts)
        watcher.start()
        await watcher.join()
        return watcher

    watcher = asyncio.run(run())
    return watcher, outcomes


class TestPaymentWatcher:
    """支付轮询测试类"""

    def test_confirmed_on_third_attempt(self, fake_rails):
        fake_rails.statuses = ["PENDING", "PENDING", "CONFIRMED"]

        watcher, outcomes = _watch(fake_rails)

        assert watcher.attempts == 3
        assert fake_rails.count("status") == 3
        assert outcomes == [(PollOutcome.CONFIRMED, "CONFIRMED")]

    def test_always_pending_stops_at_ceiling(self, fake_rails):
        """一直 PENDING 时恰好查询 30 次"""
        fake_rails.statuses = ["PENDING"]

        watcher, outcomes = _watch(fake_rails)

        assert fake_rails.count("status") == 30
        assert outcomes == [(PollOutcome.EXHAUSTED, "PENDING")]

    def test_failed_query_counts_as_pending(self, fake_rails):
        fake_rails.statuses = [TransportFailure(), "RECEIVED"]

        watcher, outcomes = _watch(fake_rails)

        assert watcher.attempts == 2
        assert outcomes[0][0] == PollOutcome.CONFIRMED

    def test_unexpected_query_error_counts_as_pending(self, fake_rails):
        """非结算异常也不会让轮询提前结束"""
        fake_rails.statuses = [RuntimeError("boom"), "PENDING", "CONFIRMED"]

        watcher, outcomes = _watch(fake_rails)

        assert watcher.attempts == 3
        assert outcomes == [(PollOutcome.CONFIRMED, "CONFIRMED")]

    def test_other_status_is_rejection(self, fake_rails):
        fake_rails.statuses = ["REFUSED"]

        watcher, outcomes = _watch(fake_rails)

        assert watcher.attempts == 1
        assert outcomes == [(PollOutcome.REJECTED, "REFUSED")]

    def test_cancel_stops_without_outcome(self, fake_rails):
        outcomes = []

        async def on_outcome(outcome, status):
            outcomes.append(outcome)

        async def run():
            watcher = PaymentWatcher(fake_rails, "pay_1", on_outcome, interval=10, max_attempts=30)
            watcher.start()
            await asyncio.sleep(0.01)
            watcher.cancel()
            await watcher.join()
            return watcher

        watcher = asyncio.run(run())

        assert outcomes == []
        assert watcher.task.cancelled()
        assert fake_rails.count("status") == 1
