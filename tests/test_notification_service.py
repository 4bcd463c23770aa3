"""运营通知服务单元测试"""
from decimal import Decimal
from unittest.mock import patch
from urllib.parse import unquote

from app.services.notification_service import OperatorNotifier, build_operator_link


class TestOperatorNotifier:
    """运营通知测试类"""

    def test_build_link(self):
        link = build_operator_link("+55 69 99324-8849", "abcdef12-0000", Decimal("105.9"),
                                   "Maria Silva", "69993248849", "Porto Velho")

        assert link.startswith("https://wa.me/5569993248849?text=")
        text = unquote(link.split("text=", 1)[1])
        assert "#ABCDEF12" in text
        assert "R$ 105.90" in text
        assert "Maria Silva" in text
        assert "Porto Velho" in text

    def test_dispatch_without_retry(self):
        with patch('app.services.notification_service.notify_operator') as mock_task:
            link = OperatorNotifier("5569993248849").notify_direct_transfer(
                "order-1", Decimal("10"), "Maria", "699", "Porto Velho"
            )

            mock_task.apply_async.assert_called_once_with(args=["order-1", link], retry=False)

    def test_broker_failure_is_swallowed(self):
        with patch('app.services.notification_service.notify_operator') as mock_task:
            mock_task.apply_async.side_effect = ConnectionError("broker down")

            link = OperatorNotifier("5569993248849").notify_direct_transfer(
                "order-1", Decimal("10"), "Maria", "699", "Porto Velho"
            )

            assert link is not None

    def test_no_operator_configured(self):
        with patch('app.services.notification_service.notify_operator') as mock_task:
            assert OperatorNotifier("").notify_direct_transfer("o", Decimal("1"), "M", "1", "C") is None
            mock_task.apply_async.assert_not_called()
