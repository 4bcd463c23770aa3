"""运营通知（直接转账订单）

尽力而为：不重试，失败只记录日志，不影响结算流程。
"""

import logging
from decimal import Decimal
from typing import Optional
from urllib.parse import quote

from tasks.notification_tasks import notify_operator

logger = logging.getLogger(__name__)


def build_operator_link(
    operator_phone: str,
    order_id: str,
    amount: Decimal,
    customer_name: str,
    customer_phone: str,
    city: str,
) -> str:
    """生成 wa.me 深链"""
    message = (
        f"新订单 #{order_id[:8].upper()}\n"
        f"金额: R$ {amount:.2f}\n"
        f"客户: {customer_name}\n"
        f"电话: {customer_phone}\n"
        f"城市: {city}"
    )
    phone = "".join(ch for ch in operator_phone if ch.isdigit())
    return f"https://wa.me/{phone}?text={quote(message)}"


class OperatorNotifier:
    def __init__(self, operator_phone: str = ""):
        self.operator_phone = operator_phone

    def notify_direct_transfer(
        self,
        order_id: str,
        amount: Decimal,
        customer_name: str,
        customer_phone: str,
        city: str,
    ) -> Optional[str]:
        if not self.operator_phone:
            logger.debug(f"未配置运营号码，跳过通知: order_id={order_id}")
            return None

        link = build_operator_link(
            self.operator_phone, order_id, amount, customer_name, customer_phone, city
        )
        try:
            notify_operator.apply_async(args=[order_id, link], retry=False)
            logger.info(f"已投递运营通知: order_id={order_id}")
        except Exception as e:
            logger.warning(f"投递运营通知失败: order_id={order_id}, error: {str(e)}")
        return link
