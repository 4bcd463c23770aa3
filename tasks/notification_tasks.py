"""运营通知相关的 Celery 任务"""

import logging

import httpx

from celery_app import app
from app.core.config import settings

logger = logging.getLogger(__name__)


@app.task(name='tasks.notification.notify_operator', ignore_result=True)
def notify_operator(order_id: str, link: str):
    """把运营深链转发到 webhook（未配置时只记录日志）

    Args:
        order_id: 订单ID
        link: wa.me 深链
    """
    if not settings.OPERATOR_WEBHOOK_URL:
        logger.info(f"运营通知（未配置 webhook）: order_id={order_id}, link={link}")
        return {"status": "logged", "order_id": order_id}

    try:
        response = httpx.post(
            settings.OPERATOR_WEBHOOK_URL,
            json={"order_id": order_id, "link": link},
            timeout=5.0,
        )
        response.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning(f"运营通知发送失败: order_id={order_id}, error: {str(e)}")
        return {"status": "failed", "order_id": order_id}

    logger.info(f"运营通知已发送: order_id={order_id}")
    return {"status": "sent", "order_id": order_id}


# 导出任务
__all__ = ['notify_operator']
