"""维护类 Celery 任务"""

import logging

from celery_app import app
from app.core.config import settings
from app.db.session import SessionLocal
from app.services.idempotency_service import IdempotencyService

logger = logging.getLogger(__name__)


@app.task(name='tasks.maintenance.cleanup_expired_idempotency_keys')
def cleanup_expired_idempotency_keys(batch_size: int = 500):
    """清理过期的幂等键

    Args:
        batch_size: 批处理大小，默认500条
    """
    db = SessionLocal()
    try:
        service = IdempotencyService(db, ttl_hours=settings.IDEMPOTENCY_TTL_HOURS)
        count = service.cleanup_expired(batch_size)
        result = f"成功清理 {count} 条过期幂等键"
        logger.info(result)
        return result
    except Exception as e:
        logger.error(f"清理过期幂等键任务执行失败: {str(e)}")
        db.rollback()
        raise
    finally:
        db.close()


# 导出任务
__all__ = ['cleanup_expired_idempotency_keys']
