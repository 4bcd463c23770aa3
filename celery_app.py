"""Celery 配置文件"""

from celery import Celery

from app.core.config import settings

# 创建 Celery 应用实例
app = Celery('checkout_worker')

# 配置 Redis 作为 broker 和 backend
app.conf.broker_url = f"redis://{settings.REDIS_HOST}:{settings.REDIS_PORT}/1"
app.conf.result_backend = f"redis://{settings.REDIS_HOST}:{settings.REDIS_PORT}/2"

# 任务序列化配置
app.conf.task_serializer = 'json'
app.conf.result_serializer = 'json'
app.conf.accept_content = ['json']

# 时区配置
app.conf.timezone = 'America/Porto_Velho'
app.conf.enable_utc = True

# 任务路由配置
app.conf.task_routes = {
    'tasks.notification.*': {'queue': 'notification'},
    'tasks.maintenance.*': {'queue': 'maintenance'},
}

# 定时任务：每小时清理过期幂等键
app.conf.beat_schedule = {
    'cleanup-expired-idempotency-keys': {
        'task': 'tasks.maintenance.cleanup_expired_idempotency_keys',
        'schedule': 3600.0,
    },
}

# Worker 配置
app.conf.worker_prefetch_multiplier = 1
app.conf.task_acks_late = True

# worker 启动时加载的任务模块
app.conf.imports = ('tasks.notification_tasks', 'tasks.maintenance_tasks')

# 导出应用实例
__all__ = ['app']
