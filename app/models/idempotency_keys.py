import enum

from sqlalchemy import (
    Column,
    String,
    JSON,
    TIMESTAMP,
    Enum,
    Index,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from app.db.base import Base



# 1️ 提交状态

class IdempotencyStatus(str, enum.Enum):
    PROCESSING = "PROCESSING"  # 订单流程执行中
    SUCCESS = "SUCCESS"        # 已离开 shipping，可回放
    FAILED = "FAILED"          # 表单被退回或出错，键可重用



# 2️ 结算提交记录（Idempotency-Key 请求头）

class IdempotencyKey(Base):
    __tablename__ = "idempotency_keys"

    # checkout:{session_id}:{客户端提交键}
    key = Column(String(128), primary_key=True)

    session_id = Column(
        String(32),
        nullable=True,
        comment="结算会话ID",
    )

    # 请求体摘要，同键不同请求体时拒绝
    request_hash = Column(
        String(64),
        nullable=True,
        comment="请求体 SHA-256",
    )

    status = Column(
        Enum(IdempotencyStatus, name="idempotency_status_type"),
        nullable=False,
        default=IdempotencyStatus.PROCESSING,
        server_default=IdempotencyStatus.PROCESSING.value,
    )

    # 结算会话快照（SUCCESS 时回放）
    response_snapshot = Column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=True,
    )

    created_at = Column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    expires_at = Column(
        TIMESTAMP(timezone=True),
        nullable=True,
        comment="IDEMPOTENCY_TTL_HOURS 之后可被清理",
    )



# 3️ 清理任务按状态 + 过期时间扫描

Index(
    "idx_idempotency_keys_status_expires",
    IdempotencyKey.status,
    IdempotencyKey.expires_at,
)
