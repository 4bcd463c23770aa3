"""提交接口的幂等处理"""

import hashlib
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import HTTPException
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.idempotency_keys import IdempotencyKey, IdempotencyStatus

logger = logging.getLogger(__name__)


def request_fingerprint(payload: Any) -> str:
    """请求体摘要（JSON 键排序后 SHA-256）"""
    raw = json.dumps(payload, sort_keys=True, ensure_ascii=False, separators=(",", ":"))
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def _as_aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite 取回的是 naive 时间
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class IdempotencyService:
    def __init__(self, db: Session, ttl_hours: int = 24):
        self.db = db
        self.ttl_hours = ttl_hours

    def begin(self, key: str, request_hash: Optional[str] = None,
              session_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """登记一次提交

        已成功的返回响应快照；处理中的返回 409；同键不同请求体返回 422；
        未登记、已失败或已过期的标记为 PROCESSING 并返回 None。
        """
        now = datetime.now(timezone.utc)
        record = self.db.execute(
            select(IdempotencyKey).where(IdempotencyKey.key == key)
        ).scalar_one_or_none()

        if record is not None:
            expired = record.expires_at is not None and _as_aware(record.expires_at) < now
            if not expired:
                if (
                    record.status != IdempotencyStatus.FAILED
                    and request_hash is not None
                    and record.request_hash is not None
                    and record.request_hash != request_hash
                ):
                    raise HTTPException(status_code=422, detail="幂等键已用于不同的请求")
                if record.status == IdempotencyStatus.SUCCESS:
                    logger.info(f"幂等键命中，返回快照: key={key}")
                    return record.response_snapshot
                if record.status == IdempotencyStatus.PROCESSING:
                    raise HTTPException(status_code=409, detail="相同的请求正在处理中")

            record.status = IdempotencyStatus.PROCESSING
            record.response_snapshot = None
            record.request_hash = request_hash
            record.session_id = session_id
            record.expires_at = now + timedelta(hours=self.ttl_hours)
            self.db.commit()
            return None

        try:
            self.db.add(IdempotencyKey(
                key=key,
                session_id=session_id,
                request_hash=request_hash,
                status=IdempotencyStatus.PROCESSING,
                expires_at=now + timedelta(hours=self.ttl_hours),
            ))
            self.db.commit()
        except IntegrityError:
            # 并发的同键请求抢先登记
            self.db.rollback()
            raise HTTPException(status_code=409, detail="相同的请求正在处理中")
        return None

    def complete(self, key: str, snapshot: Dict[str, Any]) -> None:
        self._finish(key, IdempotencyStatus.SUCCESS, snapshot)

    def fail(self, key: str) -> None:
        """标记失败，允许客户端用同一个键重试"""
        self._finish(key, IdempotencyStatus.FAILED, None)

    def _finish(self, key: str, status: IdempotencyStatus, snapshot: Optional[Dict[str, Any]]) -> None:
        try:
            record = self.db.get(IdempotencyKey, key)
            if record is None:
                logger.warning(f"幂等键不存在: key={key}")
                return
            record.status = status
            record.response_snapshot = snapshot
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"更新幂等键失败: key={key}, error: {str(e)}")
            raise

    def cleanup_expired(self, batch_size: int = 500) -> int:
        """删除已过期的幂等键"""
        now = datetime.now(timezone.utc)
        keys = self.db.execute(
            select(IdempotencyKey.key)
            .where(
                IdempotencyKey.expires_at.is_not(None),
                IdempotencyKey.expires_at < now,
                IdempotencyKey.status != IdempotencyStatus.PROCESSING,
            )
            .limit(batch_size)
        ).scalars().all()

        if not keys:
            return 0

        self.db.execute(
            delete(IdempotencyKey)
            .where(IdempotencyKey.key.in_(keys))
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        logger.info(f"清理过期幂等键 {len(keys)} 条")
        return len(keys)
