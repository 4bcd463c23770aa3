"""结算会话注册表（进程内）

会话在 create / get 时记录最近访问时间，sweep() 关闭超时的会话：
已出结果（confirmation / completed）的按 terminal_ttl，其余按 idle_ttl。
正在执行订单流程或轮询中的会话不回收。
"""

import asyncio
import logging
import time
import uuid
from typing import Callable, Dict, Iterable, List, Optional

from app.core.exceptions import CheckoutSessionNotFound
from app.schemas.checkout import CartLine
from app.services.cart import Cart
from app.services.checkout_orchestrator import CheckoutOrchestrator

logger = logging.getLogger(__name__)

OrchestratorFactory = Callable[[str, Cart, Optional[str]], CheckoutOrchestrator]


class CheckoutRegistry:
    def __init__(
        self,
        factory: OrchestratorFactory,
        idle_ttl: float = 1800.0,
        terminal_ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.factory = factory
        self.idle_ttl = idle_ttl
        self.terminal_ttl = terminal_ttl
        self.clock = clock
        self._sessions: Dict[str, CheckoutOrchestrator] = {}
        self._touched: Dict[str, float] = {}

    def create(self, lines: Iterable[CartLine], user_id: Optional[str] = None) -> CheckoutOrchestrator:
        session_id = uuid.uuid4().hex
        orchestrator = self.factory(session_id, Cart(lines), user_id)
        self._sessions[session_id] = orchestrator
        self._touched[session_id] = self.clock()
        logger.info(f"创建结算会话: session={session_id}, user_id={user_id}")
        return orchestrator

    def get(self, session_id: str) -> CheckoutOrchestrator:
        orchestrator = self._sessions.get(session_id)
        if orchestrator is None:
            raise CheckoutSessionNotFound()
        self._touched[session_id] = self.clock()
        return orchestrator

    async def close(self, session_id: str) -> None:
        orchestrator = self._sessions.pop(session_id, None)
        self._touched.pop(session_id, None)
        if orchestrator is None:
            raise CheckoutSessionNotFound()
        await orchestrator.close()

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.close(session_id)

    def expired_sessions(self) -> List[str]:
        now = self.clock()
        expired = []
        for session_id, orchestrator in self._sessions.items():
            if orchestrator.busy:
                continue
            ttl = self.terminal_ttl if orchestrator.terminal else self.idle_ttl
            if now - self._touched.get(session_id, now) >= ttl:
                expired.append(session_id)
        return expired

    async def sweep(self) -> int:
        """关闭超时会话，返回关闭数量"""
        closed = 0
        for session_id in self.expired_sessions():
            try:
                await self.close(session_id)
                closed += 1
            except CheckoutSessionNotFound:
                # 扫描期间已被 DELETE 关闭
                continue
        if closed:
            logger.info(f"回收结算会话 {closed} 个，剩余 {len(self._sessions)} 个")
        return closed

    async def run_sweeper(self, interval: float) -> None:
        """后台循环，随应用生命周期启动和取消"""
        while True:
            await asyncio.sleep(interval)
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"回收结算会话失败: {str(e)}")

    def __len__(self) -> int:
        return len(self._sessions)
