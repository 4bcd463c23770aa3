"""卡支付确认轮询"""

import asyncio
import enum
import logging
from typing import Awaitable, Callable, Optional

from app.core.exceptions import CheckoutError
from app.schemas.payment import GATEWAY_CONFIRMED_STATUSES, GATEWAY_PENDING_STATUS
from app.services.payment_rails import PaymentRails

logger = logging.getLogger(__name__)


class PollOutcome(str, enum.Enum):
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    EXHAUSTED = "exhausted"


OutcomeHandler = Callable[[PollOutcome, str], Awaitable[None]]


class PaymentWatcher:
    """按固定间隔查询支付状态，最多 max_attempts 次

    查询失败按 PENDING 计数。得出结论后调用 on_outcome，之后 cancel() 不再生效。
    """

    def __init__(
        self,
        rails: PaymentRails,
        payment_id: str,
        on_outcome: OutcomeHandler,
        interval: float = 2.0,
        max_attempts: int = 30,
    ):
        self.rails = rails
        self.payment_id = payment_id
        self.on_outcome = on_outcome
        self.interval = interval
        self.max_attempts = max_attempts
        self.attempts = 0
        self.task: Optional[asyncio.Task] = None
        self._settled = False

    def start(self) -> asyncio.Task:
        self.task = asyncio.create_task(self._run(), name=f"payment-watcher-{self.payment_id}")
        return self.task

    @property
    def active(self) -> bool:
        return self.task is not None and not self.task.done() and not self._settled

    def cancel(self) -> None:
        if self.active:
            logger.info(f"停止支付轮询: payment_id={self.payment_id}, attempts={self.attempts}")
            self.task.cancel()

    async def join(self) -> None:
        if self.task is None:
            return
        try:
            await self.task
        except asyncio.CancelledError:
            pass

    async def _query(self) -> str:
        try:
            return await self.rails.get_gateway_status(self.payment_id)
        except CheckoutError as e:
            logger.warning(f"查询支付状态失败，按处理中计: payment_id={self.payment_id}, error: {e.message}")
            return GATEWAY_PENDING_STATUS
        except Exception as e:
            logger.warning(f"查询支付状态异常，按处理中计: payment_id={self.payment_id}, error: {str(e)}")
            return GATEWAY_PENDING_STATUS

    async def _run(self) -> None:
        outcome = PollOutcome.EXHAUSTED
        status = GATEWAY_PENDING_STATUS
        while self.attempts < self.max_attempts:
            if self.attempts:
                await asyncio.sleep(self.interval)
            status = (await self._query()).upper()
            self.attempts += 1

            if status in GATEWAY_CONFIRMED_STATUSES:
                outcome = PollOutcome.CONFIRMED
                break
            if status != GATEWAY_PENDING_STATUS:
                outcome = PollOutcome.REJECTED
                break

        logger.info(
            f"支付轮询结束: payment_id={self.payment_id}, outcome={outcome.value}, "
            f"status={status}, attempts={self.attempts}"
        )
        self._settled = True
        await self.on_outcome(outcome, status)
