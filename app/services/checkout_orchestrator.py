"""结算编排器

一个结算会话对应一个编排器实例，对外只暴露 state（按 step 区分的状态）。

下单流程（saga）：
    1. 计算金额，创建 pending 订单（每次尝试一个幂等键）
    2. 预占优惠券，被拒绝时删除订单
    3. 写入订单明细，失败时删除订单
    4. 按支付方式路由到支付通道，失败时按配置删除订单
    5. 成功后清空购物车并切换状态
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from functools import partial
from typing import Optional, Set

from starlette.concurrency import run_in_threadpool

from app.core.exceptions import (
    CheckoutBusy,
    CheckoutError,
    CheckoutSessionNotFound,
    CheckoutValidationError,
    CouponRejected,
    PaymentInitiationFailure,
    PaymentRejected,
)
from app.schemas.checkout import (
    AppliedCoupon,
    BillingType,
    CheckoutForm,
    OrderTotals,
    PaymentMethod,
    ShippingSelection,
)
from app.schemas.checkout_state import (
    AwaitingDirectTransferState,
    AwaitingGatewayState,
    CheckoutSessionResponse,
    CompletedState,
    ConfirmationState,
    ProcessingState,
    ShippingState,
)
from app.schemas.payment import CARD_APPROVED_STATUSES, CARD_PENDING_STATUS, CustomerInfo
from app.services.cart import Cart
from app.services.checkout_validator import digits_only, ensure_valid_checkout_form
from app.services.order_store import OrderDraft
from app.services.payment_rails import PaymentRails
from app.services.payment_watcher import PaymentWatcher, PollOutcome
from app.services.pricing import compute_totals

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "处理订单时发生错误，请重试"


@dataclass
class CheckoutAttempt:
    """一次提交的上下文"""
    form: CheckoutForm
    totals: OrderTotals
    idempotency_key: str
    order_id: Optional[str] = None


class CheckoutOrchestrator:
    def __init__(
        self,
        session_id: str,
        cart: Cart,
        order_store,
        coupons,
        rails: PaymentRails,
        notifier=None,
        user_id: Optional[str] = None,
        poll_interval: float = 2.0,
        poll_max_attempts: int = 30,
        compensate_on_payment_failure: bool = True,
    ):
        self.session_id = session_id
        self.cart = cart
        self.order_store = order_store
        self.coupons = coupons
        self.rails = rails
        self.notifier = notifier
        self.user_id = user_id
        self.poll_interval = poll_interval
        self.poll_max_attempts = poll_max_attempts
        self.compensate_on_payment_failure = compensate_on_payment_failure

        self.state = ShippingState()
        self.coupon: Optional[AppliedCoupon] = None
        self.closed = False

        self._busy = False
        self._generation = 0
        self._attempt: Optional[CheckoutAttempt] = None
        self._watcher: Optional[PaymentWatcher] = None
        self._side_tasks: Set[asyncio.Task] = set()

    # ==================== 查询 ====================

    def totals(self, shipping: Optional[ShippingSelection] = None) -> OrderTotals:
        if shipping is None and isinstance(self.state, ShippingState):
            shipping = self.state.form.shipping_option
        return compute_totals(self.cart.lines, shipping, self.coupon)

    def snapshot(self) -> CheckoutSessionResponse:
        if self._attempt is not None and not isinstance(self.state, ShippingState):
            totals = self._attempt.totals
        else:
            totals = self.totals()
        return CheckoutSessionResponse(
            session_id=self.session_id,
            state=self.state,
            cart=self.cart.lines,
            coupon=self.coupon,
            totals=totals,
        )

    @property
    def busy(self) -> bool:
        return self._busy or isinstance(self.state, ProcessingState)

    @property
    def terminal(self) -> bool:
        """已出结果，不会再有状态变化（推送确认除外）"""
        return isinstance(self.state, (ConfirmationState, CompletedState))

    # ==================== 优惠券 ====================

    def apply_coupon(self, coupon: AppliedCoupon) -> None:
        """保存预览结果，真正的占用在提交时由预占服务裁决"""
        self._ensure_editable()
        self.coupon = coupon
        logger.info(f"应用优惠券: session={self.session_id}, code={coupon.code}")

    def remove_coupon(self) -> None:
        self._ensure_editable()
        self.coupon = None

    # ==================== 提交 ====================

    async def submit(self, form: CheckoutForm):
        self._ensure_open()
        if self.busy:
            raise CheckoutBusy()
        if not isinstance(self.state, ShippingState):
            raise CheckoutBusy("订单已提交，请勿重复提交")

        if self.cart.is_empty():
            self._set_state(ShippingState(form=form, message="购物车为空"))
            return self.state

        try:
            ensure_valid_checkout_form(form)
        except CheckoutValidationError as e:
            self._set_state(ShippingState(form=form, errors=e.errors, message=e.message))
            return self.state

        self._busy = True
        attempt = CheckoutAttempt(
            form=form,
            totals=self.totals(form.shipping_option),
            idempotency_key=uuid.uuid4().hex,
        )
        self._attempt = attempt
        if form.is_card_payment:
            self._set_state(ProcessingState())

        stage = "order"
        try:
            attempt.order_id = await run_in_threadpool(
                self.order_store.create_order,
                OrderDraft(
                    user_id=self.user_id,
                    totals=attempt.totals,
                    form=form,
                    coupon_id=self.coupon.id if self.coupon else None,
                    idempotency_key=attempt.idempotency_key,
                ),
            )
            self._ensure_open()

            if self.coupon is not None:
                stage = "coupon"
                result = await run_in_threadpool(self.coupons.reserve, self.coupon.id)
                if not result.success:
                    raise CouponRejected(result.message)
                self._ensure_open()

            stage = "items"
            await run_in_threadpool(self.order_store.create_items, attempt.order_id, self.cart.lines)
            self._ensure_open()

            stage = "payment"
            await self._route_payment(attempt)

        except CheckoutError as e:
            logger.warning(
                f"结算失败: session={self.session_id}, stage={stage}, "
                f"order_id={attempt.order_id}, reason={e.message}"
            )
            await self._compensate(attempt, stage)
            if not self.closed:
                self._set_state(ShippingState(form=form, message=e.message))
        except Exception as e:
            logger.error(
                f"结算异常: session={self.session_id}, stage={stage}, "
                f"order_id={attempt.order_id}, error: {str(e)}",
                exc_info=True,
            )
            await self._compensate(attempt, stage)
            if not self.closed:
                self._set_state(ShippingState(form=form, message=GENERIC_FAILURE_MESSAGE))
        finally:
            self._busy = False

        return self.state

    async def _route_payment(self, attempt: CheckoutAttempt) -> None:
        form = attempt.form
        order_id = attempt.order_id
        amount = attempt.totals.total_amount
        customer = self._customer(form)

        if form.payment_method == PaymentMethod.DIRECT_TRANSFER:
            result = await self.rails.create_direct_transfer(order_id, amount, customer)
            if not result.success or result.payment is None:
                raise PaymentInitiationFailure(result.error)
            if self._closed_after_payment(attempt):
                return
            self._notify_operator(attempt)
            self._clear_cart()
            self._set_state(AwaitingDirectTransferState(order_id=order_id, payment=result.payment))
            return

        if form.billing_type == BillingType.CARD:
            result = await self.rails.process_card(order_id, amount, customer, form.card)
            if not result.success:
                raise PaymentInitiationFailure(result.error)

            status = (result.status or "").upper()
            if status not in CARD_APPROVED_STATUSES and status != CARD_PENDING_STATUS:
                raise PaymentRejected(result.error)
            if self._closed_after_payment(attempt):
                return
            if status in CARD_APPROVED_STATUSES:
                logger.info(f"卡支付成功: order_id={order_id}")
                self._clear_cart()
                self._set_state(CompletedState(order_id=order_id))
                return
            # PENDING：交给轮询
            if result.payment is None:
                raise PaymentInitiationFailure("支付通道未返回支付ID")
            self._start_watcher(attempt, result.payment.id)
            return

        result = await self.rails.create_gateway_payment(order_id, amount, customer, form.billing_type)
        if not result.success or result.payment is None:
            raise PaymentInitiationFailure(result.error)
        if self._closed_after_payment(attempt):
            return

        payment = result.payment
        self._clear_cart()
        if form.billing_type == BillingType.TRANSFER and payment.transfer_qr is not None:
            self._set_state(AwaitingGatewayState(order_id=order_id, payment=payment))
        elif form.billing_type == BillingType.VOUCHER:
            self._set_state(self._confirmation(attempt, payment.voucher_url or payment.invoice_url))
        else:
            self._set_state(self._confirmation(attempt, payment.invoice_url))

    async def _compensate(self, attempt: CheckoutAttempt, stage: str) -> None:
        """删除本次尝试创建的订单；失败只记录日志"""
        if attempt.order_id is None:
            return
        if stage == "payment" and not self.compensate_on_payment_failure:
            logger.warning(f"支付失败，保留待处理订单: order_id={attempt.order_id}")
            return
        try:
            await run_in_threadpool(self.order_store.delete_order, attempt.order_id)
        except Exception as e:
            logger.error(f"补偿删除订单失败: order_id={attempt.order_id}, error: {str(e)}")

    # ==================== 轮询 ====================

    def _start_watcher(self, attempt: CheckoutAttempt, payment_id: str) -> None:
        logger.info(f"卡支付处理中，开始轮询: order_id={attempt.order_id}, payment_id={payment_id}")
        self._watcher = PaymentWatcher(
            self.rails,
            payment_id,
            on_outcome=partial(self._on_poll_outcome, self._generation, attempt),
            interval=self.poll_interval,
            max_attempts=self.poll_max_attempts,
        )
        self._watcher.start()

    async def _on_poll_outcome(self, generation: int, attempt: CheckoutAttempt,
                               outcome: PollOutcome, status: str) -> None:
        if generation != self._generation or not isinstance(self.state, ProcessingState):
            logger.info(f"忽略过期的轮询结果: session={self.session_id}, outcome={outcome.value}")
            return

        if outcome == PollOutcome.CONFIRMED:
            self._clear_cart()
            self._set_state(CompletedState(order_id=attempt.order_id))
        elif outcome == PollOutcome.EXHAUSTED:
            # 支付可能稍后到账，订单保留
            self._clear_cart()
            self._set_state(self._confirmation(attempt, ""))
        else:
            logger.warning(f"卡支付未通过: order_id={attempt.order_id}, status={status}")
            await self._compensate(attempt, "payment")
            if generation == self._generation:
                self._set_state(ShippingState(form=attempt.form, message=PaymentRejected.default_message))

    # ==================== 推送确认 / 关闭 ====================

    def payment_confirmed(self):
        """下游推送的“已支付”信号"""
        self._ensure_open()
        if isinstance(self.state, (AwaitingDirectTransferState, AwaitingGatewayState)):
            self._set_state(self._confirmation(self._attempt, None, payment_confirmed=True))
        elif not isinstance(self.state, ConfirmationState):
            raise CheckoutBusy("当前状态无法确认支付")
        return self.state

    async def close(self) -> None:
        """关闭会话：停止轮询，之后的轮询结果不再生效"""
        self.closed = True
        self._generation += 1
        if self._watcher is not None:
            self._watcher.cancel()
            await self._watcher.join()
        logger.info(f"结算会话关闭: session={self.session_id}")

    async def join_watcher(self) -> None:
        """等待当前轮询结束（没有轮询时立即返回）"""
        if self._watcher is not None:
            await self._watcher.join()

    async def wait_side_effects(self) -> None:
        if self._side_tasks:
            await asyncio.gather(*list(self._side_tasks), return_exceptions=True)

    # ==================== 内部 ====================

    def _set_state(self, state) -> None:
        if not isinstance(state, ProcessingState) and self._watcher is not None:
            self._watcher.cancel()
        self._generation += 1
        self.state = state
        logger.debug(f"结算状态: session={self.session_id}, step={state.step}")

    def _ensure_open(self) -> None:
        if self.closed:
            raise CheckoutSessionNotFound()

    def _closed_after_payment(self, attempt: CheckoutAttempt) -> bool:
        """支付已在通道发起后会话被关闭：保留订单，不再切换状态或轮询"""
        if self.closed:
            logger.warning(f"会话已关闭，保留已发起支付的订单: session={self.session_id}, order_id={attempt.order_id}")
        return self.closed

    def _ensure_editable(self) -> None:
        self._ensure_open()
        if self.busy or not isinstance(self.state, ShippingState):
            raise CheckoutBusy("当前状态无法修改优惠券")

    def _clear_cart(self) -> None:
        self.cart.clear()
        self.coupon = None

    def _confirmation(self, attempt: CheckoutAttempt, payment_link: Optional[str],
                      payment_confirmed: bool = False) -> ConfirmationState:
        form = attempt.form
        method = (
            form.payment_method.value
            if form.payment_method == PaymentMethod.DIRECT_TRANSFER
            else form.billing_type.value
        )
        return ConfirmationState(
            order_id=attempt.order_id,
            total_amount=attempt.totals.total_amount,
            payment_method=method,
            payment_link=payment_link,
            payment_confirmed=payment_confirmed,
        )

    @staticmethod
    def _customer(form: CheckoutForm) -> CustomerInfo:
        return CustomerInfo(
            name=form.name,
            email=form.email,
            phone=digits_only(form.phone),
            tax_id=digits_only(form.tax_id),
            postal_code=digits_only(form.zip),
            address=form.address,
            address_number=form.number,
            complement=form.complement,
            province=form.neighborhood,
            city=form.city,
            state=form.state,
        )

    def _notify_operator(self, attempt: CheckoutAttempt) -> None:
        """后台投递，不等待、不影响状态"""
        if self.notifier is None:
            return
        form = attempt.form
        task = asyncio.create_task(run_in_threadpool(
            self.notifier.notify_direct_transfer,
            attempt.order_id,
            attempt.totals.total_amount,
            form.name,
            form.phone,
            form.city,
        ))
        self._side_tasks.add(task)
        task.add_done_callback(self._side_task_done)

    def _side_task_done(self, task: asyncio.Task) -> None:
        self._side_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"运营通知执行失败: session={self.session_id}, error: {task.exception()}")
