"""结算 API 路由"""

from fastapi import APIRouter, Body, Header, HTTPException, Path, Query
from fastapi.encoders import jsonable_encoder
from typing import List, Optional
import logging

from app.core.dependencies import (
    CheckoutRegistryDep,
    CouponServiceDep,
    IdempotencyServiceDep,
)
from app.core.exceptions import CheckoutBusy, CheckoutError, CheckoutSessionNotFound
from app.schemas.checkout import (
    ApplyCouponRequest,
    CheckoutForm,
    CreateSessionRequest,
    ShippingSelection,
)
from app.schemas.checkout_state import CheckoutSessionResponse, ShippingState
from app.services.checkout_registry import CheckoutRegistry
from app.services.coupon_service import CouponService
from app.services.idempotency_service import IdempotencyService, request_fingerprint
from app.services.shipping_quotes import quote_shipping

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/checkout",
    tags=["结算"],
    responses={
        400: {"description": "请求参数错误"},
        404: {"description": "结算会话不存在"},
        409: {"description": "结算处理中或状态冲突"},
        422: {"description": "请求验证失败"},
        500: {"description": "服务器内部错误"}
    }
)


def to_http_exception(e: CheckoutError) -> HTTPException:
    """领域异常转 HTTP 异常"""
    if isinstance(e, CheckoutSessionNotFound):
        return HTTPException(status_code=404, detail=e.message)
    if isinstance(e, CheckoutBusy):
        return HTTPException(status_code=409, detail=e.message)
    return HTTPException(status_code=400, detail=e.message)


@router.post(
    "/sessions",
    response_model=CheckoutSessionResponse,
    status_code=201,
    summary="创建结算会话",
)
async def create_session(
    request: CreateSessionRequest,
    registry: CheckoutRegistry = CheckoutRegistryDep,
):
    """用购物车内容创建结算会话，初始状态为 shipping"""
    try:
        orchestrator = registry.create(request.cart, request.user_id)
        return orchestrator.snapshot()
    except Exception as e:
        logger.error(f"创建结算会话失败: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get(
    "/sessions/{session_id}",
    response_model=CheckoutSessionResponse,
    summary="查询结算状态",
)
async def get_session(
    session_id: str = Path(..., description="结算会话ID"),
    registry: CheckoutRegistry = CheckoutRegistryDep,
):
    try:
        return registry.get(session_id).snapshot()
    except CheckoutError as e:
        raise to_http_exception(e)


@router.post(
    "/sessions/{session_id}/coupon",
    response_model=CheckoutSessionResponse,
    summary="应用优惠券",
    description="""校验券码并预览折扣。

    **注意：**
    - 这里不会占用使用次数，提交订单时由预占服务最终裁决
    """,
)
async def apply_coupon(
    request: ApplyCouponRequest,
    session_id: str = Path(..., description="结算会话ID"),
    registry: CheckoutRegistry = CheckoutRegistryDep,
    coupon_service: CouponService = CouponServiceDep,
):
    try:
        orchestrator = registry.get(session_id)
        coupon = coupon_service.preview(request.code, orchestrator.cart.subtotal())
        orchestrator.apply_coupon(coupon)
        return orchestrator.snapshot()
    except HTTPException:
        # 透传 HTTPException
        raise
    except CheckoutError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"应用优惠券失败: {str(e)}")
        # 未知异常统一抛 500
        raise HTTPException(status_code=500, detail=str(e))


@router.delete(
    "/sessions/{session_id}/coupon",
    response_model=CheckoutSessionResponse,
    summary="移除优惠券",
)
async def remove_coupon(
    session_id: str = Path(..., description="结算会话ID"),
    registry: CheckoutRegistry = CheckoutRegistryDep,
):
    try:
        orchestrator = registry.get(session_id)
        orchestrator.remove_coupon()
        return orchestrator.snapshot()
    except CheckoutError as e:
        raise to_http_exception(e)


@router.post(
    "/sessions/{session_id}/submit",
    response_model=CheckoutSessionResponse,
    summary="提交订单",
    description="""校验表单，创建订单并发起支付。

    **特点：**
    - 校验失败时状态保持 shipping 并返回字段错误
    - 任一步骤失败都会回滚已创建的订单
    - 支持 Idempotency-Key 请求头，重复提交直接返回首次结果
    """,
)
async def submit_checkout(
    form: CheckoutForm = Body(...),
    session_id: str = Path(..., description="结算会话ID"),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key", max_length=64),
    registry: CheckoutRegistry = CheckoutRegistryDep,
    idempotency: IdempotencyService = IdempotencyServiceDep,
):
    key = f"checkout:{session_id}:{idempotency_key}" if idempotency_key else None
    try:
        orchestrator = registry.get(session_id)

        if key:
            snapshot = idempotency.begin(
                key,
                request_hash=request_fingerprint(jsonable_encoder(form)),
                session_id=session_id,
            )
            if snapshot is not None:
                return snapshot

        state = await orchestrator.submit(form)
        response = orchestrator.snapshot()

        if key:
            if isinstance(state, ShippingState):
                idempotency.fail(key)
            else:
                idempotency.complete(key, jsonable_encoder(response))
        return response
    except HTTPException:
        # 透传 HTTPException
        raise
    except CheckoutError as e:
        if key:
            _release_key(idempotency, key)
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"提交订单失败: {str(e)}")
        if key:
            _release_key(idempotency, key)
        raise HTTPException(status_code=500, detail=str(e))


def _release_key(idempotency: IdempotencyService, key: str) -> None:
    try:
        idempotency.fail(key)
    except Exception as e:
        logger.warning(f"释放幂等键失败: key={key}, error: {str(e)}")


@router.post(
    "/sessions/{session_id}/payment-confirmed",
    response_model=CheckoutSessionResponse,
    summary="支付确认推送",
)
async def payment_confirmed(
    session_id: str = Path(..., description="结算会话ID"),
    registry: CheckoutRegistry = CheckoutRegistryDep,
):
    """等待付款的会话收到到账通知后进入 confirmation"""
    try:
        orchestrator = registry.get(session_id)
        orchestrator.payment_confirmed()
        return orchestrator.snapshot()
    except CheckoutError as e:
        raise to_http_exception(e)


@router.delete(
    "/sessions/{session_id}",
    summary="关闭结算会话",
)
async def close_session(
    session_id: str = Path(..., description="结算会话ID"),
    registry: CheckoutRegistry = CheckoutRegistryDep,
):
    try:
        await registry.close(session_id)
        return {"success": True, "message": "结算会话已关闭"}
    except CheckoutError as e:
        raise to_http_exception(e)


@router.get(
    "/shipping-quotes",
    response_model=List[ShippingSelection],
    summary="运费报价",
)
async def shipping_quotes(
    zip: str = Query(..., description="邮编（8位）", example="76800000"),
):
    return quote_shipping(zip)
