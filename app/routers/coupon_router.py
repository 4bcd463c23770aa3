"""优惠券 API 路由"""

from fastapi import APIRouter, HTTPException, Path
import logging

from app.core.dependencies import CouponServiceDep
from app.schemas.coupon import CouponPreviewRequest, CouponPreviewResponse, ReservationResult
from app.services.coupon_service import CouponService

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/coupons",
    tags=["优惠券"],
    responses={
        400: {"description": "优惠券不可用"},
        404: {"description": "优惠券不存在"},
        500: {"description": "服务器内部错误"}
    }
)


@router.post(
    "/validate",
    response_model=CouponPreviewResponse,
    summary="校验优惠券",
    description="""按券码校验优惠券并计算折扣金额。

    **校验项：**
    - 券码存在且启用（不区分大小写）
    - 在有效期内
    - 未达到最大使用次数
    - 订单金额满足最低要求
    """,
)
async def validate_coupon(
    request: CouponPreviewRequest,
    coupon_service: CouponService = CouponServiceDep,
):
    try:
        coupon = coupon_service.preview(request.code, request.order_total)
        return {"success": True, "coupon": coupon}
    except HTTPException:
        # 透传 HTTPException
        raise
    except Exception as e:
        logger.error(f"校验优惠券失败: {str(e)}")
        # 未知异常统一抛 500
        raise HTTPException(status_code=500, detail=str(e))


@router.post(
    "/{coupon_id}/reserve",
    response_model=ReservationResult,
    summary="预占优惠券",
    description="""原子地占用一次使用次数。

    **特点：**
    - 条件更新保证 current_uses 不超过 max_uses
    - 分布式锁防止并发冲突
    - 拒绝时 success 为 false 并给出原因
    """,
)
async def reserve_coupon(
    coupon_id: str = Path(..., description="优惠券ID"),
    coupon_service: CouponService = CouponServiceDep,
):
    try:
        return coupon_service.reserve(coupon_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"预占优惠券失败: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
