"""结算领域异常

所有异常都携带一条可以直接展示给用户的消息。
"""

from typing import Dict, Optional


class CheckoutError(Exception):
    """结算异常基类"""

    default_message = "结算失败，请重试"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class CheckoutValidationError(CheckoutError):
    """表单校验失败（按字段）"""

    default_message = "请检查填写的信息"

    def __init__(self, errors: Dict[str, str], message: Optional[str] = None):
        self.errors = errors
        super().__init__(message)


class CouponRejected(CheckoutError):
    """预占服务拒绝了优惠券，消息原样透传"""

    default_message = "优惠券不可用"


class PaymentInitiationFailure(CheckoutError):
    """支付通道未返回可用的支付信息"""

    default_message = "创建支付失败，请重试"


class TransportFailure(PaymentInitiationFailure):
    """远程调用网络层失败"""

    default_message = "支付通道暂时不可用，请稍后重试"


class PaymentRejected(CheckoutError):
    """卡支付被拒绝"""

    default_message = "支付被拒绝，请检查卡片信息或更换卡片"


class CheckoutBusy(CheckoutError):
    """已有结算步骤在执行，或当前状态不允许该操作"""

    default_message = "订单正在处理中，请勿重复提交"


class CheckoutSessionNotFound(CheckoutError):
    default_message = "结算会话不存在或已关闭"
