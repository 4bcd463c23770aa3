"""支付通道的请求/响应模型

远程函数返回 camelCase 字段，这里统一映射为 snake_case。
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field


# 卡支付结果
CARD_APPROVED_STATUSES = {"APPROVED", "CONFIRMED", "RECEIVED"}
CARD_PENDING_STATUS = "PENDING"

# 网关状态查询结果
GATEWAY_CONFIRMED_STATUSES = {"CONFIRMED", "RECEIVED"}
GATEWAY_PENDING_STATUS = "PENDING"


class CustomerInfo(BaseModel):
    name: str
    email: str = ""
    phone: str
    tax_id: str = ""
    postal_code: str = ""
    address: str = ""
    address_number: str = ""
    complement: str = ""
    province: str = ""
    city: str = ""
    state: str = ""


# ==================== 直接转账 ====================

class DirectTransferPayment(BaseModel):
    id: str
    transfer_key: str = Field(validation_alias=AliasChoices("transfer_key", "pixKey"))
    transaction_id: str = Field(validation_alias=AliasChoices("transaction_id", "transactionId"))
    amount: Decimal
    expires_at: datetime = Field(validation_alias=AliasChoices("expires_at", "expiresAt"))


class DirectTransferResult(BaseModel):
    success: bool = False
    payment: Optional[DirectTransferPayment] = Field(
        None, validation_alias=AliasChoices("payment", "pixPayment")
    )
    error: Optional[str] = None


# ==================== 网关 ====================

class TransferQr(BaseModel):
    encoded_image: str = Field(validation_alias=AliasChoices("encoded_image", "encodedImage"))
    payload: str
    expiration: Optional[str] = Field(
        None, validation_alias=AliasChoices("expiration", "expirationDate")
    )


class GatewayPayment(BaseModel):
    id: str
    invoice_url: Optional[str] = Field(None, validation_alias=AliasChoices("invoice_url", "invoiceUrl"))
    voucher_url: Optional[str] = Field(
        None, validation_alias=AliasChoices("voucher_url", "bankSlipUrl")
    )
    transfer_qr: Optional[TransferQr] = Field(
        None, validation_alias=AliasChoices("transfer_qr", "pixQrCode")
    )
    status: Optional[str] = None


class GatewayPaymentResult(BaseModel):
    success: bool = False
    payment: Optional[GatewayPayment] = None
    error: Optional[str] = None


class CardPaymentRef(BaseModel):
    id: str
    status: Optional[str] = None


class CardPaymentResult(BaseModel):
    success: bool = False
    status: Optional[str] = None
    payment: Optional[CardPaymentRef] = None
    error: Optional[str] = None
