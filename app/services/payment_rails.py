"""支付通道适配器

PaymentRails 为端口，HttpPaymentRails 通过 httpx 调用远程函数。
"""

import abc
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from app.core.exceptions import PaymentInitiationFailure, TransportFailure
from app.schemas.checkout import BillingType, CardData, mask_card_number
from app.schemas.payment import (
    CardPaymentResult,
    CustomerInfo,
    DirectTransferResult,
    GatewayPaymentResult,
)

logger = logging.getLogger(__name__)


class PaymentRails(abc.ABC):
    """支付通道端口"""

    @abc.abstractmethod
    async def create_direct_transfer(
        self, order_id: str, amount: Decimal, customer: CustomerInfo
    ) -> DirectTransferResult:
        """生成一次性转账支付"""

    @abc.abstractmethod
    async def process_card(
        self, order_id: str, amount: Decimal, customer: CustomerInfo, card: CardData
    ) -> CardPaymentResult:
        """卡支付"""

    @abc.abstractmethod
    async def create_gateway_payment(
        self, order_id: str, amount: Decimal, customer: CustomerInfo, billing_type: BillingType
    ) -> GatewayPaymentResult:
        """网关发起（转账 / 账单）"""

    @abc.abstractmethod
    async def get_gateway_status(self, payment_id: str) -> str:
        """查询网关支付状态"""

    async def aclose(self) -> None:
        return None


class HttpPaymentRails(PaymentRails):
    def __init__(self, base_url: str, api_key: str = "", timeout: Optional[float] = None,
                 client: Optional[httpx.AsyncClient] = None):
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self.client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None,
                       params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        try:
            response = await self.client.request(method, path, json=payload, params=params)
        except httpx.TransportError as e:
            logger.error(f"支付通道请求失败: {method} {path}, error: {str(e)}")
            raise TransportFailure() from e

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if response.is_error:
            message = data.get("error") or f"支付通道返回错误 ({response.status_code})"
            logger.error(f"支付通道返回错误: {method} {path}, status={response.status_code}, error={message}")
            raise PaymentInitiationFailure(message)

        return data

    @staticmethod
    def _parse(model, data: Dict[str, Any]):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.error(f"支付通道响应格式错误: {str(e)}")
            raise PaymentInitiationFailure("支付通道响应格式错误") from e

    async def create_direct_transfer(self, order_id, amount, customer):
        data = await self._request(
            "POST",
            "/pix-payment",
            payload={
                "orderId": order_id,
                "amount": float(amount),
                "customerName": customer.name,
                "customerEmail": customer.email,
                "customerPhone": customer.phone,
            },
            params={"action": "create"},
        )
        return self._parse(DirectTransferResult, data)

    async def process_card(self, order_id, amount, customer, card):
        expiry_year = card.expiry_year.strip()
        if len(expiry_year) == 2:
            expiry_year = f"20{expiry_year}"

        logger.info(f"提交卡支付: order_id={order_id}, card={mask_card_number(card.number)}")
        data = await self._request(
            "POST",
            "/process-credit-card-payment",
            payload={
                "orderId": order_id,
                "amount": float(amount),
                "customerName": customer.name,
                "customerEmail": customer.email,
                "customerPhone": customer.phone,
                "customerCpfCnpj": customer.tax_id,
                "postalCode": customer.postal_code,
                "address": customer.address,
                "addressNumber": customer.address_number,
                "complement": customer.complement,
                "province": customer.province,
                "city": customer.city,
                "state": customer.state,
                "cardHolderName": card.holder_name,
                "cardNumber": "".join(ch for ch in card.number if ch.isdigit()),
                "expiryMonth": card.expiry_month.strip().zfill(2),
                "expiryYear": expiry_year,
                "ccv": card.cvv,
                "installments": card.installments,
            },
        )
        return self._parse(CardPaymentResult, data)

    async def create_gateway_payment(self, order_id, amount, customer, billing_type):
        data = await self._request(
            "POST",
            "/asaas-payment",
            payload={
                "orderId": order_id,
                "amount": float(amount),
                "billingType": billing_type.wire_value,
                "customerName": customer.name,
                "customerEmail": customer.email,
                "customerPhone": customer.phone,
                "customerCpfCnpj": customer.tax_id,
            },
        )
        return self._parse(GatewayPaymentResult, data)

    async def get_gateway_status(self, payment_id):
        data = await self._request(
            "GET",
            "/asaas-payment-status",
            params={"paymentId": payment_id},
        )
        return str(data.get("status") or "")
