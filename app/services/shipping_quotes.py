"""运费报价（静态报价，尚未对接物流接口）"""

import re
from decimal import Decimal
from typing import List

from fastapi import HTTPException

from app.schemas.checkout import ShippingSelection

STATIC_QUOTES = [
    ShippingSelection(carrier="Correios", service="PAC", price=Decimal("0.00"), delivery_time_days=8),
    ShippingSelection(carrier="Correios", service="SEDEX", price=Decimal("15.90"), delivery_time_days=3),
]


def quote_shipping(zip_code: str) -> List[ShippingSelection]:
    """按邮编返回可选配送方式，第一项为默认（包邮）"""
    clean = re.sub(r"\D", "", zip_code or "")
    if len(clean) != 8:
        raise HTTPException(status_code=400, detail="邮编格式错误，应为 8 位数字")
    return list(STATIC_QUOTES)
