"""购物车（每个结算会话一份，内容在创建会话时确定）"""

from decimal import Decimal
from typing import Iterable, List, Optional

from app.schemas.checkout import CartLine
from app.services.pricing import cart_subtotal


class Cart:
    def __init__(self, lines: Optional[Iterable[CartLine]] = None):
        self._lines: List[CartLine] = [line.model_copy() for line in (lines or [])]

    @property
    def lines(self) -> List[CartLine]:
        return list(self._lines)

    def clear(self) -> None:
        self._lines = []

    def subtotal(self) -> Decimal:
        return cart_subtotal(self._lines)

    def is_empty(self) -> bool:
        return not self._lines
