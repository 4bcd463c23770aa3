"""运费报价单元测试"""
import pytest
from decimal import Decimal
from fastapi import HTTPException

from app.services.shipping_quotes import quote_shipping


class TestShippingQuotes:

    def test_static_quotes(self):
        quotes = quote_shipping("76800-000")

        assert [q.service for q in quotes] == ["PAC", "SEDEX"]
        assert quotes[0].price == Decimal("0.00")
        assert quotes[0].delivery_time_days == 8
        assert quotes[1].price == Decimal("15.90")

    def test_invalid_zip(self):
        with pytest.raises(HTTPException) as exc_info:
            quote_shipping("1234")
        assert exc_info.value.status_code == 400
