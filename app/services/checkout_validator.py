"""收货信息与支付方式校验（纯函数，无远程调用）"""

import re
from datetime import date
from typing import Dict, Optional

from app.core.exceptions import CheckoutValidationError
from app.schemas.checkout import CheckoutForm, PaymentMethod

_NON_DIGIT = re.compile(r"\D")

REQUIRED_FIELDS = {
    "name": "请填写收货人姓名",
    "phone": "请填写联系电话",
    "zip": "请填写邮编",
    "address": "请填写街道地址",
    "number": "请填写门牌号",
    "city": "请填写城市",
    "state": "请填写州",
}

CARD_BRAND_PATTERNS = [
    ("visa", re.compile(r"^4")),
    ("mastercard", re.compile(r"^5[1-5]|^2[2-7]")),
    ("amex", re.compile(r"^3[47]")),
    ("elo", re.compile(r"^(636368|438935|504175|451416|636297|5067|4576|4011|506699)")),
    ("hipercard", re.compile(r"^(606282|3841)")),
    ("diners", re.compile(r"^3(?:0[0-5]|[68])")),
]


def digits_only(value: str) -> str:
    return _NON_DIGIT.sub("", value or "")


def validate_cpf(value: str) -> bool:
    cpf = digits_only(value)
    if len(cpf) != 11 or len(set(cpf)) == 1:
        return False

    for length in (9, 10):
        total = sum(int(cpf[i]) * (length + 1 - i) for i in range(length))
        check = (total * 10) % 11
        if check == 10:
            check = 0
        if check != int(cpf[length]):
            return False
    return True


def validate_cnpj(value: str) -> bool:
    cnpj = digits_only(value)
    if len(cnpj) != 14 or len(set(cnpj)) == 1:
        return False

    for size in (12, 13):
        pos = size - 7
        total = 0
        for ch in cnpj[:size]:
            total += int(ch) * pos
            pos -= 1
            if pos < 2:
                pos = 9
        check = 0 if total % 11 < 2 else 11 - total % 11
        if check != int(cnpj[size]):
            return False
    return True


def validate_tax_id(value: str) -> bool:
    """CPF（11位）或 CNPJ（14位）"""
    clean = digits_only(value)
    if len(clean) == 11:
        return validate_cpf(clean)
    if len(clean) == 14:
        return validate_cnpj(clean)
    return False


def validate_card_number(value: str) -> bool:
    """Luhn 校验，13-19 位"""
    number = re.sub(r"\s", "", value or "")
    if not re.fullmatch(r"\d{13,19}", number):
        return False

    total = 0
    for index, ch in enumerate(reversed(number)):
        digit = int(ch)
        if index % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def detect_card_brand(value: str) -> Optional[str]:
    number = digits_only(value)
    for brand, pattern in CARD_BRAND_PATTERNS:
        if pattern.search(number):
            return brand
    return None


def cvv_length(brand: Optional[str]) -> int:
    return 4 if brand == "amex" else 3


def validate_expiry(month: str, year: str, today: Optional[date] = None) -> bool:
    """月份 1-12 且不早于当前月；年份可以是 2 位或 4 位"""
    today = today or date.today()
    month, year = digits_only(month), digits_only(year)
    if not month or not year or len(year) not in (2, 4):
        return False

    exp_month = int(month)
    exp_year = int(year) if len(year) == 4 else 2000 + int(year)
    if exp_month < 1 or exp_month > 12:
        return False
    return (exp_year, exp_month) >= (today.year, today.month)


def validate_checkout_form(form: CheckoutForm, today: Optional[date] = None) -> Dict[str, str]:
    """返回 {} 表示通过，否则为 {字段: 错误信息}"""
    errors: Dict[str, str] = {}

    for field, message in REQUIRED_FIELDS.items():
        if not (getattr(form, field) or "").strip():
            errors[field] = message

    if form.shipping_option is None:
        errors["shipping_option"] = "请选择配送方式"

    if form.payment_method != PaymentMethod.GATEWAY:
        return errors

    if not validate_tax_id(form.tax_id):
        errors["tax_id"] = "CPF/CNPJ 无效"

    if not form.is_card_payment:
        return errors

    card = form.card
    if card is None:
        errors["card"] = "请填写银行卡信息"
        return errors

    if not validate_card_number(card.number):
        errors["card_number"] = "卡号无效"
    if not card.holder_name.strip():
        errors["card_holder_name"] = "请填写持卡人姓名"
    if not validate_expiry(card.expiry_month, card.expiry_year, today=today):
        errors["card_expiry"] = "有效期无效"

    expected = cvv_length(detect_card_brand(card.number))
    if not re.fullmatch(rf"\d{{{expected}}}", card.cvv or ""):
        errors["card_cvv"] = f"CVV 应为 {expected} 位数字"

    if card.installments < 1 or card.installments > 12:
        errors["installments"] = "分期数应在 1-12 之间"

    return errors


def ensure_valid_checkout_form(form: CheckoutForm, today: Optional[date] = None) -> None:
    """校验失败时抛出 CheckoutValidationError（携带字段错误）"""
    errors = validate_checkout_form(form, today)
    if errors:
        raise CheckoutValidationError(errors)
