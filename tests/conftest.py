"""测试配置和 fixtures"""
import pytest
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import Mock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from redis import Redis
from redlock import Redlock

from app.db.base import Base
import app.models  # noqa: F401  注册全部模型
from app.schemas.checkout import (
    BillingType,
    CardData,
    CartLine,
    CartProduct,
    CheckoutForm,
    PaymentMethod,
    ShippingSelection,
)
from app.schemas.payment import (
    CardPaymentRef,
    CardPaymentResult,
    DirectTransferPayment,
    DirectTransferResult,
    GatewayPayment,
    GatewayPaymentResult,
    TransferQr,
)
from app.services.payment_rails import PaymentRails

PRODUCT_ID = "3f9c2a51-8a4e-4a5b-9c55-0d7f1e2b6a10"
VALID_CPF = "529.982.247-25"
VALID_CNPJ = "11.222.333/0001-81"


class FakePaymentRails(PaymentRails):
    """内存支付通道，记录每次调用"""

    def __init__(self):
        self.calls = []
        self.error = None
        self.direct_transfer_result = DirectTransferResult(
            success=True,
            payment=DirectTransferPayment(
                id="pix-001",
                transfer_key="pix@tagshop.com.br",
                transaction_id="TX0001",
                amount=Decimal("105.90"),
                expires_at=datetime(2030, 1, 1, tzinfo=timezone.utc),
            ),
        )
        self.card_result = CardPaymentResult(
            success=True,
            status="APPROVED",
            payment=CardPaymentRef(id="pay_card_001"),
        )
        self.gateway_result = GatewayPaymentResult(
            success=True,
            payment=GatewayPayment(
                id="pay_gw_001",
                invoice_url="https://gateway.test/i/pay_gw_001",
                transfer_qr=TransferQr(encoded_image="aW1hZ2U=", payload="00020101"),
                status="PENDING",
            ),
        )
        # 依次返回，最后一个重复使用；元素可以是异常
        self.statuses = ["PENDING"]

    def _record(self, *call):
        self.calls.append(call)
        if self.error is not None:
            raise self.error

    async def create_direct_transfer(self, order_id, amount, customer):
        self._record("direct_transfer", order_id, amount)
        return self.direct_transfer_result

    async def process_card(self, order_id, amount, customer, card):
        self._record("card", order_id, amount)
        return self.card_result

    async def create_gateway_payment(self, order_id, amount, customer, billing_type):
        self._record("gateway", order_id, amount, billing_type)
        return self.gateway_result

    async def get_gateway_status(self, payment_id):
        self.calls.append(("status", payment_id))
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if isinstance(status, Exception):
            raise status
        return status

    def count(self, kind: str) -> int:
        return sum(1 for call in self.calls if call[0] == kind)


@pytest.fixture
def db_engine():
    """内存 SQLite（线程间共享同一连接）"""
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def mock_db_session(session_factory):
    """创建测试数据库会话"""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def mock_redis():
    """创建模拟 Redis 客户端"""
    redis_mock = Mock(spec=Redis)
    redis_mock.get.return_value = None
    redis_mock.setex.return_value = True
    redis_mock.delete.return_value = 1
    return redis_mock


@pytest.fixture
def mock_redlock():
    """创建模拟 Redlock 分布式锁"""
    redlock_mock = Mock(spec=Redlock)
    lock_mock = Mock()
    redlock_mock.lock.return_value = lock_mock
    redlock_mock.unlock.return_value = True
    return redlock_mock


@pytest.fixture
def fake_rails():
    return FakePaymentRails()


@pytest.fixture
def sample_cart():
    """小计 100.00"""
    return [
        CartLine(
            product=CartProduct(id=PRODUCT_ID, name="宠物二维码标签", price=Decimal("50.00")),
            quantity=2,
        )
    ]


@pytest.fixture
def sedex():
    return ShippingSelection(carrier="Correios", service="SEDEX", price=Decimal("15.90"), delivery_time_days=3)


@pytest.fixture
def shipping_form(sedex):
    """直接转账的完整表单"""
    return CheckoutForm(
        name="Maria Silva",
        phone="(69) 99324-8849",
        email="maria@example.com",
        zip="76800-000",
        address="Rua das Flores",
        number="123",
        complement="Apto 4",
        neighborhood="Centro",
        city="Porto Velho",
        state="RO",
        shipping_option=sedex,
    )


@pytest.fixture
def card_form(shipping_form):
    return shipping_form.model_copy(update={
        "payment_method": PaymentMethod.GATEWAY,
        "billing_type": BillingType.CARD,
        "tax_id": VALID_CPF,
        "card": CardData(
            number="4111 1111 1111 1111",
            holder_name="MARIA SILVA",
            expiry_month="12",
            expiry_year="99",
            cvv="123",
            installments=1,
        ),
    })
