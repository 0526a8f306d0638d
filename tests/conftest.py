"""Shared fixtures: in-memory database, booking factory, fake gateway and settlement."""

import json
import uuid
from datetime import UTC, datetime, timedelta

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.config import settings
from app.core.immutability import register_immutability_enforcement
from app.database import Base
from app.gateways.base import GatewayType, PaymentGateway, RefundResult
from app.models.booking import Booking
from app.models.payment import Credit, Payment, PaymentType
from app.services.gateway_service import gateway_service
from app.services.settlement_service import settlement_service

register_immutability_enforcement()

# Fixed clock for lifecycle tests.
NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)
SETTLEMENT_URL = "https://settlement.test/settle"


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch):
    """Start every test with no gateway, no settlement endpoint and no admin configured."""
    monkeypatch.setattr(settings, "environment", "development")
    monkeypatch.setattr(settings, "stripe_secret_key", None)
    monkeypatch.setattr(settings, "settlement_url", None)
    monkeypatch.setattr(settings, "settlement_service_token", None)
    monkeypatch.setattr(settings, "admin_user_id", None)
    monkeypatch.setattr(settings, "settle_admin_key", None)
    yield


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db(engine):
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_booking(db):
    """Create a booking plus the payment rows its flags imply.

    Defaults describe a confirmed booking (both paid) starting ten days
    after ``NOW``. Pass ``with_payments=False`` to skip payment rows, or
    ``borrower_payment_type="borrower_credit"`` for a credit-funded booking.
    """

    async def _make(
        with_payments: bool = True,
        borrower_payment_type: str = PaymentType.BORROWER_BOOKING.value,
        **overrides,
    ) -> Booking:
        values = {
            "borrower_id": uuid.uuid4(),
            "owner_id": uuid.uuid4(),
            "scheduled_start_at": NOW + timedelta(days=10),
            "duration_minutes": 30,
            "status": "confirmed",
            "borrower_paid": True,
            "borrower_paid_at": NOW - timedelta(days=1),
            "owner_deposit_paid": True,
            "owner_deposit_paid_at": NOW - timedelta(hours=20),
            "created_at": NOW - timedelta(days=1),
        }
        values.update(overrides)
        booking = Booking(**values)
        db.add(booking)
        await db.flush()

        if with_payments and booking.borrower_paid:
            is_credit = borrower_payment_type == PaymentType.BORROWER_CREDIT.value
            db.add(
                Payment(
                    booking_id=booking.id,
                    user_id=booking.borrower_id,
                    payment_type=borrower_payment_type,
                    status="succeeded",
                    amount=settings.flat_deposit_cents,
                    currency="CAD",
                    gateway="credit" if is_credit else "stripe",
                    gateway_transaction_id=None if is_credit else f"pi_borrower_{booking.id.hex[:8]}",
                )
            )
        if with_payments and booking.owner_deposit_paid:
            db.add(
                Payment(
                    booking_id=booking.id,
                    user_id=booking.owner_id,
                    payment_type=PaymentType.OWNER_DEPOSIT.value,
                    status="succeeded",
                    amount=settings.flat_deposit_cents,
                    currency="CAD",
                    gateway="stripe",
                    gateway_transaction_id=f"pi_owner_{booking.id.hex[:8]}",
                )
            )
        await db.commit()
        return booking

    return _make


@pytest.fixture
def make_used_credit(db):
    """A credit the user already spent on ``booking``."""

    async def _make(user_id: uuid.UUID, booking: Booking, amount: int = 15000) -> Credit:
        origin = Booking(
            borrower_id=user_id,
            owner_id=uuid.uuid4(),
            scheduled_start_at=NOW - timedelta(days=30),
            cancelled=True,
            status="cancelled",
            created_at=NOW - timedelta(days=40),
        )
        db.add(origin)
        await db.flush()
        credit = Credit(
            user_id=user_id,
            booking_id=origin.id,
            credit_type="rebook_credit",
            amount=amount,
            currency="CAD",
            status="used",
            used_at=NOW - timedelta(days=1),
            used_on_booking_id=booking.id,
        )
        db.add(credit)
        await db.commit()
        return credit

    return _make


class FakeGateway(PaymentGateway):
    """Records refund calls; returns the same refund for a repeated idempotency key."""

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.fail_with: str | None = None
        self._by_key: dict[str, str] = {}

    @property
    def gateway_type(self) -> GatewayType:
        return GatewayType.STRIPE

    async def process_refund(self, transaction_id, amount, reason, idempotency_key) -> RefundResult:
        self.calls.append(
            {
                "transaction_id": transaction_id,
                "amount": amount,
                "reason": reason,
                "idempotency_key": idempotency_key,
            }
        )
        if self.fail_with:
            return RefundResult(success=False, error_message=self.fail_with)
        refund_id = self._by_key.setdefault(idempotency_key, f"re_{len(self._by_key) + 1}")
        return RefundResult(success=True, refund_id=refund_id, status="succeeded")


@pytest.fixture
def fake_gateway(monkeypatch: pytest.MonkeyPatch) -> FakeGateway:
    gateway = FakeGateway()
    monkeypatch.setattr(gateway_service, "get_refund_gateway", lambda: gateway)
    return gateway


class SettlementRecorder:
    """Stands in for the remote settlement endpoint."""

    def __init__(self) -> None:
        self.requests: list[dict] = []
        self.status_code = 200
        self.body: dict = {"ok": True, "outcome": "settled"}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(
            {
                "url": str(request.url),
                "json": json.loads(request.content),
                "authorization": request.headers.get("authorization"),
            }
        )
        return httpx.Response(self.status_code, json=self.body)


@pytest_asyncio.fixture
async def settlement(monkeypatch: pytest.MonkeyPatch):
    recorder = SettlementRecorder()
    monkeypatch.setattr(settings, "settlement_url", SETTLEMENT_URL)
    settlement_service._http_client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    yield recorder
    await settlement_service.close()
