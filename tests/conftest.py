"""Shared test fixtures."""

import base64
import hashlib
import hmac
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from deposit_checkout.config import Settings
from deposit_checkout.containers import AppContainer
from deposit_checkout.domain.deposits import DepositItem, DepositSession
from deposit_checkout.domain.payments import (
    PartialPaymentRecord,
    PaymentLeg,
    ReconciliationResult,
)
from deposit_checkout.services.deposits import DepositService
from deposit_checkout.services.gateway import DraftOrderCheckout, OrderGateway
from deposit_checkout.services.reconciler import PaymentReconciler
from deposit_checkout.services.store import InMemoryExpiringStore
from deposit_checkout.services.webhooks import WebhookAuthenticator

WEBHOOK_SECRET = "whsec-test"


@dataclass
class FixedClock:
    """Controllable clock for expiry tests."""

    now: datetime = field(
        default_factory=lambda: datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
    )

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@dataclass
class InMemoryOrderGateway(OrderGateway):
    """Order gateway keeping draft orders and payment records in memory."""

    records: dict[str, PartialPaymentRecord] = field(default_factory=dict)
    drafts: dict[str, dict[str, object]] = field(default_factory=dict)
    checkouts: list[tuple[str, Decimal]] = field(default_factory=list)
    writes: list[tuple[str, PaymentLeg, str | None]] = field(default_factory=list)
    fail_create: bool = False
    fail_writes: bool = False
    return_checkout_url: bool = True
    normalize_ids: bool = False

    def canonical_order_id(self, order_id: str) -> str:
        if self.normalize_ids and order_id.isdigit():
            return f"gid://shopify/DraftOrder/{order_id}"
        return order_id

    async def create_draft_order_checkout(  # noqa: PLR0913
        self,
        items: list[DepositItem],
        amount: Decimal,
        *,
        session_id: str,
        customer_id: str | None,
        total_amount: Decimal,
        remaining_amount: Decimal,
    ) -> DraftOrderCheckout:
        if self.fail_create:
            raise RuntimeError("draftOrderCreate failed")
        draft_order_id = f"gid://shopify/DraftOrder/{len(self.drafts) + 1}"
        self.drafts[draft_order_id] = {
            "items": items,
            "amount": amount,
            "session_id": session_id,
            "customer_id": customer_id,
        }
        self.records[draft_order_id] = PartialPaymentRecord(
            order_id=draft_order_id,
            session_id=session_id,
            deposit_amount=amount,
            remaining_amount=remaining_amount,
        )
        checkout_url = (
            f"https://shop.test/invoices/{draft_order_id.rsplit('/', 1)[-1]}"
            if self.return_checkout_url
            else None
        )
        return DraftOrderCheckout(
            draft_order_id=draft_order_id, checkout_url=checkout_url
        )

    async def create_checkout_for_amount(
        self, draft_order_id: str, amount: Decimal
    ) -> str:
        if self.fail_create:
            raise RuntimeError("draftOrderCreate failed")
        self.checkouts.append((draft_order_id, amount))
        return f"https://shop.test/invoices/pay-{len(self.checkouts)}?amount={amount}"

    async def get_partial_payment_record(
        self, order_id: str
    ) -> PartialPaymentRecord | None:
        return self.records.get(order_id)

    async def set_deposit_paid(
        self, order_id: str, transaction_id: str | None = None
    ) -> PartialPaymentRecord:
        return self._mark(order_id, PaymentLeg.DEPOSIT, transaction_id)

    async def set_remaining_paid(
        self, order_id: str, transaction_id: str | None = None
    ) -> PartialPaymentRecord:
        return self._mark(order_id, PaymentLeg.REMAINING, transaction_id)

    def _mark(
        self, order_id: str, leg: PaymentLeg, transaction_id: str | None
    ) -> PartialPaymentRecord:
        if self.fail_writes:
            raise RuntimeError("metafieldsSet failed")
        self.writes.append((order_id, leg, transaction_id))
        updated = self.records[order_id].mark_paid(leg)
        self.records[order_id] = updated
        return updated


@dataclass
class RecordingListener:
    """Payment listener that records every settled leg."""

    results: list[ReconciliationResult] = field(default_factory=list)

    async def on_leg_paid(self, result: ReconciliationResult) -> None:
        self.results.append(result)


def sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def make_record(
    order_id: str = "gid://shopify/DraftOrder/1",
    *,
    deposit_paid: bool = False,
    remaining_paid: bool = False,
) -> PartialPaymentRecord:
    record = PartialPaymentRecord(
        order_id=order_id,
        session_id="deposit_1_abc",
        deposit_amount=Decimal("300"),
        remaining_amount=Decimal("700"),
    )
    if deposit_paid:
        record = record.mark_paid(PaymentLeg.DEPOSIT)
    if remaining_paid:
        record = record.mark_paid(PaymentLeg.REMAINING)
    return record


@pytest.fixture
def settings() -> Settings:
    return Settings(
        shopify_store_domain="example.myshopify.com",
        shopify_admin_access_token="shpat-test",
        shopify_webhook_secret=WEBHOOK_SECRET,
        admin_token="admin-token",
        environment="test",
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def gateway() -> InMemoryOrderGateway:
    return InMemoryOrderGateway()


@pytest.fixture
def session_store(clock: FixedClock) -> InMemoryExpiringStore[DepositSession]:
    return InMemoryExpiringStore[DepositSession](clock=clock)


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def deposit_service(
    gateway: InMemoryOrderGateway,
    session_store: InMemoryExpiringStore[DepositSession],
    clock: FixedClock,
) -> DepositService:
    return DepositService(gateway=gateway, session_store=session_store, clock=clock)


@pytest.fixture
def reconciler(
    gateway: InMemoryOrderGateway,
    session_store: InMemoryExpiringStore[DepositSession],
    listener: RecordingListener,
    clock: FixedClock,
) -> PaymentReconciler:
    return PaymentReconciler(
        gateway=gateway,
        session_store=session_store,
        processed_log=InMemoryExpiringStore[ReconciliationResult](clock=clock),
        listeners=[listener],
    )


@pytest.fixture
def container(
    settings: Settings,
    gateway: InMemoryOrderGateway,
    session_store: InMemoryExpiringStore[DepositSession],
    deposit_service: DepositService,
    reconciler: PaymentReconciler,
) -> AppContainer:
    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        gateway=gateway,
        session_store=session_store,
        deposit_service=deposit_service,
        reconciler=reconciler,
        webhook_authenticator=WebhookAuthenticator(
            secret=settings.shopify_webhook_secret,
            environment=settings.environment,
        ),
        close_resources=close_resources,
    )
