"""Deposit session orchestration against the order gateway."""

import logging
import secrets
import time
from dataclasses import dataclass
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal

from deposit_checkout.domain.deposits import (
    CartLine,
    DepositSession,
    DepositSessionRequest,
)
from deposit_checkout.domain.payments import PartialPaymentRecord
from deposit_checkout.errors import (
    RecordNotFound,
    SessionNotFound,
    UpstreamFailure,
    ValidationFailed,
)
from deposit_checkout.services.gateway import OrderGateway, call_gateway
from deposit_checkout.services.store import Clock, KeyedStore, utc_now
from deposit_checkout.services.validation import (
    build_deposit_session_request,
    validate_deposit_session_request,
)

_logger = logging.getLogger(__name__)

_CENTS = Decimal("0.01")
CART_DEPOSIT_RATE = Decimal("0.3")
CART_MINIMUM_DEPOSIT = Decimal("50")


def generate_session_id() -> str:
    """Return a unique session id: creation time plus a random suffix."""
    return f"deposit_{int(time.time() * 1000)}_{secrets.token_hex(8)}"


def session_url(session_id: str) -> str:
    return f"/deposit-session/{session_id}"


@dataclass
class DepositService:
    """Creates deposit sessions and the checkouts that pay them."""

    gateway: OrderGateway
    session_store: KeyedStore[DepositSession]
    session_ttl_seconds: int = 24 * 3600
    gateway_timeout_seconds: float = 30
    clock: Clock = utc_now

    async def create_session(self, payload: object) -> DepositSession:
        """Validate a raw request and open a deposit session for it."""
        validation = validate_deposit_session_request(payload)
        if not validation.valid:
            raise ValidationFailed(validation.errors)
        request = build_deposit_session_request(payload)  # type: ignore[arg-type]
        return await self.open_session(request)

    async def create_session_from_cart(
        self, lines: list[CartLine], customer_id: str | None = None
    ) -> DepositSession:
        """Open a session for a priced cart with the default deposit plan."""
        if not lines:
            raise ValidationFailed(["Cart is empty"])
        total = sum((line.price * line.quantity for line in lines), Decimal("0"))
        total = total.quantize(_CENTS, rounding=ROUND_HALF_UP)
        deposit = max(total * CART_DEPOSIT_RATE, CART_MINIMUM_DEPOSIT).quantize(
            _CENTS, rounding=ROUND_HALF_UP
        )
        payload: dict[str, object] = {
            "items": [
                {"variant_id": line.variant_id, "quantity": line.quantity}
                for line in lines
            ],
            "total_amount": total,
            "deposit_amount": deposit,
        }
        if customer_id is not None:
            payload["customer_id"] = customer_id
        return await self.create_session(payload)

    async def open_session(self, request: DepositSessionRequest) -> DepositSession:
        """Create the draft order for the deposit and store the session."""
        session_id = generate_session_id()
        draft = await call_gateway(
            self.gateway.create_draft_order_checkout(
                request.items,
                request.deposit_amount,
                session_id=session_id,
                customer_id=request.customer_id,
                total_amount=request.total_amount,
                remaining_amount=request.remaining_amount,
            ),
            action="create_draft_order_checkout",
            timeout_seconds=self.gateway_timeout_seconds,
        )
        if not draft.draft_order_id:
            raise UpstreamFailure("Failed to create draft order")

        created_at = self.clock()
        session = DepositSession(
            session_id=session_id,
            customer_id=request.customer_id,
            items=list(request.items),
            total_amount=request.total_amount,
            deposit_amount=request.deposit_amount,
            remaining_amount=request.remaining_amount,
            draft_order_id=draft.draft_order_id,
            checkout_url=draft.checkout_url,
            created_at=created_at,
            expires_at=created_at + timedelta(seconds=self.session_ttl_seconds),
        )
        self.session_store.create(session_id, session, self.session_ttl_seconds)
        _logger.info(
            "Created deposit session %s for draft order %s",
            session_id,
            draft.draft_order_id,
        )
        return session

    def get_session(self, session_id: str) -> DepositSession:
        session = self.session_store.get(session_id)
        if session is None:
            raise SessionNotFound()
        return session

    async def create_deposit_checkout(self, session_id: str) -> str:
        """Return the checkout URL that collects the deposit."""
        session = self.get_session(session_id)
        if session.checkout_url:
            return session.checkout_url
        return await self._checkout_for(session, session.deposit_amount)

    async def create_remaining_checkout(self, session_id: str) -> str:
        """Return a fresh checkout URL that collects the remaining balance."""
        session = self.get_session(session_id)
        return await self._checkout_for(session, session.remaining_amount)

    async def get_payment_record(self, order_id: str) -> PartialPaymentRecord:
        record = await call_gateway(
            self.gateway.get_partial_payment_record(order_id),
            action="get_partial_payment_record",
            timeout_seconds=self.gateway_timeout_seconds,
        )
        if record is None:
            raise RecordNotFound()
        return record

    async def _checkout_for(self, session: DepositSession, amount: Decimal) -> str:
        checkout_url = await call_gateway(
            self.gateway.create_checkout_for_amount(session.draft_order_id, amount),
            action="create_checkout_for_amount",
            timeout_seconds=self.gateway_timeout_seconds,
        )
        if not checkout_url:
            raise UpstreamFailure("Failed to create checkout")
        return checkout_url
