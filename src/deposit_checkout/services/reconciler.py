"""Payment state machine driven by verified commerce notifications."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from typing import Protocol

from deposit_checkout.domain.deposits import DepositSession
from deposit_checkout.domain.notifications import (
    OrderReferenceNotification,
    PaymentNotification,
    decode_notification,
    extract_session_id,
    resolve_order_id,
)
from deposit_checkout.domain.payments import (
    PartialPaymentRecord,
    PaymentLeg,
    ReconciliationResult,
)
from deposit_checkout.errors import (
    AmountMismatch,
    OrderNotResolved,
    RecordNotFound,
    SessionNotFound,
    UpstreamFailure,
)
from deposit_checkout.services.gateway import OrderGateway, call_gateway
from deposit_checkout.services.store import InMemoryExpiringStore, KeyedStore

_logger = logging.getLogger(__name__)

_CENTS = Decimal("0.01")


class PaymentListener(Protocol):
    """Receives one-time side effects of a settled payment leg."""

    async def on_leg_paid(self, result: ReconciliationResult) -> None:
        """Handle a leg that was settled by this notification."""


@dataclass
class _KeyedLocks:
    """Per-key asyncio locks that are discarded once no task holds them."""

    _locks: dict[str, asyncio.Lock] = field(default_factory=dict)
    _users: dict[str, int] = field(default_factory=dict)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


@dataclass
class PaymentReconciler:
    """Applies deposit and balance notifications to partial payment records.

    Each order moves pending_deposit -> partial_paid -> fully_paid and never
    back. Updates to one order are serialized; redelivered notifications are
    no-ops and listeners only fire when a flag actually flips.
    """

    gateway: OrderGateway
    session_store: KeyedStore[DepositSession]
    processed_log: KeyedStore[ReconciliationResult] = field(
        default_factory=InMemoryExpiringStore
    )
    listeners: list[PaymentListener] = field(default_factory=list)
    verify_amounts: bool = True
    processed_ttl_seconds: int = 7 * 24 * 3600
    gateway_timeout_seconds: float = 30
    _locks: _KeyedLocks = field(default_factory=_KeyedLocks, init=False, repr=False)

    async def reconcile_balance_paid(self, payload: object) -> ReconciliationResult:
        """Record the remaining balance as collected for the referenced order."""
        notification = decode_notification(payload)
        return await self.apply(notification, PaymentLeg.REMAINING)

    async def reconcile_deposit_paid(self, payload: object) -> ReconciliationResult:
        """Record the deposit as collected for the session's draft order."""
        session_id = extract_session_id(payload)
        if session_id is None:
            raise OrderNotResolved("Session ID not found in webhook data")
        session = self.session_store.get(session_id)
        if session is None:
            raise SessionNotFound()
        try:
            decoded: PaymentNotification | None = decode_notification(payload)
        except OrderNotResolved:
            decoded = None
        notification = OrderReferenceNotification(
            order_id=session.draft_order_id,
            transaction_id=decoded.transaction_id if decoded else None,
            amount=decoded.amount if decoded else None,
        )
        return await self.apply(notification, PaymentLeg.DEPOSIT)

    async def apply(
        self, notification: PaymentNotification, leg: PaymentLeg
    ) -> ReconciliationResult:
        """Settle one leg of the order a notification refers to.

        Settling the remaining balance also settles an unpaid deposit, since
        the balance is only collectable once the deposit has been taken.
        """
        order_id = self.gateway.canonical_order_id(resolve_order_id(notification))
        transaction_id = notification.transaction_id
        dedup_key = f"{order_id}:{leg}:{transaction_id}" if transaction_id else None

        async with self._locks.hold(order_id):
            if dedup_key is not None:
                known = self.processed_log.get(dedup_key)
                if known is not None:
                    _logger.info(
                        "Ignoring redelivered %s notification for %s (transaction=%s)",
                        leg,
                        order_id,
                        transaction_id,
                    )
                    return replace(known, applied=False)

            record = await call_gateway(
                self.gateway.get_partial_payment_record(order_id),
                action="get_partial_payment_record",
                timeout_seconds=self.gateway_timeout_seconds,
            )
            if record is None:
                raise RecordNotFound(f"No partial payment record for order {order_id}")
            previous_status = record.payment_status

            if record.is_paid(leg):
                result = ReconciliationResult(
                    order_id=order_id,
                    leg=leg,
                    transaction_id=transaction_id,
                    previous_status=previous_status,
                    record=record,
                    applied=False,
                )
            else:
                self._check_amount(notification, record.expected_amount(leg), order_id)
                if leg is PaymentLeg.REMAINING and not record.deposit_paid:
                    implied = await self._settle(
                        order_id, PaymentLeg.DEPOSIT, None, record
                    )
                    record = implied.record
                settled = await self._settle(order_id, leg, transaction_id, record)
                result = replace(settled, previous_status=previous_status)

            if dedup_key is not None:
                self.processed_log.create(
                    dedup_key, result, ttl_seconds=self.processed_ttl_seconds
                )
        return result

    async def _settle(
        self,
        order_id: str,
        leg: PaymentLeg,
        transaction_id: str | None,
        record: PartialPaymentRecord,
    ) -> ReconciliationResult:
        """Persist one unpaid leg and notify listeners of the flip."""
        setter = (
            self.gateway.set_deposit_paid
            if leg is PaymentLeg.DEPOSIT
            else self.gateway.set_remaining_paid
        )
        updated = await call_gateway(
            setter(order_id, transaction_id),
            action=f"set_{leg}_paid",
            timeout_seconds=self.gateway_timeout_seconds,
        )
        if not updated.is_paid(leg):
            raise UpstreamFailure(f"Gateway did not persist {leg} payment")
        result = ReconciliationResult(
            order_id=order_id,
            leg=leg,
            transaction_id=transaction_id,
            previous_status=record.payment_status,
            record=updated,
            applied=True,
        )
        _logger.info(
            "Order %s %s paid: %s -> %s",
            order_id,
            leg,
            record.payment_status,
            updated.payment_status,
        )
        await self._notify(result)
        return result

    def _check_amount(
        self, notification: PaymentNotification, expected: Decimal, order_id: str
    ) -> None:
        if not self.verify_amounts or notification.amount is None:
            return
        try:
            paid = notification.amount.quantize(_CENTS)
        except InvalidOperation as exc:
            raise AmountMismatch(
                f"Paid amount {notification.amount} is not a valid amount"
            ) from exc
        if paid != expected.quantize(_CENTS):
            _logger.warning(
                "Paid amount %s does not match expected %s for order %s",
                paid,
                expected,
                order_id,
            )
            raise AmountMismatch(
                f"Paid amount {paid} does not match outstanding {expected}"
            )

    async def _notify(self, result: ReconciliationResult) -> None:
        for listener in self.listeners:
            try:
                await listener.on_leg_paid(result)
            except Exception:
                _logger.exception(
                    "Payment listener failed",
                    extra={"order_id": result.order_id, "leg": str(result.leg)},
                )


@dataclass
class LoggingPaymentListener:
    """Logs settled legs; the default one-time side effect."""

    async def on_leg_paid(self, result: ReconciliationResult) -> None:
        if result.transitioned:
            _logger.info(
                "Order %s is now %s", result.order_id, result.record.payment_status
            )
