"""Domain models for partial payment tracking."""

from dataclasses import dataclass, replace
from decimal import Decimal
from enum import StrEnum


class PaymentStatus(StrEnum):
    """Lifecycle stage of a partially paid order."""

    PENDING_DEPOSIT = "pending_deposit"
    PARTIAL_PAID = "partial_paid"
    FULLY_PAID = "fully_paid"


class PaymentLeg(StrEnum):
    """Portion of the order a notification settles."""

    DEPOSIT = "deposit"
    REMAINING = "remaining"


_STATUS_RANK = {
    PaymentStatus.PENDING_DEPOSIT: 0,
    PaymentStatus.PARTIAL_PAID: 1,
    PaymentStatus.FULLY_PAID: 2,
}


@dataclass(frozen=True)
class PartialPaymentRecord:
    """Durable payment progress stored on the order."""

    order_id: str
    session_id: str | None
    deposit_amount: Decimal
    remaining_amount: Decimal
    deposit_paid: bool = False
    remaining_paid: bool = False
    payment_status: PaymentStatus = PaymentStatus.PENDING_DEPOSIT
    payment_link: str | None = None
    plan: str | None = None

    def is_paid(self, leg: PaymentLeg) -> bool:
        if leg is PaymentLeg.DEPOSIT:
            return self.deposit_paid
        return self.remaining_paid

    def expected_amount(self, leg: PaymentLeg) -> Decimal:
        if leg is PaymentLeg.DEPOSIT:
            return self.deposit_amount
        return self.remaining_amount

    def mark_paid(self, leg: PaymentLeg) -> "PartialPaymentRecord":
        """Return a copy with the leg settled and the status recomputed."""
        if leg is PaymentLeg.DEPOSIT:
            updated = replace(self, deposit_paid=True)
        else:
            updated = replace(self, remaining_paid=True)
        return replace(updated, payment_status=derive_payment_status(updated))

    def to_dict(self) -> dict[str, object]:
        return {
            "order_id": self.order_id,
            "session_id": self.session_id,
            "deposit_amount": str(self.deposit_amount),
            "remaining_amount": str(self.remaining_amount),
            "deposit_paid": self.deposit_paid,
            "remaining_paid": self.remaining_paid,
            "payment_status": self.payment_status.value,
            "payment_link": self.payment_link,
            "plan": self.plan,
        }


def derive_payment_status(record: PartialPaymentRecord) -> PaymentStatus:
    """Derive the status from the paid flags without ever moving backward."""
    if record.deposit_paid and record.remaining_paid:
        derived = PaymentStatus.FULLY_PAID
    elif record.deposit_paid or record.remaining_paid:
        derived = PaymentStatus.PARTIAL_PAID
    else:
        derived = record.payment_status
    if _STATUS_RANK[derived] < _STATUS_RANK[record.payment_status]:
        return record.payment_status
    return derived


@dataclass(frozen=True)
class ReconciliationResult:
    """Outcome of applying a payment notification."""

    order_id: str
    leg: PaymentLeg
    transaction_id: str | None
    previous_status: PaymentStatus
    record: PartialPaymentRecord
    applied: bool

    @property
    def transitioned(self) -> bool:
        return self.record.payment_status != self.previous_status
