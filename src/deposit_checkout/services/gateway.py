"""Order/checkout gateway interface consumed by the core."""

import asyncio
import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol, TypeVar

from deposit_checkout.domain.deposits import DepositItem
from deposit_checkout.domain.payments import PartialPaymentRecord
from deposit_checkout.errors import DepositCheckoutError, UpstreamFailure

T = TypeVar("T")

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DraftOrderCheckout:
    """Draft order created for a deposit and its payable link."""

    draft_order_id: str
    checkout_url: str | None


class OrderGateway(Protocol):
    """Interface for the commerce platform owning orders and payment records."""

    def canonical_order_id(self, order_id: str) -> str:
        """Return the single spelling of an order id used for locking and dedup."""

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
        """Create a draft order charging ``amount`` and return its checkout."""

    async def create_checkout_for_amount(
        self, draft_order_id: str, amount: Decimal
    ) -> str:
        """Return a checkout URL charging ``amount`` against a draft order."""

    async def get_partial_payment_record(
        self, order_id: str
    ) -> PartialPaymentRecord | None:
        """Return the payment record for an order, if present."""

    async def set_deposit_paid(
        self, order_id: str, transaction_id: str | None = None
    ) -> PartialPaymentRecord:
        """Mark the deposit collected and return the stored record."""

    async def set_remaining_paid(
        self, order_id: str, transaction_id: str | None = None
    ) -> PartialPaymentRecord:
        """Mark the remaining balance collected and return the stored record."""


async def call_gateway(
    call: Awaitable[T], *, action: str, timeout_seconds: float
) -> T:
    """Await a gateway call with a deadline, mapping failures to UpstreamFailure.

    There is no retry here; the caller (buyer or webhook sender) retries.
    """
    try:
        return await asyncio.wait_for(call, timeout=timeout_seconds)
    except DepositCheckoutError:
        raise
    except TimeoutError as exc:
        _logger.warning("Gateway %s timed out after %ss", action, timeout_seconds)
        raise UpstreamFailure(f"Gateway {action} timed out") from exc
    except Exception as exc:
        _logger.warning(
            "Gateway %s failed (status=%s): %s",
            action,
            _status_code_from_exception(exc),
            exc,
        )
        raise UpstreamFailure(f"Gateway {action} failed: {exc}") from exc


def _status_code_from_exception(exc: Exception) -> str:
    """Extract HTTP status code from an exception, if available."""
    response = getattr(exc, "response", None)
    status_code = getattr(response, "status_code", None)
    if isinstance(status_code, int):
        return str(status_code)
    return "n/a"
