"""Domain models for deposit sessions."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal


@dataclass(frozen=True)
class DepositItem:
    """A line the buyer is paying a deposit for."""

    variant_id: str
    quantity: int


@dataclass(frozen=True)
class DepositSessionRequest:
    """Validated input for creating a deposit session."""

    items: list[DepositItem]
    total_amount: Decimal
    deposit_amount: Decimal
    customer_id: str | None = None

    @property
    def remaining_amount(self) -> Decimal:
        return self.total_amount - self.deposit_amount


@dataclass(frozen=True)
class CartLine:
    """Priced cart line used to derive a deposit session."""

    variant_id: str
    quantity: int
    price: Decimal


@dataclass(frozen=True)
class DepositSession:
    """An in-flight deferred-payment purchase."""

    session_id: str
    customer_id: str | None
    items: list[DepositItem]
    total_amount: Decimal
    deposit_amount: Decimal
    remaining_amount: Decimal
    draft_order_id: str
    checkout_url: str | None
    created_at: datetime
    expires_at: datetime

    def to_dict(self) -> dict[str, object]:
        """Serialize the session for JSON responses and storage."""
        return {
            "session_id": self.session_id,
            "customer_id": self.customer_id,
            "items": [
                {"variant_id": item.variant_id, "quantity": item.quantity}
                for item in self.items
            ],
            "total_amount": str(self.total_amount),
            "deposit_amount": str(self.deposit_amount),
            "remaining_amount": str(self.remaining_amount),
            "draft_order_id": self.draft_order_id,
            "checkout_url": self.checkout_url,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "DepositSession":
        """Rebuild a session from its serialized form."""
        raw_items = data.get("items") or []
        items = [
            DepositItem(
                variant_id=str(item["variant_id"]), quantity=int(item["quantity"])
            )
            for item in raw_items
            if isinstance(item, dict)
        ]
        customer_id = data.get("customer_id")
        checkout_url = data.get("checkout_url")
        return cls(
            session_id=str(data["session_id"]),
            customer_id=str(customer_id) if customer_id else None,
            items=items,
            total_amount=Decimal(str(data["total_amount"])),
            deposit_amount=Decimal(str(data["deposit_amount"])),
            remaining_amount=Decimal(str(data["remaining_amount"])),
            draft_order_id=str(data["draft_order_id"]),
            checkout_url=str(checkout_url) if checkout_url else None,
            created_at=datetime.fromisoformat(str(data["created_at"])),
            expires_at=datetime.fromisoformat(str(data["expires_at"])),
        )
