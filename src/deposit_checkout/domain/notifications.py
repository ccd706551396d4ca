"""Decoding of inbound payment notifications.

A notification arrives in one of three shapes and is decoded into exactly one
variant of :data:`PaymentNotification`:

* ``{"order_id": ..., "id": <transaction>}`` or an order payload carrying a
  ``partial_payment_order_id`` note attribute -> :class:`OrderReferenceNotification`
* ``{"order": {"id": ...}, "transaction": {...}}`` -> :class:`EmbeddedOrderNotification`
* ``{"id": ..., "admin_graphql_api_id": ...}`` -> :class:`OrderNotification`
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import assert_never

from deposit_checkout.errors import OrderNotResolved

ORDER_REFERENCE_ATTRIBUTE = "partial_payment_order_id"
SESSION_ATTRIBUTE = "session_id"
SESSION_TAG_PREFIX = "session:"


@dataclass(frozen=True)
class OrderReferenceNotification:
    """Payload that names the affected order explicitly."""

    order_id: str
    transaction_id: str | None = None
    amount: Decimal | None = None


@dataclass(frozen=True)
class EmbeddedOrderNotification:
    """Payload wrapping the affected order in an ``order`` object."""

    order_ref: str
    transaction_id: str | None = None
    amount: Decimal | None = None


@dataclass(frozen=True)
class OrderNotification:
    """Payload that is itself the affected order."""

    id: str
    transaction_id: str | None = None
    amount: Decimal | None = None


PaymentNotification = (
    OrderReferenceNotification | EmbeddedOrderNotification | OrderNotification
)


def decode_notification(payload: object) -> PaymentNotification:
    """Decode a parsed webhook body into a notification variant."""
    if not isinstance(payload, dict):
        raise OrderNotResolved("Notification body must be a JSON object")

    transaction = payload.get("transaction")
    nested_transaction_id = (
        _identifier(transaction.get("id")) if isinstance(transaction, dict) else None
    )
    amount = _amount(payload.get("amount"))
    if amount is None and isinstance(transaction, dict):
        amount = _amount(transaction.get("amount"))

    explicit = _identifier(payload.get("order_id"))
    if explicit is not None:
        return OrderReferenceNotification(
            order_id=explicit,
            transaction_id=_identifier(payload.get("id")) or nested_transaction_id,
            amount=amount,
        )

    order = payload.get("order")
    attribute_ref = _attribute(payload, ORDER_REFERENCE_ATTRIBUTE)
    if attribute_ref is None and isinstance(order, dict):
        attribute_ref = _attribute(order, ORDER_REFERENCE_ATTRIBUTE)
    if attribute_ref is not None:
        return OrderReferenceNotification(
            order_id=attribute_ref,
            transaction_id=nested_transaction_id,
            amount=amount,
        )

    if isinstance(order, dict):
        order_ref = _identifier(order.get("id")) or _identifier(
            order.get("admin_graphql_api_id")
        )
        if order_ref is not None:
            return EmbeddedOrderNotification(
                order_ref=order_ref,
                transaction_id=nested_transaction_id,
                amount=amount,
            )

    top_level = _identifier(payload.get("id")) or _identifier(
        payload.get("admin_graphql_api_id")
    )
    if top_level is not None:
        return OrderNotification(
            id=top_level,
            transaction_id=nested_transaction_id,
            amount=amount,
        )

    raise OrderNotResolved("Order ID not found in notification")


def resolve_order_id(notification: PaymentNotification) -> str:
    """Return the order identifier carried by a notification variant."""
    if isinstance(notification, OrderReferenceNotification):
        return notification.order_id
    if isinstance(notification, EmbeddedOrderNotification):
        return notification.order_ref
    if isinstance(notification, OrderNotification):
        return notification.id
    assert_never(notification)


def extract_session_id(payload: object) -> str | None:
    """Find the originating deposit session id on an order payload."""
    if not isinstance(payload, dict):
        return None
    candidates = [payload]
    order = payload.get("order")
    if isinstance(order, dict):
        candidates.insert(0, order)
    for candidate in candidates:
        session_id = _attribute(candidate, SESSION_ATTRIBUTE)
        if session_id:
            return session_id
        for tag in _tags(candidate):
            if tag.startswith(SESSION_TAG_PREFIX):
                value = tag.removeprefix(SESSION_TAG_PREFIX).strip()
                if value:
                    return value
    return None


def _identifier(value: object) -> str | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _amount(value: object) -> Decimal | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def _attribute(container: dict, name: str) -> str | None:
    """Read a Shopify note/custom attribute by name."""
    for field in ("note_attributes", "custom_attributes", "customAttributes"):
        attributes = container.get(field)
        if not isinstance(attributes, list):
            continue
        for attribute in attributes:
            if not isinstance(attribute, dict):
                continue
            key = attribute.get("name", attribute.get("key"))
            if key == name:
                return _identifier(attribute.get("value"))
    return None


def _tags(container: dict) -> list[str]:
    tags = container.get("tags")
    if isinstance(tags, str):
        return [tag.strip() for tag in tags.split(",") if tag.strip()]
    if isinstance(tags, list):
        return [tag.strip() for tag in tags if isinstance(tag, str)]
    return []
