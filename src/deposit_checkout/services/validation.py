"""Validation for deposit session requests."""

import math
from dataclasses import dataclass, field
from decimal import Decimal

from deposit_checkout.domain.deposits import DepositItem, DepositSessionRequest


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating a request; lists every violation."""

    valid: bool
    errors: list[str] = field(default_factory=list)


def validate_deposit_session_request(payload: object) -> ValidationResult:
    """Check a raw deposit session request without raising."""
    if not isinstance(payload, dict):
        return ValidationResult(valid=False, errors=["Request body is required"])

    errors: list[str] = []

    customer_id = payload.get("customer_id")
    if customer_id is not None and (
        not isinstance(customer_id, str) or not customer_id.strip()
    ):
        errors.append("customer_id must be a non-empty string if provided")

    items = payload.get("items")
    if not isinstance(items, list) or not items:
        errors.append("items is required and must be a non-empty array")
    else:
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                errors.append(f"items[{index}] must be an object")
                continue
            variant_id = _variant_id(item)
            if not isinstance(variant_id, str) or not variant_id.strip():
                errors.append(
                    f"items[{index}].variant_id is required and must be a string"
                )
            quantity = item.get("quantity")
            if not _is_integer(quantity) or quantity < 1:
                errors.append(
                    f"items[{index}].quantity is required and must be a "
                    "positive integer"
                )

    total_amount = payload.get("total_amount")
    if total_amount is None:
        errors.append("total_amount is required")
    elif not _is_number(total_amount) or total_amount <= 0:
        errors.append("total_amount must be a positive number")

    deposit_amount = payload.get("deposit_amount")
    if deposit_amount is None:
        errors.append("deposit_amount is required")
    elif not _is_number(deposit_amount) or deposit_amount <= 0:
        errors.append("deposit_amount must be a positive number")
    elif _is_number(total_amount) and _to_decimal(deposit_amount) >= _to_decimal(
        total_amount
    ):
        errors.append("deposit_amount must be less than total_amount")

    return ValidationResult(valid=not errors, errors=errors)


def build_deposit_session_request(payload: dict[str, object]) -> DepositSessionRequest:
    """Convert a payload that passed validation into a typed request."""
    customer_id = payload.get("customer_id")
    return DepositSessionRequest(
        items=[
            DepositItem(
                variant_id=str(_variant_id(item)).strip(),
                quantity=int(item["quantity"]),
            )
            for item in payload["items"]
        ],
        total_amount=_to_decimal(payload["total_amount"]),
        deposit_amount=_to_decimal(payload["deposit_amount"]),
        customer_id=customer_id.strip() if isinstance(customer_id, str) else None,
    )


def _variant_id(item: dict) -> object:
    return item.get("variant_id", item.get("variantId"))


def _is_integer(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: object) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    if isinstance(value, float):
        return math.isfinite(value)
    return isinstance(value, Decimal) and value.is_finite()


def _to_decimal(value: object) -> Decimal:
    return Decimal(str(value))
