"""Shopify Admin GraphQL implementation of the order gateway."""

from dataclasses import dataclass
from decimal import Decimal

import httpx

from deposit_checkout.domain.deposits import DepositItem
from deposit_checkout.domain.notifications import (
    ORDER_REFERENCE_ATTRIBUTE,
    SESSION_ATTRIBUTE,
)
from deposit_checkout.domain.payments import (
    PartialPaymentRecord,
    PaymentLeg,
    PaymentStatus,
)
from deposit_checkout.errors import RecordNotFound
from deposit_checkout.services.gateway import DraftOrderCheckout, OrderGateway

METAFIELD_NAMESPACE = "partial"
PARTIAL_PAYMENT_TAG = "partial-payment"

_DRAFT_ORDER_CREATE = """
mutation draftOrderCreate($input: DraftOrderInput!) {
  draftOrderCreate(input: $input) {
    draftOrder {
      id
      invoiceUrl
    }
    userErrors {
      field
      message
    }
  }
}
"""

_PARTIAL_METAFIELDS = """
query partialPaymentMetafields($id: ID!) {
  node(id: $id) {
    ... on DraftOrder {
      id
      metafields(first: 20, namespace: "partial") {
        edges { node { key value } }
      }
    }
    ... on Order {
      id
      metafields(first: 20, namespace: "partial") {
        edges { node { key value } }
      }
    }
  }
}
"""

_METAFIELDS_SET = """
mutation metafieldsSet($metafields: [MetafieldsSetInput!]!) {
  metafieldsSet(metafields: $metafields) {
    metafields {
      key
      value
    }
    userErrors {
      field
      message
    }
  }
}
"""


class ShopifyApiError(RuntimeError):
    """Raised when the Admin API reports errors for a request."""


@dataclass
class HttpxShopifyGateway(OrderGateway):
    """Order gateway backed by the Shopify Admin GraphQL API."""

    store_domain: str
    access_token: str
    api_version: str
    http_client: httpx.AsyncClient
    timeout_seconds: float = 30

    @classmethod
    def create(
        cls,
        store_domain: str,
        access_token: str,
        api_version: str,
        timeout_seconds: float = 30,
    ) -> "HttpxShopifyGateway":
        """Create a gateway with a managed httpx session."""
        return cls(
            store_domain=store_domain,
            access_token=access_token,
            api_version=api_version,
            http_client=httpx.AsyncClient(),
            timeout_seconds=timeout_seconds,
        )

    @property
    def endpoint(self) -> str:
        return f"https://{self.store_domain}/admin/api/{self.api_version}/graphql.json"

    def canonical_order_id(self, order_id: str) -> str:
        return _node_id(order_id.strip())

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
        """Create a draft order charging the deposit, carrying the record."""
        item_lines = [
            f"Item {index}: variant {item.variant_id} x{item.quantity}"
            for index, item in enumerate(items, start=1)
        ]
        summary = "\n".join(
            [
                "Deposit for:",
                *item_lines,
                f"Total order amount: {_money(total_amount)}",
                f"Remaining balance: {_money(remaining_amount)}",
                f"Pay today: {_money(amount)}",
            ]
        )
        draft_input: dict[str, object] = {
            "lineItems": [
                {
                    "title": "Deposit",
                    "originalUnitPrice": _money(amount),
                    "quantity": 1,
                    "requiresShipping": False,
                    "taxable": False,
                    "customAttributes": [
                        {"key": "deposit_summary", "value": summary},
                        {"key": "deposit_session_id", "value": session_id},
                    ],
                }
            ],
            "tags": [PARTIAL_PAYMENT_TAG],
            "customAttributes": [{"key": SESSION_ATTRIBUTE, "value": session_id}],
            "metafields": [
                _metafield("session_id", session_id, "single_line_text_field"),
                _metafield("deposit_amount", _money(amount), "number_decimal"),
                _metafield(
                    "remaining_amount", _money(remaining_amount), "number_decimal"
                ),
                _metafield("deposit_paid", "false", "boolean"),
                _metafield("remaining_paid", "false", "boolean"),
                _metafield(
                    "payment_status",
                    PaymentStatus.PENDING_DEPOSIT.value,
                    "single_line_text_field",
                ),
            ],
        }
        if customer_id:
            draft_input["customerId"] = customer_id
        draft = await self._create_draft_order(draft_input)
        return DraftOrderCheckout(
            draft_order_id=str(draft["id"]),
            checkout_url=draft.get("invoiceUrl"),
        )

    async def create_checkout_for_amount(
        self, draft_order_id: str, amount: Decimal
    ) -> str:
        """Create a payable draft for ``amount`` that points back at the order."""
        node_id = _node_id(draft_order_id)
        draft = await self._create_draft_order(
            {
                "lineItems": [
                    {
                        "title": "Partial payment",
                        "originalUnitPrice": _money(amount),
                        "quantity": 1,
                        "requiresShipping": False,
                        "taxable": False,
                    }
                ],
                "tags": [PARTIAL_PAYMENT_TAG],
                "customAttributes": [
                    {"key": ORDER_REFERENCE_ATTRIBUTE, "value": node_id}
                ],
            }
        )
        invoice_url = draft.get("invoiceUrl")
        if not invoice_url:
            raise ShopifyApiError("Draft order has no invoice URL")
        await self._set_metafields(
            node_id, [_metafield("payment_link", str(invoice_url), "url")]
        )
        return str(invoice_url)

    async def get_partial_payment_record(
        self, order_id: str
    ) -> PartialPaymentRecord | None:
        """Read the partial payment metafields of an order."""
        node_id = _node_id(order_id)
        data = await self._graphql(_PARTIAL_METAFIELDS, {"id": node_id})
        node = data.get("node")
        if not node:
            return None
        edges = (node.get("metafields") or {}).get("edges") or []
        values = {
            edge["node"]["key"]: edge["node"]["value"]
            for edge in edges
            if edge.get("node")
        }
        return _record_from_metafields(node_id, values)

    async def set_deposit_paid(
        self, order_id: str, transaction_id: str | None = None
    ) -> PartialPaymentRecord:
        """Mark the deposit collected."""
        return await self._mark_paid(order_id, PaymentLeg.DEPOSIT, transaction_id)

    async def set_remaining_paid(
        self, order_id: str, transaction_id: str | None = None
    ) -> PartialPaymentRecord:
        """Mark the remaining balance collected."""
        return await self._mark_paid(order_id, PaymentLeg.REMAINING, transaction_id)

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

    async def _mark_paid(
        self, order_id: str, leg: PaymentLeg, transaction_id: str | None
    ) -> PartialPaymentRecord:
        record = await self.get_partial_payment_record(order_id)
        if record is None:
            raise RecordNotFound(f"No partial payment record for order {order_id}")
        updated = record.mark_paid(leg)
        metafields = [
            _metafield(f"{leg}_paid", "true", "boolean"),
            _metafield(
                "payment_status",
                updated.payment_status.value,
                "single_line_text_field",
            ),
        ]
        if transaction_id:
            metafields.append(
                _metafield(
                    f"{leg}_transaction_id", transaction_id, "single_line_text_field"
                )
            )
        await self._set_metafields(record.order_id, metafields)
        return updated

    async def _create_draft_order(
        self, draft_input: dict[str, object]
    ) -> dict[str, object]:
        data = await self._graphql(_DRAFT_ORDER_CREATE, {"input": draft_input})
        payload = data.get("draftOrderCreate") or {}
        _raise_user_errors(payload)
        draft = payload.get("draftOrder")
        if not draft or not draft.get("id"):
            raise ShopifyApiError("Failed to create draft order")
        return draft

    async def _set_metafields(
        self, owner_id: str, metafields: list[dict[str, object]]
    ) -> None:
        data = await self._graphql(
            _METAFIELDS_SET,
            {"metafields": [{**field, "ownerId": owner_id} for field in metafields]},
        )
        _raise_user_errors(data.get("metafieldsSet") or {})

    async def _graphql(
        self, query: str, variables: dict[str, object]
    ) -> dict[str, object]:
        response = await self.http_client.post(
            self.endpoint,
            headers={"X-Shopify-Access-Token": self.access_token},
            json={"query": query, "variables": variables},
            timeout=self.timeout_seconds,
        )
        response.raise_for_status()
        body = response.json()
        if body.get("errors"):
            messages = ", ".join(
                str(error.get("message", error)) for error in body["errors"]
            )
            raise ShopifyApiError(messages)
        return body.get("data") or {}


def _node_id(order_id: str) -> str:
    """Map a bare numeric id to the draft order GID that holds the record."""
    if order_id.startswith("gid://"):
        return order_id
    return f"gid://shopify/DraftOrder/{order_id}"


def _money(amount: Decimal) -> str:
    return f"{amount:.2f}"


def _metafield(key: str, value: str, type_: str) -> dict[str, object]:
    return {
        "namespace": METAFIELD_NAMESPACE,
        "key": key,
        "value": value,
        "type": type_,
    }


def _raise_user_errors(payload: dict[str, object]) -> None:
    user_errors = payload.get("userErrors") or []
    if user_errors:
        raise ShopifyApiError(
            ", ".join(str(error.get("message")) for error in user_errors)
        )


def _record_from_metafields(
    order_id: str, values: dict[str, str]
) -> PartialPaymentRecord | None:
    if "deposit_amount" not in values or "remaining_amount" not in values:
        return None
    raw_status = values.get("payment_status") or PaymentStatus.PENDING_DEPOSIT.value
    try:
        status = PaymentStatus(raw_status)
    except ValueError:
        status = PaymentStatus.PENDING_DEPOSIT
    return PartialPaymentRecord(
        order_id=order_id,
        session_id=values.get("session_id"),
        deposit_amount=Decimal(values["deposit_amount"]),
        remaining_amount=Decimal(values["remaining_amount"]),
        deposit_paid=values.get("deposit_paid") == "true",
        remaining_paid=values.get("remaining_paid") == "true",
        payment_status=status,
        payment_link=values.get("payment_link"),
        plan=values.get("plan"),
    )
