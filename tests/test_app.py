"""Tests for the HTTP API."""

import json

import httpx
from fastapi.testclient import TestClient

from deposit_checkout.api.app import create_app
from tests.conftest import make_record, sign

SESSION_REQUEST = {
    "customer_id": "gid://shopify/Customer/9",
    "items": [{"variant_id": "gid://shopify/ProductVariant/1", "quantity": 2}],
    "total_amount": 1000,
    "deposit_amount": 300,
}


def _post_webhook(
    client: TestClient, path: str, payload: object, signature: str | None = None
) -> httpx.Response:
    body = json.dumps(payload).encode()
    headers = {
        "Content-Type": "application/json",
        "X-Shopify-Hmac-Sha256": signature if signature is not None else sign(body),
    }
    return client.post(path, content=body, headers=headers)


def test_health(container) -> None:
    client = TestClient(create_app(container))

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_create_and_fetch_session(container) -> None:
    client = TestClient(create_app(container))

    created = client.post("/deposit-sessions", json=SESSION_REQUEST)

    assert created.status_code == 200
    data = created.json()
    assert data["session_id"].startswith("deposit_")
    assert data["deposit_session_url"] == f"/deposit-session/{data['session_id']}"
    assert data["checkout_url"].startswith("https://shop.test/invoices/")

    fetched = client.get(f"/deposit-sessions/{data['session_id']}")
    assert fetched.status_code == 200
    session = fetched.json()["session"]
    assert session["remaining_amount"] == "700"
    assert session["items"] == [
        {"variant_id": "gid://shopify/ProductVariant/1", "quantity": 2}
    ]


def test_create_session_validation_errors(container) -> None:
    client = TestClient(create_app(container))

    response = client.post(
        "/deposit-sessions", json={**SESSION_REQUEST, "deposit_amount": 1000}
    )

    assert response.status_code == 400
    assert response.json() == {
        "error": "Validation failed",
        "code": "validation_failed",
        "details": ["deposit_amount must be less than total_amount"],
    }


def test_create_session_requires_body(container) -> None:
    client = TestClient(create_app(container))

    empty = client.post("/deposit-sessions")
    malformed = client.post(
        "/deposit-sessions",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )

    assert empty.status_code == 400
    assert empty.json()["details"] == ["Request body is required"]
    assert malformed.status_code == 400


def test_create_session_gateway_failure(container) -> None:
    container.gateway.fail_create = True
    client = TestClient(create_app(container))

    response = client.post("/deposit-sessions", json=SESSION_REQUEST)

    assert response.status_code == 500
    assert response.json() == {
        "error": "Order gateway request failed",
        "code": "upstream_failure",
    }


def test_unknown_session_is_not_found(container) -> None:
    client = TestClient(create_app(container))

    response = client.get("/deposit-sessions/deposit_0_missing")

    assert response.status_code == 404
    assert response.json()["code"] == "session_not_found"


def test_from_cart_and_checkouts(container) -> None:
    client = TestClient(create_app(container))

    created = client.post(
        "/deposit-sessions/from-cart",
        json={"lines": [{"variant_id": "v1", "quantity": 2, "price": "150.00"}]},
    )
    assert created.status_code == 200
    session_id = created.json()["session_id"]

    deposit = client.post(f"/deposit-sessions/{session_id}/checkout")
    remaining = client.post(f"/deposit-sessions/{session_id}/remaining-checkout")

    assert deposit.json()["checkout_url"] == created.json()["checkout_url"]
    assert remaining.status_code == 200
    assert remaining.json()["checkout_url"].endswith("amount=210.00")


def test_from_cart_rejects_bad_lines(container) -> None:
    client = TestClient(create_app(container))

    response = client.post(
        "/deposit-sessions/from-cart",
        json={"lines": [{"variant_id": "", "quantity": 0, "price": "10"}]},
    )

    assert response.status_code == 422


def test_order_payment_endpoint(container) -> None:
    container.gateway.records["1001"] = make_record("1001", deposit_paid=True)
    client = TestClient(create_app(container))

    found = client.get("/orders/1001/payment")
    missing = client.get("/orders/2002/payment")

    assert found.status_code == 200
    assert found.json()["payment_status"] == "partial_paid"
    assert missing.status_code == 404
    assert missing.json()["code"] == "record_not_found"


def test_deposit_then_balance_webhooks(container) -> None:
    client = TestClient(create_app(container))
    session_id = client.post("/deposit-sessions", json=SESSION_REQUEST).json()[
        "session_id"
    ]
    draft_order_id = client.get(f"/deposit-sessions/{session_id}").json()["session"][
        "draft_order_id"
    ]

    deposit = _post_webhook(
        client,
        "/webhooks/deposit-paid",
        {
            "id": 820982911946154508,
            "tags": f"partial-payment, session:{session_id}",
            "transaction": {"id": "tx-deposit", "amount": "300.00"},
        },
    )
    assert deposit.status_code == 200
    assert deposit.json() == {
        "success": True,
        "order_id": draft_order_id,
        "payment_status": "partial_paid",
        "applied": True,
    }

    balance_payload = {"order_id": draft_order_id, "id": "tx-balance", "amount": 700}
    balance = _post_webhook(client, "/webhooks/balance-paid", balance_payload)
    assert balance.status_code == 200
    assert balance.json()["payment_status"] == "fully_paid"
    assert balance.json()["applied"] is True

    replay = _post_webhook(client, "/webhooks/balance-paid", balance_payload)
    assert replay.status_code == 200
    assert replay.json()["payment_status"] == "fully_paid"
    assert replay.json()["applied"] is False
    assert len(container.gateway.writes) == 2


def test_webhook_rejects_bad_signature(container) -> None:
    container.gateway.records["1001"] = make_record("1001", deposit_paid=True)
    client = TestClient(create_app(container))

    tampered = _post_webhook(
        client, "/webhooks/balance-paid", {"order_id": "1001"}, signature="bad"
    )
    unsigned = client.post("/webhooks/balance-paid", json={"order_id": "1001"})

    assert tampered.status_code == 401
    assert tampered.json() == {
        "error": "Invalid webhook signature",
        "code": "invalid_signature",
    }
    assert unsigned.status_code == 401
    assert container.gateway.writes == []


def test_webhook_accepts_generic_signature_header(container) -> None:
    container.gateway.records["1001"] = make_record("1001", deposit_paid=True)
    client = TestClient(create_app(container))
    body = json.dumps({"order_id": "1001"}).encode()

    response = client.post(
        "/webhooks/balance-paid",
        content=body,
        headers={"Content-Type": "application/json", "X-Signature": sign(body)},
    )

    assert response.status_code == 200
    assert response.json()["payment_status"] == "fully_paid"


def test_webhook_errors(container) -> None:
    client = TestClient(create_app(container))
    invalid_body = b"not json"

    invalid = client.post(
        "/webhooks/balance-paid",
        content=invalid_body,
        headers={"X-Shopify-Hmac-Sha256": sign(invalid_body)},
    )
    unresolved = _post_webhook(client, "/webhooks/balance-paid", {"foo": "bar"})
    unknown = _post_webhook(client, "/webhooks/balance-paid", {"order_id": "404"})
    no_session = _post_webhook(
        client, "/webhooks/deposit-paid", {"tags": "session:deposit_0_gone"}
    )

    assert invalid.status_code == 400
    assert unresolved.status_code == 400
    assert unresolved.json()["code"] == "order_not_resolved"
    assert unknown.status_code == 404
    assert unknown.json()["code"] == "record_not_found"
    assert no_session.status_code == 404
    assert no_session.json()["code"] == "session_not_found"


def test_webhook_amount_mismatch(container) -> None:
    container.gateway.records["1001"] = make_record("1001", deposit_paid=True)
    client = TestClient(create_app(container))

    response = _post_webhook(
        client, "/webhooks/balance-paid", {"order_id": "1001", "amount": "1.00"}
    )

    assert response.status_code == 422
    assert response.json()["code"] == "amount_mismatch"
    assert container.gateway.records["1001"].remaining_paid is False


def test_single_balance_notification_completes_payment(container) -> None:
    client = TestClient(create_app(container))
    created = client.post("/deposit-sessions", json=SESSION_REQUEST).json()
    session = client.get(f"/deposit-sessions/{created['session_id']}").json()[
        "session"
    ]
    assert session["remaining_amount"] == "700"
    assert created["checkout_url"].startswith("https://shop.test/invoices/")

    response = _post_webhook(
        client, "/webhooks/balance-paid", {"order_id": session["draft_order_id"]}
    )

    assert response.status_code == 200
    assert response.json()["payment_status"] == "fully_paid"
    record = container.gateway.records[session["draft_order_id"]]
    assert record.remaining_paid is True
    assert record.payment_status == "fully_paid"


def test_webhook_rejects_unrepresentable_amount(container) -> None:
    container.gateway.records["1001"] = make_record("1001", deposit_paid=True)
    client = TestClient(create_app(container))

    response = _post_webhook(
        client, "/webhooks/balance-paid", {"order_id": "1001", "amount": "1e30"}
    )

    assert response.status_code == 422
    assert response.json()["code"] == "amount_mismatch"
    assert container.gateway.writes == []
