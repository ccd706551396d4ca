"""FastAPI application factory."""

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from deposit_checkout.api.admin import router as admin_router
from deposit_checkout.api.models import CartDepositRequest
from deposit_checkout.app_logging import configure_logging
from deposit_checkout.containers import AppContainer
from deposit_checkout.domain.deposits import CartLine, DepositSession
from deposit_checkout.domain.payments import ReconciliationResult
from deposit_checkout.errors import (
    AuthenticationFailure,
    DepositCheckoutError,
    ValidationFailed,
)
from deposit_checkout.services.deposits import session_url

SIGNATURE_HEADERS = ("x-signature", "x-shopify-hmac-sha256")


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(admin_router)

    @app.exception_handler(DepositCheckoutError)
    async def handle_checkout_error(
        request: Request, exc: DepositCheckoutError
    ) -> JSONResponse:
        state_container: AppContainer = request.app.state.container
        if exc.status_code >= 500:
            logger.error(
                "%s %s failed: %s", request.method, request.url.path, exc.code
            )
        else:
            logger.warning(
                "%s %s rejected: %s", request.method, request.url.path, exc.code
            )
        content: dict[str, object] = {
            "error": exc.public_message,
            "code": exc.code,
        }
        if isinstance(exc, ValidationFailed):
            content["details"] = exc.errors
        elif exc.status_code >= 500 and state_container.settings.environment == "local":
            content["debug"] = str(exc)
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/deposit-sessions")
    async def create_deposit_session(request: Request) -> dict[str, object]:
        """Validate the request and open a deposit session."""
        state_container: AppContainer = request.app.state.container
        payload = _parse_json(await request.body(), "Request body is required")
        session = await state_container.deposit_service.create_session(payload)
        return _created_response(session)

    @app.post("/deposit-sessions/from-cart")
    async def create_deposit_session_from_cart(
        body: CartDepositRequest, request: Request
    ) -> dict[str, object]:
        """Open a deposit session for a priced cart snapshot."""
        state_container: AppContainer = request.app.state.container
        lines = [
            CartLine(
                variant_id=line.variant_id, quantity=line.quantity, price=line.price
            )
            for line in body.lines
        ]
        session = await state_container.deposit_service.create_session_from_cart(
            lines, customer_id=body.customer_id
        )
        return _created_response(session)

    @app.get("/deposit-sessions/{session_id}")
    async def get_deposit_session(
        session_id: str, request: Request
    ) -> dict[str, object]:
        """Return a live deposit session."""
        state_container: AppContainer = request.app.state.container
        session = state_container.deposit_service.get_session(session_id)
        return {"session": session.to_dict()}

    @app.post("/deposit-sessions/{session_id}/checkout")
    async def create_deposit_checkout(
        session_id: str, request: Request
    ) -> dict[str, str]:
        """Return the checkout URL that collects the deposit."""
        state_container: AppContainer = request.app.state.container
        checkout_url = await state_container.deposit_service.create_deposit_checkout(
            session_id
        )
        return {"checkout_url": checkout_url}

    @app.post("/deposit-sessions/{session_id}/remaining-checkout")
    async def create_remaining_checkout(
        session_id: str, request: Request
    ) -> dict[str, str]:
        """Return a checkout URL that collects the remaining balance."""
        state_container: AppContainer = request.app.state.container
        checkout_url = await state_container.deposit_service.create_remaining_checkout(
            session_id
        )
        return {"checkout_url": checkout_url}

    @app.get("/orders/{order_id:path}/payment")
    async def get_order_payment(order_id: str, request: Request) -> dict[str, object]:
        """Return the partial payment record of an order."""
        state_container: AppContainer = request.app.state.container
        record = await state_container.deposit_service.get_payment_record(order_id)
        return record.to_dict()

    @app.post("/webhooks/balance-paid")
    async def balance_paid_webhook(request: Request) -> dict[str, object]:
        """Handle the commerce notification that the balance was collected."""
        state_container: AppContainer = request.app.state.container
        payload = await _verified_payload(request, state_container)
        result = await state_container.reconciler.reconcile_balance_paid(payload)
        return _webhook_response(result)

    @app.post("/webhooks/deposit-paid")
    async def deposit_paid_webhook(request: Request) -> dict[str, object]:
        """Handle the commerce notification that the deposit was collected."""
        state_container: AppContainer = request.app.state.container
        payload = await _verified_payload(request, state_container)
        result = await state_container.reconciler.reconcile_deposit_paid(payload)
        return _webhook_response(result)

    return app


async def _verified_payload(request: Request, state_container: AppContainer) -> object:
    """Verify the signature on the raw body, then parse it."""
    raw_body = await request.body()
    signature = _signature_header(request)
    if not state_container.webhook_authenticator.verify(raw_body, signature):
        raise AuthenticationFailure()
    return _parse_json(raw_body, "Webhook body must be valid JSON")


def _signature_header(request: Request) -> str | None:
    for header in SIGNATURE_HEADERS:
        value = request.headers.get(header)
        if value:
            return value
    return None


def _parse_json(raw_body: bytes, message: str) -> object:
    if not raw_body.strip():
        raise ValidationFailed([message])
    try:
        return json.loads(raw_body)
    except ValueError as exc:
        raise ValidationFailed([message]) from exc


def _created_response(session: DepositSession) -> dict[str, object]:
    return {
        "session_id": session.session_id,
        "deposit_session_url": session_url(session.session_id),
        "checkout_url": session.checkout_url,
    }


def _webhook_response(result: ReconciliationResult) -> dict[str, object]:
    return {
        "success": True,
        "order_id": result.order_id,
        "payment_status": result.record.payment_status.value,
        "applied": result.applied,
    }
