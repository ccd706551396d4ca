"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from deposit_checkout.adapters.shopify_gateway import HttpxShopifyGateway
from deposit_checkout.adapters.supabase_session_store import (
    SupabaseDepositSessionStore,
)
from deposit_checkout.config import Settings
from deposit_checkout.domain.deposits import DepositSession
from deposit_checkout.domain.payments import ReconciliationResult
from deposit_checkout.services.deposits import DepositService
from deposit_checkout.services.gateway import OrderGateway
from deposit_checkout.services.reconciler import (
    LoggingPaymentListener,
    PaymentReconciler,
)
from deposit_checkout.services.store import InMemoryExpiringStore, KeyedStore
from deposit_checkout.services.webhooks import WebhookAuthenticator


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    gateway: OrderGateway
    session_store: KeyedStore[DepositSession]
    deposit_service: DepositService
    reconciler: PaymentReconciler
    webhook_authenticator: WebhookAuthenticator
    close_resources: Callable[[], Awaitable[None]]


def build_session_store(settings: Settings) -> KeyedStore[DepositSession]:
    """Select the session store backend from settings."""
    if settings.session_backend == "supabase":
        if not settings.supabase_url or not settings.supabase_service_key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_SERVICE_KEY are required for the "
                "supabase session backend"
            )
        client = create_client(settings.supabase_url, settings.supabase_service_key)
        return SupabaseDepositSessionStore(client)
    return InMemoryExpiringStore[DepositSession]()


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    gateway = HttpxShopifyGateway.create(
        store_domain=resolved_settings.shopify_store_domain,
        access_token=resolved_settings.shopify_admin_access_token,
        api_version=resolved_settings.shopify_admin_api_version,
        timeout_seconds=resolved_settings.gateway_timeout_seconds,
    )
    session_store = build_session_store(resolved_settings)
    deposit_service = DepositService(
        gateway=gateway,
        session_store=session_store,
        session_ttl_seconds=resolved_settings.session_ttl_seconds,
        gateway_timeout_seconds=resolved_settings.gateway_timeout_seconds,
    )
    reconciler = PaymentReconciler(
        gateway=gateway,
        session_store=session_store,
        processed_log=InMemoryExpiringStore[ReconciliationResult](),
        listeners=[LoggingPaymentListener()],
        verify_amounts=resolved_settings.verify_notification_amounts,
        processed_ttl_seconds=resolved_settings.processed_notification_ttl_seconds,
        gateway_timeout_seconds=resolved_settings.gateway_timeout_seconds,
    )
    webhook_authenticator = WebhookAuthenticator(
        secret=resolved_settings.shopify_webhook_secret,
        allow_unsigned=resolved_settings.allow_unsigned_webhooks,
        environment=resolved_settings.environment,
    )

    async def close_resources() -> None:
        await gateway.close()

    return AppContainer(
        settings=resolved_settings,
        gateway=gateway,
        session_store=session_store,
        deposit_service=deposit_service,
        reconciler=reconciler,
        webhook_authenticator=webhook_authenticator,
        close_resources=close_resources,
    )
