"""Admin API endpoints with simple token auth."""

from __future__ import annotations

import hmac
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

if TYPE_CHECKING:
    from deposit_checkout.containers import AppContainer

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_admin_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if not x_admin_token or not hmac.compare_digest(
        x_admin_token.encode("utf-8"), admin_token.encode("utf-8")
    ):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("/health", dependencies=[Depends(require_admin)])
async def admin_health() -> dict[str, str]:
    """Admin health check endpoint."""
    return {"status": "ok"}


@router.get("/sessions", dependencies=[Depends(require_admin)])
async def list_sessions(request: Request, limit: int = 50) -> dict[str, object]:
    """Return live deposit sessions, latest expiry first."""
    container: AppContainer = request.app.state.container
    entries = sorted(
        container.session_store.list_active(),
        key=lambda entry: entry[2],
        reverse=True,
    )
    return {
        "sessions": [
            {**session.to_dict(), "expires_at": expires_at.isoformat()}
            for _, session, expires_at in entries[:limit]
        ]
    }


@router.get("/orders/{order_id:path}", dependencies=[Depends(require_admin)])
async def order_payment(order_id: str, request: Request) -> dict[str, object]:
    """Return the partial payment record of an order."""
    container: AppContainer = request.app.state.container
    record = await container.deposit_service.get_payment_record(order_id)
    return {"order": record.to_dict()}
