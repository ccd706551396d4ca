"""Supabase-backed deposit session store."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from supabase import Client

from deposit_checkout.domain.deposits import DepositSession
from deposit_checkout.services.store import Clock, KeyedStore, utc_now

_TABLE = "deposit_sessions"


@dataclass
class SupabaseDepositSessionStore(KeyedStore[DepositSession]):
    """Durable session store; expired rows are removed when read."""

    client: Client
    clock: Clock = field(default=utc_now)

    def create(
        self, key: str, value: DepositSession, ttl_seconds: int
    ) -> DepositSession:
        """Insert a session row with its absolute expiry."""
        expires_at = self.clock() + timedelta(seconds=ttl_seconds)
        response = (
            self.client.table(_TABLE)
            .insert(
                {
                    "session_id": key,
                    "payload": value.to_dict(),
                    "expires_at": expires_at.isoformat(),
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create deposit session")
        return value

    def get(self, key: str) -> DepositSession | None:
        """Return a live session, deleting it if it has expired."""
        response = (
            self.client.table(_TABLE)
            .select("session_id, payload, expires_at")
            .eq("session_id", key)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        if self.clock() > datetime.fromisoformat(row["expires_at"]):
            self.delete(key)
            return None
        return DepositSession.from_dict(row["payload"])

    def delete(self, key: str) -> bool:
        response = self.client.table(_TABLE).delete().eq("session_id", key).execute()
        return bool(response.data)

    def list_active(self) -> list[tuple[str, DepositSession, datetime]]:
        """Return sessions that have not expired yet."""
        response = (
            self.client.table(_TABLE)
            .select("session_id, payload, expires_at")
            .gte("expires_at", self.clock().isoformat())
            .order("expires_at", desc=True)
            .execute()
        )
        return [
            (
                row["session_id"],
                DepositSession.from_dict(row["payload"]),
                datetime.fromisoformat(row["expires_at"]),
            )
            for row in response.data or []
        ]
