"""Persistence for integrations rows (one per tenant and provider)."""

from datetime import datetime
from typing import Any

from centri.db.helpers import execute_query, fetch_all, fetch_one, with_db_retry
from centri.features.integrations.domain.models import IntegrationRecord

_COLUMNS = """
    id::text AS id, user_id, provider, credential_encrypted, expires_at,
    needs_reconnect, last_error, last_synced_at, created_at, updated_at
"""


def _to_record(row: dict[str, Any]) -> IntegrationRecord:
    encrypted = row["credential_encrypted"]
    if isinstance(encrypted, memoryview):
        encrypted = encrypted.tobytes()
    return IntegrationRecord(
        id=row["id"],
        user_id=row["user_id"],
        provider=row["provider"],
        credential_encrypted=encrypted,
        expires_at=row.get("expires_at"),
        needs_reconnect=bool(row.get("needs_reconnect")),
        last_error=row.get("last_error"),
        last_synced_at=row.get("last_synced_at"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


class IntegrationRepository:
    async def upsert(
        self,
        user_id: str,
        provider: str,
        credential_encrypted: bytes,
        expires_at: datetime | None,
    ) -> IntegrationRecord:
        """Create or replace the credential for (user, provider); clears reconnect state."""
        row = await fetch_one(
            f"""
            INSERT INTO integrations (user_id, provider, credential_encrypted, expires_at)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (user_id, provider) DO UPDATE SET
                credential_encrypted = EXCLUDED.credential_encrypted,
                expires_at = EXCLUDED.expires_at,
                needs_reconnect = false,
                last_error = NULL,
                updated_at = NOW()
            RETURNING {_COLUMNS}
            """,
            (user_id, provider, credential_encrypted, expires_at),
        )
        return _to_record(row)

    async def get(self, user_id: str, provider: str) -> IntegrationRecord | None:
        row = await fetch_one(
            f"SELECT {_COLUMNS} FROM integrations WHERE user_id = %s AND provider = %s",
            (user_id, provider),
        )
        return _to_record(row) if row else None

    @with_db_retry(max_retries=2)
    async def list_for_user(self, user_id: str) -> list[IntegrationRecord]:
        rows = await fetch_all(
            f"SELECT {_COLUMNS} FROM integrations WHERE user_id = %s ORDER BY provider",
            (user_id,),
        )
        return [_to_record(row) for row in rows]

    @with_db_retry(max_retries=2)
    async def list_tenant_ids(self) -> list[str]:
        rows = await fetch_all(
            "SELECT DISTINCT user_id FROM integrations WHERE needs_reconnect = false ORDER BY user_id"
        )
        return [row["user_id"] for row in rows]

    async def mark_reconnect_required(self, user_id: str, provider: str, error: str) -> bool:
        affected = await execute_query(
            """
            UPDATE integrations
            SET needs_reconnect = true, last_error = %s, updated_at = NOW()
            WHERE user_id = %s AND provider = %s
            """,
            (error[:500], user_id, provider),
        )
        return affected > 0

    async def mark_synced(self, user_id: str, provider: str) -> None:
        await execute_query(
            """
            UPDATE integrations SET last_synced_at = NOW(), last_error = NULL
            WHERE user_id = %s AND provider = %s
            """,
            (user_id, provider),
        )

    async def delete(self, user_id: str, provider: str) -> bool:
        affected = await execute_query(
            "DELETE FROM integrations WHERE user_id = %s AND provider = %s",
            (user_id, provider),
        )
        return affected > 0
