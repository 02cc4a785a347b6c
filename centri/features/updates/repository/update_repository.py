"""
Persistence for update_items.

The upsert refreshes content fields only. is_read and is_dismissed are
written exclusively by the user-facing mark_read/dismiss paths, so a
re-sync can never reset them. Each upsert also records the severity it
replaced, so the caller learns from the same statement whether this write
raised the item to a notifiable level.
"""

from datetime import datetime
from typing import Any

from psycopg.types.json import Jsonb

from centri.db.helpers import execute_query, fetch_all, fetch_one
from centri.features.updates.domain.models import TYPE_NEWSLETTER, ItemUpsert, UpdateCandidate, UpdateItem

_COLUMNS = """
    id::text AS id, user_id, source, type, severity, title, body, occurred_at,
    external_id, url, is_read, is_dismissed, metadata
"""

UPSERT_UPDATE_ITEM_SQL = """
INSERT INTO update_items (
    user_id, source, type, severity, title, body, occurred_at, external_id, url, metadata
) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
ON CONFLICT (user_id, source, external_id) DO UPDATE SET
    previous_severity = update_items.severity,
    type = EXCLUDED.type,
    severity = EXCLUDED.severity,
    title = EXCLUDED.title,
    body = EXCLUDED.body,
    occurred_at = EXCLUDED.occurred_at,
    url = EXCLUDED.url,
    metadata = EXCLUDED.metadata,
    updated_at = NOW()
RETURNING id::text AS id, (xmax = 0) AS inserted, previous_severity
"""


def _to_item(row: dict[str, Any]) -> UpdateItem:
    return UpdateItem(
        id=row["id"],
        user_id=row["user_id"],
        source=row["source"],
        type=row["type"],
        severity=row["severity"],
        title=row["title"],
        body=row.get("body"),
        occurred_at=row["occurred_at"],
        external_id=row["external_id"],
        url=row.get("url"),
        is_read=bool(row.get("is_read")),
        is_dismissed=bool(row.get("is_dismissed")),
        metadata=row.get("metadata") or {},
    )


class UpdateRepository:
    async def upsert(self, user_id: str, candidate: UpdateCandidate) -> ItemUpsert:
        row = await fetch_one(
            UPSERT_UPDATE_ITEM_SQL,
            (
                user_id,
                candidate.source,
                candidate.type,
                candidate.severity,
                candidate.title,
                candidate.body,
                candidate.occurred_at,
                candidate.external_id,
                candidate.url,
                Jsonb(candidate.metadata),
            ),
        )
        return ItemUpsert(
            id=row["id"], inserted=bool(row["inserted"]), previous_severity=row["previous_severity"]
        )

    async def list_feed(self, user_id: str, limit: int) -> list[UpdateItem]:
        rows = await fetch_all(
            f"""
            SELECT {_COLUMNS} FROM update_items
            WHERE user_id = %s AND is_dismissed = false AND type <> %s
            ORDER BY occurred_at DESC
            LIMIT %s
            """,
            (user_id, TYPE_NEWSLETTER, limit),
        )
        return [_to_item(row) for row in rows]

    async def list_newsletters(self, user_id: str, since: datetime) -> list[UpdateItem]:
        rows = await fetch_all(
            f"""
            SELECT {_COLUMNS} FROM update_items
            WHERE user_id = %s AND is_dismissed = false AND type = %s AND occurred_at >= %s
            ORDER BY occurred_at DESC
            """,
            (user_id, TYPE_NEWSLETTER, since),
        )
        return [_to_item(row) for row in rows]

    async def mark_read(self, user_id: str, item_id: str) -> bool:
        affected = await execute_query(
            """
            UPDATE update_items SET is_read = true, updated_at = NOW()
            WHERE user_id = %s AND id::text = %s
            """,
            (user_id, item_id),
        )
        return affected > 0

    async def dismiss(self, user_id: str, item_id: str) -> bool:
        affected = await execute_query(
            """
            UPDATE update_items SET is_dismissed = true, updated_at = NOW()
            WHERE user_id = %s AND id::text = %s
            """,
            (user_id, item_id),
        )
        return affected > 0

    async def dismiss_all(self, user_id: str) -> int:
        return await execute_query(
            """
            UPDATE update_items SET is_dismissed = true, updated_at = NOW()
            WHERE user_id = %s AND is_dismissed = false
            """,
            (user_id,),
        )
