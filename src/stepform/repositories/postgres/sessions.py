"""PostgreSQL repository for persisted form sessions."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete

from stepform.db.engine import DatabaseManager
from stepform.db.models import FormSessionRow
from stepform.forms.models import PersistedSession
from stepform.forms.session import decode_snapshot, encode_snapshot


class PostgresFormSessionRepository:
    """Postgres-backed form session storage.

    Rows hold the same JSON text as the in-memory store, so a corrupt row
    loads as an absent session. A missing session id is stored as ``""``.
    """

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def load(self, form_id: str, session_id: str | None = None) -> PersistedSession | None:
        async with self._db.session() as db:
            row = await db.get(FormSessionRow, (form_id, session_id or ""))
            if row is None:
                return None
            return decode_snapshot(row.snapshot)

    async def save(
        self,
        form_id: str,
        values: Mapping[str, Any],
        step: int,
        session_id: str | None = None,
    ) -> None:
        snapshot = encode_snapshot(values, step)
        async with self._db.session() as db:
            existing = await db.get(FormSessionRow, (form_id, session_id or ""))
            if existing:
                existing.snapshot = snapshot
                existing.updated_at = datetime.now(timezone.utc)
            else:
                db.add(FormSessionRow(form_id=form_id, session_id=session_id or "", snapshot=snapshot))
            await db.commit()

    async def clear(self, form_id: str, session_id: str | None = None) -> None:
        async with self._db.session() as db:
            await db.execute(
                delete(FormSessionRow).where(
                    FormSessionRow.form_id == form_id,
                    FormSessionRow.session_id == (session_id or ""),
                )
            )
            await db.commit()
