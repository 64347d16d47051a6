"""Tests for repository protocol conformance and the resolve() helper."""

from __future__ import annotations

from stepform.db.engine import DatabaseManager
from stepform.forms.session import FormSessionStore
from stepform.repositories import resolve
from stepform.repositories.postgres.sessions import PostgresFormSessionRepository
from stepform.repositories.protocols import FormSessionRepository


def test_in_memory_store_satisfies_protocol():
    assert isinstance(FormSessionStore(), FormSessionRepository)


async def test_sql_repository_satisfies_protocol():
    db = DatabaseManager("sqlite+aiosqlite:///:memory:")
    assert isinstance(PostgresFormSessionRepository(db), FormSessionRepository)
    await db.close()


async def test_resolve_plain_value():
    assert await resolve(42) == 42


async def test_resolve_coroutine():
    async def load():
        return "snapshot"

    assert await resolve(load()) == "snapshot"


async def test_resolve_store_calls():
    store = FormSessionStore()
    await resolve(store.save("energy", {"a": "1"}, 0))
    snapshot = await resolve(store.load("energy"))
    assert snapshot.values == {"a": "1"}
