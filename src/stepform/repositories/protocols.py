"""Protocol definitions for repository interfaces.

Each protocol mirrors the public methods of the corresponding in-memory
store class, so sync (in-memory) and async (Postgres) implementations
satisfy the same interface.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from stepform.forms.models import PersistedSession


@runtime_checkable
class FormSessionRepository(Protocol):
    """Protocol for persisted form session storage."""

    def load(self, form_id: str, session_id: str | None = None) -> PersistedSession | None: ...

    def save(
        self,
        form_id: str,
        values: Mapping[str, Any],
        step: int,
        session_id: str | None = None,
    ) -> None: ...

    def clear(self, form_id: str, session_id: str | None = None) -> None: ...
