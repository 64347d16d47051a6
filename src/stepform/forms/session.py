"""Persistence of in-progress answers, keyed by form identity.

Snapshots are stored as JSON text so the backing mapping can be anything
string-valued (an in-memory dict, a browser-style key/value store, a cache).
A snapshot that fails to parse is treated as absent.

A store shared between clients scopes each snapshot by a client session
id as well. Without one, there is a single snapshot per form.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, MutableMapping
from typing import Any

from pydantic import ValidationError

from stepform.forms.models import PersistedSession

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_PREFIX = "multi-step-form"


def encode_snapshot(values: Mapping[str, Any], step: int) -> str:
    """Serialize a full snapshot; file handles and other non-JSON values are stringified."""
    session = PersistedSession(values=dict(values), current_step=step)
    return json.dumps(session.model_dump(by_alias=True), default=str)


def decode_snapshot(raw: str | bytes | None) -> PersistedSession | None:
    """Parse stored snapshot text. Returns None for missing or corrupt data."""
    if raw is None:
        return None
    try:
        session = PersistedSession.model_validate_json(raw)
    except ValidationError as exc:
        logger.warning("Discarding unreadable form session snapshot: %s", exc)
        return None
    if session.current_step < 0:
        logger.warning("Discarding form session snapshot with step %d", session.current_step)
        return None
    return session


class FormSessionStore:
    """Key/value backed session store, one snapshot per form id and session id.

    ``save`` always replaces the whole snapshot; merging partial answers is
    the caller's job.
    """

    def __init__(
        self,
        storage: MutableMapping[str, str] | None = None,
        prefix: str = DEFAULT_STORAGE_PREFIX,
        enabled: bool = True,
    ) -> None:
        self._storage: MutableMapping[str, str] = {} if storage is None else storage
        self._prefix = prefix
        self._enabled = enabled

    def storage_key(self, form_id: str, session_id: str | None = None) -> str:
        if session_id:
            return f"{self._prefix}-{form_id}-{session_id}"
        return f"{self._prefix}-{form_id}"

    def load(self, form_id: str, session_id: str | None = None) -> PersistedSession | None:
        if not self._enabled:
            return None
        return decode_snapshot(self._storage.get(self.storage_key(form_id, session_id)))

    def save(
        self,
        form_id: str,
        values: Mapping[str, Any],
        step: int,
        session_id: str | None = None,
    ) -> None:
        if not self._enabled:
            return
        self._storage[self.storage_key(form_id, session_id)] = encode_snapshot(values, step)

    def clear(self, form_id: str, session_id: str | None = None) -> None:
        self._storage.pop(self.storage_key(form_id, session_id), None)
