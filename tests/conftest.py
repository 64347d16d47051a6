"""Shared test fixtures and helpers."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import pytest

from stepform.core.types import SubmissionResult
from stepform.forms.loader import load_form_config
from stepform.forms.models import FormConfig


FORMS_DIR = Path(__file__).resolve().parent.parent / "config" / "forms"


class FakeTransport:
    """Records submissions; optionally blocks until ``release`` is called."""

    def __init__(self, result: SubmissionResult | None = None, block: bool = False) -> None:
        self.result = result or SubmissionResult(success=True, message="Danke!")
        self.calls: list[dict[str, Any]] = []
        self._gate = asyncio.Event()
        if not block:
            self._gate.set()

    def release(self) -> None:
        self._gate.set()

    async def submit(self, form_id, product_id, entries, files=None) -> SubmissionResult:
        self.calls.append({
            "form_id": form_id,
            "product_id": product_id,
            "entries": list(entries),
            "files": files,
        })
        await self._gate.wait()
        return self.result


@pytest.fixture
def make_form():
    """Build a FormConfig from a list of raw step dicts."""
    def _make(*steps: dict[str, Any], form_id: str = "test-form") -> FormConfig:
        return FormConfig.model_validate({"formId": form_id, "steps": list(steps)})
    return _make


@pytest.fixture
def make_step():
    """Build a raw step dict holding one field group."""
    def _make(step_id: str, *fields: dict[str, Any]) -> dict[str, Any]:
        return {"id": step_id, "title": step_id.title(), "fieldGroups": [{"fields": list(fields)}]}
    return _make


@pytest.fixture
def energy_form() -> FormConfig:
    return load_form_config(FORMS_DIR / "energy_certificate.json")


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def transport_factory():
    return FakeTransport
