"""Submission transport: hands a finalized value set to the receiving endpoint."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

import httpx

from stepform.core.config import SubmissionConfig
from stepform.core.types import SubmissionResult
from stepform.forms.models import SubmissionEntry

logger = logging.getLogger(__name__)

# (filename, content, content type)
FileUpload = tuple[str, bytes, str]


@runtime_checkable
class SubmissionTransport(Protocol):
    """One-shot submission of a validated form. Failures are results, not exceptions."""

    async def submit(
        self,
        form_id: str,
        product_id: str | None,
        entries: Sequence[SubmissionEntry],
        files: Mapping[str, Sequence[FileUpload]] | None = None,
    ) -> SubmissionResult: ...


def build_multipart(
    form_id: str,
    product_id: str | None,
    entries: Sequence[SubmissionEntry],
    files: Mapping[str, Sequence[FileUpload]] | None = None,
) -> tuple[dict[str, str], list[tuple[str, FileUpload]]]:
    """Encode entries as ``fields[name]`` JSON parts and uploads as ``files[name]`` parts."""
    data: dict[str, str] = {"form_id": form_id}
    if product_id:
        data["product_id"] = product_id

    for entry in entries:
        if entry.field_type == "file":
            data[f"fields[{entry.field_name}]"] = json.dumps(
                {"label": entry.label, "type": "file"}
            )
            continue
        value = entry.value if isinstance(entry.value, list) else str(entry.value)
        data[f"fields[{entry.field_name}]"] = json.dumps({"value": value, "label": entry.label})

    uploads: list[tuple[str, FileUpload]] = []
    for name, items in (files or {}).items():
        if len(items) == 1:
            uploads.append((f"files[{name}]", items[0]))
        else:
            uploads.extend((f"files[{name}][{i}]", item) for i, item in enumerate(items))
    return data, uploads


class HttpSubmissionTransport:
    """Posts form data to a REST endpoint, multipart when files are attached. No automatic retry."""

    def __init__(
        self,
        config: SubmissionConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or SubmissionConfig()
        self._headers: dict[str, str] = {}
        if self.config.nonce:
            self._headers["X-WP-Nonce"] = self.config.nonce
        self._http = client or httpx.AsyncClient(timeout=httpx.Timeout(self.config.timeout_seconds))

    async def submit(
        self,
        form_id: str,
        product_id: str | None,
        entries: Sequence[SubmissionEntry],
        files: Mapping[str, Sequence[FileUpload]] | None = None,
    ) -> SubmissionResult:
        data, uploads = build_multipart(form_id, product_id, entries, files)
        try:
            resp = await self._http.post(
                self.config.endpoint, data=data, files=uploads or None, headers=self._headers,
            )
        except httpx.HTTPError as exc:
            logger.warning("Submission of form %r failed: %s", form_id, exc)
            return SubmissionResult(success=False, message=str(exc) or "Form submission failed")

        body = self._json_body(resp)
        message = str(body.get("message") or "")
        if not resp.is_success or body.get("success") is False:
            logger.warning(
                "Submission of form %r rejected with status %d: %s",
                form_id, resp.status_code, message,
            )
            return SubmissionResult(success=False, message=message or "Form submission failed")

        return SubmissionResult(
            success=True,
            message=message,
            redirect_url=body.get("redirect_url") or body.get("redirect"),
        )

    async def close(self) -> None:
        await self._http.aclose()

    @staticmethod
    def _json_body(resp: httpx.Response) -> dict[str, Any]:
        try:
            body = resp.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}
