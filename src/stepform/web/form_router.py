"""FastAPI router for form definitions, step schemas, sessions and submission."""

from __future__ import annotations

import re
import uuid
from typing import Any

from fastapi import APIRouter, HTTPException, Request, Response
from pydantic import BaseModel, Field

from stepform.core.types import SubmissionResult, ValidationResult
from stepform.forms.autofill import inject_billing_period_options
from stepform.forms.models import FormConfig, Step
from stepform.forms.orchestrator import FormContext, FormOrchestrator
from stepform.forms.session import FormSessionStore
from stepform.forms.summary import SummarySection, summarize
from stepform.repositories import resolve

router = APIRouter()

SESSION_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]{1,64}")


# --- Request/Response models ---


class FormSummaryResponse(BaseModel):
    form_id: str
    title: str
    description: str
    steps: int


class ValuesRequest(BaseModel):
    values: dict[str, Any] = Field(default_factory=dict)


class ValidateStepRequest(BaseModel):
    values: dict[str, Any] = Field(default_factory=dict)
    submission: dict[str, Any] | None = None


class SessionBody(BaseModel):
    model_config = {"populate_by_name": True}

    values: dict[str, Any] = Field(default_factory=dict)
    current_step: int = Field(default=0, ge=0, alias="currentStep")


class SubmitRequest(BaseModel):
    values: dict[str, Any] = Field(default_factory=dict)
    product_id: str | None = None
    session_id: str | None = None


# --- Helpers ---


def _get_form(request: Request, form_id: str) -> FormConfig:
    config = request.app.state.forms.get(form_id)
    if config is None:
        raise HTTPException(status_code=404, detail=f"Form {form_id!r} not found")
    return config


def _get_published_form(request: Request, form_id: str) -> FormConfig:
    """The form as clients see it, with the billing-period choices computed for today."""
    return inject_billing_period_options(_get_form(request, form_id))


def _check_session_id(session_id: str) -> None:
    if not SESSION_ID_PATTERN.fullmatch(session_id):
        raise HTTPException(status_code=400, detail=f"Invalid session id {session_id!r}")


def _get_step(config: FormConfig, step_id: str) -> Step:
    try:
        return config.get_step(step_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0]))


# --- Form definitions ---


@router.get("/api/forms")
async def list_forms(request: Request) -> list[FormSummaryResponse]:
    return [
        FormSummaryResponse(
            form_id=config.form_id,
            title=config.title,
            description=config.description,
            steps=len(config.steps),
        )
        for config in request.app.state.forms.values()
    ]


@router.get("/api/forms/{form_id}")
async def get_form(form_id: str, request: Request) -> dict[str, Any]:
    config = _get_published_form(request, form_id)
    return config.model_dump(by_alias=True, mode="json", exclude_none=True)


# --- Step schema endpoints ---


@router.post("/api/forms/{form_id}/steps/{step_id}/visibility")
async def step_visibility(
    form_id: str, step_id: str, body: ValuesRequest, request: Request
) -> dict[str, bool]:
    config = _get_form(request, form_id)
    step = _get_step(config, step_id)
    resolver = request.app.state.visibility
    scope = list(config.iter_fields())
    return {field.name: resolver.is_visible(field, body.values, scope) for field in step.fields}


@router.post("/api/forms/{form_id}/steps/{step_id}/validate")
async def validate_step(
    form_id: str, step_id: str, body: ValidateStepRequest, request: Request
) -> ValidationResult:
    """Validate one step's submission against the answers given so far.

    Without an explicit ``submission`` the step's own fields are picked out
    of ``values``.
    """
    config = _get_published_form(request, form_id)
    step = _get_step(config, step_id)
    if body.submission is None:
        submission = {f.name: body.values[f.name] for f in step.fields if f.name in body.values}
    else:
        submission = body.submission

    builder = request.app.state.schema_builder
    contract = builder.build(step, {**body.values, **submission}, list(config.iter_fields()))
    return contract.validate(submission)


@router.post("/api/forms/{form_id}/summary")
async def form_summary(form_id: str, body: ValuesRequest, request: Request) -> list[SummarySection]:
    config = _get_published_form(request, form_id)
    return summarize(config, body.values, request.app.state.visibility)


# --- Session endpoints ---


@router.post("/api/forms/{form_id}/sessions", status_code=201)
async def create_session(form_id: str, request: Request) -> dict[str, Any]:
    """Issue a session id for one client filling in the form."""
    _get_form(request, form_id)
    return {"form_id": form_id, "session_id": str(uuid.uuid4())}


@router.get("/api/forms/{form_id}/sessions/{session_id}")
async def get_session(form_id: str, session_id: str, request: Request) -> dict[str, Any]:
    _get_form(request, form_id)
    _check_session_id(session_id)
    store = request.app.state.session_store
    snapshot = await resolve(store.load(form_id, session_id))
    if snapshot is None:
        raise HTTPException(
            status_code=404, detail=f"No saved session {session_id!r} for form {form_id!r}"
        )
    return snapshot.model_dump(by_alias=True)


@router.put("/api/forms/{form_id}/sessions/{session_id}")
async def save_session(
    form_id: str, session_id: str, body: SessionBody, request: Request
) -> dict[str, Any]:
    config = _get_form(request, form_id)
    _check_session_id(session_id)
    if body.current_step >= len(config.steps):
        raise HTTPException(
            status_code=400,
            detail=f"Step index {body.current_step} out of range for form {form_id!r}",
        )
    store = request.app.state.session_store
    await resolve(store.save(form_id, body.values, body.current_step, session_id))
    return {
        "saved": True,
        "form_id": form_id,
        "session_id": session_id,
        "current_step": body.current_step,
    }


@router.delete("/api/forms/{form_id}/sessions/{session_id}")
async def clear_session(form_id: str, session_id: str, request: Request) -> dict[str, Any]:
    _get_form(request, form_id)
    _check_session_id(session_id)
    store = request.app.state.session_store
    await resolve(store.clear(form_id, session_id))
    return {"cleared": True, "form_id": form_id, "session_id": session_id}


# --- Submission ---


@router.post("/api/forms/{form_id}/submit")
async def submit_form(
    form_id: str, body: SubmitRequest, request: Request, response: Response
) -> SubmissionResult:
    """Validate every step and forward the answers.

    Responds 422 when the answers do not validate and 502 when the receiving
    endpoint rejects them. The client's saved session, if named, is cleared
    only on success.
    """
    config = _get_published_form(request, form_id)
    if body.session_id is not None:
        _check_session_id(body.session_id)
    orchestrator = FormOrchestrator(FormContext(
        config=config,
        store=FormSessionStore(enabled=False),
        transport=request.app.state.transport,
        visibility=request.app.state.visibility,
        schema_builder=request.app.state.schema_builder,
    ))
    orchestrator.restore(body.values)

    result = await orchestrator.submit(product_id=body.product_id)
    if result.success:
        if body.session_id is not None:
            await resolve(request.app.state.session_store.clear(form_id, body.session_id))
    elif result.errors:
        response.status_code = 422
    else:
        response.status_code = 502
    return result
