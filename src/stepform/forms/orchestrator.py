"""Step navigation, auto-fill, persistence and submission for one form page."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field as dataclass_field
from typing import Any

from stepform.core.types import FieldType, SubmissionResult, ValidationResult
from stepform.forms import autofill
from stepform.forms.models import FormConfig, FormField, PersistedSession, Step, SubmissionEntry
from stepform.forms.schema import StepSchemaBuilder, StepValidationContract, fields_to_revalidate
from stepform.forms.session import FormSessionStore
from stepform.forms.transport import FileUpload, SubmissionTransport
from stepform.forms.validators import is_absent
from stepform.forms.visibility import VisibilityResolver

logger = logging.getLogger(__name__)


@dataclass
class FormContext:
    """Collaborators for one form-page lifetime."""

    config: FormConfig
    store: FormSessionStore = dataclass_field(default_factory=FormSessionStore)
    transport: SubmissionTransport | None = None
    visibility: VisibilityResolver = dataclass_field(default_factory=VisibilityResolver)
    schema_builder: StepSchemaBuilder | None = None
    product_id: str | None = None
    session_id: str | None = None

    def __post_init__(self) -> None:
        if self.schema_builder is None:
            self.schema_builder = StepSchemaBuilder(visibility=self.visibility)


class FormOrchestrator:
    """Drives a multi-step form.

    Owns the working value set and current step index; every change is
    persisted through the session store as a whole snapshot.
    """

    def __init__(self, context: FormContext) -> None:
        if not context.config.steps:
            raise ValueError(f"Form {context.config.form_id!r} has no steps")
        self._ctx = context
        self._scope = list(context.config.iter_fields())
        self._values: dict[str, Any] = {}
        self._current_step = 0
        self._submitting = False

    # -- State --

    @property
    def config(self) -> FormConfig:
        return self._ctx.config

    @property
    def form_id(self) -> str:
        return self._ctx.config.form_id

    @property
    def values(self) -> dict[str, Any]:
        return dict(self._values)

    @property
    def current_step_index(self) -> int:
        return self._current_step

    @property
    def current_step(self) -> Step:
        return self.config.steps[self._current_step]

    @property
    def is_last_step(self) -> bool:
        return self._current_step == len(self.config.steps) - 1

    @property
    def is_submitting(self) -> bool:
        return self._submitting

    def start(self) -> PersistedSession | None:
        """Restore the persisted snapshot, if any. Returns the snapshot restored."""
        snapshot = self._ctx.store.load(self.form_id, self._ctx.session_id)
        if snapshot is None:
            return None
        self.restore(snapshot.values, snapshot.current_step)
        return snapshot

    def restore(self, values: Mapping[str, Any], step: int = 0) -> None:
        """Replace the working state without persisting it. The step is clamped into range."""
        self._values = dict(values)
        self._current_step = max(0, min(step, len(self.config.steps) - 1))

    # -- Values --

    def set_value(self, name: str, value: Any) -> dict[str, Any]:
        """Apply a user change and the values derived from it.

        Returns:
            Every value that changed, derived ones included. Empty if nothing changed.
        """
        changes = {name: value, **autofill.derived_values(name, value, self._values)}
        changes = {
            key: val for key, val in changes.items()
            if key not in self._values or self._values[key] != val
        }
        if changes:
            self._values.update(changes)
            self._save()
        return changes

    def visible_fields(self, step_index: int | None = None) -> list[FormField]:
        index = self._current_step if step_index is None else step_index
        step = self.config.steps[index]
        return self._ctx.visibility.visible_fields(step.fields, self._values, self._scope)

    def is_visible(self, name: str) -> bool:
        field = self.config.get_field(name)
        if field is None:
            raise KeyError(f"Field {name!r} not found in form {self.form_id!r}")
        return self._ctx.visibility.is_visible(field, self._values, self._scope)

    def fields_to_revalidate(self, changed_field: str) -> set[str]:
        return fields_to_revalidate(self.current_step, changed_field)

    # -- Validation and navigation --

    def contract(self, submission: Mapping[str, Any] | None = None) -> StepValidationContract:
        values = {**self._values, **(submission or {})}
        return self._ctx.schema_builder.build(self.current_step, values, self._scope)

    def validate_step(self, submission: Mapping[str, Any] | None = None) -> ValidationResult:
        step_values = self._step_values(submission)
        return self.contract(step_values).validate(step_values)

    def next(self, submission: Mapping[str, Any] | None = None) -> ValidationResult:
        """Validate the current step and advance when it passes.

        On the last step a passing result leaves the index unchanged; call
        ``submit`` to finish.
        """
        step_values = self._step_values(submission)
        result = self.contract(step_values).validate(step_values)
        if not result.valid:
            return result

        self._values.update(step_values)
        self._values.update(result.data)
        if not self.is_last_step:
            self._current_step += 1
        self._save()
        return result

    def previous(self, submission: Mapping[str, Any] | None = None) -> int:
        """Go back one step, keeping entered values without validating them."""
        if self._current_step <= 0:
            raise ValueError("Already at the first step.")
        return self.go_to(self._current_step - 1, submission)

    def go_to(self, index: int, submission: Mapping[str, Any] | None = None) -> int:
        """Jump back to an earlier step. Forward jumps must go through ``next``."""
        if not 0 <= index < self._current_step:
            raise ValueError(
                f"Can only jump to an earlier step (current {self._current_step}, got {index})"
            )
        if submission:
            self._values.update(submission)
        self._current_step = index
        self._save()
        return index

    def reset(self) -> dict[str, Any]:
        """Clear the persisted session and answers.

        Returns:
            Blank input values for every field, for the hosting UI to render.
        """
        self._ctx.store.clear(self.form_id, self._ctx.session_id)
        self._values = {}
        self._current_step = 0
        return {
            f.name: [] if f.field_type is FieldType.CHECKBOX else ""
            for f in self._scope
        }

    # -- Submission --

    def submission_entries(self) -> list[SubmissionEntry]:
        """Labelled answers of every visible, filled-in field in declaration order."""
        entries = []
        for field in self._ctx.visibility.visible_fields(self._scope, self._values):
            value = self._values.get(field.name)
            if is_absent(value):
                continue
            entries.append(SubmissionEntry(
                field_name=field.name, label=field.label, field_type=field.field_type, value=value,
            ))
        return entries

    async def submit(
        self,
        product_id: str | None = None,
        files: Mapping[str, Sequence[FileUpload]] | None = None,
    ) -> SubmissionResult:
        """Validate every step and hand the answers to the transport.

        Only one submission may be in flight; a re-entrant call is rejected
        without reaching the transport. Success clears the session, failure
        keeps it for a retry.
        """
        if self._submitting:
            logger.warning("Ignoring submit of form %r: a submission is in flight", self.form_id)
            return SubmissionResult(success=False, message="A submission is already in progress.")
        if self._ctx.transport is None:
            raise RuntimeError(f"No submission transport configured for form {self.form_id!r}")

        self._submitting = True
        try:
            result = self._ctx.schema_builder.build_form(self.config, self._values).validate(self._values)
            if not result.valid:
                return SubmissionResult(
                    success=False,
                    message="Please correct the highlighted fields.",
                    errors=result.errors,
                )
            self._values.update(result.data)
            self._save()

            outcome = await self._ctx.transport.submit(
                self.form_id,
                product_id or self._ctx.product_id,
                self.submission_entries(),
                files,
            )
            if outcome.success:
                self._ctx.store.clear(self.form_id, self._ctx.session_id)
            return outcome
        finally:
            self._submitting = False

    # -- Internal --

    def _step_values(self, submission: Mapping[str, Any] | None) -> dict[str, Any]:
        if submission is not None:
            return dict(submission)
        return {f.name: self._values[f.name] for f in self.current_step.fields if f.name in self._values}

    def _save(self) -> None:
        try:
            self._ctx.store.save(
                self.form_id, self._values, self._current_step, self._ctx.session_id
            )
        except Exception:
            logger.exception("Failed to persist session for form %r", self.form_id)
