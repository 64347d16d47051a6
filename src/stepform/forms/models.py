"""Shared models for the multi-step form runtime.

Configuration arrives in the hosting UI's camelCase shape (``dependsOn``,
``fieldGroups``, ``customValidations``); every model accepts either the
alias or the snake_case attribute name.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, model_validator

from stepform.core.types import FieldType


def _now_ms() -> int:
    return int(time.time() * 1000)


class FieldOption(BaseModel):
    """One choice of a select, radio, checkbox or image-select field."""

    model_config = {"populate_by_name": True, "frozen": True}

    value: str
    label: str = ""
    disabled: bool = False
    unit: str | None = None
    image: str | None = None


class CustomValidation(BaseModel):
    """A cross-field rule attached to the field that displays its message."""

    model_config = {"frozen": True}

    condition: str
    message: str


class FieldValidation(BaseModel):
    """Structural constraints plus ordered cross-field rules."""

    model_config = {"populate_by_name": True, "frozen": True}

    min: int | float | None = None
    max: int | float | None = None
    pattern: str | None = None
    message: str | None = None
    custom_validations: list[CustomValidation] = Field(
        default_factory=list, alias="customValidations"
    )

    @model_validator(mode="before")
    @classmethod
    def _fold_single_rule(cls, data: Any) -> Any:
        # Older configs carry one rule as customValidation + validationMessage.
        if not isinstance(data, dict) or not data.get("customValidation"):
            return data
        data = dict(data)
        rules = list(data.pop("customValidations", None) or data.pop("custom_validations", None) or [])
        rules.append({
            "condition": data.pop("customValidation"),
            "message": data.pop("validationMessage", None) or "Invalid value",
        })
        data["customValidations"] = rules
        return data


class FieldDependency(BaseModel):
    """Visibility predicate on another field's current value.

    Exactly one of ``value`` (equality, or membership when a list) and
    ``contains`` (array-valued dependee must include the literal) is set.
    """

    model_config = {"frozen": True}

    field: str
    value: str | list[str] | None = None
    contains: str | None = None

    @model_validator(mode="after")
    def _one_predicate(self) -> FieldDependency:
        if (self.value is None) == (self.contains is None):
            raise ValueError(
                f"dependsOn for {self.field!r} needs exactly one of 'value' or 'contains'"
            )
        return self


class BaseField(BaseModel):
    """Attributes shared by every field kind."""

    model_config = {"populate_by_name": True, "frozen": True}

    name: str
    label: str = ""
    description: str = ""
    placeholder: str = ""
    required: bool = False
    disabled: bool = False
    readonly: bool = False
    validation: FieldValidation | None = None
    depends_on: FieldDependency | None = Field(default=None, alias="dependsOn")

    @model_validator(mode="before")
    @classmethod
    def _default_label(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("label") and data.get("name"):
            data = {**data, "label": data["name"]}
        return data

    @property
    def field_type(self) -> FieldType:
        return FieldType(self.type)  # type: ignore[attr-defined]

    @property
    def custom_validations(self) -> list[CustomValidation]:
        if self.validation is None:
            return []
        return list(self.validation.custom_validations)


class ChoiceField(BaseField):
    """Base for field kinds whose value is drawn from ``options``."""

    options: list[FieldOption] = Field(default_factory=list)

    def option_label(self, value: Any) -> str | None:
        for option in self.options:
            if option.value == value:
                return option.label
        return None


class TextField(BaseField):
    type: Literal["text"] = "text"


class EmailField(BaseField):
    type: Literal["email"] = "email"


class NumberField(BaseField):
    type: Literal["number"] = "number"


class SelectField(ChoiceField):
    type: Literal["select"] = "select"


class RadioField(ChoiceField):
    type: Literal["radio"] = "radio"


class CheckboxField(ChoiceField):
    type: Literal["checkbox"] = "checkbox"


class ImageSelectField(ChoiceField):
    type: Literal["image-select"] = "image-select"


class FileField(BaseField):
    type: Literal["file"] = "file"
    accept: str = ""


FormField = Annotated[
    Union[
        TextField,
        EmailField,
        NumberField,
        SelectField,
        RadioField,
        CheckboxField,
        ImageSelectField,
        FileField,
    ],
    Field(discriminator="type"),
]


class FieldGroup(BaseModel):
    """Organizational grouping of fields within a step."""

    model_config = {"populate_by_name": True, "frozen": True}

    title: str = ""
    description: str = ""
    fields: list[FormField] = Field(default_factory=list)


class Step(BaseModel):
    """One page of the form; the unit of schema generation and navigation."""

    model_config = {"populate_by_name": True, "frozen": True}

    id: str
    title: str = ""
    description: str = ""
    field_groups: list[FieldGroup] = Field(default_factory=list, alias="fieldGroups")

    @property
    def fields(self) -> list[FormField]:
        return [field for group in self.field_groups for field in group.fields]


class FormConfig(BaseModel):
    """Root configuration, read-only for the lifetime of a session."""

    model_config = {"populate_by_name": True, "frozen": True}

    form_id: str = Field(alias="formId")
    title: str = ""
    description: str = ""
    steps: list[Step] = Field(default_factory=list)

    def iter_fields(self) -> Iterator[FormField]:
        for step in self.steps:
            yield from step.fields

    def get_step(self, step_id: str) -> Step:
        for step in self.steps:
            if step.id == step_id:
                return step
        raise KeyError(f"Step {step_id!r} not found in form {self.form_id!r}")

    def get_field(self, name: str) -> FormField | None:
        for field in self.iter_fields():
            if field.name == name:
                return field
        return None


class PersistedSession(BaseModel):
    """Snapshot of in-progress answers for one form."""

    model_config = {"populate_by_name": True}

    values: dict[str, Any] = Field(default_factory=dict)
    current_step: int = Field(default=0, alias="currentStep")
    saved_at: int = Field(default_factory=_now_ms, alias="savedAtTimestamp")

    @property
    def step(self) -> int:
        return self.current_step


class SubmissionEntry(BaseModel):
    """A labelled answer as handed to the submission transport."""

    model_config = {"populate_by_name": True}

    field_name: str = Field(alias="fieldName")
    label: str
    field_type: FieldType = Field(alias="type")
    value: Any
