"""Human-readable review of answers before submission."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field

from stepform.core.types import FieldType
from stepform.forms.autofill import BILLING_PERIOD_FIELD, DERIVED_PERIOD_FIELDS, format_period_label
from stepform.forms.models import ChoiceField, FormConfig, FormField, Step
from stepform.forms.validators import is_absent
from stepform.forms.visibility import VisibilityResolver

EMPTY_DISPLAY = "-"

# Consumption field prefix -> the fuel select whose option carries the unit.
_CONSUMPTION_FUEL_FIELDS = (
    ("fuelConsumption", "mainFuel"),
    ("secondFuelConsumption", "secondFuel"),
    ("hotWaterConsumption", "hotWaterFuel"),
)

_PERIOD_FIELDS = {BILLING_PERIOD_FIELD, *DERIVED_PERIOD_FIELDS}


class SummaryEntry(BaseModel):
    name: str
    label: str
    display: str
    unit: str | None = None


class SummarySection(BaseModel):
    step_id: str
    title: str
    entries: list[SummaryEntry] = Field(default_factory=list)


def consumption_unit(field_name: str, values: Mapping[str, Any], step: Step | None) -> str | None:
    """Unit of a consumption field, taken from the selected fuel option."""
    fuel_field_name = next(
        (fuel for prefix, fuel in _CONSUMPTION_FUEL_FIELDS if field_name.startswith(prefix)),
        None,
    )
    if fuel_field_name is None or step is None or not values.get(fuel_field_name):
        return None

    for field in step.fields:
        if field.name == fuel_field_name and isinstance(field, ChoiceField):
            for option in field.options:
                if option.value == values[fuel_field_name]:
                    return option.unit
    return None


def _file_name(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        for key in ("_fileName", "name", "filename"):
            if value.get(key):
                return str(value[key])
        return None
    return getattr(value, "name", None) or getattr(value, "filename", None)


def format_value(field: FormField | None, value: Any) -> str:
    """Render a stored value for display."""
    if is_absent(value):
        return EMPTY_DISPLAY
    if isinstance(value, bool):
        return "Ja" if value else "Nein"

    if field is not None and field.field_type is FieldType.FILE:
        items = value if isinstance(value, (list, tuple)) else [value]
        names = [name for name in (_file_name(item) for item in items) if name]
        return ", ".join(names) if names else "Datei hochgeladen"

    if isinstance(value, (list, tuple, set, frozenset)):
        labels = []
        for item in value:
            label = field.option_label(item) if isinstance(field, ChoiceField) else None
            text = label or str(item)
            labels.append(text[:1].upper() + text[1:])
        return ", ".join(labels)

    if field is not None and field.name in _PERIOD_FIELDS and isinstance(value, str):
        return format_period_label(value) or value

    if isinstance(field, ChoiceField):
        return field.option_label(value) or str(value)

    return str(value)


def summarize(
    config: FormConfig,
    values: Mapping[str, Any],
    visibility: VisibilityResolver | None = None,
) -> list[SummarySection]:
    """One section per step listing the visible fields in declaration order."""
    visibility = visibility or VisibilityResolver()
    scope = list(config.iter_fields())
    sections = []
    for step in config.steps:
        entries = [
            SummaryEntry(
                name=field.name,
                label=field.label,
                display=format_value(field, values.get(field.name)),
                unit=consumption_unit(field.name, values, step),
            )
            for field in visibility.visible_fields(step.fields, values, scope)
        ]
        sections.append(SummarySection(step_id=step.id, title=step.title, entries=entries))
    return sections
