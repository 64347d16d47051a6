"""Derived field values and runtime-computed options.

Billing periods are twelve-month windows written ``"YYYY-MM_YYYY-MM"``
(start month, end month), labelled in German for display.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date
from typing import Any

from stepform.forms.models import ChoiceField, FieldOption, FormConfig

GERMAN_MONTHS = [
    "Januar",
    "Februar",
    "März",
    "April",
    "Mai",
    "Juni",
    "Juli",
    "August",
    "September",
    "Oktober",
    "November",
    "Dezember",
]

BILLING_PERIOD_FIELD = "billingPeriod1"
DERIVED_PERIOD_FIELDS = {"billingPeriod2": 1, "billingPeriod3": 2}

BUILDING_TYPE_FIELD = "buildingType"
UNITS_FIELD = "numberOfUnits"

_FIXED_UNITS = {
    "einfamilienhaus": 1,
    "zweifamilienhaus": 2,
    "wohnteilGemischt": 1,
    "sonstiges": 1,
}
_MULTI_FAMILY = "mehrfamilienhaus"
_MULTI_FAMILY_MIN_UNITS = 3


def units_for_building_type(building_type: str, current_units: Any) -> int | None:
    """Number of units implied by a building type, or None to leave it untouched.

    A multi-family house raises the count to 3 only when it was unset or still
    carries a single/two-family value; a larger manual entry is kept.
    """
    if building_type in _FIXED_UNITS:
        return _FIXED_UNITS[building_type]
    if building_type == _MULTI_FAMILY:
        if current_units is None or current_units == "" or current_units in (1, 2):
            return _MULTI_FAMILY_MIN_UNITS
    return None


def _split_period(period: str) -> tuple[int, int, int, int] | None:
    if not period or "_" not in period:
        return None
    start, _, end = period.partition("_")
    try:
        start_year, start_month = (int(p) for p in start.split("-"))
        end_year, end_month = (int(p) for p in end.split("-"))
    except ValueError:
        return None
    return start_year, start_month, end_year, end_month


def _month_name(month: int) -> str:
    if 1 <= month <= 12:
        return GERMAN_MONTHS[month - 1]
    return ""


def calculate_previous_period(period: str, years_back: int) -> str:
    """Shift a billing period ``years_back`` years into the past. Malformed input yields ``""``."""
    parts = _split_period(period)
    if parts is None:
        return ""
    start_year, start_month, end_year, end_month = parts
    return (
        f"{start_year - years_back}-{start_month:02d}_"
        f"{end_year - years_back}-{end_month:02d}"
    )


def format_period_label(period: str) -> str:
    """``"2024-11_2025-10"`` -> ``"November 2024 bis Oktober 2025"``."""
    parts = _split_period(period)
    if parts is None:
        return ""
    start_year, start_month, end_year, end_month = parts
    return f"{_month_name(start_month)} {start_year} bis {_month_name(end_month)} {end_year}"


def generate_billing_period_options(today: date | None = None, count: int = 18) -> list[FieldOption]:
    """Twelve-month periods, newest first, the newest ending with the last complete month."""
    today = today or date.today()
    options: list[FieldOption] = []
    for i in range(count):
        # Month indices are zero-based and relative to January of the current year.
        end_index = today.month - 2 - i
        start_index = end_index - 11
        end_year, end_month = today.year + end_index // 12, end_index % 12 + 1
        start_year, start_month = today.year + start_index // 12, start_index % 12 + 1
        value = f"{start_year}-{start_month:02d}_{end_year}-{end_month:02d}"
        options.append(FieldOption(value=value, label=format_period_label(value)))
    return options


def inject_billing_period_options(config: FormConfig, today: date | None = None) -> FormConfig:
    """Return a copy of ``config`` with computed billing-period choices.

    The first period gets the generated options; the derived periods get an
    empty list so they accept whatever value is computed for them.
    """
    options = generate_billing_period_options(today)
    steps = []
    for step in config.steps:
        groups = []
        for group in step.field_groups:
            fields = []
            for field in group.fields:
                if isinstance(field, ChoiceField) and field.name == BILLING_PERIOD_FIELD:
                    field = field.model_copy(update={"options": options})
                elif isinstance(field, ChoiceField) and field.name in DERIVED_PERIOD_FIELDS:
                    field = field.model_copy(update={"options": []})
                fields.append(field)
            groups.append(group.model_copy(update={"fields": fields}))
        steps.append(step.model_copy(update={"field_groups": groups}))
    return config.model_copy(update={"steps": steps})


def derived_values(name: str, value: Any, values: Mapping[str, Any]) -> dict[str, Any]:
    """Values to set alongside a user change of ``name``.

    ``values`` holds the answers before the change.
    """
    if name == BILLING_PERIOD_FIELD and value:
        return {
            derived: calculate_previous_period(value, years_back)
            for derived, years_back in DERIVED_PERIOD_FIELDS.items()
        }
    if name == BUILDING_TYPE_FIELD and value:
        units = units_for_building_type(value, values.get(UNITS_FIELD))
        if units is not None:
            return {UNITS_FIELD: units}
    return {}
