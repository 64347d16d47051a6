"""Derive validation contracts from field and step configuration.

``FieldSchemaBuilder`` turns one field definition into a ``FieldRule``;
``StepSchemaBuilder`` composes the rules of a step's visible fields with the
step's cross-field conditions into a ``StepValidationContract``.
"""

from __future__ import annotations

import functools
import logging
import math
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field as dataclass_field
from typing import Any

from stepform.core.types import FieldType, ValidationResult
from stepform.forms import conditions
from stepform.forms.models import (
    ChoiceField,
    CustomValidation,
    FormConfig,
    FormField,
    Step,
)
from stepform.forms.validators import (
    is_absent,
    validate_email,
    validate_max,
    validate_min,
    validate_one_of,
    validate_regex,
)
from stepform.forms.visibility import VisibilityResolver

logger = logging.getLogger(__name__)

# Converts a present value into its validated form: (value, error message).
Coercer = Callable[[Any], tuple[Any, str | None]]
Validator = Callable[[Any], str | None]


@dataclass(frozen=True)
class FieldCheck:
    """Outcome of checking one value. ``value`` is the coerced value or None when absent."""

    errors: list[str] = dataclass_field(default_factory=list)
    value: Any = None

    @property
    def ok(self) -> bool:
        return not self.errors


class FieldRule:
    """Single-field validation rule. ``check`` never raises."""

    def __init__(
        self,
        field: FormField,
        coerce: Coercer,
        validators: Sequence[Validator] = (),
        required_message: str | None = None,
    ) -> None:
        self.field = field
        self._coerce = coerce
        self._validators = list(validators)
        self._required_message = required_message or f"{field.label} is required"

    @property
    def name(self) -> str:
        return self.field.name

    @property
    def required(self) -> bool:
        return self.field.required

    def check(self, value: Any) -> FieldCheck:
        if is_absent(value):
            if self.field.required:
                return FieldCheck([self._required_message])
            return FieldCheck()

        coerced, error = self._coerce(value)
        if error:
            return FieldCheck([error], value)

        errors = [msg for validator in self._validators if (msg := validator(coerced))]
        return FieldCheck(errors, coerced)


# --- Coercers ---


def _coerce_text(label: str) -> Coercer:
    def coerce(value: Any) -> tuple[Any, str | None]:
        if not isinstance(value, str):
            return value, f"{label} must be text"
        return value, None
    return coerce


def _coerce_number(label: str) -> Coercer:
    def coerce(value: Any) -> tuple[Any, str | None]:
        if isinstance(value, bool):
            return value, f"{label} must be a number"
        if isinstance(value, (int, float)):
            if math.isnan(value) or math.isinf(value):
                return value, f"{label} must be a number"
            return value, None
        if isinstance(value, str):
            number = conditions.parse_number(value.strip())
            if number is None:
                return value, f"{label} must be a number"
            return number, None
        return value, f"{label} must be a number"
    return coerce


def _coerce_selection(label: str) -> Coercer:
    def coerce(value: Any) -> tuple[Any, str | None]:
        if isinstance(value, (set, frozenset)):
            value = sorted(value, key=str)
        if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
            return value, f"{label} must be a list of options"
        return list(value), None
    return coerce


def _accept_any(value: Any) -> tuple[Any, str | None]:
    return value, None


def _compile_pattern(field: FormField) -> re.Pattern[str] | None:
    pattern = field.validation.pattern if field.validation else None
    if not pattern:
        return None
    try:
        return re.compile(pattern)
    except re.error as exc:
        logger.warning("Invalid pattern on field %r: %r (%s); skipping", field.name, pattern, exc)
        return None


def _message(field: FormField) -> str | None:
    return field.validation.message if field.validation else None


# --- Per-kind builders ---


def _build_text(field: FormField) -> FieldRule:
    validators: list[Validator] = []
    if field.field_type is FieldType.EMAIL:
        validators.append(validate_email)
    pattern = _compile_pattern(field)
    if pattern is not None:
        validators.append(functools.partial(validate_regex, pattern=pattern, message=_message(field)))
    return FieldRule(field, _coerce_text(field.label), validators)


def _build_number(field: FormField) -> FieldRule:
    validators: list[Validator] = []
    validation = field.validation
    if validation is not None and validation.min is not None:
        validators.append(functools.partial(validate_min, min_val=validation.min, message=validation.message))
    if validation is not None and validation.max is not None:
        validators.append(functools.partial(validate_max, max_val=validation.max, message=validation.message))
    return FieldRule(field, _coerce_number(field.label), validators)


def _build_single_choice(field: FormField) -> FieldRule:
    assert isinstance(field, ChoiceField)
    validators: list[Validator] = []
    # Empty options are filled in at runtime (computed choices): accept any string.
    if field.options:
        allowed = frozenset(o.value for o in field.options if not o.disabled)
        validators.append(functools.partial(
            validate_one_of, allowed=allowed, label=field.label, message=_message(field),
        ))
    return FieldRule(field, _coerce_text(field.label), validators)


def _build_checkbox(field: FormField) -> FieldRule:
    return FieldRule(
        field,
        _coerce_selection(field.label),
        required_message=f"Please select at least one option for {field.label}",
    )


def _build_file(field: FormField) -> FieldRule:
    return FieldRule(field, _accept_any)


_BUILDERS: dict[FieldType, Callable[[FormField], FieldRule]] = {
    FieldType.TEXT: _build_text,
    FieldType.EMAIL: _build_text,
    FieldType.NUMBER: _build_number,
    FieldType.SELECT: _build_single_choice,
    FieldType.RADIO: _build_single_choice,
    FieldType.IMAGE_SELECT: _build_single_choice,
    FieldType.CHECKBOX: _build_checkbox,
    FieldType.FILE: _build_file,
}

_unhandled = set(FieldType) - set(_BUILDERS)
if _unhandled:
    raise RuntimeError(f"No schema builder for field types: {sorted(_unhandled)}")


class FieldSchemaBuilder:
    """Maps one field definition to its ``FieldRule``."""

    def build(self, field: FormField) -> FieldRule:
        return _BUILDERS[field.field_type](field)


@dataclass(frozen=True)
class BoundRule:
    """A custom validation together with the field that displays its message."""

    field_name: str
    rule: CustomValidation


class StepValidationContract:
    """Validation contract for one step under a given value set.

    Structural rules exist only for visible fields. Custom rules run after
    the structural pass succeeds, against the answered values merged with the
    step submission, and every failing rule contributes its own message.
    """

    def __init__(
        self,
        step_id: str,
        rules: dict[str, FieldRule],
        hidden: list[str],
        custom_rules: list[BoundRule],
        all_values: Mapping[str, Any],
    ) -> None:
        self.step_id = step_id
        self.rules = rules
        self.hidden = hidden
        self.custom_rules = custom_rules
        self._all_values = dict(all_values)

    @property
    def field_names(self) -> list[str]:
        return list(self.rules)

    def check_field(self, name: str, value: Any) -> FieldCheck:
        """Check a single field, e.g. on change. Unknown or hidden fields pass."""
        rule = self.rules.get(name)
        if rule is None:
            return FieldCheck(value=value)
        return rule.check(value)

    def validate(self, submission: Mapping[str, Any]) -> ValidationResult:
        errors: dict[str, list[str]] = {}
        data: dict[str, Any] = {}
        for name, rule in self.rules.items():
            check = rule.check(submission.get(name))
            if check.errors:
                errors[name] = check.errors
            elif check.value is not None:
                data[name] = check.value

        if errors:
            return ValidationResult(valid=False, errors=errors, data=data)

        state = {**self._all_values, **submission, **data}
        for bound in self.custom_rules:
            if not self._rule_holds(bound, state):
                errors.setdefault(bound.field_name, []).append(bound.rule.message)

        return ValidationResult(valid=not errors, errors=errors, data=data)

    @staticmethod
    def _rule_holds(bound: BoundRule, state: Mapping[str, Any]) -> bool:
        try:
            return conditions.evaluate(bound.rule.condition, state)
        except conditions.ConditionSyntaxError as exc:
            logger.warning(
                "Ignoring malformed custom validation on field %r: %s", bound.field_name, exc
            )
        except Exception:
            logger.exception(
                "Custom validation on field %r failed to evaluate: %r",
                bound.field_name, bound.rule.condition,
            )
        return True


class StepSchemaBuilder:
    """Composes field rules, visibility and custom conditions per step."""

    def __init__(
        self,
        field_builder: FieldSchemaBuilder | None = None,
        visibility: VisibilityResolver | None = None,
    ) -> None:
        self._field_builder = field_builder or FieldSchemaBuilder()
        self._visibility = visibility or VisibilityResolver()

    def build(
        self,
        step: Step,
        all_values: Mapping[str, Any],
        scope: Iterable[FormField] | None = None,
    ) -> StepValidationContract:
        """Build the contract for ``step``.

        Args:
            step: The step to build.
            all_values: Every answer known so far, across all steps.
            scope: Fields that dependencies may point at. Defaults to the step's
                own fields; pass the whole form when dependees live on other steps.
        """
        return self._build(step.id, step.fields, all_values, scope)

    def build_form(self, config: FormConfig, all_values: Mapping[str, Any]) -> StepValidationContract:
        """Build a single contract across every step, for final validation."""
        fields = list(config.iter_fields())
        return self._build(config.form_id, fields, all_values, fields)

    def _build(
        self,
        contract_id: str,
        fields: Sequence[FormField],
        all_values: Mapping[str, Any],
        scope: Iterable[FormField] | None,
    ) -> StepValidationContract:
        by_name = {f.name: f for f in (fields if scope is None else scope)}
        scope_fields = list(by_name.values())

        rules: dict[str, FieldRule] = {}
        hidden: list[str] = []
        custom_rules: list[BoundRule] = []
        for field in fields:
            if not self._visibility.is_visible(field, all_values, scope_fields):
                hidden.append(field.name)
                continue
            rules[field.name] = self._field_builder.build(field)
            custom_rules.extend(BoundRule(field.name, rule) for rule in field.custom_validations)

        return StepValidationContract(contract_id, rules, hidden, custom_rules, all_values)


def fields_to_revalidate(step: Step, changed_field: str) -> set[str]:
    """Fields on ``step`` whose custom rules read ``changed_field``, plus the field itself."""
    names: set[str] = set()
    for field in step.fields:
        rules = field.custom_validations
        if not rules:
            continue
        if field.name == changed_field or any(
            changed_field in conditions.referenced_fields(rule.condition) for rule in rules
        ):
            names.add(field.name)
    return names
