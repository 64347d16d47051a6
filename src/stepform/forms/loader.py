"""Load and check form definitions from JSON or YAML files."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from stepform.forms.models import FormConfig

logger = logging.getLogger(__name__)

FORM_SUFFIXES = (".json", ".yml", ".yaml")


class FormConfigError(ValueError):
    """Raised for form definitions that cannot be used."""


def check_dependencies(config: FormConfig) -> list[str]:
    """Report ``dependsOn`` references to unknown fields and dependency cycles."""
    problems: list[str] = []
    fields = {field.name: field for field in config.iter_fields()}

    for field in fields.values():
        if field.depends_on is not None and field.depends_on.field not in fields:
            problems.append(
                f"Field {field.name!r} depends on unknown field {field.depends_on.field!r}"
            )

    reported: set[frozenset[str]] = set()
    for start in fields.values():
        chain: list[str] = []
        current = start
        while current is not None and current.depends_on is not None:
            if current.name in chain:
                cycle = chain[chain.index(current.name):]
                key = frozenset(cycle)
                if key not in reported:
                    reported.add(key)
                    problems.append(
                        "Dependency cycle: " + " -> ".join([*cycle, current.name])
                    )
                break
            chain.append(current.name)
            current = fields.get(current.depends_on.field)
    return problems


def parse_form_config(data: object, source: str = "<memory>") -> FormConfig:
    """Validate raw configuration data. Dependency cycles are rejected."""
    try:
        config = FormConfig.model_validate(data)
    except ValidationError as exc:
        raise FormConfigError(f"Invalid form definition in {source}: {exc}") from exc

    names = [field.name for field in config.iter_fields()]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise FormConfigError(f"Duplicate field names in {source}: {duplicates}")

    problems = check_dependencies(config)
    cycles = [p for p in problems if p.startswith("Dependency cycle")]
    if cycles:
        raise FormConfigError(f"{source}: {'; '.join(cycles)}")
    for problem in problems:
        logger.warning("%s: %s", source, problem)
    return config


def load_form_config(path: str | Path) -> FormConfig:
    path = Path(path)
    with open(path, encoding="utf-8") as fh:
        if path.suffix == ".json":
            data = json.load(fh)
        else:
            data = yaml.safe_load(fh)
    return parse_form_config(data, source=str(path))


def load_form_configs(forms_dir: str | Path) -> dict[str, FormConfig]:
    """Load every form definition in a directory, keyed by form id."""
    forms_dir = Path(forms_dir)
    configs: dict[str, FormConfig] = {}
    if not forms_dir.exists():
        return configs
    for path in sorted(forms_dir.iterdir()):
        if path.suffix not in FORM_SUFFIXES:
            continue
        config = load_form_config(path)
        configs[config.form_id] = config
    return configs
