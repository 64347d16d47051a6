"""Dependency-driven field visibility.

A field is visible when its own ``dependsOn`` predicate holds and, transitively,
every field along its dependency chain is visible too. A stale value left on a
hidden prerequisite therefore never reveals its dependents.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from stepform.forms.models import FieldDependency, FormField

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 32


def dependency_satisfied(dependency: FieldDependency, actual: Any) -> bool:
    """Evaluate one ``dependsOn`` predicate against the dependee's current value."""
    if dependency.contains is not None:
        return isinstance(actual, (list, tuple, set, frozenset)) and dependency.contains in actual
    if isinstance(dependency.value, list):
        return isinstance(actual, str) and actual in dependency.value
    return isinstance(actual, str) and actual == dependency.value


class VisibilityResolver:
    """Resolves visibility through chains of ``dependsOn`` declarations.

    Chains are walked with a visited set and a depth ceiling. A cycle or an
    over-long chain is a configuration defect: it is logged and the field is
    treated as hidden.
    """

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        self._max_depth = max_depth

    def is_visible(
        self,
        field: FormField,
        values: Mapping[str, Any],
        fields_in_scope: Iterable[FormField],
    ) -> bool:
        by_name = {f.name: f for f in fields_in_scope}
        return self._resolve(field, values, by_name)

    def visible_fields(
        self,
        fields: Sequence[FormField],
        values: Mapping[str, Any],
        fields_in_scope: Iterable[FormField] | None = None,
    ) -> list[FormField]:
        """Filter ``fields`` down to the visible ones, preserving order."""
        scope = fields if fields_in_scope is None else fields_in_scope
        by_name = {f.name: f for f in scope}
        return [f for f in fields if self._resolve(f, values, by_name)]

    def _resolve(
        self,
        field: FormField,
        values: Mapping[str, Any],
        by_name: Mapping[str, FormField],
    ) -> bool:
        visited: set[str] = set()
        current: FormField | None = field
        while current is not None and current.depends_on is not None:
            if current.name in visited:
                logger.error(
                    "Dependency cycle through field %r while resolving %r; treating as hidden",
                    current.name, field.name,
                )
                return False
            if len(visited) >= self._max_depth:
                logger.error(
                    "Dependency chain for %r exceeds %d levels; treating as hidden",
                    field.name, self._max_depth,
                )
                return False
            visited.add(current.name)

            dependency = current.depends_on
            if not dependency_satisfied(dependency, values.get(dependency.field)):
                return False
            current = by_name.get(dependency.field)
        return True
