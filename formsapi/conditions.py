"""Conditional visibility of form fields.

A field may carry ``conditional_logic = {dependsOn, condition, value}``.
Fields are resolved in dependency order so a field whose dependency is
hidden is hidden too, whatever its own rule says.
"""
import enum
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

from formsapi.errors import ConfigurationError, InvalidValueError
from formsapi.fields import is_empty, parse_number, stringify

logger = logging.getLogger(__name__)


class Condition(str, enum.Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"
    IS_CHECKED = "is_checked"
    IS_NOT_CHECKED = "is_not_checked"


@dataclass(frozen=True)
class FieldVisibility:
    visible: bool
    required: bool


def depends_on(field) -> Optional[str]:
    logic = field.conditional_logic
    if logic is None or not logic.depends_on:
        return None
    return logic.depends_on


def _find_cycle(start: str, parents: Mapping[str, Optional[str]]) -> List[str]:
    path: List[str] = []
    seen: Dict[str, int] = {}
    node: Optional[str] = start
    while node is not None and node not in seen:
        seen[node] = len(path)
        path.append(node)
        node = parents.get(node)
    if node is None:
        return []
    return path[seen[node]:] + [node]


def dependency_order(fields: Iterable) -> List:
    """Order fields so every field comes after the field it depends on.

    Uses Kahn's algorithm over ``dependsOn`` edges. Dependencies on fields
    outside ``fields`` do not constrain the order. Raises
    ``ConfigurationError`` on duplicate ids or cyclic dependencies.
    """
    fields = list(fields)
    by_id: Dict[str, Any] = {}
    for field in fields:
        if field.id in by_id:
            raise ConfigurationError(f"Duplicate field id '{field.id}'", [field.id])
        by_id[field.id] = field

    parents: Dict[str, Optional[str]] = {}
    dependents: Dict[str, List[str]] = {field_id: [] for field_id in by_id}
    indegree: Dict[str, int] = {field_id: 0 for field_id in by_id}
    for field in fields:
        parent = depends_on(field)
        if parent == field.id:
            raise ConfigurationError(f"Field '{field.id}' cannot depend on itself", [field.id])
        if parent in by_id:
            parents[field.id] = parent
            dependents[parent].append(field.id)
            indegree[field.id] += 1

    queue = deque(field.id for field in fields if indegree[field.id] == 0)
    ordered: List = []
    while queue:
        field_id = queue.popleft()
        ordered.append(by_id[field_id])
        for child in dependents[field_id]:
            indegree[child] -= 1
            if indegree[child] == 0:
                queue.append(child)

    if len(ordered) < len(fields):
        stuck = next(field.id for field in fields if indegree[field.id] > 0)
        cycle = _find_cycle(stuck, parents)
        raise ConfigurationError(
            "Cyclic conditional logic: " + " -> ".join(cycle),
            cycle[:-1],
        )
    return ordered


def check_dependencies(fields: Iterable) -> None:
    """Validate the conditional rules of a complete field set before saving."""
    fields = list(fields)
    known = {field.id for field in fields}
    for field in fields:
        parent = depends_on(field)
        if parent is not None and parent not in known:
            raise ConfigurationError(
                f"Field '{field.id}' depends on unknown field '{parent}'", [field.id]
            )
    dependency_order(fields)


def matches(condition: Any, answer: Any, expected: Any) -> bool:
    """Apply one condition to the dependency's answer.

    An absent answer never satisfies a condition, so conditional fields stay
    hidden until the field they depend on has been answered.
    """
    if answer is None:
        return False
    expected = "" if expected is None else stringify(expected)
    try:
        condition = Condition(condition)
    except ValueError:
        logger.warning("Unknown condition '%s' treated as not matching", condition)
        return False

    if condition == Condition.EQUALS:
        return not isinstance(answer, (list, tuple)) and stringify(answer) == expected
    if condition == Condition.NOT_EQUALS:
        return isinstance(answer, (list, tuple)) or stringify(answer) != expected
    if condition in (Condition.CONTAINS, Condition.NOT_CONTAINS):
        if isinstance(answer, (list, tuple)):
            found = expected in [stringify(item) for item in answer]
        else:
            found = expected in stringify(answer)
        return found if condition == Condition.CONTAINS else not found
    if condition in (Condition.GREATER_THAN, Condition.LESS_THAN):
        try:
            left, right = parse_number(answer), parse_number(expected)
        except InvalidValueError:
            return False
        return left > right if condition == Condition.GREATER_THAN else left < right
    if condition == Condition.IS_EMPTY:
        return is_empty(answer)
    if condition == Condition.IS_NOT_EMPTY:
        return not is_empty(answer)
    if condition == Condition.IS_CHECKED:
        return bool(answer)
    return not bool(answer)


def evaluate(fields: Iterable, answers: Mapping[str, Any]) -> Dict[str, FieldVisibility]:
    """Compute visibility for every field given a (possibly partial) answer map."""
    ordered = dependency_order(fields)
    visibility: Dict[str, FieldVisibility] = {}
    for field in ordered:
        parent = depends_on(field)
        if parent is None:
            visible = True
        elif parent not in visibility:
            # references a field outside the active set; can never be satisfied
            visible = False
        elif not visibility[parent].visible:
            visible = False
        else:
            logic = field.conditional_logic
            visible = matches(logic.condition, answers.get(parent), logic.value)
        visibility[field.id] = FieldVisibility(visible=visible, required=bool(field.required) and visible)
    return visibility
