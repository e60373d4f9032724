"""Expand bracket-notation field names into nested dicts and lists.

``append_field(store, "a[0][b]", "x")`` turns ``{}`` into ``{"a": [{"b": "x"}]}``.
Repeated plain keys collect into a list, ``a[]`` always appends, and a key that
cannot be parsed is stored verbatim.
"""

import re
from dataclasses import dataclass
from typing import Any, Literal

_FIRST_KEY = re.compile(r"^[^\[]*")
_DIGIT_STEP = re.compile(r"\[(\d+)\]")
_NAMED_STEP = re.compile(r"\[([^\]]+)\]")

_MISSING = object()

StepType = Literal["object", "array"]


@dataclass(slots=True)
class PathStep:
    type: StepType
    key: str | int
    last: bool = False
    append: bool = False
    next_type: StepType | None = None


def parse_path(key: str) -> list[PathStep]:
    """Split a field name into the steps needed to reach its value."""
    verbatim = [PathStep(type="object", key=key, last=True)]

    first_key = _FIRST_KEY.match(key).group(0)
    if not first_key:
        return verbatim

    pos = len(first_key)
    tail = PathStep(type="object", key=first_key)
    steps = [tail]

    while pos < len(key):
        if key[pos:pos + 2] == "[]":
            pos += 2
            tail.append = True
            if pos != len(key):
                return verbatim
            continue

        if match := _DIGIT_STEP.match(key, pos):
            pos = match.end()
            tail.next_type = "array"
            tail = PathStep(type="array", key=int(match.group(1)))
            steps.append(tail)
            continue

        if match := _NAMED_STEP.match(key, pos):
            pos = match.end()
            tail.next_type = "object"
            tail = PathStep(type="object", key=match.group(1))
            steps.append(tail)
            continue

        return verbatim

    tail.last = True
    return steps


def _value_kind(value: Any) -> str:
    if value is _MISSING or value is None:
        return "missing"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return "scalar"


def _get(container: dict | list, key: str | int) -> Any:
    if isinstance(container, list):
        if isinstance(key, int) and key < len(container):
            return container[key]
        return _MISSING
    return container.get(key, _MISSING)


def _put(container: dict | list, key: str | int, value: Any) -> None:
    if isinstance(container, list):
        if key >= len(container):
            container.extend([None] * (key + 1 - len(container)))
        container[key] = value
        return
    container[key] = value


def _list_as_dict(items: list) -> dict:
    return {str(i): item for i, item in enumerate(items) if item is not None}


def _set_last(container: dict | list, step: PathStep, current: Any, value: Any) -> None:
    match _value_kind(current):
        case "missing":
            _put(container, step.key, [value] if step.append else value)
        case "array":
            current.append(value)
        case "object":
            _set_last(current, PathStep(type="object", key="", last=True), current.get("", _MISSING), value)
        case "scalar":
            _put(container, step.key, [current, value])


def _descend(container: dict | list, step: PathStep, current: Any) -> dict | list:
    match _value_kind(current):
        case "missing":
            child: dict | list = [] if step.next_type == "array" else {}
            _put(container, step.key, child)
            return child
        case "object":
            return current
        case "array":
            if step.next_type == "array":
                return current
            converted = _list_as_dict(current)
            _put(container, step.key, converted)
            return converted
        case _:
            wrapped = {"": current}
            _put(container, step.key, wrapped)
            return wrapped


def _coerce_key(container: dict | list, step: PathStep) -> str | int:
    # A numeric step can land in a dict after a list was converted into one.
    if isinstance(container, dict) and isinstance(step.key, int):
        step.key = str(step.key)
    return step.key


def append_field(store: dict, key: str, value: Any) -> dict:
    """Merge one ``key=value`` pair into ``store`` and return it."""
    context: dict | list = store
    for step in parse_path(key):
        current = _get(context, _coerce_key(context, step))
        if step.last:
            _set_last(context, step, current, value)
        else:
            context = _descend(context, step, current)
    return store
