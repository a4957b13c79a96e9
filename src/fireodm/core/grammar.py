"""
Canonical fireodm grammar: field kinds, relation cardinality, lifecycle phases and
population/codec policies, with zero-IO normalization helpers.

Design principles
-----------------
1) One naming standard:
   - Enum classes: PascalCase
   - Enum member names: UPPER_SNAKE
   - Enum serialized values (config files, env vars, error payloads): lower_snake
2) Callers may pass either the enum member or its serialized value. Lifecycle phases
   additionally accept the camelCase spelling used by decorator-based ODMs
   ("beforeSave" -> "before_save").

Examples
--------
>>> from fireodm.core.grammar import hook_phase_from_value, HookPhase
>>> hook_phase_from_value("beforeSave") is HookPhase.BEFORE_SAVE
True
>>> hook_phase_from_value("after_load").is_before
False
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from enum import Enum
from typing import TypeVar

__all__ = [
    "FieldKind",
    "Cardinality",
    "HookPhase",
    "OnMissing",
    "CodecErrorPolicy",
    "is_lower_snake",
    "assert_lower_snake",
    "to_lower_snake",
    "field_kind_from_value",
    "hook_phase_from_value",
    "on_missing_from_value",
    "codec_policy_from_value",
    "ensure_all_enum_values_lower_snake",
]

_LOWER_SNAKE_RE = re.compile(r"^[a-z][a-z0-9_]*$")
_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])([A-Z])")

E = TypeVar("E", bound=Enum)


class FieldKind(Enum):
    """
    Semantic type of a declared field.

    Notes:
      Storage mappings:
        * string, number, boolean   -> JSON scalar as-is
        * timestamp                 -> ISO-8601 string
        * reference                 -> "<collection>/<id>" pointer token (or list of tokens)
        * nested                    -> mapping encoded field by field
        * array                     -> list encoded item by item
    """

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"
    REFERENCE = "reference"
    NESTED = "nested"
    ARRAY = "array"

    @property
    def is_scalar(self) -> bool:
        return self in _SCALAR_KINDS


_SCALAR_KINDS = frozenset(
    {FieldKind.STRING, FieldKind.NUMBER, FieldKind.BOOLEAN, FieldKind.TIMESTAMP}
)


class Cardinality(Enum):
    """How many targets a relation points at."""

    ONE = "one"
    MANY = "many"


class HookPhase(Enum):
    """
    Lifecycle phases hooks can be registered for.

    Notes:
      before_* hooks run ahead of the storage call and may veto it.
      after_* hooks observe the finalized value and cannot undo the storage call.
    """

    BEFORE_SAVE = "before_save"
    AFTER_SAVE = "after_save"
    BEFORE_LOAD = "before_load"
    AFTER_LOAD = "after_load"
    BEFORE_DELETE = "before_delete"
    AFTER_DELETE = "after_delete"

    @property
    def is_before(self) -> bool:
        return self.value.startswith("before_")


class OnMissing(Enum):
    """Behavior of populate() when a referenced document does not exist."""

    SKIP = "skip"
    FAIL = "fail"


class CodecErrorPolicy(Enum):
    """Caller choice when a stored value fails to decode."""

    ABORT = "abort"
    SKIP = "skip"
    DEFAULT = "default"


def is_lower_snake(value: str) -> bool:
    """
    Check whether a string is lower_snake.

    Examples:
      >>> is_lower_snake("before_save")
      True
      >>> is_lower_snake("beforeSave")
      False
    """
    return bool(_LOWER_SNAKE_RE.match(value or ""))


def assert_lower_snake(value: str, what: str = "value") -> None:
    """
    Validate that a string is lower_snake.

    Raises:
      ValueError: If value is not lower_snake.
    """
    if not is_lower_snake(value):
        raise ValueError(f"{what} must be lower_snake (got: {value!r})")


def to_lower_snake(value: str) -> str:
    """
    Convert camelCase or PascalCase to lower_snake; lower_snake passes through.

    Examples:
      >>> to_lower_snake("afterDelete")
      'after_delete'
    """
    return _CAMEL_BOUNDARY_RE.sub(r"_\1", (value or "").strip()).lower()


def _enum_from_value(enum_cls: type[E], value: E | str, what: str) -> E:
    if isinstance(value, enum_cls):
        return value
    if not isinstance(value, str):
        raise ValueError(f"{what} must be a string or {enum_cls.__name__} (got {value!r})")
    norm = to_lower_snake(value)
    try:
        return enum_cls(norm)
    except ValueError:
        allowed = sorted(m.value for m in enum_cls)
        raise ValueError(f"{what} must be one of {allowed} (got {value!r})") from None


def field_kind_from_value(value: FieldKind | str) -> FieldKind:
    """Parse a field kind (e.g. "number") into a FieldKind."""
    return _enum_from_value(FieldKind, value, "field kind")


def hook_phase_from_value(value: HookPhase | str) -> HookPhase:
    """
    Parse a lifecycle phase into a HookPhase.

    Args:
      value (HookPhase | str): Enum member, lower_snake value, or camelCase spelling.

    Raises:
      ValueError: If the phase is unknown.
    """
    return _enum_from_value(HookPhase, value, "hook phase")


def on_missing_from_value(value: OnMissing | str) -> OnMissing:
    """Parse "skip" / "fail" into an OnMissing."""
    return _enum_from_value(OnMissing, value, "on_missing")


def codec_policy_from_value(value: CodecErrorPolicy | str) -> CodecErrorPolicy:
    """Parse "abort" / "skip" / "default" into a CodecErrorPolicy."""
    return _enum_from_value(CodecErrorPolicy, value, "codec error policy")


def ensure_all_enum_values_lower_snake(enums: Iterable[type[Enum]]) -> None:
    """
    Assert that every enum member's value is lower_snake.

    Raises:
      ValueError: If any serialized value is not lower_snake.
    """
    for enum_cls in enums:
        for member in enum_cls:
            assert_lower_snake(member.value, f"{enum_cls.__name__}.{member.name}")
