"""
Frozen descriptors for fireodm models, fields and relations.

Notes:
    - A ModelDescriptor owns an ordered tuple of FieldDescriptors and a collection name.
      Descriptors are created once at registration time and never mutated.
    - RelationDescriptor is a FieldDescriptor of kind "reference" that names a target
      model and a cardinality. It stores pointer tokens only; related documents are
      resolved on demand, never embedded.
    - Field constructors (string_field, number_field, ...) are the explicit form of the
      decorator syntax. The name may be omitted when the field is declared as a class
      attribute under @collection; the decorator fills it in.

Examples:
    >>> from fireodm.core.descriptors import ModelDescriptor, string_field, reference
    >>> user = ModelDescriptor(
    ...     "users",
    ...     "users",
    ...     (string_field("name", required=True), reference("manager", "users")),
    ... )
    >>> user.field_names
    ('name', 'manager')
    >>> user.relation("manager").target
    'users'
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

from .errors import DuplicateFieldError, SchemaError
from .grammar import Cardinality, FieldKind
from .typing import FieldRule, ModelRule

__all__ = [
    "RESERVED_FIELD_NAMES",
    "FieldDescriptor",
    "RelationDescriptor",
    "ModelDescriptor",
    "string_field",
    "number_field",
    "boolean_field",
    "timestamp_field",
    "nested_field",
    "array_field",
    "reference",
]

# The document id lives beside the data, never inside it.
RESERVED_FIELD_NAMES: frozenset[str] = frozenset({"id"})

_CONSTRAINTS_BY_KIND: dict[FieldKind, frozenset[str]] = {
    FieldKind.STRING: frozenset({"min_length", "max_length", "pattern", "choices"}),
    FieldKind.NUMBER: frozenset({"minimum", "maximum", "integer", "choices"}),
    FieldKind.BOOLEAN: frozenset(),
    FieldKind.TIMESTAMP: frozenset(),
    FieldKind.REFERENCE: frozenset(),
    FieldKind.NESTED: frozenset(),
    FieldKind.ARRAY: frozenset({"min_items", "max_items"}),
}


@dataclass(frozen=True, eq=False)
class FieldDescriptor:
    """
    Declared field of a model.

    Attributes:
        name (str): Field name as stored ("" until named by @collection).
        kind (FieldKind): Semantic type.
        required (bool): Whether the field must be present and non-null.
        default (Any): Value used when the field is absent (deep-copied on use).
        rules (tuple[FieldRule, ...]): Custom predicates, run after the type check.
        constraints (Mapping[str, Any]): Built-in constraints (min_length, maximum, ...).
        fields (tuple[FieldDescriptor, ...]): Sub-fields of a nested field.
        item (FieldDescriptor | None): Item descriptor of an array field.
    """

    name: str
    kind: FieldKind
    required: bool = False
    default: Any = None
    rules: tuple[FieldRule, ...] = ()
    constraints: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    fields: tuple[FieldDescriptor, ...] = ()
    item: FieldDescriptor | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.kind, FieldKind):
            raise SchemaError(f"field {self.name!r}: kind must be a FieldKind")
        allowed = _CONSTRAINTS_BY_KIND[self.kind]
        unknown = sorted(set(self.constraints) - allowed)
        if unknown:
            raise SchemaError(
                f"field {self.name!r}: constraints {unknown} not supported for {self.kind.value}"
            )
        if "pattern" in self.constraints:
            try:
                re.compile(self.constraints["pattern"])
            except re.error as exc:
                raise SchemaError(f"field {self.name!r}: invalid pattern: {exc}") from exc
        if self.kind is FieldKind.NESTED:
            _check_unique(self.name or "<nested>", self.fields)
        elif self.fields:
            raise SchemaError(f"field {self.name!r}: only nested fields declare sub-fields")
        if self.kind is FieldKind.ARRAY:
            if self.item is None:
                raise SchemaError(f"field {self.name!r}: array fields need an item descriptor")
        elif self.item is not None:
            raise SchemaError(f"field {self.name!r}: only array fields declare an item")
        if self.required and self.default is not None:
            raise SchemaError(f"field {self.name!r}: a required field cannot have a default")
        object.__setattr__(self, "constraints", MappingProxyType(dict(self.constraints)))
        object.__setattr__(self, "rules", tuple(self.rules))
        object.__setattr__(self, "fields", tuple(self.fields))

    @property
    def is_relation(self) -> bool:
        return False

    @property
    def type_label(self) -> str:
        """Human-readable expected type, used in codec and validation messages."""
        if self.kind is FieldKind.ARRAY and self.item is not None:
            return f"array<{self.item.type_label}>"
        return self.kind.value

    def named(self, name: str) -> FieldDescriptor:
        """Return a copy carrying `name`."""
        return replace(self, name=name)


@dataclass(frozen=True, eq=False)
class RelationDescriptor(FieldDescriptor):
    """
    Reference field pointing at documents of another registered model.

    Attributes:
        target (str): Target model id. It must be registered before the relation is
            first resolved, not before declaration.
        cardinality (Cardinality): ONE stores a single token, MANY a list of tokens.
    """

    target: str = ""
    cardinality: Cardinality = Cardinality.ONE

    def __post_init__(self) -> None:
        if self.kind is not FieldKind.REFERENCE:
            raise SchemaError(f"relation {self.name!r} must have kind 'reference'")
        if not self.target:
            raise SchemaError(f"relation {self.name!r} needs a target model id")
        super().__post_init__()

    @property
    def is_relation(self) -> bool:
        return True

    @property
    def many(self) -> bool:
        return self.cardinality is Cardinality.MANY

    @property
    def type_label(self) -> str:
        if self.many:
            return f"reference<{self.target}>[]"
        return f"reference<{self.target}>"


@dataclass(frozen=True, eq=False)
class ModelDescriptor:
    """
    Registered model: id, collection and ordered fields.

    Attributes:
        model_id (str): Registry key.
        collection (str): Storage collection name.
        fields (tuple[FieldDescriptor, ...]): Fields in declaration order.
        rules (tuple[ModelRule, ...]): Whole-document rules, run once every field
            passed its own checks.

    Raises:
        SchemaError: Unnamed fields, reserved names, or an invalid collection.
        DuplicateFieldError: Two fields share a name.
    """

    model_id: str
    collection: str
    fields: tuple[FieldDescriptor, ...]
    rules: tuple[ModelRule, ...] = ()

    def __post_init__(self) -> None:
        if not self.model_id:
            raise SchemaError("model id must be a non-empty string")
        if not self.collection or "/" in self.collection:
            raise SchemaError(f"model {self.model_id!r}: invalid collection {self.collection!r}")
        fields = tuple(self.fields)
        for f in fields:
            if not isinstance(f, FieldDescriptor):
                raise SchemaError(f"model {self.model_id!r}: {f!r} is not a FieldDescriptor")
            if f.name in RESERVED_FIELD_NAMES:
                raise SchemaError(f"model {self.model_id!r}: field name {f.name!r} is reserved")
        _check_unique(self.model_id, fields)
        object.__setattr__(self, "fields", fields)
        object.__setattr__(self, "rules", tuple(self.rules))
        object.__setattr__(self, "_by_name", {f.name: f for f in fields})

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    @property
    def relations(self) -> tuple[RelationDescriptor, ...]:
        return tuple(f for f in self.fields if isinstance(f, RelationDescriptor))

    def get_field(self, name: str) -> FieldDescriptor | None:
        return self._by_name.get(name)  # type: ignore[attr-defined]

    def relation(self, name: str) -> RelationDescriptor | None:
        f = self.get_field(name)
        return f if isinstance(f, RelationDescriptor) else None


def _check_unique(owner: str, fields: Sequence[FieldDescriptor]) -> None:
    seen: set[str] = set()
    for f in fields:
        if not f.name:
            raise SchemaError(f"{owner!r}: every field needs a name")
        if f.name in seen:
            raise DuplicateFieldError(owner, f.name)
        seen.add(f.name)


# -----------------------------------------------------------------------------
# Field constructors
# -----------------------------------------------------------------------------


def _constraints(**kwargs: Any) -> dict[str, Any]:
    out = {k: v for k, v in kwargs.items() if v is not None and v is not False}
    if "choices" in out:
        out["choices"] = tuple(out["choices"])
    return out


def string_field(
    name: str = "",
    *,
    required: bool = False,
    default: str | None = None,
    min_length: int | None = None,
    max_length: int | None = None,
    pattern: str | None = None,
    choices: Iterable[str] | None = None,
    rules: Iterable[FieldRule] = (),
) -> FieldDescriptor:
    return FieldDescriptor(
        name,
        FieldKind.STRING,
        required=required,
        default=default,
        rules=tuple(rules),
        constraints=_constraints(
            min_length=min_length, max_length=max_length, pattern=pattern, choices=choices
        ),
    )


def number_field(
    name: str = "",
    *,
    required: bool = False,
    default: float | None = None,
    minimum: float | None = None,
    maximum: float | None = None,
    integer: bool = False,
    choices: Iterable[float] | None = None,
    rules: Iterable[FieldRule] = (),
) -> FieldDescriptor:
    return FieldDescriptor(
        name,
        FieldKind.NUMBER,
        required=required,
        default=default,
        rules=tuple(rules),
        constraints=_constraints(minimum=minimum, maximum=maximum, integer=integer, choices=choices),
    )


def boolean_field(
    name: str = "",
    *,
    required: bool = False,
    default: bool | None = None,
    rules: Iterable[FieldRule] = (),
) -> FieldDescriptor:
    return FieldDescriptor(
        name, FieldKind.BOOLEAN, required=required, default=default, rules=tuple(rules)
    )


def timestamp_field(
    name: str = "",
    *,
    required: bool = False,
    rules: Iterable[FieldRule] = (),
) -> FieldDescriptor:
    return FieldDescriptor(name, FieldKind.TIMESTAMP, required=required, rules=tuple(rules))


def nested_field(
    name: str = "",
    fields: Iterable[FieldDescriptor] = (),
    *,
    required: bool = False,
    default: Mapping[str, Any] | None = None,
    rules: Iterable[FieldRule] = (),
) -> FieldDescriptor:
    return FieldDescriptor(
        name,
        FieldKind.NESTED,
        required=required,
        default=dict(default) if default is not None else None,
        rules=tuple(rules),
        fields=tuple(fields),
    )


def array_field(
    name: str = "",
    item: FieldDescriptor | None = None,
    *,
    required: bool = False,
    default: Sequence[Any] | None = None,
    min_items: int | None = None,
    max_items: int | None = None,
    rules: Iterable[FieldRule] = (),
) -> FieldDescriptor:
    return FieldDescriptor(
        name,
        FieldKind.ARRAY,
        required=required,
        default=list(default) if default is not None else None,
        rules=tuple(rules),
        constraints=_constraints(min_items=min_items, max_items=max_items),
        item=item,
    )


def reference(
    name: str = "",
    target: str = "",
    *,
    many: bool = False,
    required: bool = False,
    rules: Iterable[FieldRule] = (),
) -> RelationDescriptor:
    """
    Declare a relation to documents of model `target`.

    Args:
        name (str): Field name (may be filled in later by @collection).
        target (str): Target model id.
        many (bool): Store a list of pointers instead of a single pointer.
        required (bool): Whether the relation must be set.
        rules (Iterable[FieldRule]): Custom predicates over the normalized pointer(s).
    """
    return RelationDescriptor(
        name,
        FieldKind.REFERENCE,
        required=required,
        rules=tuple(rules),
        target=target,
        cardinality=Cardinality.MANY if many else Cardinality.ONE,
    )
