"""
Validation engine: checks a raw mapping against a ModelDescriptor before every write.

Each ModelDescriptor compiles once into a pydantic model (the "schema under the hood").
Field checks map to pydantic types and validators:

- string -> StrictStr, boolean -> StrictBool, timestamp -> datetime
- number -> finite int/float, booleans rejected
- reference -> StoragePointer, normalized from a pointer, a "coll/id" token, a bare id
  (collection taken from the registered target model) or a saved DocumentInstance
- nested -> nested pydantic model, array -> list of the item type
- built-in constraints and custom rules -> after-validators, so they only see values that
  already passed the type check

Every pydantic error becomes a Violation with a dotted path; nothing short-circuits, so a
single failed attempt reports every problem. Model-level rules run once all fields pass.

Notes:
    - validate() is pure: it never mutates its input and never touches storage.
    - Unknown keys are violations when strict (default) and dropped otherwise.
    - A rule that crashes yields a "rule_error" violation instead of escaping validate().
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime
from functools import lru_cache, partial
from typing import Annotated, Any, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    PlainValidator,
    StrictBool,
    StrictStr,
    ValidationInfo,
    create_model,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError
from pydantic_core import PydanticCustomError

from .descriptors import FieldDescriptor, ModelDescriptor, RelationDescriptor
from .document import DocumentInstance
from .errors import UnknownModelError, ValidationError
from .grammar import FieldKind
from .pointer import StoragePointer
from .registry import SchemaRegistry, default_registry
from .typing import FieldRule, JsonDict

__all__ = ["ROOT_PATH", "Violation", "ValidationResult", "validate"]

# Path used for violations that concern the whole document.
ROOT_PATH = "__root__"

# pydantic inserts validator tags such as "function-after[...]" into error locations.
_INTERNAL_LOC_RE = re.compile(r"^[a-z-]+\[.*\]$")


class Violation(BaseModel):
    """
    One field-level problem.

    Attributes:
        path (str): Dotted field path ("address.city", "tags.2"), or ROOT_PATH.
        code (str): Machine-readable code ("missing", "string_type", "rule", ...).
        message (str): Human-readable reason.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    path: str
    code: str
    message: str


class ValidationResult(BaseModel):
    """
    Outcome of validate(): a normalized instance or violations, never both.

    Attributes:
        model_id (str): Model validated against.
        instance (DocumentInstance | None): Normalized, not-yet-persisted document.
        violations (tuple[Violation, ...]): Every violation found.

    Raises:
        pydantic.ValidationError: If constructed with both or neither outcome.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, protected_namespaces=())

    model_id: str
    instance: Optional[DocumentInstance] = None
    violations: tuple[Violation, ...] = ()

    @model_validator(mode="after")
    def _exactly_one_outcome(self) -> ValidationResult:
        if (self.instance is None) == (not self.violations):
            raise ValueError("a validation result holds either an instance or violations")
        return self

    @property
    def ok(self) -> bool:
        return self.instance is not None

    def raise_for_violations(self) -> DocumentInstance:
        """
        Return the instance, or raise the aggregate ValidationError.

        Raises:
            fireodm.core.errors.ValidationError: If there are violations.
        """
        if self.instance is None:
            raise ValidationError(self.model_id, self.violations)
        return self.instance


# -----------------------------------------------------------------------------
# Field validators
# -----------------------------------------------------------------------------


def _check_number(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise PydanticCustomError("number_type", "Input should be a number")
    if isinstance(value, float) and not math.isfinite(value):
        raise PydanticCustomError("number_finite", "Input should be a finite number")
    return value


def _reference_validator(rel: RelationDescriptor) -> Callable[[Any, ValidationInfo], Any]:
    def _one(value: Any, registry: SchemaRegistry | None) -> StoragePointer:
        if isinstance(value, DocumentInstance):
            if value.id is None:
                raise PydanticCustomError(
                    "reference_unsaved", "Referenced document has not been saved"
                )
            pointer = value.pointer
        elif isinstance(value, StoragePointer):
            pointer = value
        elif isinstance(value, str) and "/" in value:
            try:
                pointer = StoragePointer.parse(value)
            except ValueError as exc:
                raise PydanticCustomError(
                    "reference_token", "Invalid pointer token: {reason}", {"reason": str(exc)}
                ) from None
        elif isinstance(value, str) and value:
            pointer = StoragePointer(_target_collection(rel, registry), value)
        else:
            raise PydanticCustomError(
                "reference_type",
                "Input should be a reference to {target}",
                {"target": rel.target},
            )
        if registry is not None and rel.target in registry:
            expected = registry.lookup(rel.target).collection
            if pointer.collection != expected:
                raise PydanticCustomError(
                    "reference_collection",
                    "Reference should point into collection {expected}, got {actual}",
                    {"expected": expected, "actual": pointer.collection},
                )
        return pointer

    def _validate(value: Any, info: ValidationInfo) -> Any:
        registry = (info.context or {}).get("registry")
        if not rel.many:
            return _one(value, registry)
        if not isinstance(value, (list, tuple)):
            raise PydanticCustomError(
                "reference_list", "Input should be a list of references to {target}",
                {"target": rel.target},
            )
        out = []
        for i, v in enumerate(value):
            try:
                out.append(_one(v, registry))
            except PydanticCustomError as exc:
                raise PydanticCustomError(
                    exc.type, "Item {index}: {message}", {"index": i, "message": exc.message()}
                ) from None
        return out

    return _validate


def _target_collection(rel: RelationDescriptor, registry: SchemaRegistry | None) -> str:
    if registry is None:
        raise PydanticCustomError(
            "reference_target", "Bare ids need a registry to resolve {target}", {"target": rel.target}
        )
    try:
        return registry.lookup(rel.target).collection
    except UnknownModelError:
        raise PydanticCustomError(
            "reference_target",
            "Relation target model {target} is not registered",
            {"target": rel.target},
        ) from None


def _constraint_validator(f: FieldDescriptor) -> Callable[[Any], Any]:
    c = dict(f.constraints)
    pattern = re.compile(c["pattern"]) if "pattern" in c else None

    def _validate(value: Any) -> Any:
        if "min_length" in c and len(value) < c["min_length"]:
            raise PydanticCustomError(
                "too_short", "Should have at least {n} characters", {"n": c["min_length"]}
            )
        if "max_length" in c and len(value) > c["max_length"]:
            raise PydanticCustomError(
                "too_long", "Should have at most {n} characters", {"n": c["max_length"]}
            )
        if pattern is not None and not pattern.search(value):
            raise PydanticCustomError(
                "pattern_mismatch", "Should match pattern {pattern}", {"pattern": pattern.pattern}
            )
        if c.get("integer") and not float(value).is_integer():
            raise PydanticCustomError("integer", "Should be a whole number")
        if "minimum" in c and value < c["minimum"]:
            raise PydanticCustomError(
                "greater_than_equal", "Should be greater than or equal to {n}", {"n": c["minimum"]}
            )
        if "maximum" in c and value > c["maximum"]:
            raise PydanticCustomError(
                "less_than_equal", "Should be less than or equal to {n}", {"n": c["maximum"]}
            )
        if "choices" in c and value not in c["choices"]:
            raise PydanticCustomError(
                "choice", "Should be one of {choices}", {"choices": list(c["choices"])}
            )
        if "min_items" in c and len(value) < c["min_items"]:
            raise PydanticCustomError(
                "too_short", "Should have at least {n} items", {"n": c["min_items"]}
            )
        if "max_items" in c and len(value) > c["max_items"]:
            raise PydanticCustomError(
                "too_long", "Should have at most {n} items", {"n": c["max_items"]}
            )
        return value

    return _validate


def _rule_validator(rule: FieldRule) -> Callable[[Any], Any]:
    label = getattr(rule, "__name__", repr(rule))

    def _validate(value: Any) -> Any:
        try:
            outcome = rule(value)
        except ValueError as exc:
            raise PydanticCustomError("rule", "{message}", {"message": str(exc)}) from None
        except Exception as exc:
            raise PydanticCustomError(
                "rule_error",
                "Rule {rule} failed with {error}",
                {"rule": label, "error": f"{type(exc).__name__}: {exc}"},
            ) from None
        if outcome is False:
            raise PydanticCustomError("rule", "Failed rule {rule}", {"rule": label})
        if isinstance(outcome, str):
            raise PydanticCustomError("rule", "{message}", {"message": outcome})
        return value

    return _validate


# -----------------------------------------------------------------------------
# Schema compilation
# -----------------------------------------------------------------------------


def _annotation(f: FieldDescriptor, strict: bool) -> Any:
    kind = f.kind
    base: Any
    if kind is FieldKind.STRING:
        base = StrictStr
    elif kind is FieldKind.BOOLEAN:
        base = StrictBool
    elif kind is FieldKind.NUMBER:
        base = Annotated[Any, PlainValidator(_check_number)]
    elif kind is FieldKind.TIMESTAMP:
        base = datetime
    elif kind is FieldKind.REFERENCE:
        assert isinstance(f, RelationDescriptor)
        base = Annotated[Any, PlainValidator(_reference_validator(f))]
    elif kind is FieldKind.NESTED:
        base = _compile_fields(f"Nested_{f.name or 'item'}", f.fields, strict)
    else:
        assert f.item is not None
        base = list[_annotation(f.item, strict)]  # type: ignore[misc]

    validators: list[Any] = []
    if f.constraints:
        validators.append(AfterValidator(_constraint_validator(f)))
    validators.extend(AfterValidator(_rule_validator(r)) for r in f.rules)
    if validators:
        base = Annotated[(base, *validators)]
    return base


def _compile_fields(
    name: str, fields: Sequence[FieldDescriptor], strict: bool
) -> type[BaseModel]:
    definitions: dict[str, Any] = {}
    for i, f in enumerate(fields):
        ann = _annotation(f, strict)
        if f.required:
            definitions[f"f{i}"] = (ann, Field(..., alias=f.name))
        else:
            if f.default is None:
                info = Field(default=None, alias=f.name)
            else:
                info = Field(default_factory=partial(copy.deepcopy, f.default), alias=f.name)
            definitions[f"f{i}"] = (Optional[ann], info)
    config = ConfigDict(extra="forbid" if strict else "ignore", protected_namespaces=())
    return create_model(name, __config__=config, **definitions)


@lru_cache(maxsize=None)
def _compiled(model: ModelDescriptor, strict: bool) -> type[BaseModel]:
    return _compile_fields(f"{model.model_id}_schema", model.fields, strict)


def _to_plain(obj: BaseModel, fields: Sequence[FieldDescriptor]) -> JsonDict:
    out: JsonDict = {}
    for i, f in enumerate(fields):
        key = f"f{i}"
        if key not in obj.model_fields_set and f.default is None:
            continue
        out[f.name] = _plain_value(f, getattr(obj, key))
    return out


def _plain_value(f: FieldDescriptor, value: Any) -> Any:
    if value is None:
        return None
    if f.kind is FieldKind.NESTED and isinstance(value, BaseModel):
        return _to_plain(value, f.fields)
    if f.kind is FieldKind.ARRAY and f.item is not None:
        return [_plain_value(f.item, v) for v in value]
    return value


def _loc_to_path(loc: Sequence[Any]) -> str:
    parts = [str(p) for p in loc if not (isinstance(p, str) and _INTERNAL_LOC_RE.match(p))]
    return ".".join(parts) or ROOT_PATH


def _model_rule_violations(model: ModelDescriptor, data: JsonDict) -> list[Violation]:
    out: list[Violation] = []
    for rule in model.rules:
        try:
            outcome = rule(copy.deepcopy(data))
        except ValueError as exc:
            outcome = str(exc)
        except Exception as exc:
            label = getattr(rule, "__name__", repr(rule))
            out.append(
                Violation(
                    path=ROOT_PATH,
                    code="rule_error",
                    message=f"Rule {label} failed with {type(exc).__name__}: {exc}",
                )
            )
            continue
        if outcome is None or outcome is True:
            continue
        messages = [outcome] if isinstance(outcome, str) else list(outcome)
        out.extend(Violation(path=ROOT_PATH, code="model_rule", message=m) for m in messages)
    return out


def validate(
    model: ModelDescriptor,
    raw: Mapping[str, Any] | DocumentInstance,
    *,
    registry: SchemaRegistry | None = None,
    strict: bool = True,
    id: str | None = None,
) -> ValidationResult:
    """
    Validate a raw mapping (or an existing instance) against a model.

    Args:
        model (ModelDescriptor): Schema to validate against.
        raw (Mapping[str, Any] | DocumentInstance): Candidate data. Not mutated.
        registry (SchemaRegistry | None): Used to resolve bare-id references and check
            reference collections (defaults to the process-wide registry).
        strict (bool): Report unknown keys as violations instead of dropping them.
        id (str | None): Id carried onto the normalized instance (defaults to the id of
            `raw` when it is a DocumentInstance).

    Returns:
        ValidationResult: A normalized, non-persisted DocumentInstance, or every violation.

    Examples:
        >>> from fireodm.core.descriptors import string_field
        >>> from fireodm.core.registry import SchemaRegistry
        >>> reg = SchemaRegistry()
        >>> users = reg.register("users", [string_field("name", required=True)])
        >>> [v.path for v in validate(users, {}, registry=reg).violations]
        ['name']
    """
    registry = registry if registry is not None else default_registry
    if isinstance(raw, DocumentInstance):
        id = id if id is not None else raw.id
        raw = raw.data
    if not isinstance(raw, Mapping):
        return ValidationResult(
            model_id=model.model_id,
            violations=(
                Violation(path=ROOT_PATH, code="mapping_type", message="Document should be a mapping"),
            ),
        )

    schema = _compiled(model, strict)
    try:
        parsed = schema.model_validate(dict(raw), context={"registry": registry})
    except PydanticValidationError as exc:
        violations = tuple(
            Violation(path=_loc_to_path(err["loc"]), code=err["type"], message=err["msg"])
            for err in exc.errors(include_url=False)
        )
        return ValidationResult(model_id=model.model_id, violations=violations)

    data = _to_plain(parsed, model.fields)
    rule_violations = _model_rule_violations(model, data)
    if rule_violations:
        return ValidationResult(model_id=model.model_id, violations=tuple(rule_violations))
    return ValidationResult(model_id=model.model_id, instance=DocumentInstance(model, data, id=id))
