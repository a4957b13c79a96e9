"""
Core exception types raised by schema registration, codecs, validation, relations and hooks.

Provides typed exceptions for core-domain failures:
- SchemaError / DuplicateFieldError for malformed model declarations.
- DuplicateModelError / UnknownModelError / RegistryFrozenError for the schema registry.
- CodecError for storage values that do not match a field's declared kind.
- ValidationError for the aggregate of field-level violations found before a write.
- DanglingReferenceError / RelationPathError for relation population.
- HookAbortError when a lifecycle hook signals failure.
- IllegalTransitionError for write-state machine misuse.
- DocumentNotFoundError for load/delete of a missing document.
- InvalidDocumentIdError for ids that cannot name a document.

Notes:
    - This module uses only the Python standard library and has no side effects.
    - Validation and codec errors describe data-shape problems and are never retried.

Examples:
    >>> from fireodm.core.errors import CodecError
    >>> err = CodecError("age", "number", "forty")
    >>> err.field, err.expected
    ('age', 'number')
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .pointer import StoragePointer
    from .validation import Violation

__all__ = [
    "OdmError",
    "SchemaError",
    "DuplicateFieldError",
    "DuplicateModelError",
    "UnknownModelError",
    "RegistryFrozenError",
    "CodecError",
    "ValidationError",
    "DanglingReferenceError",
    "RelationPathError",
    "HookAbortError",
    "IllegalTransitionError",
    "DocumentNotFoundError",
    "DocumentExistsError",
    "InvalidDocumentIdError",
]


class OdmError(Exception):
    """Base class for every error raised by fireodm."""


class SchemaError(OdmError, ValueError):
    """Malformed model or field declaration."""


class DuplicateFieldError(SchemaError):
    """Two fields of one model share a name."""

    def __init__(self, model_id: str, field: str) -> None:
        super().__init__(f"model {model_id!r} declares field {field!r} more than once")
        self.model_id = model_id
        self.field = field


class DuplicateModelError(OdmError):
    """A model id was registered twice."""

    def __init__(self, model_id: str, detail: str | None = None) -> None:
        suffix = f" ({detail})" if detail else ""
        super().__init__(f"model {model_id!r} is already registered{suffix}")
        self.model_id = model_id


class UnknownModelError(OdmError, LookupError):
    """A model id (or collection) is not registered."""

    def __init__(self, model_id: str) -> None:
        super().__init__(f"model {model_id!r} is not registered")
        self.model_id = model_id


class RegistryFrozenError(OdmError):
    """Registration attempted after the registry was frozen."""


class CodecError(OdmError, ValueError):
    """
    A value could not be encoded to, or decoded from, its storage representation.

    Attributes:
        field (str): Dotted field path.
        expected (str): Expected kind (e.g. "number", "reference(users)").
        value (Any): Offending value.
    """

    def __init__(self, field: str, expected: str, value: Any, reason: str | None = None) -> None:
        detail = f": {reason}" if reason else ""
        super().__init__(
            f"field {field!r} expected {expected}, got {type(value).__name__} {value!r}{detail}"
        )
        self.field = field
        self.expected = expected
        self.value = value


class ValidationError(OdmError, ValueError):
    """
    Aggregate of every field-level violation found for one document.

    Attributes:
        model_id (str): Model the document was validated against.
        violations (tuple[Violation, ...]): All violations, in field order.
    """

    def __init__(self, model_id: str, violations: Sequence[Violation]) -> None:
        self.model_id = model_id
        self.violations = tuple(violations)
        lines = "; ".join(f"{v.path}: {v.message}" for v in self.violations)
        super().__init__(
            f"{len(self.violations)} violation(s) for model {model_id!r}: {lines}"
        )

    @property
    def fields(self) -> list[str]:
        return [v.path for v in self.violations]


class DanglingReferenceError(OdmError, LookupError):
    """A relation points at a document that does not exist."""

    def __init__(self, path: str, pointer: StoragePointer) -> None:
        super().__init__(f"relation {path!r} points at missing document {pointer}")
        self.path = path
        self.pointer = pointer


class RelationPathError(OdmError, ValueError):
    """A populate path names something other than a relation field."""


class HookAbortError(OdmError):
    """
    A lifecycle hook signaled failure.

    Attributes:
        model_id (str): Model whose hooks were dispatched.
        phase (str): Phase value (e.g. "before_save").
        hook (str): Name of the failing hook.
    """

    def __init__(self, model_id: str, phase: str, hook: str, reason: str | None = None) -> None:
        detail = f": {reason}" if reason else ""
        super().__init__(f"{phase} hook {hook!r} for model {model_id!r} aborted{detail}")
        self.model_id = model_id
        self.phase = phase
        self.hook = hook


class IllegalTransitionError(OdmError, RuntimeError):
    """A write operation was moved to a state not reachable from its current state."""


class DocumentNotFoundError(OdmError, LookupError):
    """The requested document does not exist in storage."""

    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"document {collection}/{doc_id} not found")
        self.collection = collection
        self.doc_id = doc_id


class DocumentExistsError(OdmError):
    """create() was asked to write an id that is already taken."""

    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"document {collection}/{doc_id} already exists")
        self.collection = collection
        self.doc_id = doc_id


class InvalidDocumentIdError(OdmError, ValueError):
    """A document id is empty, not a string, or contains a path separator."""

    def __init__(self, collection: str, doc_id: object) -> None:
        super().__init__(f"invalid document id {doc_id!r} for collection {collection!r}")
        self.collection = collection
        self.doc_id = doc_id
