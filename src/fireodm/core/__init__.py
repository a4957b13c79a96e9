"""
Core package aggregator for fireodm contracts (grammar, descriptors, registry, codecs,
validation, documents, hooks, write states).

## Contracts (single source of truth)
- Grammar: field kinds, cardinality, hook phases, populate/codec policies.
- Descriptors: FieldDescriptor / RelationDescriptor / ModelDescriptor and field constructors.
- Registry: process-wide model id -> ModelDescriptor mapping, read-only after startup.
- Codec: encode/decode between in-memory values and storage values.
- Validation: pydantic-compiled schema checks that report every violation at once.
- Documents: DocumentInstance with a clearable populated-relation cache.
- Hooks: ordered per-phase callbacks with fail-fast dispatch.
- Operation: the write-operation state machine.

## Notes
- Zero-IO policy: stdlib + pydantic only; nothing here touches storage.
- fireodm.io builds the storage drivers, the relation resolver and the DocumentStore on
  top of these contracts.

## Examples
```python
from fireodm.core.registry import SchemaRegistry
from fireodm.core.descriptors import string_field, reference
from fireodm.core.validation import validate

reg = SchemaRegistry()
users = reg.register(
    "users",
    [string_field("name", required=True), reference("manager", "users")],
)
validate(users, {"name": "Ann"}, registry=reg).ok  # True
[v.path for v in validate(users, {}, registry=reg).violations]  # ['name']
```
"""

from __future__ import annotations

from .descriptors import (
    FieldDescriptor,
    ModelDescriptor,
    RelationDescriptor,
    array_field,
    boolean_field,
    nested_field,
    number_field,
    reference,
    string_field,
    timestamp_field,
)
from .document import DocumentInstance, UnresolvedReference
from .grammar import Cardinality, CodecErrorPolicy, FieldKind, HookPhase, OnMissing
from .hooks import HookDispatcher
from .operation import WriteOperation, WriteState
from .pointer import StoragePointer
from .registry import SchemaRegistry, default_registry
from .validation import ValidationResult, Violation, validate

__all__ = [
    "Cardinality",
    "CodecErrorPolicy",
    "DocumentInstance",
    "FieldDescriptor",
    "FieldKind",
    "HookDispatcher",
    "HookPhase",
    "ModelDescriptor",
    "OnMissing",
    "RelationDescriptor",
    "SchemaRegistry",
    "StoragePointer",
    "UnresolvedReference",
    "ValidationResult",
    "Violation",
    "WriteOperation",
    "WriteState",
    "array_field",
    "boolean_field",
    "default_registry",
    "nested_field",
    "number_field",
    "reference",
    "string_field",
    "timestamp_field",
    "validate",
]
