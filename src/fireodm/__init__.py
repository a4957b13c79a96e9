"""
fireodm — Decorator-driven document mapper with validation, lifecycle hooks and
relation population over pluggable async storage.

Layers:
- fireodm.core: schema descriptors, registry, codecs, validation, hooks, write states (zero IO).
- fireodm.io: settings, storage drivers, the relation resolver and DocumentStore.
"""

from __future__ import annotations

import logging

from .core.declarative import collection, on
from .core.descriptors import (
    array_field,
    boolean_field,
    nested_field,
    number_field,
    reference,
    string_field,
    timestamp_field,
)
from .core.document import DocumentInstance
from .core.errors import (
    CodecError,
    DanglingReferenceError,
    DocumentExistsError,
    DocumentNotFoundError,
    HookAbortError,
    InvalidDocumentIdError,
    OdmError,
    ValidationError,
)
from .core.grammar import HookPhase, OnMissing
from .core.registry import SchemaRegistry, default_registry
from .io import DocumentStore, FileStorage, MemoryStorage, OdmSettings, PopulateOptions

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "CodecError",
    "DanglingReferenceError",
    "DocumentExistsError",
    "DocumentInstance",
    "DocumentNotFoundError",
    "DocumentStore",
    "FileStorage",
    "HookAbortError",
    "HookPhase",
    "InvalidDocumentIdError",
    "MemoryStorage",
    "OdmError",
    "OdmSettings",
    "OnMissing",
    "PopulateOptions",
    "SchemaRegistry",
    "ValidationError",
    "__version__",
    "array_field",
    "boolean_field",
    "collection",
    "default_registry",
    "nested_field",
    "number_field",
    "on",
    "reference",
    "string_field",
    "timestamp_field",
]
