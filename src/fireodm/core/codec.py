"""
Field codec layer: per-field encode/decode between in-memory values and storage values.

Responsibilities
- encode(field, value) -> storage value; decode(field, storage value) -> value.
- One codec per capability: ScalarCodec (string/number/boolean/timestamp),
  ReferenceCodec, NestedCodec and ArrayCodec. codec_for(field) selects it.
- Whole-document helpers encode_document/decode_document, with a caller-selected
  CodecErrorPolicy for values that fail to decode.

Storage representation
- string/number/boolean: JSON scalars as-is.
- timestamp: ISO-8601 string.
- reference: "<collection>/<id>" token (list of tokens for many-relations). A reference is
  never an embedded copy of the target.
- nested: mapping encoded field by field; array: list encoded item by item.
- None encodes/decodes to None for every kind.

Notes:
    - Zero-IO; every failure is a CodecError naming the dotted field path and the
      expected type. CodecError is always recoverable by the caller.
"""

from __future__ import annotations

import copy
import logging
import math
from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from .descriptors import FieldDescriptor, ModelDescriptor, RelationDescriptor
from .errors import CodecError
from .grammar import CodecErrorPolicy, FieldKind
from .pointer import StoragePointer
from .typing import JsonDict

__all__ = [
    "FieldCodec",
    "ScalarCodec",
    "ReferenceCodec",
    "NestedCodec",
    "ArrayCodec",
    "codec_for",
    "encode",
    "decode",
    "encode_document",
    "decode_document",
]

logger = logging.getLogger(__name__)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not (isinstance(value, float) and not math.isfinite(value))


class FieldCodec(ABC):
    """Encode/decode contract shared by every codec variant."""

    @abstractmethod
    def encode(self, field: FieldDescriptor, value: Any, path: str) -> Any: ...

    @abstractmethod
    def decode(self, field: FieldDescriptor, stored: Any, path: str) -> Any: ...


class ScalarCodec(FieldCodec):
    """string, number, boolean and timestamp fields."""

    def encode(self, field: FieldDescriptor, value: Any, path: str) -> Any:
        if value is None:
            return None
        kind = field.kind
        if kind is FieldKind.TIMESTAMP:
            if not isinstance(value, datetime):
                raise CodecError(path, "timestamp", value)
            return value.isoformat()
        self._check(field, value, path)
        return value

    def decode(self, field: FieldDescriptor, stored: Any, path: str) -> Any:
        if stored is None:
            return None
        if field.kind is FieldKind.TIMESTAMP:
            if isinstance(stored, datetime):
                return stored
            if not isinstance(stored, str):
                raise CodecError(path, "timestamp", stored)
            try:
                return datetime.fromisoformat(stored)
            except ValueError as exc:
                raise CodecError(path, "timestamp", stored, str(exc)) from exc
        self._check(field, stored, path)
        return stored

    @staticmethod
    def _check(field: FieldDescriptor, value: Any, path: str) -> None:
        kind = field.kind
        if kind is FieldKind.STRING and isinstance(value, str):
            return
        if kind is FieldKind.BOOLEAN and isinstance(value, bool):
            return
        if kind is FieldKind.NUMBER:
            if _is_number(value):
                return
            if isinstance(value, float):
                raise CodecError(path, "number", value, "value is not finite")
        raise CodecError(path, kind.value, value)


class ReferenceCodec(FieldCodec):
    """Reference fields: StoragePointer <-> "<collection>/<id>" token."""

    def encode(self, field: FieldDescriptor, value: Any, path: str) -> Any:
        if value is None:
            return None
        if _is_many(field):
            if not isinstance(value, (list, tuple)):
                raise CodecError(path, field.type_label, value)
            return [self._encode_one(field, v, f"{path}.{i}") for i, v in enumerate(value)]
        return self._encode_one(field, value, path)

    def decode(self, field: FieldDescriptor, stored: Any, path: str) -> Any:
        if stored is None:
            return None
        if _is_many(field):
            if not isinstance(stored, list):
                raise CodecError(path, field.type_label, stored)
            return [self._decode_one(field, v, f"{path}.{i}") for i, v in enumerate(stored)]
        return self._decode_one(field, stored, path)

    @staticmethod
    def _encode_one(field: FieldDescriptor, value: Any, path: str) -> str:
        if isinstance(value, StoragePointer):
            return value.token
        if isinstance(value, str):
            try:
                return StoragePointer.parse(value).token
            except ValueError as exc:
                raise CodecError(path, field.type_label, value, str(exc)) from exc
        raise CodecError(path, field.type_label, value)

    @staticmethod
    def _decode_one(field: FieldDescriptor, stored: Any, path: str) -> StoragePointer:
        try:
            return StoragePointer.parse(stored)
        except ValueError as exc:
            raise CodecError(path, field.type_label, stored, str(exc)) from exc


class NestedCodec(FieldCodec):
    """Nested objects, encoded sub-field by sub-field."""

    def encode(self, field: FieldDescriptor, value: Any, path: str) -> Any:
        if value is None:
            return None
        if not isinstance(value, Mapping):
            raise CodecError(path, "nested", value)
        known = {f.name for f in field.fields}
        extra = [k for k in value if k not in known]
        if extra:
            raise CodecError(f"{path}.{extra[0]}", "declared sub-field", value[extra[0]])
        return {
            f.name: codec_for(f).encode(f, value[f.name], f"{path}.{f.name}")
            for f in field.fields
            if f.name in value
        }

    def decode(self, field: FieldDescriptor, stored: Any, path: str) -> Any:
        if stored is None:
            return None
        if not isinstance(stored, Mapping):
            raise CodecError(path, "nested", stored)
        return {
            f.name: codec_for(f).decode(f, stored[f.name], f"{path}.{f.name}")
            for f in field.fields
            if f.name in stored
        }


class ArrayCodec(FieldCodec):
    """Arrays, encoded item by item with the item descriptor."""

    def encode(self, field: FieldDescriptor, value: Any, path: str) -> Any:
        if value is None:
            return None
        if not isinstance(value, (list, tuple)):
            raise CodecError(path, field.type_label, value)
        item = _item(field)
        codec = codec_for(item)
        return [codec.encode(item, v, f"{path}.{i}") for i, v in enumerate(value)]

    def decode(self, field: FieldDescriptor, stored: Any, path: str) -> Any:
        if stored is None:
            return None
        if not isinstance(stored, list):
            raise CodecError(path, field.type_label, stored)
        item = _item(field)
        codec = codec_for(item)
        return [codec.decode(item, v, f"{path}.{i}") for i, v in enumerate(stored)]


def _is_many(field: FieldDescriptor) -> bool:
    return isinstance(field, RelationDescriptor) and field.many


def _item(field: FieldDescriptor) -> FieldDescriptor:
    assert field.item is not None  # guaranteed by FieldDescriptor.__post_init__
    return field.item


_SCALAR = ScalarCodec()
_REFERENCE = ReferenceCodec()
_NESTED = NestedCodec()
_ARRAY = ArrayCodec()


def codec_for(field: FieldDescriptor) -> FieldCodec:
    """Return the codec variant handling `field`."""
    if field.kind is FieldKind.REFERENCE:
        return _REFERENCE
    if field.kind is FieldKind.NESTED:
        return _NESTED
    if field.kind is FieldKind.ARRAY:
        return _ARRAY
    return _SCALAR


def encode(field: FieldDescriptor, value: Any) -> Any:
    """
    Encode one in-memory value to its storage representation.

    Raises:
        CodecError: The value does not match the field's kind.

    Examples:
        >>> from fireodm.core.descriptors import reference
        >>> encode(reference("manager", "users"), StoragePointer("users", "42"))
        'users/42'
    """
    return codec_for(field).encode(field, value, field.name)


def decode(field: FieldDescriptor, stored: Any) -> Any:
    """
    Decode one storage value to its in-memory representation.

    Raises:
        CodecError: The stored value is out of range or of the wrong type.
    """
    return codec_for(field).decode(field, stored, field.name)


def encode_document(model: ModelDescriptor, data: Mapping[str, Any]) -> JsonDict:
    """
    Encode every present field of a document, in declaration order.

    Raises:
        CodecError: A value does not match its field, or `data` has undeclared keys.
    """
    for key in data:
        if model.get_field(key) is None:
            raise CodecError(key, f"field declared on {model.model_id!r}", data[key])
    return {f.name: encode(f, data[f.name]) for f in model.fields if f.name in data}


def decode_document(
    model: ModelDescriptor,
    stored: Mapping[str, Any],
    policy: CodecErrorPolicy = CodecErrorPolicy.ABORT,
) -> JsonDict:
    """
    Decode a stored record into in-memory field values.

    Args:
        model (ModelDescriptor): Model the record belongs to.
        stored (Mapping[str, Any]): Raw storage record.
        policy (CodecErrorPolicy): ABORT raises on the first bad field, SKIP drops it,
            DEFAULT replaces it with the field's default (dropping it when there is none).

    Returns:
        JsonDict: Decoded values for declared fields; undeclared stored keys are ignored.

    Raises:
        CodecError: Under ABORT, for the first field that fails to decode.
    """
    out: JsonDict = {}
    for f in model.fields:
        if f.name not in stored:
            continue
        try:
            out[f.name] = decode(f, stored[f.name])
        except CodecError:
            if policy is CodecErrorPolicy.ABORT:
                raise
            logger.warning(
                "dropping undecodable field %s.%s (policy=%s)", model.model_id, f.name, policy.value
            )
            if policy is CodecErrorPolicy.DEFAULT and f.default is not None:
                out[f.name] = copy.deepcopy(f.default)
    ignored = [k for k in stored if model.get_field(k) is None]
    if ignored:
        logger.debug("ignoring undeclared stored keys on %s: %s", model.model_id, ignored)
    return out
