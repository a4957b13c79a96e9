"""
Lightweight typing aliases used across descriptors, codecs and the store.

This module contains no runtime logic and is zero-IO.

Examples:
    >>> from fireodm.core.typing import ModelId, DocumentId, JsonDict
    >>> def key(model: ModelId, doc: DocumentId) -> str:
    ...     return f"{model}:{doc}"
    >>> key(ModelId("users"), DocumentId("42"))
    'users:42'
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any, NewType

__all__ = [
    "ModelId",
    "DocumentId",
    "JsonDict",
    "FieldRule",
    "ModelRule",
]

ModelId = NewType("ModelId", str)
DocumentId = NewType("DocumentId", str)

JsonDict = dict[str, Any]

# A field rule returns True/None to pass, False or a message to fail.
FieldRule = Callable[[Any], "bool | str | None"]

# A model rule inspects the whole normalized mapping and yields failure messages.
ModelRule = Callable[[JsonDict], "Iterable[str] | str | None"]
