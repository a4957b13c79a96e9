"""
Runtime document instances.

A DocumentInstance pairs a ModelDescriptor with raw field values and, optionally, an id.
It also carries a cache of populated relation targets. The cache is a view over the
references in `data`: it is filled by populate(), can be cleared at any time, and never
changes `data` itself. Populated documents do not point back at the document that
populated them.
"""

from __future__ import annotations

import copy
from collections.abc import Iterator, Mapping, MutableMapping
from dataclasses import dataclass
from typing import Any

from .descriptors import ModelDescriptor
from .pointer import StoragePointer
from .typing import JsonDict

__all__ = ["DocumentInstance", "UnresolvedReference"]


@dataclass(frozen=True, slots=True)
class UnresolvedReference:
    """
    Marker left in the populated cache when resolution stopped at the depth bound.

    Attributes:
        pointer (StoragePointer): Pointer that was not followed.
    """

    pointer: StoragePointer


class DocumentInstance(MutableMapping[str, Any]):
    """
    Mutable document conforming to a ModelDescriptor.

    Attributes:
        model (ModelDescriptor): Schema of the document.
        id (str | None): Document id; None until first saved.
        data (dict[str, Any]): Raw field values (references are StoragePointers).
        persisted (bool): True only after a write committed or a load succeeded.

    Examples:
        >>> from fireodm.core.descriptors import ModelDescriptor, string_field
        >>> users = ModelDescriptor("users", "users", (string_field("name"),))
        >>> doc = DocumentInstance(users, {"name": "Ann"}, id="42")
        >>> doc["name"], doc.pointer.token
        ('Ann', 'users/42')
    """

    def __init__(
        self,
        model: ModelDescriptor,
        data: Mapping[str, Any] | None = None,
        *,
        id: str | None = None,
        persisted: bool = False,
    ) -> None:
        self.model = model
        self.id = id
        self.data: JsonDict = dict(data or {})
        self.persisted = persisted
        self._populated: dict[str, Any] = {}

    # MutableMapping over `data`
    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.data[key] = value
        self._populated.pop(key, None)

    def __delitem__(self, key: str) -> None:
        del self.data[key]
        self._populated.pop(key, None)

    def __iter__(self) -> Iterator[str]:
        return iter(self.data)

    def __len__(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        ident = self.id if self.id is not None else "<unsaved>"
        return f"DocumentInstance({self.model.model_id}/{ident}, {self.data!r})"

    @property
    def model_id(self) -> str:
        return self.model.model_id

    @property
    def pointer(self) -> StoragePointer:
        """
        Pointer to this document.

        Raises:
            ValueError: If the document has no id yet.
        """
        if self.id is None:
            raise ValueError(f"{self.model.model_id} document has no id yet")
        return StoragePointer(self.model.collection, self.id)

    def to_dict(self) -> JsonDict:
        """Deep copy of the field values."""
        return copy.deepcopy(self.data)

    # Populated relation cache
    def related(self, name: str) -> Any:
        """Return the populated target(s) for relation `name`, or None."""
        return self._populated.get(name)

    def is_populated(self, name: str) -> bool:
        value = self._populated.get(name)
        if value is None:
            return False
        if isinstance(value, list):
            return all(isinstance(v, DocumentInstance) for v in value)
        return isinstance(value, DocumentInstance)

    def set_populated(self, name: str, value: Any) -> None:
        self._populated[name] = value

    def clear_populated(self, name: str | None = None) -> None:
        if name is None:
            self._populated.clear()
        else:
            self._populated.pop(name, None)

    @property
    def populated(self) -> Mapping[str, Any]:
        return dict(self._populated)
