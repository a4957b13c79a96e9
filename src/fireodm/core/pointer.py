"""
Storage pointer tokens.

A pointer identifies a document by (collection, id) without embedding its content. Its
string form is the document path "<collection>/<id>", which is the stable storage-level
representation of every reference field.

Examples:
    >>> from fireodm.core.pointer import StoragePointer
    >>> p = StoragePointer.parse("users/42")
    >>> p.collection, p.id, p.token
    ('users', '42', 'users/42')
"""

from __future__ import annotations

from dataclasses import dataclass

from .ids import is_valid_document_id

__all__ = ["StoragePointer", "is_pointer_token"]


@dataclass(frozen=True, slots=True)
class StoragePointer:
    """
    Stable (collection, id) reference to a stored document.

    Attributes:
        collection (str): Collection name.
        id (str): Document id within the collection.

    Raises:
        ValueError: If either part is empty or contains a path separator.
    """

    collection: str
    id: str

    def __post_init__(self) -> None:
        if not is_valid_document_id(self.collection):
            raise ValueError(f"invalid collection name {self.collection!r}")
        if not is_valid_document_id(self.id):
            raise ValueError(f"invalid document id {self.id!r}")

    @property
    def token(self) -> str:
        return f"{self.collection}/{self.id}"

    def __str__(self) -> str:
        return self.token

    @classmethod
    def parse(cls, token: str) -> StoragePointer:
        """
        Parse a "<collection>/<id>" token.

        Raises:
            ValueError: If the token is not exactly two non-empty segments.
        """
        if not isinstance(token, str):
            raise ValueError(f"pointer token must be a string (got {type(token).__name__})")
        collection, sep, doc_id = token.partition("/")
        if not sep:
            raise ValueError(f"pointer token must look like 'collection/id' (got {token!r})")
        return cls(collection, doc_id)


def is_pointer_token(value: object) -> bool:
    """Return True if value parses as a pointer token."""
    if not isinstance(value, str):
        return False
    try:
        StoragePointer.parse(value)
    except ValueError:
        return False
    return True
