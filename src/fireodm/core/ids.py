"""
Document id generation.

Auto ids follow the Firestore convention: 20 characters drawn from [A-Za-z0-9] using a
cryptographically strong source, so ids are unguessable and collision-resistant without
coordination.
"""

from __future__ import annotations

import secrets
import string

from .typing import DocumentId

__all__ = ["AUTO_ID_LENGTH", "make_document_id", "is_valid_document_id"]

AUTO_ID_LENGTH = 20
_ALPHABET = string.ascii_letters + string.digits


def make_document_id() -> DocumentId:
    """
    Create a new random document id.

    Returns:
        DocumentId: 20-character alphanumeric id.

    Examples:
        >>> len(make_document_id())
        20
    """
    return DocumentId("".join(secrets.choice(_ALPHABET) for _ in range(AUTO_ID_LENGTH)))


def is_valid_document_id(value: object) -> bool:
    """Return True for a non-empty string id without path separators."""
    return isinstance(value, str) and bool(value) and "/" not in value and value not in {".", ".."}
