"""
Storage drivers consumed by the DocumentStore.

A driver persists encoded records (JSON-compatible mappings) addressed by
(collection, id). Every method is a coroutine: the store treats storage calls as
opaque suspension points and bounds them with OdmSettings.operation_timeout.

Drivers
- MemoryStorage: dict of collections; records are deep-copied on the way in and out so
  callers never share state with the store.
- FileStorage: one canonical-JSON file per document at <root_dir>/<collection>/<id>.json,
  written with the atomic tmp -> fsync -> rename path. Blocking file IO runs in worker
  threads (asyncio.to_thread).

Notes
- get() returns None for a missing document.
- query() is a plain equality filter over raw stored values; richer querying is left to
  real backends.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import os
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from fireodm.core.serde import json_dumps_canonical, json_loads
from fireodm.core.typing import JsonDict

from . import fs
from .config import OdmSettings
from .errors import OdmConfigError, StorageError

__all__ = [
    "StorageDriver",
    "MemoryStorage",
    "FileStorage",
    "matches",
    "open_storage",
]

logger = logging.getLogger(__name__)


def matches(record: Mapping[str, Any], where: Mapping[str, Any] | None) -> bool:
    """
    Equality filter over top-level keys; dotted keys address nested mappings.

    Examples:
        >>> matches({"name": "Ann", "address": {"city": "Oslo"}}, {"address.city": "Oslo"})
        True
    """
    if not where:
        return True
    for key, expected in where.items():
        current: Any = record
        for part in key.split("."):
            if not isinstance(current, Mapping) or part not in current:
                return False
            current = current[part]
        if current != expected:
            return False
    return True


class StorageDriver(ABC):
    """Async key-value contract over (collection, id)."""

    @abstractmethod
    async def put(self, collection: str, doc_id: str, value: JsonDict) -> None:
        """Create or replace a record."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> JsonDict | None:
        """Return the record, or None when it does not exist."""

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> bool:
        """Remove a record; return False when there was nothing to remove."""

    @abstractmethod
    async def query(
        self,
        collection: str,
        where: Mapping[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[tuple[str, JsonDict]]:
        """Return (id, record) pairs matching `where`, ordered by id."""

    async def exists(self, collection: str, doc_id: str) -> bool:
        return await self.get(collection, doc_id) is not None


class MemoryStorage(StorageDriver):
    """
    In-process storage.

    Examples:
        >>> import asyncio
        >>> s = MemoryStorage()
        >>> asyncio.run(s.put("users", "1", {"name": "Ann"}))
        >>> asyncio.run(s.get("users", "1"))
        {'name': 'Ann'}
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, JsonDict]] = {}

    async def put(self, collection: str, doc_id: str, value: JsonDict) -> None:
        self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(value)

    async def get(self, collection: str, doc_id: str) -> JsonDict | None:
        record = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(record) if record is not None else None

    async def delete(self, collection: str, doc_id: str) -> bool:
        return self._collections.get(collection, {}).pop(doc_id, None) is not None

    async def query(
        self,
        collection: str,
        where: Mapping[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[tuple[str, JsonDict]]:
        out: list[tuple[str, JsonDict]] = []
        for doc_id in sorted(self._collections.get(collection, {})):
            record = self._collections[collection][doc_id]
            if matches(record, where):
                out.append((doc_id, copy.deepcopy(record)))
                if limit is not None and len(out) >= limit:
                    break
        return out

    def __len__(self) -> int:
        return sum(len(c) for c in self._collections.values())


def _path_segment(value: str, what: str) -> str:
    """
    Return `value` if it is usable as a single path component.

    Raises:
        StorageError: Empty, ".", "..", or containing a path separator or NUL.
    """
    seps = {"/", os.sep, os.altsep, "\0"} - {None}
    if (
        not isinstance(value, str)
        or value in {"", ".", ".."}
        or any(sep in value for sep in seps)
    ):
        raise StorageError(f"invalid {what} {value!r} for file storage")
    return value


class FileStorage(StorageDriver):
    """
    JSON-file storage rooted at `root_dir`.

    Notes:
        Single-writer semantics; there is no inter-process locking.
    """

    def __init__(self, root_dir: str | os.PathLike[str]) -> None:
        self.root_dir = os.fspath(root_dir)

    def _collection_dir(self, collection: str) -> str:
        return os.path.join(self.root_dir, _path_segment(collection, "collection"))

    def _path(self, collection: str, doc_id: str) -> str:
        name = _path_segment(doc_id, "document id") + fs.JSON_SUFFIX
        path = os.path.join(self._collection_dir(collection), name)
        root = os.path.realpath(self.root_dir)
        if os.path.commonpath([root, os.path.realpath(path)]) != root:
            raise StorageError(f"{collection}/{doc_id} resolves outside {self.root_dir}")
        return path

    def _read(self, path: str) -> JsonDict | None:
        try:
            with open(path, "rb") as fh:
                payload = fh.read()
        except FileNotFoundError:
            return None
        try:
            record = json_loads(payload)
        except ValueError as exc:
            raise StorageError(f"corrupt record at {path}: {exc}") from exc
        if not isinstance(record, dict):
            raise StorageError(f"corrupt record at {path}: expected an object")
        return record

    async def put(self, collection: str, doc_id: str, value: JsonDict) -> None:
        payload = json_dumps_canonical(value).encode("utf-8")
        await asyncio.to_thread(fs.write_atomic, self._path(collection, doc_id), payload)

    async def get(self, collection: str, doc_id: str) -> JsonDict | None:
        return await asyncio.to_thread(self._read, self._path(collection, doc_id))

    async def delete(self, collection: str, doc_id: str) -> bool:
        return await asyncio.to_thread(fs.remove, self._path(collection, doc_id))

    def _scan(
        self, collection: str, where: Mapping[str, Any] | None, limit: int | None
    ) -> list[tuple[str, JsonDict]]:
        out: list[tuple[str, JsonDict]] = []
        for path in fs.list_json_files(self._collection_dir(collection)):
            record = self._read(path)
            if record is None or not matches(record, where):
                continue
            out.append((os.path.basename(path)[: -len(fs.JSON_SUFFIX)], record))
            if limit is not None and len(out) >= limit:
                break
        return out

    async def query(
        self,
        collection: str,
        where: Mapping[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[tuple[str, JsonDict]]:
        return await asyncio.to_thread(self._scan, collection, where, limit)


def open_storage(settings: OdmSettings) -> StorageDriver:
    """
    Build the storage driver selected by settings.storage.

    Raises:
        OdmConfigError: For an unknown backend.
    """
    if settings.storage == "memory":
        return MemoryStorage()
    if settings.storage == "file":
        logger.debug("opening file storage at %s", settings.root_dir)
        return FileStorage(settings.root_dir)
    raise OdmConfigError(f"unsupported storage backend {settings.storage!r}")
