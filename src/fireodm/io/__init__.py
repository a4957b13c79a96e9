"""
fireodm.io — Storage, configuration and relation population for fireodm documents.

## Responsibilities
- Persist documents through async storage drivers (in-memory or JSON files).
- Run the write pipeline (validate → before_save → encode → persist → after_save) and the
  load pipeline (before_load → fetch → decode → after_load) through DocumentStore.
- Resolve relation paths on loaded documents with a depth bound and a dangling-reference
  policy.

## Public API
- OdmSettings — Runtime settings (defaults sourced from fireodm.core.constants).
- DocumentStore — Facade for save/create/update/load/get/find/delete/populate.
- MemoryStorage / FileStorage — Storage drivers.
- PopulateOptions — Depth bound and on-missing policy for populate().

## Import DAG discipline
- Depends only on stdlib and fireodm.core.*; fireodm.core never imports this package.

## Examples
```python
import asyncio
from fireodm.core.descriptors import reference, string_field
from fireodm.core.registry import SchemaRegistry
from fireodm.io import DocumentStore, MemoryStorage

reg = SchemaRegistry()
reg.register("users", [string_field("name", required=True), reference("manager", "users")])
store = DocumentStore(MemoryStorage(), registry=reg)

async def main():
    boss = await store.save("users", {"name": "Bea"})
    ann = await store.save("users", {"name": "Ann", "manager": boss})
    loaded = await store.load("users", ann.id, populate="manager")
    return loaded.related("manager")["name"]

asyncio.run(main())  # 'Bea'
```

## Notes
- FileStorage write path: tmp file → fsync → os.replace(tmp, final) on the same filesystem.
- References are stored as "collection/id" tokens; find() filters on stored values.
"""

from __future__ import annotations

from .config import OdmSettings
from .resolver import PopulateOptions
from .storage import FileStorage, MemoryStorage, StorageDriver
from .store import DocumentStore

__all__ = [
    "OdmSettings",
    "DocumentStore",
    "StorageDriver",
    "MemoryStorage",
    "FileStorage",
    "PopulateOptions",
]
