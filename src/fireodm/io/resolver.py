"""
Relation resolver: populate() for DocumentInstances.

Algorithm
- Requested paths ("manager", "team.lead") merge into a tree so shared prefixes are
  fetched once. Sibling branches are independent and resolve concurrently.
- For each relation on a branch, the stored pointer(s) are fetched through the store
  (load hooks included). A missing target is omitted (skip) or raises
  DanglingReferenceError (fail).
- Depth is bounded, not cycle-checked: a relation at depth > max_depth is left as an
  UnresolvedReference marker, without error. Cyclic data therefore always terminates.
- Targets fetched during one populate() call are shared by pointer, so a document
  referenced twice is fetched once. When a shared target is reached both within and past
  the depth bound, the resolved value wins, so the result does not depend on path order.

Results land in each document's populated cache; the raw pointers in `data` are never
replaced.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

from fireodm.core.constants import POPULATE_MAX_DEPTH, POPULATE_ON_MISSING
from fireodm.core.descriptors import ModelDescriptor, RelationDescriptor
from fireodm.core.document import DocumentInstance, UnresolvedReference
from fireodm.core.errors import DanglingReferenceError, RelationPathError
from fireodm.core.grammar import OnMissing, on_missing_from_value
from fireodm.core.pointer import StoragePointer
from fireodm.core.registry import SchemaRegistry

__all__ = ["PopulateOptions", "PathTree", "build_path_tree", "RelationResolver"]

logger = logging.getLogger(__name__)

PathTree = dict[str, "PathTree"]
Fetcher = Callable[[ModelDescriptor, StoragePointer], Awaitable["DocumentInstance | None"]]


@dataclass(frozen=True)
class PopulateOptions:
    """
    Options for one populate() call.

    Attributes:
        max_depth (int): Deepest relation level to fetch (>= 1).
        on_missing (OnMissing): SKIP omits dangling targets, FAIL raises.

    Raises:
        ValueError: If max_depth is not an integer >= 1 or on_missing is unknown.
    """

    max_depth: int = POPULATE_MAX_DEPTH
    on_missing: OnMissing | str = POPULATE_ON_MISSING

    def __post_init__(self) -> None:
        if isinstance(self.max_depth, bool) or not isinstance(self.max_depth, int):
            raise ValueError(f"max_depth must be an integer (got {self.max_depth!r})")
        if self.max_depth < 1:
            raise ValueError(f"max_depth must be >= 1 (got {self.max_depth})")
        object.__setattr__(self, "on_missing", on_missing_from_value(self.on_missing))


def build_path_tree(paths: str | Iterable[str]) -> PathTree:
    """
    Merge dotted relation paths into a tree.

    Examples:
        >>> build_path_tree(["team.lead", "team.members", "manager"])
        {'team': {'lead': {}, 'members': {}}, 'manager': {}}

    Raises:
        RelationPathError: For empty paths or empty segments.
    """
    if isinstance(paths, str):
        paths = [paths]
    tree: PathTree = {}
    for path in paths:
        parts = path.split(".") if isinstance(path, str) else []
        if not parts or any(not p for p in parts):
            raise RelationPathError(f"invalid relation path {path!r}")
        node = tree
        for part in parts:
            node = node.setdefault(part, {})
    return tree


def _as_pointer(value: Any, collection: str, path: str) -> StoragePointer:
    if isinstance(value, StoragePointer):
        return value
    if isinstance(value, DocumentInstance) and value.id is not None:
        return value.pointer
    if isinstance(value, str):
        try:
            return StoragePointer.parse(value) if "/" in value else StoragePointer(collection, value)
        except ValueError as exc:
            raise RelationPathError(f"{path!r}: {exc}") from exc
    raise RelationPathError(f"{path!r}: {value!r} is not a reference")


class RelationResolver:
    """
    Resolves relation paths for one populate() call.

    Args:
        registry (SchemaRegistry): Source of relation target models.
        fetch (Fetcher): Loads a document by pointer, returning None when missing.
        options (PopulateOptions): Depth bound and dangling-reference behavior.
    """

    def __init__(
        self, registry: SchemaRegistry, fetch: Fetcher, options: PopulateOptions
    ) -> None:
        self.registry = registry
        self.options = options
        self._fetch = fetch
        self._memo: dict[StoragePointer, asyncio.Future[DocumentInstance | None]] = {}
        self._within_depth: set[tuple[int, str]] = set()

    async def populate(
        self, instance: DocumentInstance, paths: str | Iterable[str]
    ) -> DocumentInstance:
        """
        Populate `paths` on `instance` and return it.

        Raises:
            RelationPathError: A path segment is not a relation.
            UnknownModelError: A relation target model is not registered.
            DanglingReferenceError: A target is missing and on_missing is FAIL.
        """
        tree = build_path_tree(paths)
        await self._expand(instance, tree, 1, instance.model_id)
        return instance

    async def _expand(self, doc: DocumentInstance, tree: PathTree, depth: int, trail: str) -> None:
        await asyncio.gather(
            *(
                self._resolve_field(doc, name, subtree, depth, f"{trail}.{name}")
                for name, subtree in tree.items()
            )
        )

    async def _resolve_field(
        self, doc: DocumentInstance, name: str, subtree: PathTree, depth: int, path: str
    ) -> None:
        rel = doc.model.relation(name)
        if rel is None:
            raise RelationPathError(f"{path!r}: {name!r} is not a relation of {doc.model_id!r}")
        raw = doc.data.get(name)
        if raw is None:
            doc.clear_populated(name)
            return
        target = self.registry.lookup(rel.target)
        values = list(raw) if rel.many else [raw]
        pointers = [_as_pointer(v, target.collection, path) for v in values]

        if depth > self.options.max_depth:
            # A shared target may already be resolved through a shorter path.
            if (id(doc), name) not in self._within_depth:
                markers = [UnresolvedReference(p) for p in pointers]
                doc.set_populated(name, markers if rel.many else markers[0])
            return

        self._within_depth.add((id(doc), name))
        fetched = await asyncio.gather(*(self._fetch_once(target, p) for p in pointers))
        resolved: list[DocumentInstance] = []
        for pointer, got in zip(pointers, fetched):
            if got is None:
                if self.options.on_missing is OnMissing.FAIL:
                    raise DanglingReferenceError(path, pointer)
                logger.warning("skipping dangling reference %s -> %s", path, pointer)
                continue
            resolved.append(got)

        if subtree and resolved:
            await asyncio.gather(
                *(self._expand(child, subtree, depth + 1, path) for child in resolved)
            )
        self._store(doc, rel, resolved)

    @staticmethod
    def _store(
        doc: DocumentInstance, rel: RelationDescriptor, resolved: list[DocumentInstance]
    ) -> None:
        if rel.many:
            doc.set_populated(rel.name, resolved)
        elif resolved:
            doc.set_populated(rel.name, resolved[0])
        else:
            doc.clear_populated(rel.name)

    async def _fetch_once(
        self, model: ModelDescriptor, pointer: StoragePointer
    ) -> DocumentInstance | None:
        fut = self._memo.get(pointer)
        if fut is None:
            fut = asyncio.ensure_future(self._fetch(model, pointer))
            # Failures are re-raised by whoever awaits; mark them retrieved for the rest.
            fut.add_done_callback(lambda f: f.cancelled() or f.exception())
            self._memo[pointer] = fut
        return await fut
