"""
DocumentStore facade: CRUD entry points over a storage driver.

Write path (see fireodm.core.operation):
    validate -> before_save hooks -> encode -> storage.put -> after_save hooks
No record reaches storage without passing validation. A rejected write reports its
error through WriteOperation; save() raises it.

Read path:
    before_load hooks (shell instance: model + id) -> storage.get -> decode -> after_load hooks

Source of truth
- Schemas: fireodm.core.registry (default_registry unless one is passed in)
- Codecs and validation: fireodm.core.codec / fireodm.core.validation
- Settings: fireodm.io.config.OdmSettings

Notes
- Storage calls are the only suspension points besides async hooks; each is bounded by
  OdmSettings.operation_timeout and any driver failure is fatal to the operation.
- Hook side effects are not rolled back when a later step fails.
- Concurrent populate() and save() on the same document identity need caller-level
  synchronization.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Iterable, Mapping
from typing import Any, TypeVar

from fireodm.core.codec import decode_document, encode_document
from fireodm.core.declarative import install_hooks, model_of
from fireodm.core.descriptors import ModelDescriptor
from fireodm.core.document import DocumentInstance
from fireodm.core.errors import (
    CodecError,
    DocumentExistsError,
    DocumentNotFoundError,
    HookAbortError,
    InvalidDocumentIdError,
    ValidationError,
)
from fireodm.core.grammar import HookPhase, OnMissing, codec_policy_from_value
from fireodm.core.hooks import HookDispatcher, HookRegistration
from fireodm.core.ids import is_valid_document_id, make_document_id
from fireodm.core.operation import WriteOperation, WriteState
from fireodm.core.pointer import StoragePointer
from fireodm.core.registry import SchemaRegistry, default_registry
from fireodm.core.validation import Violation, validate

from .config import OdmSettings
from .errors import StorageError, StorageTimeoutError
from .resolver import PopulateOptions, RelationResolver
from .storage import StorageDriver, open_storage

__all__ = ["DocumentStore"]

logger = logging.getLogger(__name__)

T = TypeVar("T")

ModelRef = Any  # model id, ModelDescriptor or @collection class


class DocumentStore:
    """
    Facade bound to a storage driver, a schema registry and a hook dispatcher.

    Examples:
        >>> import asyncio
        >>> from fireodm.core.registry import SchemaRegistry
        >>> from fireodm.core.descriptors import string_field
        >>> from fireodm.io import DocumentStore, MemoryStorage
        >>> reg = SchemaRegistry()
        >>> _ = reg.register("users", [string_field("name", required=True)])
        >>> store = DocumentStore(MemoryStorage(), registry=reg)
        >>> doc = asyncio.run(store.save("users", {"name": "Ann"}))
        >>> doc.persisted
        True
    """

    def __init__(
        self,
        storage: StorageDriver | None = None,
        *,
        registry: SchemaRegistry | None = None,
        hooks: HookDispatcher | None = None,
        settings: OdmSettings | None = None,
    ) -> None:
        self.settings = settings or OdmSettings()
        self.storage = storage if storage is not None else open_storage(self.settings)
        self.registry = registry if registry is not None else default_registry
        self.hooks = hooks if hooks is not None else HookDispatcher()
        self._codec_policy = codec_policy_from_value(self.settings.codec_error_policy)

    @classmethod
    def from_settings(
        cls,
        settings: OdmSettings | None = None,
        *,
        registry: SchemaRegistry | None = None,
        hooks: HookDispatcher | None = None,
    ) -> DocumentStore:
        """Build a store (and its storage driver) from settings; loads env/TOML when None."""
        settings = settings or OdmSettings.load()
        return cls(open_storage(settings), registry=registry, hooks=hooks, settings=settings)

    # ---------------------------------------------------------------------
    # Schema / hooks
    # ---------------------------------------------------------------------
    def model(self, model: ModelRef) -> ModelDescriptor:
        """Resolve a model id, descriptor or @collection class to its descriptor."""
        if isinstance(model, str):
            return self.registry.lookup(model)
        return model_of(model)

    def on(
        self,
        model: ModelRef,
        phase: HookPhase | str,
        callback: Any,
        *,
        name: str | None = None,
    ) -> HookRegistration:
        """Register a lifecycle hook for a model."""
        return self.hooks.register(self.model(model).model_id, phase, callback, name=name)

    def register_hooks(self, cls: type) -> list[HookRegistration]:
        """Install the @on(...) hooks declared on a @collection class."""
        return install_hooks(cls, self.hooks)

    # ---------------------------------------------------------------------
    # Storage calls
    # ---------------------------------------------------------------------
    async def _storage_call(self, what: str, call: Awaitable[T]) -> T:
        timeout = self.settings.operation_timeout
        try:
            if timeout is None:
                return await call
            return await asyncio.wait_for(call, timeout)
        except StorageError:
            raise
        except TimeoutError as exc:
            raise StorageTimeoutError(f"storage {what} exceeded {timeout}s") from exc
        except Exception as exc:
            raise StorageError(f"storage {what} failed: {exc}") from exc

    # ---------------------------------------------------------------------
    # Write
    # ---------------------------------------------------------------------
    async def write(
        self,
        model: ModelRef,
        data: Mapping[str, Any] | DocumentInstance,
        *,
        id: str | None = None,
    ) -> WriteOperation:
        """
        Run the full write pipeline and return the operation record.

        Args:
            model (ModelRef): Model id, descriptor or @collection class.
            data (Mapping | DocumentInstance): Document data. A DocumentInstance keeps its
                id and, once committed, is updated in place with the normalized values.
            id (str | None): Explicit document id; a new auto id is generated otherwise.

        Returns:
            WriteOperation: Ends COMMITTED or REJECTED; `error` holds the reason for a
            rejection (ValidationError, HookAbortError, CodecError or StorageError).

        Raises:
            asyncio.CancelledError: Re-raised after the operation is marked REJECTED.
        """
        desc = self.model(model)
        op = WriteOperation(desc.model_id)
        source = data if isinstance(data, DocumentInstance) else None
        try:
            op.advance(WriteState.VALIDATING)
            result = validate(
                desc, data, registry=self.registry, strict=self.settings.strict, id=id
            )
            violations = list(result.violations)
            doc_id = id if id is not None else (source.id if source is not None else None)
            if doc_id is not None and not is_valid_document_id(doc_id):
                violations.append(
                    Violation(path="id", code="id_format", message="Invalid document id")
                )
            instance = result.instance
            if violations or instance is None:
                op.reject(ValidationError(desc.model_id, violations))
                logger.info("rejected %s write: %s", desc.model_id, op.error)
                return op
            op.advance(WriteState.VALID)
            if instance.id is None:
                instance.id = make_document_id()
            op.instance = instance

            op.advance(WriteState.BEFORE_SAVE_HOOKS)
            await self.hooks.dispatch(desc.model_id, HookPhase.BEFORE_SAVE, instance)

            op.advance(WriteState.ENCODING)
            record = encode_document(desc, instance.data)

            op.advance(WriteState.PERSISTING)
            await self._storage_call("put", self.storage.put(desc.collection, instance.id, record))
        except asyncio.CancelledError as exc:
            op.reject(exc)
            raise
        except (HookAbortError, CodecError, StorageError) as exc:
            op.reject(exc)
            logger.info("rejected %s write in %s: %s", desc.model_id, op.history[-2].value, exc)
            return op

        op.advance(WriteState.AFTER_SAVE_HOOKS)
        instance.persisted = True
        if source is not None:
            source.id = instance.id
            source.data = dict(instance.data)
            source.persisted = True
            source.clear_populated()
        # The record is durable from here on, even if an after_save hook is cancelled.
        try:
            await self.hooks.dispatch(desc.model_id, HookPhase.AFTER_SAVE, instance)
        except HookAbortError as exc:
            op.after_save_error = exc
            logger.warning("after_save hook failed on committed %s: %s", instance.pointer, exc)
        finally:
            op.advance(WriteState.COMMITTED)
        logger.debug("committed %s", instance.pointer)
        return op

    async def save(
        self,
        model: ModelRef,
        data: Mapping[str, Any] | DocumentInstance,
        *,
        id: str | None = None,
    ) -> DocumentInstance:
        """
        Validate and persist a document.

        Returns:
            DocumentInstance: The committed, normalized document.

        Raises:
            ValidationError | HookAbortError | CodecError | StorageError: Why the write
            was rejected.
        """
        op = await self.write(model, data, id=id)
        return op.result()

    async def create(
        self, model: ModelRef, data: Mapping[str, Any], *, id: str | None = None
    ) -> DocumentInstance:
        """
        Like save(), but refuses to overwrite an existing document.

        Raises:
            DocumentExistsError: `id` is already taken.
        """
        desc = self.model(model)
        if id is not None:
            _require_id(desc, id)
            if await self._storage_call("get", self.storage.exists(desc.collection, id)):
                raise DocumentExistsError(desc.collection, id)
        return await self.save(desc, data, id=id)

    async def update(
        self, model: ModelRef, id: str, changes: Mapping[str, Any]
    ) -> DocumentInstance:
        """
        Merge `changes` into a stored document and re-run the whole write pipeline.

        Raises:
            DocumentNotFoundError: The document does not exist.
            ValidationError | HookAbortError | CodecError | StorageError: As save().
        """
        desc = self.model(model)
        _require_id(desc, id)
        record = await self._storage_call("get", self.storage.get(desc.collection, id))
        if record is None:
            raise DocumentNotFoundError(desc.collection, id)
        current = decode_document(desc, record, self._codec_policy)
        merged = {**current, **dict(changes)}
        return await self.save(desc, merged, id=id)

    # ---------------------------------------------------------------------
    # Read
    # ---------------------------------------------------------------------
    async def _materialize(
        self, desc: ModelDescriptor, doc_id: str, record: Mapping[str, Any]
    ) -> DocumentInstance:
        data = decode_document(desc, record, self._codec_policy)
        doc = DocumentInstance(desc, data, id=doc_id, persisted=True)
        await self.hooks.dispatch(desc.model_id, HookPhase.AFTER_LOAD, doc)
        return doc

    async def _fetch(
        self, desc: ModelDescriptor, collection: str, doc_id: str
    ) -> DocumentInstance | None:
        _require_id(desc, doc_id)
        shell = DocumentInstance(desc, id=doc_id)
        await self.hooks.dispatch(desc.model_id, HookPhase.BEFORE_LOAD, shell)
        record = await self._storage_call("get", self.storage.get(collection, doc_id))
        if record is None:
            logger.debug("no document at %s/%s", collection, doc_id)
            return None
        return await self._materialize(desc, doc_id, record)

    async def _fetch_pointer(
        self, desc: ModelDescriptor, pointer: StoragePointer
    ) -> DocumentInstance | None:
        return await self._fetch(desc, pointer.collection, pointer.id)

    async def load(
        self,
        model: ModelRef,
        id: str,
        *,
        populate: str | Iterable[str] | None = None,
        max_depth: int | None = None,
        on_missing: OnMissing | str | None = None,
    ) -> DocumentInstance:
        """
        Load a document by id, optionally populating relations.

        Raises:
            DocumentNotFoundError: The document does not exist.
            HookAbortError: A before_load or after_load hook failed.
            InvalidDocumentIdError: `id` cannot name a document.
            CodecError: A stored value failed to decode under the "abort" policy.
        """
        desc = self.model(model)
        doc = await self._fetch(desc, desc.collection, id)
        if doc is None:
            raise DocumentNotFoundError(desc.collection, id)
        if populate:
            await self.populate(doc, populate, max_depth=max_depth, on_missing=on_missing)
        return doc

    async def get(self, model: ModelRef, id: str) -> DocumentInstance | None:
        """Like load(), returning None for a missing document."""
        desc = self.model(model)
        return await self._fetch(desc, desc.collection, id)

    async def find(
        self,
        model: ModelRef,
        where: Mapping[str, Any] | None = None,
        *,
        limit: int | None = None,
    ) -> list[DocumentInstance]:
        """
        Return documents whose stored values equal `where` (storage representation, so
        references compare as "collection/id" tokens).
        """
        desc = self.model(model)
        rows = await self._storage_call(
            "query", self.storage.query(desc.collection, where, limit)
        )
        out: list[DocumentInstance] = []
        for doc_id, record in rows:
            shell = DocumentInstance(desc, id=doc_id)
            await self.hooks.dispatch(desc.model_id, HookPhase.BEFORE_LOAD, shell)
            out.append(await self._materialize(desc, doc_id, record))
        return out

    # ---------------------------------------------------------------------
    # Delete
    # ---------------------------------------------------------------------
    async def delete(self, model: ModelRef, target: str | DocumentInstance) -> DocumentInstance:
        """
        Delete a document by id or instance.

        Returns:
            DocumentInstance: The deleted document, with persisted=False.

        Raises:
            DocumentNotFoundError: Nothing was stored under the id.
            InvalidDocumentIdError: The id cannot name a document.
            HookAbortError: A before_delete hook vetoed the delete.
        """
        desc = self.model(model)
        if isinstance(target, DocumentInstance):
            if target.id is None:
                raise ValueError("cannot delete a document that has no id")
            _require_id(desc, target.id)
            doc = target
        else:
            _require_id(desc, target)
            record = await self._storage_call("get", self.storage.get(desc.collection, target))
            if record is None:
                raise DocumentNotFoundError(desc.collection, target)
            data = decode_document(desc, record, self._codec_policy)
            doc = DocumentInstance(desc, data, id=target, persisted=True)
        assert doc.id is not None

        await self.hooks.dispatch(desc.model_id, HookPhase.BEFORE_DELETE, doc)
        removed = await self._storage_call("delete", self.storage.delete(desc.collection, doc.id))
        if not removed:
            raise DocumentNotFoundError(desc.collection, doc.id)
        doc.persisted = False
        try:
            await self.hooks.dispatch(desc.model_id, HookPhase.AFTER_DELETE, doc)
        except HookAbortError as exc:
            logger.warning("after_delete hook failed on %s: %s", doc.pointer, exc)
        return doc

    # ---------------------------------------------------------------------
    # Relations
    # ---------------------------------------------------------------------
    async def populate(
        self,
        instance: DocumentInstance,
        paths: str | Iterable[str],
        *,
        max_depth: int | None = None,
        on_missing: OnMissing | str | None = None,
        options: PopulateOptions | None = None,
    ) -> DocumentInstance:
        """
        Resolve relation paths on `instance` (see fireodm.io.resolver).

        Args:
            instance (DocumentInstance): Document whose relations are populated.
            paths (str | Iterable[str]): Relation paths; dots step through relations.
            max_depth (int | None): Depth bound (defaults to settings.populate_max_depth).
            on_missing (OnMissing | str | None): "skip" or "fail" (defaults to settings).
            options (PopulateOptions | None): Overrides max_depth/on_missing when given.

        Raises:
            DanglingReferenceError: A target is missing in "fail" mode.
            RelationPathError: A path names a non-relation field.
        """
        if options is None:
            if max_depth is None:
                max_depth = self.settings.populate_max_depth
            if on_missing is None:
                on_missing = self.settings.populate_on_missing
            options = PopulateOptions(max_depth=max_depth, on_missing=on_missing)
        resolver = RelationResolver(self.registry, self._fetch_pointer, options)
        return await resolver.populate(instance, paths)


def _require_id(desc: ModelDescriptor, doc_id: object) -> None:
    if not is_valid_document_id(doc_id):
        raise InvalidDocumentIdError(desc.collection, doc_id)
