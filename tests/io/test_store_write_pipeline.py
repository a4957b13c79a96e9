from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from fireodm.core.declarative import collection, on
from fireodm.core.descriptors import number_field, reference, string_field
from fireodm.core.document import DocumentInstance
from fireodm.core.errors import (
    CodecError,
    DocumentExistsError,
    DocumentNotFoundError,
    HookAbortError,
    InvalidDocumentIdError,
    ValidationError,
)
from fireodm.core.operation import WriteOperation, WriteState
from fireodm.core.pointer import StoragePointer
from fireodm.core.registry import SchemaRegistry
from fireodm.io import DocumentStore, FileStorage, MemoryStorage, OdmSettings
from fireodm.io.errors import StorageError, StorageTimeoutError


@pytest.fixture()
def reg() -> SchemaRegistry:
    reg = SchemaRegistry()
    reg.register(
        "users",
        [
            string_field("name", required=True),
            number_field("age", minimum=0),
            reference("manager", "users"),
        ],
    )
    return reg


@pytest.fixture()
def store(reg: SchemaRegistry) -> DocumentStore:
    return DocumentStore(MemoryStorage(), registry=reg)


def test_user_example(store: DocumentStore) -> None:
    async def run():
        ann = await store.save("users", {"name": "Ann"})
        assert ann.persisted and len(ann.id) == 20

        with pytest.raises(ValidationError) as info:
            await store.save("users", {})
        assert info.value.fields == ["name"]

        bob = await store.save("users", {"name": "Bob", "manager": "users/42"})
        assert bob["manager"] == StoragePointer("users", "42")

    asyncio.run(run())


def test_write_records_state_history(store: DocumentStore) -> None:
    op = asyncio.run(store.write("users", {"name": "Ann"}, id="ann"))
    assert op.state is WriteState.COMMITTED
    assert op.history == [
        WriteState.PENDING,
        WriteState.VALIDATING,
        WriteState.VALID,
        WriteState.BEFORE_SAVE_HOOKS,
        WriteState.ENCODING,
        WriteState.PERSISTING,
        WriteState.AFTER_SAVE_HOOKS,
        WriteState.COMMITTED,
    ]
    assert asyncio.run(store.storage.get("users", "ann")) == {"name": "Ann"}


def test_invalid_write_never_reaches_storage(store: DocumentStore) -> None:
    op = asyncio.run(store.write("users", {"name": "Ann", "age": -3}))
    assert op.state is WriteState.REJECTED
    assert WriteState.INVALID in op.history
    assert WriteState.PERSISTING not in op.history
    assert isinstance(op.error, ValidationError)
    assert len(store.storage) == 0


def test_invalid_id_is_a_violation(store: DocumentStore) -> None:
    with pytest.raises(ValidationError) as info:
        asyncio.run(store.save("users", {"name": "Ann"}, id="a/b"))
    assert info.value.fields == ["id"]


def test_failing_before_save_hook_stops_later_hooks(store: DocumentStore) -> None:
    calls: list[str] = []

    def h1(doc):
        calls.append("h1")
        raise RuntimeError("quota exceeded")

    store.on("users", "beforeSave", h1, name="h1")
    store.on("users", "beforeSave", lambda doc: calls.append("h2"), name="h2")

    op = asyncio.run(store.write("users", {"name": "Ann"}))
    assert calls == ["h1"]
    assert op.state is WriteState.REJECTED
    assert isinstance(op.error, HookAbortError)
    assert op.error.hook == "h1"
    assert len(store.storage) == 0


def test_before_save_hook_mutation_is_persisted(store: DocumentStore) -> None:
    store.on("users", "beforeSave", lambda doc: doc.update(age=30))
    doc = asyncio.run(store.save("users", {"name": "Ann"}, id="ann"))
    assert doc["age"] == 30
    assert asyncio.run(store.storage.get("users", "ann")) == {"name": "Ann", "age": 30}


def test_bad_hook_mutation_is_a_codec_rejection(store: DocumentStore) -> None:
    store.on("users", "beforeSave", lambda doc: doc.update(age="thirty"))
    op = asyncio.run(store.write("users", {"name": "Ann"}))
    assert op.state is WriteState.REJECTED
    assert isinstance(op.error, CodecError)


def test_after_save_failure_does_not_undo_commit(store: DocumentStore) -> None:
    def boom(doc):
        raise RuntimeError("mailer down")

    store.on("users", "afterSave", boom)
    op = asyncio.run(store.write("users", {"name": "Ann"}))
    assert op.committed
    assert isinstance(op.after_save_error, HookAbortError)
    assert len(store.storage) == 1


def test_saving_an_instance_updates_it_in_place(store: DocumentStore, reg: SchemaRegistry) -> None:
    doc = DocumentInstance(reg.lookup("users"), {"name": "Ann", "manager": "boss"})
    asyncio.run(store.save("users", doc))
    assert doc.persisted and doc.id is not None
    assert doc["manager"] == StoragePointer("users", "boss")


def test_create_update_load_delete(store: DocumentStore) -> None:
    async def run():
        await store.create("users", {"name": "Ann"}, id="ann")
        with pytest.raises(DocumentExistsError):
            await store.create("users", {"name": "Other"}, id="ann")

        updated = await store.update("users", "ann", {"age": 41})
        assert dict(updated) == {"name": "Ann", "age": 41}
        with pytest.raises(ValidationError):
            await store.update("users", "ann", {"age": -1})
        with pytest.raises(DocumentNotFoundError):
            await store.update("users", "ghost", {"age": 1})

        loaded = await store.load("users", "ann")
        assert loaded.persisted and loaded["age"] == 41
        assert await store.get("users", "ghost") is None

        deleted = await store.delete("users", "ann")
        assert not deleted.persisted
        with pytest.raises(DocumentNotFoundError):
            await store.load("users", "ann")
        with pytest.raises(DocumentNotFoundError):
            await store.delete("users", "ann")

    asyncio.run(run())


def test_find_filters_on_stored_values(store: DocumentStore) -> None:
    async def run():
        await store.save("users", {"name": "Bea"}, id="bea")
        await store.save("users", {"name": "Ann", "manager": "bea"}, id="ann")
        await store.save("users", {"name": "Cid", "manager": "bea"}, id="cid")
        reports = await store.find("users", {"manager": "users/bea"})
        assert [d.id for d in reports] == ["ann", "cid"]
        assert all(d.persisted for d in reports)
        assert len(await store.find("users", limit=2)) == 2

    asyncio.run(run())


def test_load_and_delete_hooks(store: DocumentStore) -> None:
    seen: list[tuple[str, str | None]] = []
    store.on("users", "beforeLoad", lambda doc: seen.append(("before_load", doc.id)))
    store.on("users", "afterLoad", lambda doc: seen.append(("after_load", doc["name"])))
    store.on("users", "beforeDelete", lambda doc: doc["name"] != "Keep")

    async def run():
        await store.save("users", {"name": "Keep"}, id="k")
        await store.load("users", "k")
        with pytest.raises(HookAbortError):
            await store.delete("users", "k")
        assert await store.storage.exists("users", "k")

    asyncio.run(run())
    assert seen == [("before_load", "k"), ("after_load", "Keep")]


def test_declared_class_hooks(reg: SchemaRegistry) -> None:
    @collection("posts", registry=reg)
    class Post:
        title = string_field(required=True)
        author = reference(target="users")

        @on("beforeSave")
        def title_case(doc):
            doc["title"] = doc["title"].title()

    store = DocumentStore(MemoryStorage(), registry=reg)
    store.register_hooks(Post)
    post = asyncio.run(store.save(Post, {"title": "hello world"}))
    assert post["title"] == "Hello World"


class _SlowStorage(MemoryStorage):
    async def put(self, collection, doc_id, value):
        await asyncio.sleep(1)


class _BrokenStorage(MemoryStorage):
    async def put(self, collection, doc_id, value):
        raise ConnectionError("lost connection")


def test_storage_failures_reject_the_write(reg: SchemaRegistry) -> None:
    broken = DocumentStore(_BrokenStorage(), registry=reg)
    op = asyncio.run(broken.write("users", {"name": "Ann"}))
    assert op.state is WriteState.REJECTED
    assert isinstance(op.error, StorageError)

    slow = DocumentStore(
        _SlowStorage(), registry=reg, settings=OdmSettings(operation_timeout=0.01)
    )
    with pytest.raises(StorageTimeoutError):
        asyncio.run(slow.save("users", {"name": "Ann"}))


def test_cancelled_write_is_rejected(reg: SchemaRegistry) -> None:
    store = DocumentStore(_SlowStorage(), registry=reg)

    async def run():
        task = asyncio.ensure_future(store.write("users", {"name": "Ann"}))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(run())


def test_file_backed_store(tmp_path: Path, reg: SchemaRegistry) -> None:
    settings = OdmSettings(storage="file", root_dir=str(tmp_path))
    store = DocumentStore.from_settings(settings, registry=reg)
    assert isinstance(store.storage, FileStorage)

    async def run():
        await store.save("users", {"name": "Ann", "manager": "bea"}, id="ann")
        return await store.load("users", "ann")

    loaded = asyncio.run(run())
    assert loaded["manager"] == StoragePointer("users", "bea")
    assert (tmp_path / "users" / "ann.json").exists()


def test_path_like_ids_never_reach_storage(tmp_path: Path, reg: SchemaRegistry) -> None:
    secret = tmp_path / "secret.json"
    secret.write_text('{"name":"Root"}')
    store = DocumentStore(FileStorage(tmp_path / "data"), registry=reg)

    async def run():
        for bad in ("../../secret", "", "a/b"):
            with pytest.raises(InvalidDocumentIdError):
                await store.get("users", bad)
            with pytest.raises(InvalidDocumentIdError):
                await store.load("users", bad)
            with pytest.raises(InvalidDocumentIdError):
                await store.delete("users", bad)
            with pytest.raises(InvalidDocumentIdError):
                await store.update("users", bad, {"name": "X"})

    asyncio.run(run())
    assert secret.read_text() == '{"name":"Root"}'


def test_crashing_rule_rejects_the_write() -> None:
    reg = SchemaRegistry()
    reg.register("tags", [string_field("name", rules=[lambda v: v + 1 > 0])])
    store = DocumentStore(MemoryStorage(), registry=reg)

    op = asyncio.run(store.write("tags", {"name": "urgent"}))
    assert op.state is WriteState.REJECTED
    assert isinstance(op.error, ValidationError)
    assert [v.code for v in op.error.violations] == ["rule_error"]
    assert len(store.storage) == 0


def test_saving_an_instance_drops_stale_populated_relations(
    store: DocumentStore, reg: SchemaRegistry
) -> None:
    old_boss = DocumentInstance(reg.lookup("users"), {"name": "Old"}, id="old")
    doc = DocumentInstance(reg.lookup("users"), {"name": "Ann", "manager": "old"}, id="ann")
    doc.set_populated("manager", old_boss)
    store.on("users", "beforeSave", lambda d: d.update(manager=StoragePointer("users", "new")))

    asyncio.run(store.save("users", doc))
    assert doc["manager"] == StoragePointer("users", "new")
    assert not doc.is_populated("manager")
    assert doc.related("manager") is None


def test_cancelled_after_save_hook_still_commits(
    monkeypatch: pytest.MonkeyPatch, store: DocumentStore
) -> None:
    ops: list[WriteOperation] = []

    class _RecordedOperation(WriteOperation):
        def __init__(self, *args, **kwargs) -> None:
            super().__init__(*args, **kwargs)
            ops.append(self)

    monkeypatch.setattr("fireodm.io.store.WriteOperation", _RecordedOperation)

    async def notify(doc):
        await asyncio.sleep(1)

    store.on("users", "afterSave", notify)

    async def run():
        task = asyncio.ensure_future(store.write("users", {"name": "Ann"}, id="ann"))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(run())
    (op,) = ops
    assert op.state is WriteState.COMMITTED
    assert op.history[-2:] == [WriteState.AFTER_SAVE_HOOKS, WriteState.COMMITTED]
    assert asyncio.run(store.storage.get("users", "ann")) == {"name": "Ann"}


def test_update_decodes_with_configured_policy(reg: SchemaRegistry) -> None:
    store = DocumentStore(
        MemoryStorage(), registry=reg, settings=OdmSettings(codec_error_policy="skip")
    )

    async def run():
        await store.storage.put("users", "ann", {"name": "Ann", "age": "thirty"})
        updated = await store.update("users", "ann", {"name": "Anna"})
        assert dict(updated) == {"name": "Anna"}
        assert await store.storage.get("users", "ann") == {"name": "Anna"}

    asyncio.run(run())

    strict = DocumentStore(MemoryStorage(), registry=reg)

    async def run_strict():
        await strict.storage.put("users", "ann", {"name": "Ann", "age": "thirty"})
        with pytest.raises(CodecError):
            await strict.update("users", "ann", {"name": "Anna"})

    asyncio.run(run_strict())
