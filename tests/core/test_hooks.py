import asyncio

import pytest

from fireodm.core.descriptors import ModelDescriptor, string_field
from fireodm.core.document import DocumentInstance
from fireodm.core.errors import HookAbortError
from fireodm.core.grammar import HookPhase
from fireodm.core.hooks import HookDispatcher

USERS = ModelDescriptor("users", "users", (string_field("name"),))


def _doc() -> DocumentInstance:
    return DocumentInstance(USERS, {"name": "Ann"})


def test_hooks_run_in_registration_order() -> None:
    calls: list[str] = []
    d = HookDispatcher()
    d.register("users", "beforeSave", lambda doc: calls.append("first"))

    async def second(doc):
        calls.append("second")
        doc["name"] = doc["name"].upper()

    d.register("users", HookPhase.BEFORE_SAVE, second)
    doc = asyncio.run(d.dispatch("users", "before_save", _doc()))
    assert calls == ["first", "second"]
    assert doc["name"] == "ANN"


def test_failing_hook_stops_the_phase() -> None:
    calls: list[str] = []
    d = HookDispatcher()

    def h1(doc):
        calls.append("h1")
        raise RuntimeError("nope")

    d.register("users", "beforeSave", h1, name="h1")
    d.register("users", "beforeSave", lambda doc: calls.append("h2"), name="h2")
    d.register("users", "afterSave", lambda doc: calls.append("after"))

    with pytest.raises(HookAbortError) as info:
        asyncio.run(d.dispatch("users", "beforeSave", _doc()))
    assert calls == ["h1"]
    assert info.value.phase == "before_save"
    assert info.value.hook == "h1"

    asyncio.run(d.dispatch("users", "afterSave", _doc()))
    assert calls == ["h1", "after"]


def test_returning_false_vetoes() -> None:
    d = HookDispatcher()
    d.register("users", "beforeDelete", lambda doc: False, name="guard")
    with pytest.raises(HookAbortError):
        asyncio.run(d.dispatch("users", "beforeDelete", _doc()))


def test_hooks_are_scoped_per_model_and_removable() -> None:
    d = HookDispatcher()
    reg = d.register("posts", "beforeSave", lambda doc: False)
    asyncio.run(d.dispatch("users", "beforeSave", _doc()))
    assert d.unregister(reg)
    assert not d.unregister(reg)
    assert d.hooks_for("posts", "beforeSave") == []


def test_register_rejects_bad_input() -> None:
    d = HookDispatcher()
    with pytest.raises(ValueError):
        d.register("users", "beforeSave", "not callable")  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        d.register("users", "duringSave", lambda doc: None)
