import asyncio

import pytest

from fireodm.core.declarative import collection, install_hooks, model_of, on
from fireodm.core.descriptors import number_field, reference, string_field
from fireodm.core.document import DocumentInstance
from fireodm.core.errors import DuplicateModelError, SchemaError
from fireodm.core.grammar import HookPhase
from fireodm.core.hooks import HookDispatcher
from fireodm.core.registry import SchemaRegistry


def test_collection_registers_fields_in_definition_order() -> None:
    reg = SchemaRegistry()

    @collection("users", registry=reg)
    class User:
        name = string_field(required=True)
        manager = reference(target="users")
        age = number_field("years")

    desc = model_of(User)
    assert reg.lookup("users") is desc
    assert desc.field_names == ("name", "manager", "years")
    assert desc.relation("manager").target == "users"


def test_model_id_defaults_to_snake_case_class_name() -> None:
    reg = SchemaRegistry()

    @collection(registry=reg)
    class BlogPost:
        title = string_field()

    assert model_of(BlogPost).model_id == "blog_post"
    assert model_of(BlogPost).collection == "blog_post"


def test_subclass_extends_base_fields() -> None:
    reg = SchemaRegistry()

    @collection("animals", registry=reg)
    class Animal:
        name = string_field(required=True)

    @collection("dogs", registry=reg)
    class Dog(Animal):
        breed = string_field()

    assert model_of(Dog).field_names == ("name", "breed")


def test_declaration_errors() -> None:
    reg = SchemaRegistry()
    with pytest.raises(SchemaError):

        @collection("empty", registry=reg)
        class Empty:
            pass

    @collection("users", registry=reg)
    class User:
        name = string_field()

    with pytest.raises(DuplicateModelError):

        @collection("users", registry=reg)
        class Other:
            name = string_field()

    with pytest.raises(SchemaError):
        model_of(object())


def test_on_marks_hooks_for_install() -> None:
    reg = SchemaRegistry()

    @collection("users", registry=reg)
    class User:
        name = string_field()

        @on("beforeSave")
        def trim(doc):
            doc["name"] = doc["name"].strip()

    dispatcher = HookDispatcher()
    (registration,) = install_hooks(User, dispatcher)
    assert registration.phase is HookPhase.BEFORE_SAVE
    assert registration.name == "User.trim"

    doc = DocumentInstance(model_of(User), {"name": "  Ann "})
    asyncio.run(dispatcher.dispatch("users", "before_save", doc))
    assert doc["name"] == "Ann"
