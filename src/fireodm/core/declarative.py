"""
Decorator-driven model declaration.

@collection turns a plain class whose attributes are field descriptors into a registered
ModelDescriptor, the same as calling SchemaRegistry.register() with those fields in
definition order. Methods marked with @on(<phase>) are collected as lifecycle hooks and
installed on a dispatcher with install_hooks().

Examples:
    >>> from fireodm.core.registry import SchemaRegistry
    >>> from fireodm.core.descriptors import string_field, reference
    >>> reg = SchemaRegistry()
    >>> @collection("users", registry=reg)
    ... class User:
    ...     name = string_field(required=True)
    ...     manager = reference(target="users")
    >>> User.__model__.field_names
    ('name', 'manager')
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from .descriptors import FieldDescriptor, ModelDescriptor
from .errors import SchemaError
from .grammar import HookPhase, hook_phase_from_value, to_lower_snake
from .hooks import HookDispatcher, HookRegistration
from .registry import SchemaRegistry, default_registry
from .typing import ModelRule

__all__ = ["collection", "on", "model_of", "install_hooks"]

T = TypeVar("T", bound=type)
F = TypeVar("F", bound=Callable[..., Any])

_HOOK_ATTR = "__fireodm_hook_phases__"


def collection(
    name: str | None = None,
    *,
    model_id: str | None = None,
    registry: SchemaRegistry | None = None,
    rules: Iterable[ModelRule] = (),
) -> Callable[[T], T]:
    """
    Class decorator registering the decorated class as a model.

    Args:
        name (str | None): Collection name; defaults to the model id.
        model_id (str | None): Registry key; defaults to `name`, then to the lower_snake
            class name.
        registry (SchemaRegistry | None): Target registry (process-wide by default).
        rules (Iterable[ModelRule]): Whole-document rules.

    Notes:
        Fields of a base class decorated with @collection come first, in its order.
        A field declared without a name takes the attribute name.
    """

    def _decorate(cls: T) -> T:
        fields: list[FieldDescriptor] = []
        for base in reversed(cls.__mro__[1:]):
            inherited = base.__dict__.get("__model__")
            if isinstance(inherited, ModelDescriptor):
                fields.extend(f for f in inherited.fields if f.name not in {x.name for x in fields})
        for attr, value in vars(cls).items():
            if isinstance(value, FieldDescriptor):
                named = value if value.name else value.named(attr)
                fields = [f for f in fields if f.name != named.name]
                fields.append(named)
        if not fields:
            raise SchemaError(f"{cls.__name__} declares no fields")
        mid = model_id or name or to_lower_snake(cls.__name__)
        reg = registry if registry is not None else default_registry
        cls.__model__ = reg.register(mid, fields, collection=name or mid, rules=rules)
        cls.__hooks__ = [
            (phase, fn)
            for fn in vars(cls).values()
            for phase in getattr(fn, _HOOK_ATTR, ())
        ]
        return cls

    return _decorate


def on(*phases: HookPhase | str) -> Callable[[F], F]:
    """
    Mark a function defined in a @collection class as a hook for one or more phases.

    The function is called with the DocumentInstance (it is not bound to the class).
    """
    parsed = tuple(hook_phase_from_value(p) for p in phases)

    def _mark(fn: F) -> F:
        setattr(fn, _HOOK_ATTR, getattr(fn, _HOOK_ATTR, ()) + parsed)
        return fn

    return _mark


def model_of(model: Any) -> ModelDescriptor:
    """
    Return the ModelDescriptor of a @collection class (or a descriptor itself).

    Raises:
        SchemaError: If `model` is neither.
    """
    if isinstance(model, ModelDescriptor):
        return model
    desc = getattr(model, "__model__", None)
    if isinstance(desc, ModelDescriptor):
        return desc
    raise SchemaError(f"{model!r} is not a model (missing @collection?)")


def install_hooks(cls: type, dispatcher: HookDispatcher) -> list[HookRegistration]:
    """Register the hooks collected on a @collection class with a dispatcher."""
    model = model_of(cls)
    return [
        dispatcher.register(model.model_id, phase, fn, name=f"{cls.__name__}.{fn.__name__}")
        for phase, fn in getattr(cls, "__hooks__", [])
    ]
