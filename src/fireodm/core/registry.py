"""
Process-wide schema registry mapping model ids to ModelDescriptors.

Notes:
    - Registration happens once at startup; after that the registry is read-only and
      is shared by concurrent operations without locking.
    - Re-registering an id is an error, never a silent overwrite.
    - Iteration order is registration order.
    - freeze() turns any later registration into RegistryFrozenError.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator

from .descriptors import FieldDescriptor, ModelDescriptor
from .errors import DuplicateModelError, RegistryFrozenError, UnknownModelError
from .typing import ModelRule

__all__ = ["SchemaRegistry", "default_registry"]

logger = logging.getLogger(__name__)


class SchemaRegistry:
    """
    Ordered mapping of model id -> ModelDescriptor.

    Examples:
        >>> from fireodm.core.registry import SchemaRegistry
        >>> from fireodm.core.descriptors import string_field
        >>> reg = SchemaRegistry()
        >>> users = reg.register("users", [string_field("name", required=True)])
        >>> reg.lookup("users") is users
        True
    """

    def __init__(self) -> None:
        self._models: dict[str, ModelDescriptor] = {}
        self._by_collection: dict[str, ModelDescriptor] = {}
        self._frozen = False

    def register(
        self,
        model_id: str,
        fields: Iterable[FieldDescriptor],
        *,
        collection: str | None = None,
        rules: Iterable[ModelRule] = (),
    ) -> ModelDescriptor:
        """
        Build and register a ModelDescriptor.

        Args:
            model_id (str): Unique model id.
            fields (Iterable[FieldDescriptor]): Fields in declaration order.
            collection (str | None): Storage collection; defaults to model_id.
            rules (Iterable[ModelRule]): Whole-document rules.

        Returns:
            ModelDescriptor: The registered descriptor.

        Raises:
            DuplicateModelError: model_id (or its collection) is already registered.
            RegistryFrozenError: The registry was frozen.
            SchemaError: The field declarations are malformed.
        """
        model = ModelDescriptor(model_id, collection or model_id, tuple(fields), tuple(rules))
        return self.add(model)

    def add(self, model: ModelDescriptor) -> ModelDescriptor:
        """Register an already-built descriptor (same rules as register())."""
        if self._frozen:
            raise RegistryFrozenError(f"cannot register {model.model_id!r}: registry is frozen")
        if model.model_id in self._models:
            raise DuplicateModelError(model.model_id)
        if model.collection in self._by_collection:
            other = self._by_collection[model.collection].model_id
            raise DuplicateModelError(
                model.model_id, f"collection {model.collection!r} belongs to {other!r}"
            )
        self._models[model.model_id] = model
        self._by_collection[model.collection] = model
        logger.debug(
            "registered model %s (collection=%s, fields=%s)",
            model.model_id,
            model.collection,
            list(model.field_names),
        )
        return model

    def lookup(self, model_id: str) -> ModelDescriptor:
        """
        Return the descriptor registered under model_id.

        Raises:
            UnknownModelError: If model_id is not registered.
        """
        try:
            return self._models[model_id]
        except KeyError:
            raise UnknownModelError(model_id) from None

    def lookup_collection(self, collection: str) -> ModelDescriptor:
        """
        Return the descriptor that owns a collection.

        Raises:
            UnknownModelError: If no model uses the collection.
        """
        try:
            return self._by_collection[collection]
        except KeyError:
            raise UnknownModelError(f"collection:{collection}") from None

    def list_models(self) -> list[ModelDescriptor]:
        return list(self._models.values())

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._models

    def __iter__(self) -> Iterator[ModelDescriptor]:
        return iter(self._models.values())

    def __len__(self) -> int:
        return len(self._models)


default_registry = SchemaRegistry()
