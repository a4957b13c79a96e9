"""
Lifecycle hook dispatcher.

Hooks are plain callables (sync or async) registered per (model id, phase). They run
strictly sequentially in registration order, since a later hook may read what an
earlier one computed.

A hook signals failure by raising or by returning False. The phase stops at the first
failure, later hooks of that phase do not run, and the failure reaches the caller as
HookAbortError carrying the phase and the hook name. Other phases are unaffected.

Notes:
    - Side effects of hooks that already ran are not rolled back; undoing them is the
      hook author's responsibility.
    - asyncio cancellation is never converted into HookAbortError.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .document import DocumentInstance
from .errors import HookAbortError
from .grammar import HookPhase, hook_phase_from_value

__all__ = ["HookCallback", "HookRegistration", "HookDispatcher"]

logger = logging.getLogger(__name__)

HookCallback = Callable[[DocumentInstance], Any]


@dataclass(frozen=True, eq=False)
class HookRegistration:
    """A registered hook (returned by register() so it can be unregistered)."""

    model_id: str
    phase: HookPhase
    callback: HookCallback
    name: str


class HookDispatcher:
    """
    Ordered per-phase callback lists.

    Examples:
        >>> d = HookDispatcher()
        >>> @d.hook("users", "beforeSave")
        ... def stamp(doc):
        ...     doc["stamped"] = True
        >>> [h.name for h in d.hooks_for("users", "before_save")]
        ['stamp']
    """

    def __init__(self) -> None:
        self._hooks: dict[tuple[str, HookPhase], list[HookRegistration]] = {}

    def register(
        self,
        model_id: str,
        phase: HookPhase | str,
        callback: HookCallback,
        *,
        name: str | None = None,
    ) -> HookRegistration:
        """
        Append a hook to the list for (model_id, phase).

        Raises:
            ValueError: If the phase is unknown or callback is not callable.
        """
        if not callable(callback):
            raise ValueError(f"hook for {model_id!r} must be callable (got {callback!r})")
        ph = hook_phase_from_value(phase)
        reg = HookRegistration(
            model_id=model_id,
            phase=ph,
            callback=callback,
            name=name or getattr(callback, "__qualname__", repr(callback)),
        )
        self._hooks.setdefault((model_id, ph), []).append(reg)
        logger.debug("registered %s hook %s for %s", ph.value, reg.name, model_id)
        return reg

    def hook(
        self, model_id: str, phase: HookPhase | str, *, name: str | None = None
    ) -> Callable[[HookCallback], HookCallback]:
        """Decorator form of register(); returns the callback unchanged."""

        def _decorate(fn: HookCallback) -> HookCallback:
            self.register(model_id, phase, fn, name=name)
            return fn

        return _decorate

    def unregister(self, registration: HookRegistration) -> bool:
        hooks = self._hooks.get((registration.model_id, registration.phase), [])
        if registration in hooks:
            hooks.remove(registration)
            return True
        return False

    def hooks_for(self, model_id: str, phase: HookPhase | str) -> list[HookRegistration]:
        return list(self._hooks.get((model_id, hook_phase_from_value(phase)), []))

    async def dispatch(
        self, model_id: str, phase: HookPhase | str, document: DocumentInstance
    ) -> DocumentInstance:
        """
        Run every hook of a phase, in order, against `document`.

        Returns:
            DocumentInstance: The same (possibly mutated) document.

        Raises:
            HookAbortError: The first hook that raised or returned False.
        """
        ph = hook_phase_from_value(phase)
        for reg in self.hooks_for(model_id, ph):
            try:
                outcome = reg.callback(document)
                if inspect.isawaitable(outcome):
                    outcome = await outcome
            except HookAbortError:
                raise
            except Exception as exc:
                reason = str(exc) or type(exc).__name__
                raise HookAbortError(model_id, ph.value, reg.name, reason) from exc
            if outcome is False:
                raise HookAbortError(model_id, ph.value, reg.name, "hook returned False")
            logger.debug("%s hook %s ran for %s", ph.value, reg.name, model_id)
        return document
