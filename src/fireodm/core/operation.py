"""
Write-operation state machine.

    Pending -> Validating -> Valid -> BeforeSaveHooks -> Encoding -> Persisting
            -> AfterSaveHooks -> Committed
    Validating -> Invalid -> Rejected

Any non-terminal state after Valid may also move to Rejected (hook veto, codec failure,
storage failure, timeout or cancellation). Committed and Rejected are terminal. No path
reaches Persisting without passing Validating and Valid.

After-save hooks run once the write is durable: a failing after-save hook is recorded on
the operation but the state still ends at Committed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from .document import DocumentInstance
from .errors import IllegalTransitionError

__all__ = ["WriteState", "WriteOperation"]

logger = logging.getLogger(__name__)


class WriteState(Enum):
    PENDING = "pending"
    VALIDATING = "validating"
    VALID = "valid"
    INVALID = "invalid"
    BEFORE_SAVE_HOOKS = "before_save_hooks"
    ENCODING = "encoding"
    PERSISTING = "persisting"
    AFTER_SAVE_HOOKS = "after_save_hooks"
    COMMITTED = "committed"
    REJECTED = "rejected"

    @property
    def terminal(self) -> bool:
        return self in (WriteState.COMMITTED, WriteState.REJECTED)


_TRANSITIONS: dict[WriteState, frozenset[WriteState]] = {
    WriteState.PENDING: frozenset({WriteState.VALIDATING, WriteState.REJECTED}),
    WriteState.VALIDATING: frozenset({WriteState.VALID, WriteState.INVALID, WriteState.REJECTED}),
    WriteState.INVALID: frozenset({WriteState.REJECTED}),
    WriteState.VALID: frozenset({WriteState.BEFORE_SAVE_HOOKS, WriteState.REJECTED}),
    WriteState.BEFORE_SAVE_HOOKS: frozenset({WriteState.ENCODING, WriteState.REJECTED}),
    WriteState.ENCODING: frozenset({WriteState.PERSISTING, WriteState.REJECTED}),
    WriteState.PERSISTING: frozenset({WriteState.AFTER_SAVE_HOOKS, WriteState.REJECTED}),
    WriteState.AFTER_SAVE_HOOKS: frozenset({WriteState.COMMITTED}),
    WriteState.COMMITTED: frozenset(),
    WriteState.REJECTED: frozenset(),
}


@dataclass
class WriteOperation:
    """
    One save/update attempt and its state history.

    Attributes:
        model_id (str): Model being written.
        state (WriteState): Current state.
        history (list[WriteState]): Every state visited, starting with PENDING.
        instance (DocumentInstance | None): Normalized document once validated.
        error (BaseException | None): Why the write was rejected.
        after_save_error (BaseException | None): Failure of an after-save hook on a
            committed write.
    """

    model_id: str
    state: WriteState = WriteState.PENDING
    history: list[WriteState] = field(default_factory=lambda: [WriteState.PENDING])
    instance: DocumentInstance | None = None
    error: BaseException | None = None
    after_save_error: BaseException | None = None

    def advance(self, state: WriteState) -> None:
        """
        Move to `state`.

        Raises:
            IllegalTransitionError: If `state` is not reachable from the current state.
        """
        if state not in _TRANSITIONS[self.state]:
            raise IllegalTransitionError(
                f"{self.model_id}: cannot move from {self.state.value} to {state.value}"
            )
        logger.debug("%s write: %s -> %s", self.model_id, self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def reject(self, error: BaseException) -> None:
        """Record `error` and move to REJECTED (through INVALID when validating)."""
        self.error = error
        if self.state is WriteState.VALIDATING:
            self.advance(WriteState.INVALID)
        self.advance(WriteState.REJECTED)

    @property
    def committed(self) -> bool:
        return self.state is WriteState.COMMITTED

    def result(self) -> DocumentInstance:
        """
        Return the committed document or raise the recorded error.

        Raises:
            BaseException: The error that rejected the write.
            IllegalTransitionError: If the operation has not reached a terminal state.
        """
        if self.state is WriteState.REJECTED:
            assert self.error is not None
            raise self.error
        if self.state is not WriteState.COMMITTED or self.instance is None:
            raise IllegalTransitionError(f"{self.model_id} write is still {self.state.value}")
        return self.instance
