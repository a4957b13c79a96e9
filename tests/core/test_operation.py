import pytest

from fireodm.core.errors import IllegalTransitionError
from fireodm.core.operation import WriteOperation, WriteState

HAPPY_PATH = [
    WriteState.VALIDATING,
    WriteState.VALID,
    WriteState.BEFORE_SAVE_HOOKS,
    WriteState.ENCODING,
    WriteState.PERSISTING,
    WriteState.AFTER_SAVE_HOOKS,
    WriteState.COMMITTED,
]


def test_happy_path() -> None:
    op = WriteOperation("users")
    for state in HAPPY_PATH:
        op.advance(state)
    assert op.history == [WriteState.PENDING, *HAPPY_PATH]
    assert op.committed and op.state.terminal


def test_persisting_requires_validation() -> None:
    op = WriteOperation("users")
    with pytest.raises(IllegalTransitionError):
        op.advance(WriteState.PERSISTING)
    op.advance(WriteState.VALIDATING)
    with pytest.raises(IllegalTransitionError):
        op.advance(WriteState.ENCODING)


def test_reject_while_validating_goes_through_invalid() -> None:
    op = WriteOperation("users")
    op.advance(WriteState.VALIDATING)
    err = ValueError("bad")
    op.reject(err)
    assert op.history[-2:] == [WriteState.INVALID, WriteState.REJECTED]
    with pytest.raises(ValueError):
        op.result()


def test_terminal_states_are_final() -> None:
    op = WriteOperation("users")
    op.reject(RuntimeError("cancelled"))
    with pytest.raises(IllegalTransitionError):
        op.advance(WriteState.VALIDATING)


def test_result_before_terminal_state() -> None:
    op = WriteOperation("users")
    op.advance(WriteState.VALIDATING)
    with pytest.raises(IllegalTransitionError):
        op.result()
