import pytest

from fireodm.core.grammar import (
    Cardinality,
    CodecErrorPolicy,
    FieldKind,
    HookPhase,
    OnMissing,
    codec_policy_from_value,
    ensure_all_enum_values_lower_snake,
    field_kind_from_value,
    hook_phase_from_value,
    is_lower_snake,
    on_missing_from_value,
    to_lower_snake,
)


def test_all_enum_values_are_lower_snake() -> None:
    ensure_all_enum_values_lower_snake(
        [FieldKind, Cardinality, HookPhase, OnMissing, CodecErrorPolicy]
    )


def test_to_lower_snake_converts_camel_case() -> None:
    assert to_lower_snake("beforeSave") == "before_save"
    assert to_lower_snake("UserProfile") == "user_profile"
    assert to_lower_snake("after_load") == "after_load"
    assert is_lower_snake("user_profile")
    assert not is_lower_snake("UserProfile")


def test_hook_phase_accepts_both_spellings() -> None:
    assert hook_phase_from_value("beforeSave") is HookPhase.BEFORE_SAVE
    assert hook_phase_from_value("after_delete") is HookPhase.AFTER_DELETE
    assert hook_phase_from_value(HookPhase.AFTER_LOAD) is HookPhase.AFTER_LOAD
    assert HookPhase.BEFORE_LOAD.is_before
    assert not HookPhase.AFTER_SAVE.is_before


def test_unknown_values_are_rejected() -> None:
    with pytest.raises(ValueError):
        hook_phase_from_value("duringSave")
    with pytest.raises(ValueError):
        on_missing_from_value("ignore")
    with pytest.raises(ValueError):
        codec_policy_from_value(3)  # type: ignore[arg-type]


def test_policy_parsers() -> None:
    assert on_missing_from_value("fail") is OnMissing.FAIL
    assert codec_policy_from_value("default") is CodecErrorPolicy.DEFAULT
    assert field_kind_from_value("number") is FieldKind.NUMBER
    assert FieldKind.STRING.is_scalar
    assert not FieldKind.NESTED.is_scalar
