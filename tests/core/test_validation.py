import copy

import pytest

from fireodm.core.descriptors import (
    array_field,
    nested_field,
    number_field,
    reference,
    string_field,
    timestamp_field,
)
from fireodm.core.document import DocumentInstance
from fireodm.core.errors import ValidationError
from fireodm.core.pointer import StoragePointer
from fireodm.core.registry import SchemaRegistry
from fireodm.core.validation import ROOT_PATH, validate


def _looks_like_email(value: str) -> bool | str:
    return "@" in value or "must contain @"


@pytest.fixture()
def reg() -> SchemaRegistry:
    reg = SchemaRegistry()
    reg.register(
        "users",
        [
            string_field("name", required=True, max_length=20),
            string_field("email", rules=[_looks_like_email]),
            number_field("age", minimum=0, integer=True),
            number_field("score", default=0),
            nested_field("address", [string_field("city", required=True), string_field("zip")]),
            array_field("tags", string_field(), max_items=3),
            timestamp_field("joined"),
            reference("manager", "users"),
            reference("reports", "users", many=True),
        ],
    )
    return reg


def _paths(result) -> list[str]:
    return sorted(v.path for v in result.violations)


def test_valid_document_is_normalized(reg: SchemaRegistry) -> None:
    users = reg.lookup("users")
    raw = {"name": "Ann", "age": 30, "manager": "42", "reports": ["users/7"]}
    snapshot = copy.deepcopy(raw)
    result = validate(users, raw, registry=reg)
    assert result.ok and not result.violations
    doc = result.instance
    assert doc["manager"] == StoragePointer("users", "42")
    assert doc["reports"] == [StoragePointer("users", "7")]
    assert doc["score"] == 0
    assert "email" not in doc
    assert not doc.persisted
    assert raw == snapshot


def test_missing_required_field_yields_exactly_one_violation(reg: SchemaRegistry) -> None:
    result = validate(reg.lookup("users"), {"age": -1, "email": "nope"}, registry=reg)
    assert not result.ok
    assert [v.path for v in result.violations].count("name") == 1
    assert _paths(result) == ["age", "email", "name"]
    missing = next(v for v in result.violations if v.path == "name")
    assert missing.code == "missing"


def test_violations_are_aggregated_with_dotted_paths(reg: SchemaRegistry) -> None:
    raw = {
        "name": 5,
        "age": 2.5,
        "address": {"zip": 1234},
        "tags": ["a", 2],
        "nickname": "x",
    }
    result = validate(reg.lookup("users"), raw, registry=reg)
    assert _paths(result) == ["address.city", "address.zip", "age", "name", "nickname", "tags.1"]
    codes = {v.path: v.code for v in result.violations}
    assert codes["name"] == "string_type"
    assert codes["age"] == "integer"
    assert codes["nickname"] == "extra_forbidden"


def test_non_strict_drops_unknown_keys(reg: SchemaRegistry) -> None:
    result = validate(reg.lookup("users"), {"name": "Ann", "nickname": "x"}, registry=reg, strict=False)
    assert result.ok
    assert "nickname" not in result.instance


def test_custom_rule_message(reg: SchemaRegistry) -> None:
    result = validate(reg.lookup("users"), {"name": "Ann", "email": "ann"}, registry=reg)
    (violation,) = result.violations
    assert violation.path == "email"
    assert violation.code == "rule"
    assert violation.message == "must contain @"


def test_numbers_reject_booleans_and_non_finite(reg: SchemaRegistry) -> None:
    users = reg.lookup("users")
    assert validate(users, {"name": "A", "score": True}, registry=reg).violations[0].code == "number_type"
    assert (
        validate(users, {"name": "A", "score": float("nan")}, registry=reg).violations[0].code
        == "number_finite"
    )


def test_reference_checks(reg: SchemaRegistry) -> None:
    users = reg.lookup("users")
    wrong = validate(users, {"name": "A", "manager": "posts/1"}, registry=reg)
    assert wrong.violations[0].path == "manager"
    assert wrong.violations[0].code == "reference_collection"

    unsaved = DocumentInstance(users, {"name": "B"})
    result = validate(users, {"name": "A", "manager": unsaved}, registry=reg)
    assert result.violations[0].code == "reference_unsaved"

    saved = DocumentInstance(users, {"name": "B"}, id="b1")
    assert validate(users, {"name": "A", "manager": saved}, registry=reg).instance["manager"] == saved.pointer


def test_model_rules_run_after_fields_pass() -> None:
    reg = SchemaRegistry()

    def ordered(data):
        if data.get("low", 0) > data.get("high", 0):
            return "low must not exceed high"
        return None

    ranges = reg.register(
        "ranges", [number_field("low", required=True), number_field("high", required=True)], rules=[ordered]
    )
    failed = validate(ranges, {"low": 5, "high": 1}, registry=reg)
    assert [(v.path, v.code) for v in failed.violations] == [(ROOT_PATH, "model_rule")]

    only_field = validate(ranges, {"low": 5, "high": "x"}, registry=reg)
    assert _paths(only_field) == ["high"]


def test_non_mapping_input(reg: SchemaRegistry) -> None:
    result = validate(reg.lookup("users"), ["not", "a", "mapping"], registry=reg)  # type: ignore[arg-type]
    assert _paths(result) == [ROOT_PATH]


def test_raise_for_violations(reg: SchemaRegistry) -> None:
    with pytest.raises(ValidationError) as info:
        validate(reg.lookup("users"), {}, registry=reg).raise_for_violations()
    assert info.value.fields == ["name"]


def test_crashing_rules_become_violations() -> None:
    reg = SchemaRegistry()

    def totals(data):
        return data["count"] / 0

    counters = reg.register(
        "counters",
        [string_field("name", rules=[lambda v: v + 1 > 0]), number_field("count")],
        rules=[totals],
    )
    field_crash = validate(counters, {"name": "Ann"}, registry=reg)
    assert [(v.path, v.code) for v in field_crash.violations] == [("name", "rule_error")]
    assert "TypeError" in field_crash.violations[0].message

    model_crash = validate(counters, {"count": 3}, registry=reg)
    (violation,) = model_crash.violations
    assert (violation.path, violation.code) == (ROOT_PATH, "rule_error")
    assert "totals" in violation.message and "ZeroDivisionError" in violation.message
