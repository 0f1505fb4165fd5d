import uuid
from decimal import Decimal

import pytest

from thesis_eval.errors import InvalidArgumentError
from thesis_eval.utils.identifiers import normalize_id, parse_optional_uuid, parse_uuid
from thesis_eval.utils.numbers import coerce_number, round_half_up


def test_parse_uuid_accepts_uuid_and_string() -> None:
    value = uuid.uuid4()
    assert parse_uuid(value) == value
    assert parse_uuid(f"  {value}  ") == value


@pytest.mark.parametrize("raw", [None, "", "   ", "{}", "[object Object]", "undefined", "null"])
def test_parse_uuid_placeholders_are_missing(raw) -> None:
    with pytest.raises(InvalidArgumentError) as exc:
        parse_uuid(raw, "template_id")
    assert exc.value.message == "template_id is required"


def test_parse_uuid_rejects_malformed() -> None:
    with pytest.raises(InvalidArgumentError) as exc:
        parse_uuid("not-a-uuid", "evaluation_id")
    assert "Invalid evaluation_id" in exc.value.message


def test_parse_optional_uuid_is_lenient() -> None:
    value = uuid.uuid4()
    assert parse_optional_uuid(str(value)) == value
    assert parse_optional_uuid("garbage") is None
    assert parse_optional_uuid("[object Object]") is None
    assert normalize_id(" abc ") == "abc"


def test_coerce_number() -> None:
    assert coerce_number("2.5") == 2.5
    assert coerce_number(3) == 3.0
    assert coerce_number(Decimal("1.25")) == 1.25
    assert coerce_number("abc") is None
    assert coerce_number("") is None
    assert coerce_number(True) is None
    assert coerce_number(float("nan")) is None
    assert coerce_number([1]) is None


def test_round_half_up() -> None:
    assert round_half_up(Decimal("2.345"), 2) == Decimal("2.35")
    assert round_half_up(Decimal("2.344"), 2) == Decimal("2.34")
    assert round_half_up(Decimal("0.0005"), 3) == Decimal("0.001")
