"""Type caster: round trips and fail-closed casting."""

from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum

import pytest

from starlive.core.types import (
    Vocabulary, atoms, cast, dump, is_primitive, normalize_type, register_atoms, to_plain,
)


class Color(Enum):
    RED = "red"
    BLUE = "blue"


class TestRoundTrip:
    @pytest.mark.parametrize("value, tp", [
        ("hello", "string"),
        (42, "integer"),
        (-7, "integer"),
        (2.5, "float"),
        (True, "boolean"),
        (False, "boolean"),
        (date(2024, 2, 29), "date"),
        (time(13, 45, 10), "time"),
        (datetime(2024, 1, 2, 3, 4, 5), "naive_datetime"),
        (datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc), "utc_datetime"),
        (Decimal("12.50"), "decimal"),
        ("6f1c1b2e-8f5a-4c55-9a53-2f0b5a0e1d11", "uuid"),
        ({"a": 1, "b": [1, 2]}, "map"),
        ([1, "two", None], "list"),
        ({"nested": True}, "json"),
        (b"\x00\xffbytes", "binary"),
        (Color.BLUE, Color),
    ])
    def test_cast_of_dump_is_identity(self, value, tp):
        assert cast(dump(value, tp), tp) == value

    def test_atom_round_trip(self):
        register_atoms("asc", "desc")
        assert cast(dump("asc", "atom"), "atom") == "asc"


class TestFailClosed:
    def test_malformed_integer(self):
        assert cast("not-a-number", "integer") is None
        assert cast("12abc", int) is None
        assert cast(True, "integer") is None

    def test_json_with_wrong_shape(self):
        assert cast("not-json", "map") is None
        assert cast("[1, 2]", "map") is None
        assert cast('{"a": 1}', "list") is None

    def test_unparsable_dates(self):
        assert cast("2024-13-45", "date") is None
        assert cast("yesterday", "naive_datetime") is None
        assert cast("2024-01-01T00:00:00", "utc_datetime") is None

    def test_unknown_atom_does_not_grow_vocabulary(self):
        before = len(atoms)
        assert cast("definitely-not-registered", "atom") is None
        assert len(atoms) == before
        assert "definitely-not-registered" not in atoms

    def test_unknown_enum_member(self):
        assert cast("green", Color) is None
        assert cast("red", Color) is Color.RED
        assert cast("BLUE", Color) is Color.BLUE

    def test_non_finite_decimal(self):
        assert cast("NaN", "decimal") is None
        assert cast(1.5, "decimal") is None

    def test_none_stays_none(self):
        assert cast(None, "string") is None

    def test_unknown_type(self):
        assert cast("x", "no-such-type") is None

    def test_deeply_nested_json(self):
        assert cast("[" * 5000, "list") is None
        assert cast('{"a":' * 5000, "map") is None
        assert cast("[" * 5000 + "]" * 5000, "json") is None


class TestBooleanAndNumbers:
    def test_boolean_strings(self):
        assert cast("true", bool) is True
        assert cast("0", bool) is False
        assert cast("yes", bool) is None

    def test_float_accepts_integers(self):
        assert cast("3", float) == 3.0
        assert cast("1e3", float) == 1000.0


class TestNormalizeType:
    def test_python_types(self):
        assert normalize_type(int) == "integer"
        assert normalize_type("int") == "integer"
        assert normalize_type(list[int]) == "list"
        assert normalize_type(dict[str, int]) == "map"

    def test_optional(self):
        assert normalize_type(int | None) == "integer"

    def test_enum_passes_through(self):
        assert normalize_type(Color) is Color
        assert is_primitive(Color)
        assert not is_primitive("SomeComponent")


class TestVocabulary:
    def test_rejects_empty_symbols(self):
        with pytest.raises(ValueError):
            Vocabulary([""])

    def test_lookup(self):
        vocab = Vocabulary(["open"])
        assert vocab.lookup("open") == "open"
        assert vocab.lookup("closed") is None
        assert vocab.lookup(1) is None


def test_to_plain_converts_nested_values():
    assert to_plain({"when": date(2024, 1, 1), "color": Color.RED, "items": (1, 2)}) == {
        "when": "2024-01-01", "color": "red", "items": [1, 2],
    }
