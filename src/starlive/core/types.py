"""
Type Caster

Converts raw values (almost always strings coming from a URL query, a
round-tripped attribute or a client event payload) into the declared field
type. Input is untrusted, so `cast` never raises: every failure yields None
and the field falls back to its default.
"""

import base64
import json
import logging
import re
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Union, get_args, get_origin
from types import UnionType
from uuid import UUID

from pydantic import TypeAdapter, ValidationError
from pydantic_core import to_jsonable_python

logger = logging.getLogger(__name__)

PRIMITIVE_TYPES = frozenset({
    "string", "integer", "float", "boolean",
    "date", "time", "naive_datetime", "utc_datetime",
    "decimal", "uuid", "map", "list", "json", "binary", "atom",
})

# Python annotations accepted in field declarations
PYTHON_TYPES: Dict[type, str] = {
    str: "string",
    int: "integer",
    float: "float",
    bool: "boolean",
    date: "date",
    time: "time",
    datetime: "naive_datetime",
    Decimal: "decimal",
    UUID: "uuid",
    dict: "map",
    list: "list",
    bytes: "binary",
}

# same table keyed by name, for postponed (string) annotations
_PYTHON_NAMES = {py_type.__name__: name for py_type, name in PYTHON_TYPES.items()}

_INTEGER_RE = re.compile(r"^[+-]?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")

_date_adapter = TypeAdapter(date)
_time_adapter = TypeAdapter(time)
_datetime_adapter = TypeAdapter(datetime)
_decimal_adapter = TypeAdapter(Decimal)
_uuid_adapter = TypeAdapter(UUID)


class Vocabulary:
    """
    Fixed set of symbols that `atom` fields may take.

    Symbols are registered explicitly at declaration time. Casting an unknown
    symbol fails closed: the vocabulary never grows from client input.
    """

    def __init__(self, names: Iterable[str] = ()):
        self._symbols: Dict[str, str] = {}
        self.register(*names)

    def register(self, *names: str) -> None:
        for name in names:
            if not isinstance(name, str) or not name:
                raise ValueError(f"Atoms must be non-empty strings, got {name!r}")
            self._symbols.setdefault(name, name)

    def lookup(self, name: Any) -> Optional[str]:
        if not isinstance(name, str):
            return None
        return self._symbols.get(name)

    def __contains__(self, name: Any) -> bool:
        return self.lookup(name) is not None

    def __len__(self) -> int:
        return len(self._symbols)


atoms = Vocabulary()


def register_atoms(*names: str) -> None:
    """Add symbols to the process-wide atom vocabulary."""
    atoms.register(*names)


def normalize_type(tp: Any) -> Any:
    """
    Reduce a declared type to what the caster understands.

    Python builtins become primitive names, `Optional[X]` / `X | None`
    becomes X, and parametrised containers (`list[int]`, `dict[str, Any]`)
    collapse to `list` / `map`. Enum subclasses, structural mappings and
    component references pass through untouched.
    """
    origin = get_origin(tp)
    if origin is Union or origin is UnionType:
        args = [a for a in get_args(tp) if a is not type(None)]
        return normalize_type(args[0]) if len(args) == 1 else "json"
    if origin is not None:
        tp = origin
    if isinstance(tp, str):
        return _PYTHON_NAMES.get(tp, tp)
    if isinstance(tp, type):
        if issubclass(tp, Enum):
            return tp
        for py_type, name in PYTHON_TYPES.items():
            if tp is py_type:
                return name
    return tp


def is_primitive(tp: Any) -> bool:
    tp = normalize_type(tp)
    return (isinstance(tp, str) and tp in PRIMITIVE_TYPES) or (
        isinstance(tp, type) and issubclass(tp, Enum)
    )


def cast(raw: Any, tp: Any) -> Any:
    """Cast `raw` to type `tp`, returning None on any failure."""
    if raw is None:
        return None
    tp = normalize_type(tp)
    try:
        if isinstance(tp, type) and issubclass(tp, Enum):
            return _cast_enum(raw, tp)
        caster = _CASTERS.get(tp)
        if caster is None:
            logger.debug("No caster for type %r", tp)
            return None
        return caster(raw)
    except (ValidationError, ValueError, TypeError, ArithmeticError, RecursionError):
        return None


def dump(value: Any, tp: Any) -> Optional[str]:
    """Canonical string form of `value`; `cast(dump(v, T), T) == v`."""
    if value is None:
        return None
    tp = normalize_type(tp)
    if isinstance(tp, type) and issubclass(tp, Enum):
        return str(value.value) if isinstance(value, Enum) else str(value)
    if tp == "boolean":
        return "true" if value else "false"
    if tp in ("date", "time", "naive_datetime", "utc_datetime"):
        return value.isoformat()
    if tp in ("map", "list", "json"):
        return json.dumps(to_jsonable_python(value), separators=(",", ":"))
    if tp == "binary":
        return base64.urlsafe_b64encode(value).decode("ascii")
    return to_scalar_str(value)


def to_scalar_str(value: Any) -> str:
    """Render a leaf value the way it appears in a query string."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (date, time)):
        return value.isoformat()
    return str(value)


def to_plain(value: Any) -> Any:
    """Recursively convert models, dataclasses, enums and dates into JSON-compatible data."""
    return to_jsonable_python(value, fallback=str)


# -- casters ---------------------------------------------------------------

def _cast_string(val):
    if isinstance(val, str):
        return val
    if isinstance(val, bool):
        return "true" if val else "false"
    if isinstance(val, (int, float, Decimal)):
        return str(val)
    return None


def _cast_integer(val):
    if isinstance(val, bool):
        return None
    if isinstance(val, int):
        return val
    if isinstance(val, str) and _INTEGER_RE.match(val):
        return int(val)
    return None


def _cast_float(val):
    if isinstance(val, bool):
        return None
    if isinstance(val, (int, float)):
        return float(val)
    if isinstance(val, str) and _FLOAT_RE.match(val):
        return float(val)
    return None


def _cast_boolean(val):
    if isinstance(val, bool):
        return val
    return {"true": True, "false": False, "1": True, "0": False}.get(val) if isinstance(val, str) else None


def _cast_date(val):
    if isinstance(val, datetime):
        return val.date()
    return _date_adapter.validate_python(val)


def _cast_time(val):
    return _time_adapter.validate_python(val)


def _cast_naive_datetime(val):
    return _datetime_adapter.validate_python(val).replace(tzinfo=None)


def _cast_utc_datetime(val):
    parsed = _datetime_adapter.validate_python(val)
    if parsed.tzinfo is None:
        return None
    return parsed.astimezone(timezone.utc)


def _cast_decimal(val):
    if isinstance(val, (bool, float)):
        return None
    parsed = _decimal_adapter.validate_python(val)
    return parsed if parsed.is_finite() else None


def _cast_uuid(val):
    if isinstance(val, UUID):
        return str(val)
    if not isinstance(val, str):
        return None
    return str(_uuid_adapter.validate_python(val))


def _decode_json(val):
    if isinstance(val, (bytes, bytearray)):
        val = val.decode("utf-8")
    if isinstance(val, str):
        return json.loads(val)
    return val


def _cast_map(val):
    decoded = _decode_json(val)
    return decoded if isinstance(decoded, dict) else None


def _cast_list(val):
    decoded = _decode_json(val)
    return decoded if isinstance(decoded, list) else None


def _cast_json(val):
    decoded = _decode_json(val)
    return decoded if isinstance(decoded, (dict, list, str, int, float, bool)) else None


def _cast_binary(val):
    if isinstance(val, bytes):
        return val
    if isinstance(val, str):
        return base64.urlsafe_b64decode(val.encode("ascii"))
    return None


def _cast_atom(val):
    return atoms.lookup(val)


def _cast_enum(val, enum_cls):
    if isinstance(val, enum_cls):
        return val
    if not isinstance(val, str):
        val = to_scalar_str(val)
    for member in enum_cls:
        if str(member.value) == val:
            return member
    return enum_cls.__members__.get(val)


_CASTERS = {
    "string": _cast_string,
    "integer": _cast_integer,
    "float": _cast_float,
    "boolean": _cast_boolean,
    "date": _cast_date,
    "time": _cast_time,
    "naive_datetime": _cast_naive_datetime,
    "utc_datetime": _cast_utc_datetime,
    "decimal": _cast_decimal,
    "uuid": _cast_uuid,
    "map": _cast_map,
    "list": _cast_list,
    "json": _cast_json,
    "binary": _cast_binary,
    "atom": _cast_atom,
}
