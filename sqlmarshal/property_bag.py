"""Conversion of arbitrary input values into ordered field/value mappings."""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel

__all__ = ["PropertyBag", "SqlLiteral", "literal_text", "to_property_bag"]

PropertyBag = dict[str, Any]

_SCALAR_TYPES = (str, bytes, bytearray, memoryview, int, float, bool, Decimal, date, datetime, time, UUID)

_LITERAL_OPEN = "[["
_LITERAL_CLOSE = "]]"


class SqlLiteral(str):
    """Raw SQL fragment that is inlined into a statement instead of bound.

    ``SqlLiteral("CURRENT_TIMESTAMP")`` lets callers use expressions that cannot
    be passed as parameters. The text is copied verbatim into the SQL, so it
    must never carry untrusted input.
    """

    __slots__ = ()

    def __repr__(self) -> str:
        return f"SqlLiteral({str.__repr__(self)})"


def literal_text(value: Any, *, bracket_literals: bool = True) -> str | None:
    """Return the SQL text to inline for *value*, or ``None`` when it must be bound.

    Besides :class:`SqlLiteral`, a plain string written as ``[[expression]]`` is
    treated as a literal when *bracket_literals* is enabled.
    """

    if isinstance(value, SqlLiteral):
        return str(value)
    if not bracket_literals or not isinstance(value, str):
        return None
    if len(value) < len(_LITERAL_OPEN) + len(_LITERAL_CLOSE):
        return None
    if value.startswith(_LITERAL_OPEN) and value.endswith(_LITERAL_CLOSE):
        return value[len(_LITERAL_OPEN) : -len(_LITERAL_CLOSE)]
    return None


def to_property_bag(value: Any, *, scalar_name: str = "value") -> PropertyBag:
    """Convert *value* into an ordered ``{field: value}`` mapping.

    Mappings, pydantic models, dataclass instances, named tuples and plain
    objects (public instance attributes) are supported. A single scalar is
    stored under *scalar_name*. ``None`` yields an empty bag.
    """

    if value is None:
        return {}
    if isinstance(value, Mapping):
        return {str(key): item for key, item in value.items()}
    if isinstance(value, _SCALAR_TYPES):
        return {scalar_name: value}
    if isinstance(value, BaseModel):
        return {name: getattr(value, name) for name in type(value).model_fields}
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {field.name: getattr(value, field.name) for field in dataclasses.fields(value)}
    as_dict = getattr(value, "_asdict", None)
    if isinstance(value, tuple) and callable(as_dict):
        return dict(as_dict())
    attributes = getattr(value, "__dict__", None)
    if attributes is not None:
        return {name: item for name, item in vars(value).items() if not name.startswith("_")}
    return {scalar_name: value}
