"""Mapping of result rows onto typed objects and loosely typed records."""

from __future__ import annotations

import dataclasses
import typing
from collections.abc import Sequence
from functools import lru_cache
from typing import Any, Callable, TypeVar, overload

from pydantic import BaseModel, TypeAdapter

__all__ = ["Record", "Row", "RowLoader", "convert_value", "load_object"]

T = TypeVar("T")


class Row(Sequence[Any]):
    """One result row exposing values by position and by column name."""

    __slots__ = ("_names", "_values")

    def __init__(self, names: Sequence[str], values: Sequence[Any]) -> None:
        self._names = tuple(names)
        self._values = tuple(values)

    @property
    def names(self) -> tuple[str, ...]:
        return self._names

    @property
    def values(self) -> tuple[Any, ...]:
        return self._values

    def name(self, index: int) -> str:
        return self._names[index]

    @overload
    def __getitem__(self, key: int) -> Any: ...

    @overload
    def __getitem__(self, key: slice) -> tuple[Any, ...]: ...

    def __getitem__(self, key: Any) -> Any:
        if isinstance(key, str):
            try:
                return self._values[self._names.index(key)]
            except ValueError:
                raise KeyError(key) from None
        return self._values[key]

    def __len__(self) -> int:
        return len(self._values)

    def get(self, name: str, default: Any = None) -> Any:
        try:
            return self[name]
        except KeyError:
            return default

    def to_record(self) -> "Record":
        record = Record()
        for name, value in zip(self._names, self._values):
            record[name] = value
        return record

    def __repr__(self) -> str:
        fields = ", ".join(f"{name}={value!r}" for name, value in zip(self._names, self._values))
        return f"Row({fields})"


class Record(dict[str, Any]):
    """Ordered column/value mapping that also allows attribute access."""

    __slots__ = ()

    def __getattr__(self, name: str) -> Any:
        try:
            return self[name]
        except KeyError:
            raise AttributeError(name) from None


RowLoader = Callable[[Row], T]


@lru_cache(maxsize=256)
def _adapter(target: Any) -> TypeAdapter[Any]:
    return TypeAdapter(target)


def convert_value(value: Any, target: Any) -> Any:
    """Convert a column value to *target* using pydantic's lax coercion."""

    if value is None or target is Any:
        return value
    return _adapter(target).validate_python(value)


@lru_cache(maxsize=256)
def _settable_fields(target: type) -> dict[str, tuple[str, Any]]:
    if issubclass(target, BaseModel):
        fields = {name: info.annotation for name, info in target.model_fields.items()}
    elif dataclasses.is_dataclass(target):
        hints = typing.get_type_hints(target)
        fields = {field.name: hints.get(field.name, Any) for field in dataclasses.fields(target) if field.init}
    else:
        fields = {
            name: hint
            for name, hint in typing.get_type_hints(target).items()
            if not name.startswith("_") and typing.get_origin(hint) is not typing.ClassVar
        }
    return {name.lower(): (name, annotation) for name, annotation in fields.items()}


def load_object(row: Row, target: type[T]) -> T:
    """Create a *target* instance from the columns whose names match its fields.

    Matching ignores case. Unmatched columns are skipped and unmatched fields keep
    their defaults. Pydantic models and dataclasses are constructed from the
    matched values; other classes are created without arguments and have the
    values assigned as attributes.
    """

    fields = _settable_fields(target)
    matched: dict[str, tuple[Any, Any]] = {}
    for name, value in zip(row.names, row.values):
        if not name:
            continue
        found = fields.get(name.lower())
        if found is not None:
            matched[found[0]] = (value, found[1])

    if issubclass(target, BaseModel):
        return target.model_validate({name: value for name, (value, _) in matched.items()})
    converted = {name: convert_value(value, annotation) for name, (value, annotation) in matched.items()}
    if dataclasses.is_dataclass(target):
        return target(**converted)
    obj = target()
    for name, value in converted.items():
        setattr(obj, name, value)
    return obj
