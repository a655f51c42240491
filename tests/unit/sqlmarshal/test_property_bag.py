"""Tests for converting arbitrary inputs into property bags."""

from __future__ import annotations

from collections import namedtuple
from dataclasses import dataclass
from datetime import date

import pytest
from pydantic import BaseModel

from sqlmarshal.property_bag import SqlLiteral, literal_text, to_property_bag


@dataclass
class Customer:
    Id: int
    Name: str


class CustomerModel(BaseModel):
    Name: str
    Active: bool = True


class PlainCustomer:
    def __init__(self) -> None:
        self.Name = "Ada"
        self.Age = 36
        self._cache = object()


def test_mapping_preserves_order_and_stringifies_keys() -> None:
    bag = to_property_bag({"B": 2, "A": 1, 3: "x"})

    assert list(bag) == ["B", "A", "3"]
    assert bag["3"] == "x"


def test_structured_values_become_bags() -> None:
    Point = namedtuple("Point", ["X", "Y"])

    assert to_property_bag(Customer(1, "Ada")) == {"Id": 1, "Name": "Ada"}
    assert to_property_bag(CustomerModel(Name="Ada")) == {"Name": "Ada", "Active": True}
    assert to_property_bag(Point(1, 2)) == {"X": 1, "Y": 2}


def test_plain_objects_expose_public_attributes_only() -> None:
    assert to_property_bag(PlainCustomer()) == {"Name": "Ada", "Age": 36}


@pytest.mark.parametrize("value", [5, "abc", date(2024, 1, 2), b"\x00"])
def test_scalars_are_stored_under_the_scalar_name(value: object) -> None:
    assert to_property_bag(value, scalar_name="Id") == {"Id": value}


def test_none_yields_empty_bag() -> None:
    assert to_property_bag(None) == {}


def test_literal_text_recognizes_wrapper_and_bracket_strings() -> None:
    assert literal_text(SqlLiteral("GETDATE()")) == "GETDATE()"
    assert literal_text("[[GETDATE()]]") == "GETDATE()"
    assert literal_text("[[]]") == ""


@pytest.mark.parametrize("value", ["GETDATE()", "[[open", "close]]", "[x]", 42, None])
def test_literal_text_binds_everything_else(value: object) -> None:
    assert literal_text(value) is None


def test_bracket_literals_can_be_disabled() -> None:
    assert literal_text("[[GETDATE()]]", bracket_literals=False) is None
    assert literal_text(SqlLiteral("GETDATE()"), bracket_literals=False) == "GETDATE()"
