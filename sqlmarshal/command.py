"""Command objects carrying SQL text and its named parameter bindings."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from .property_bag import to_property_bag

if TYPE_CHECKING:
    from .transaction import Transaction

__all__ = ["Command", "CommandType"]


class CommandType(str, Enum):
    TEXT = "text"
    STORED_PROCEDURE = "stored_procedure"


@dataclass(slots=True)
class Command:
    """A single statement ready to be handed to the execution pipeline.

    ``connection`` and ``transaction`` are normally left empty; the database
    handle binds its own for the duration of one execution. Callers managing
    their own transaction may set both up front and they are left untouched.
    """

    text: str
    parameters: dict[str, Any] = field(default_factory=dict)
    command_type: CommandType = CommandType.TEXT
    connection: Any = None
    transaction: Transaction | None = None

    @classmethod
    def from_sql(cls, text: str, parameters: object = None) -> "Command":
        """Build a text command binding every field of *parameters* by name."""

        return cls(text, to_property_bag(parameters))

    def add_parameter(self, name: str, value: Any) -> str:
        """Bind *value* and return the name it was bound under.

        A name already in use gets a numeric suffix so an update that assigns
        and filters on the same column keeps both values.
        """

        unique = name
        suffix = 1
        while unique in self.parameters:
            unique = f"{name}_{suffix}"
            suffix += 1
        self.parameters[unique] = value
        return unique

    def debug_text(self) -> str:
        """Return the statement text followed by its parameter values.

        Values are shown as given, so keep the result out of shared logs.
        """

        if not self.parameters:
            return self.text
        bindings = "\n".join(f"-- {name} = {value!r}" for name, value in self.parameters.items())
        return f"{self.text.rstrip()}\n{bindings}"
