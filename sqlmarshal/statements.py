"""Construction of parameterized INSERT / UPDATE / DELETE and procedure commands.

Table and column names are copied into the SQL text as given; only values are
parameterized. Callers must never pass untrusted input as an identifier.
"""

from __future__ import annotations

from typing import Any

from .command import Command, CommandType
from .dialects import Dialect
from .exceptions import ArgumentError
from .property_bag import literal_text, to_property_bag

__all__ = ["StatementBuilder"]


class StatementBuilder:
    """Build :class:`~sqlmarshal.command.Command` objects for one dialect.

    Parameters
    ----------
    dialect:
        Placeholder and returning-clause rules of the target engine.
    bracket_literals:
        Inline string values written as ``[[expression]]``. :class:`SqlLiteral`
        values are always inlined.
    key_column:
        Column used when a scalar is passed as the key of an update or delete.
    """

    def __init__(self, dialect: Dialect, *, bracket_literals: bool = True, key_column: str = "id") -> None:
        self.dialect = dialect
        self.bracket_literals = bracket_literals
        self.key_column = key_column

    def insert(self, table: str, values: object) -> Command:
        """Return a command inserting *values* and selecting the inserted row."""

        _require_name("table", table)
        bag = to_property_bag(values)
        if not bag:
            raise ArgumentError("values", "At least one value is required for an insert")

        cmd = Command("")
        escape = self._escape_literals(bag)
        columns = ", ".join(bag)
        expressions = ", ".join(self._value_expression(cmd, name, value, escape) for name, value in bag.items())

        lines = [f"INSERT INTO {table} ({columns})"]
        if self.dialect.insert_returning == "output":
            lines.append("\tOUTPUT INSERTED.*")
            lines.append(f"\tVALUES ({expressions});")
        else:
            lines.append(f"\tVALUES ({expressions})")
            lines.append("\tRETURNING *;")
        cmd.text = "\n".join(lines) + "\n"
        return cmd

    def update(self, table: str, key: object, values: object) -> Command:
        """Return a command assigning *values* to the rows matching *key*.

        A ``None`` key updates every row of the table.
        """

        _require_name("table", table)
        bag = to_property_bag(values)
        if not bag:
            raise ArgumentError("values", "At least one value is required for an update")

        key_bag = self._key_bag(key)
        cmd = Command("")
        escape = self._escape_literals(bag, key_bag)
        assignments = [f"\t\t{name} = {self._value_expression(cmd, name, value, escape)}" for name, value in bag.items()]
        lines = [f"UPDATE {table} SET", ",\n".join(assignments)]
        criteria = self._criteria(cmd, key_bag, escape)
        if criteria is not None:
            lines.append(criteria)
        cmd.text = "\n".join(lines) + "\n"
        return cmd

    def delete(self, table: str, key: object) -> Command:
        """Return a command deleting the rows matching *key*.

        A ``None`` key deletes every row of the table.
        """

        _require_name("table", table)
        key_bag = self._key_bag(key)
        cmd = Command("")
        lines = [f"DELETE FROM {table}"]
        criteria = self._criteria(cmd, key_bag, self._escape_literals(key_bag))
        if criteria is not None:
            lines.append(criteria)
        cmd.text = "\n".join(lines) + "\n"
        return cmd

    def stored_procedure(self, name: str, parameters: object = None) -> Command:
        """Return a command calling procedure *name*; every parameter is bound."""

        _require_name("name", name)
        cmd = Command("", command_type=CommandType.STORED_PROCEDURE)
        bindings = []
        for field, value in to_property_bag(parameters).items():
            bound = cmd.add_parameter(field, value)
            bindings.append((field, self.dialect.placeholder(bound)))
        cmd.text = self.dialect.procedure_text(name, bindings)
        return cmd

    def _key_bag(self, key: object) -> dict[str, Any]:
        return to_property_bag(key, scalar_name=self.key_column)

    def _escape_literals(self, *bags: dict[str, Any]) -> bool:
        """Whether inlined literals need ``%`` doubled: only when something gets bound."""

        if not self.dialect.escape_percent:
            return False
        return any(
            literal_text(value, bracket_literals=self.bracket_literals) is None
            for bag in bags
            for value in bag.values()
        )

    def _criteria(self, cmd: Command, bag: dict[str, Any], escape: bool) -> str | None:
        if not bag:
            return None
        conditions = [f"{name} = {self._value_expression(cmd, name, value, escape)}" for name, value in bag.items()]
        return "\tWHERE " + "\n\t\tAND ".join(conditions)

    def _value_expression(self, cmd: Command, name: str, value: Any, escape: bool) -> str:
        literal = literal_text(value, bracket_literals=self.bracket_literals)
        if literal is not None:
            return literal.replace("%", "%%") if escape else literal
        return self.dialect.placeholder(cmd.add_parameter(name, value))


def _require_name(argument: str, value: str) -> None:
    if not value or not value.strip():
        raise ArgumentError(argument)
