"""SQL dialect differences the statement builder and drivers care about."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from .exceptions import InvalidOperationError

__all__ = ["Dialect", "POSTGRESQL", "SQLITE", "SQLSERVER", "dialect_for_backend"]


@dataclass(frozen=True, slots=True)
class Dialect:
    """Rendering rules for one database engine.

    ``paramstyle`` follows DB-API naming: ``named`` renders ``:name`` and
    ``pyformat`` renders ``%(name)s``. With ``escape_percent`` the driver reads
    ``%%`` as a literal percent sign whenever parameters are passed.
    """

    name: str
    paramstyle: Literal["named", "pyformat"]
    insert_returning: Literal["output", "returning"]
    begin_statement: str
    commit_statement: str
    rollback_statement: str
    procedure_call: Literal["exec", "select", "unsupported"]
    escape_percent: bool = False

    def placeholder(self, name: str) -> str:
        if self.paramstyle == "named":
            return f":{name}"
        return f"%({name})s"

    def procedure_text(self, procedure: str, bindings: list[tuple[str, str]]) -> str:
        """Render a stored procedure call; *bindings* pairs argument names with placeholders."""

        if self.procedure_call == "exec":
            arguments = ", ".join(f"@{name} = {placeholder}" for name, placeholder in bindings)
            return f"EXEC {procedure} {arguments}".rstrip()
        if self.procedure_call == "select":
            arguments = ", ".join(f"{name} => {placeholder}" for name, placeholder in bindings)
            return f"SELECT * FROM {procedure}({arguments})"
        raise InvalidOperationError(f"{self.name} does not support stored procedures")


SQLITE = Dialect(
    name="sqlite",
    paramstyle="named",
    insert_returning="returning",
    begin_statement="BEGIN",
    commit_statement="COMMIT",
    rollback_statement="ROLLBACK",
    procedure_call="unsupported",
)

POSTGRESQL = Dialect(
    name="postgresql",
    paramstyle="pyformat",
    insert_returning="returning",
    begin_statement="BEGIN",
    commit_statement="COMMIT",
    rollback_statement="ROLLBACK",
    procedure_call="select",
    escape_percent=True,
)

SQLSERVER = Dialect(
    name="mssql",
    paramstyle="pyformat",
    insert_returning="output",
    begin_statement="BEGIN TRANSACTION",
    commit_statement="COMMIT TRANSACTION",
    rollback_statement="ROLLBACK TRANSACTION",
    procedure_call="exec",
)

_BY_BACKEND = {dialect.name: dialect for dialect in (SQLITE, POSTGRESQL, SQLSERVER)}


def dialect_for_backend(backend: str) -> Dialect:
    """Return the dialect registered for a SQLAlchemy backend name."""

    try:
        return _BY_BACKEND[backend]
    except KeyError:
        raise InvalidOperationError(f"Unsupported database backend '{backend}'") from None
