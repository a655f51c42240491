"""Fake DB-API objects shared by the sqlmarshal unit tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

import pytest

from sqlmarshal.dialects import SQLSERVER
from sqlmarshal.drivers import Driver


@dataclass
class FakeResult:
    """Canned outcome of one ``cursor.execute`` call."""

    columns: tuple[str, ...] = ()
    rows: list[tuple[Any, ...]] = field(default_factory=list)
    rowcount: int = -1


class FakeDeadlock(Exception):
    """Stand-in for a driver error carrying a deadlock error number."""

    def __init__(self, number: int = 1205) -> None:
        super().__init__(number, "Transaction was deadlocked")
        self.number = number


class FakeCursor:
    """Replay results queued on the connection and record executed statements."""

    def __init__(self, connection: "FakeConnection") -> None:
        self.connection = connection
        self.description: list[tuple[Any, ...]] | None = None
        self.rowcount = -1
        self.closed = False
        self._rows: list[tuple[Any, ...]] = []

    def execute(self, query: str, params: object = None) -> None:
        self.connection.executed.append((query, params))
        if self.connection.failures:
            raise self.connection.failures.pop(0)
        result = self.connection.results.pop(0) if self.connection.results else FakeResult()
        self.description = [(name, None, None, None, None, None, None) for name in result.columns] or None
        self._rows = list(result.rows)
        self.rowcount = result.rowcount

    def fetchone(self) -> tuple[Any, ...] | None:
        self.connection.fetched += 1
        if not self._rows:
            return None
        row = self._rows.pop(0)
        if isinstance(row, BaseException):
            raise row
        return row

    def close(self) -> None:
        self.closed = True


class FakeConnection:
    """Tiny stub mimicking the DB-API connection surface."""

    def __init__(self) -> None:
        self.executed: list[tuple[str, object]] = []
        self.results: list[FakeResult] = []
        self.failures: list[BaseException] = []
        self.events: list[str] = []
        self.cursors: list[FakeCursor] = []
        self.fetched = 0
        self.closed = False

    def cursor(self) -> FakeCursor:
        cursor = FakeCursor(self)
        self.cursors.append(cursor)
        return cursor

    def close(self) -> None:
        self.closed = True


class FakeDriver(Driver):
    """Driver handing out :class:`FakeConnection` objects and recording transaction verbs."""

    dialect = SQLSERVER

    def __init__(self) -> None:
        self.connections: list[FakeConnection] = []
        self.connection_strings: list[str] = []

    def connect(self, connection_string: str) -> FakeConnection:
        connection = FakeConnection()
        self.connections.append(connection)
        self.connection_strings.append(connection_string)
        return connection

    def begin(self, connection: FakeConnection) -> None:
        connection.events.append("begin")

    def commit(self, connection: FakeConnection) -> None:
        connection.events.append("commit")

    def rollback(self, connection: FakeConnection) -> None:
        connection.events.append("rollback")

    def is_transient(self, error: BaseException) -> bool:
        return super().is_transient(error) or getattr(error, "number", None) == 1205


@pytest.fixture()
def fake_driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture()
def make_result() -> Callable[..., FakeResult]:
    def _make(columns: tuple[str, ...] = (), rows: list[tuple[Any, ...]] | None = None, rowcount: int = -1) -> FakeResult:
        return FakeResult(columns=columns, rows=list(rows or []), rowcount=rowcount)

    return _make


@pytest.fixture()
def deadlock() -> Callable[[], FakeDeadlock]:
    return FakeDeadlock
