"""Database handle marshalling every call through one execution pipeline.

The :class:`Database` lazily owns a single DB-API connection, enlists commands in
its active transaction, retries statements that fail with a transient error
(outside transactions only) and maps result rows to objects or records.

Typical usage::

    with Database.create("main") as db:
        row = db.insert("Customers", {"Name": "Ada", "Created": SqlLiteral("CURRENT_TIMESTAMP")})
        db.update("Customers", {"Id": row.Id}, {"Name": "Ada L."})
        with db.transaction():
            db.delete("Orders", {"CustomerId": row.Id})
            db.delete("Customers", {"Id": row.Id})
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from types import TracebackType
from typing import Any, Protocol, TypeVar

from .command import Command
from .config import DatabaseSettings
from .drivers import Driver, SupportsCursor, SupportsCursorClose, resolve_driver
from .exceptions import ArgumentError, InvalidOperationError
from .mapping import Record, Row, RowLoader, convert_value, load_object
from .retry import RetryPolicy, run_with_retry
from .statements import StatementBuilder
from .transaction import Transaction
from .utils.logging import StructuredLogger, get_logger

__all__ = ["Database", "SupportsDatabase"]

T = TypeVar("T")
RowHandler = Callable[[Row], bool]


class SupportsDatabase(Protocol):
    """Anything that can hand out the database handle it works with."""

    @property
    def database(self) -> "Database":  # pragma: no cover - runtime duck typing
        ...


class Database:
    """Façade owning one connection, a retry count and the active transaction.

    Parameters
    ----------
    connection_string:
        Driver connection string (``sqlite:///app.db``, ``postgresql://...``,
        ``mssql://...``).
    driver:
        Driver used to open connections and classify failures. Resolved from the
        connection string backend when omitted.
    retry_policy:
        Statement retry configuration; ``retries`` seeds :attr:`retries_on_deadlock`.
    bracket_literals, key_column:
        Forwarded to the :class:`~sqlmarshal.statements.StatementBuilder`.
    """

    def __init__(
        self,
        connection_string: str,
        driver: Driver | None = None,
        *,
        retry_policy: RetryPolicy | None = None,
        bracket_literals: bool = True,
        key_column: str = "id",
        logger: StructuredLogger | None = None,
    ) -> None:
        if not connection_string or not connection_string.strip():
            raise ArgumentError("connection_string")
        self._connection_string: str | None = connection_string
        self.driver = driver or resolve_driver(connection_string)
        self._retry_policy = retry_policy or RetryPolicy()
        self._retries_on_deadlock = self._retry_policy.retries
        self.statements = StatementBuilder(self.driver.dialect, bracket_literals=bracket_literals, key_column=key_column)
        self._logger = logger or get_logger(__name__)
        self._connection: SupportsCursor | None = None
        self._transaction: Transaction | None = None

    @classmethod
    def create(cls, name: str, settings: DatabaseSettings | None = None) -> "Database":
        """Create a handle for the connection string registered as *name*.

        Raises :class:`~sqlmarshal.exceptions.ConfigurationError` when the name is
        unknown.
        """

        settings = settings or DatabaseSettings()
        connection_string = settings.connection_string(name)
        return cls(
            connection_string,
            resolve_driver(connection_string, settings),
            retry_policy=settings.retry,
            bracket_literals=settings.bracket_literals,
            key_column=settings.key_column,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    @property
    def connection_string(self) -> str | None:
        return self._connection_string

    @property
    def connection(self) -> SupportsCursor:
        """The handle's connection, opened on first access."""

        if self._connection is None:
            if self._connection_string is None:
                raise ArgumentError("connection_string", "The database handle has been closed.")
            self._connection = self.driver.connect(self._connection_string)
            self._logger.debug("Connection opened", backend=self.driver.dialect.name)
        return self._connection

    @property
    def active_transaction(self) -> Transaction | None:
        """The active transaction, if any."""

        return self._transaction

    @property
    def database(self) -> "Database":
        return self

    @property
    def retries_on_deadlock(self) -> int:
        """Times a statement is re-run after a transient failure outside a transaction."""

        return self._retries_on_deadlock

    @retries_on_deadlock.setter
    def retries_on_deadlock(self, value: int) -> None:
        if value < 0:
            raise ArgumentError("retries_on_deadlock", "retries_on_deadlock must be zero or greater")
        self._retries_on_deadlock = value

    def reset_connection(self) -> None:
        """Close the connection so the next access opens a fresh one."""

        if self._transaction is not None:
            raise InvalidOperationError("Cannot reset the connection while a transaction is pending.")
        self._close_connection()

    def close(self) -> None:
        """Close the connection and make the handle unusable. Safe to call twice."""

        try:
            if self._transaction is not None and self._transaction.is_active:
                self._transaction.rollback()
        finally:
            self._transaction = None
            self._connection_string = None
            self._close_connection()

    def __enter__(self) -> "Database":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _close_connection(self) -> None:
        connection, self._connection = self._connection, None
        if connection is not None:
            self.driver.close(connection)
            self._logger.debug("Connection closed", backend=self.driver.dialect.name)

    # ------------------------------------------------------------------
    # Transactions
    def begin_transaction(self) -> Transaction:
        """Start a transaction on the handle's connection.

        Use the result as a context manager; it rolls back unless committed.
        """

        if self._transaction is not None:
            raise InvalidOperationError("A transaction is already active for this database.")
        self._transaction = Transaction(self, self.connection)
        return self._transaction

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Run the block in a transaction committed on success, rolled back on error."""

        with self.begin_transaction() as tx:
            yield tx
            if tx.is_active:
                tx.commit()

    def _release_transaction(self, transaction: Transaction) -> None:
        if self._transaction is transaction:
            self._transaction = None

    # ------------------------------------------------------------------
    # Execution pipeline
    def execute_command(self, cmd: Command, action: Callable[[Any], T]) -> T:
        """Execute *cmd* and hand the open cursor to *action*.

        Every database call goes through here. The command is bound to the
        handle's connection and active transaction unless the caller set its
        own, and both are detached again afterwards. A statement failing with a
        transient error is re-run, *action* included, up to
        :attr:`retries_on_deadlock` times when no transaction is involved. A
        single statement inside a transaction is never retried; retry the whole
        transaction instead.
        """

        if cmd is None:
            raise ArgumentError("cmd")
        assigned_connection = cmd.connection is None
        assigned_transaction = cmd.transaction is None
        if assigned_connection:
            cmd.connection = self.connection
        if assigned_transaction:
            cmd.transaction = self._transaction

        def should_retry(error: BaseException) -> bool:
            return cmd.transaction is None and self.driver.is_transient(error)

        def attempt() -> T:
            cursor = cmd.connection.cursor()
            try:
                if cmd.parameters:
                    cursor.execute(cmd.text, cmd.parameters)
                else:
                    cursor.execute(cmd.text)
                return action(cursor)
            finally:
                if isinstance(cursor, SupportsCursorClose):
                    cursor.close()

        try:
            if self._logger.isEnabledFor(logging.DEBUG):
                self._logger.debug(
                    "Executing command",
                    sql=cmd.text,
                    parameters=list(cmd.parameters),
                    command_type=cmd.command_type.value,
                    in_transaction=cmd.transaction is not None,
                )
            retrying = self._retry_policy.build(
                should_retry=should_retry,
                logger=self._logger,
                retries=self._retries_on_deadlock,
            )
            return run_with_retry(retrying, attempt)
        finally:
            if assigned_connection:
                cmd.connection = None
            if assigned_transaction:
                cmd.transaction = None

    def _command(self, cmd: Command | str, parameters: object = None) -> Command:
        if isinstance(cmd, Command):
            return cmd
        return self.statements.stored_procedure(cmd, parameters)

    def execute_non_query(self, cmd: Command | str, parameters: object = None) -> int:
        """Execute a statement and return the number of affected rows.

        A string is taken as a stored procedure name called with *parameters*;
        the same holds for every other ``execute_*`` and ``get_*`` method.
        """

        return self.execute_command(self._command(cmd, parameters), lambda cursor: int(cursor.rowcount))

    def execute_scalar(self, cmd: Command | str, parameters: object = None, default: Any = None) -> Any:
        """Return the first column of the first row, or *default* when empty or null."""

        def _scalar(cursor: Any) -> Any:
            row = next(_iter_rows(cursor), None)
            return None if row is None or len(row) == 0 else row[0]

        result = self.execute_command(self._command(cmd, parameters), _scalar)
        return default if result is None else result

    def execute_scalar_as(
        self,
        cmd: Command | str,
        as_type: Any,
        parameters: object = None,
        default: Any = None,
    ) -> Any:
        """Like :meth:`execute_scalar`, converting a non-null result to *as_type*."""

        result = self.execute_scalar(cmd, parameters)
        if result is None:
            return default
        return convert_value(result, as_type)

    def execute_reader(self, cmd: Command | str, process_row: RowHandler, parameters: object = None) -> None:
        """Call *process_row* for each row in order until it returns ``False``."""

        def _read(cursor: Any) -> None:
            for row in _iter_rows(cursor):
                if not process_row(row):
                    return

        self.execute_command(self._command(cmd, parameters), _read)

    # ------------------------------------------------------------------
    # Insert / update / delete
    def insert(self, table: str, values: object) -> Record | None:
        """Insert *values* into *table* and return the inserted row."""

        return self.get_record(self.statements.insert(table, values))

    def update(self, table: str, key: object, values: object) -> int:
        """Update the rows of *table* matching *key*; a ``None`` key updates all rows."""

        return self.execute_non_query(self.statements.update(table, key, values))

    def delete(self, table: str, key: object) -> int:
        """Delete the rows of *table* matching *key*; a ``None`` key deletes all rows."""

        return self.execute_non_query(self.statements.delete(table, key))

    # ------------------------------------------------------------------
    # Typed objects
    def get_object(
        self,
        cmd: Command | str,
        target: type[T],
        parameters: object = None,
        load: RowLoader[T] | None = None,
    ) -> T | None:
        """Return the first row as a *target* instance, or ``None`` for no rows.

        Without *load* the object is filled from the columns matching its fields;
        a *load* callable replaces that and receives the raw :class:`Row`.
        """

        loader = load or (lambda row: load_object(row, target))

        def _first(cursor: Any) -> T | None:
            row = next(_iter_rows(cursor), None)
            return None if row is None else loader(row)

        return self.execute_command(self._command(cmd, parameters), _first)

    def get_objects(
        self,
        cmd: Command | str,
        target: type[T],
        parameters: object = None,
        load: RowLoader[T | None] | None = None,
    ) -> list[T]:
        """Return every row as a *target* instance; ``None`` results of *load* are skipped."""

        loader = load or (lambda row: load_object(row, target))

        def _all(cursor: Any) -> list[T]:
            loaded = (loader(row) for row in _iter_rows(cursor))
            return [obj for obj in loaded if obj is not None]

        return self.execute_command(self._command(cmd, parameters), _all)

    # ------------------------------------------------------------------
    # Records
    def get_record(self, cmd: Command | str, parameters: object = None) -> Record | None:
        """Return the first row as a :class:`Record`, or ``None`` for no rows."""

        def _first(cursor: Any) -> Record | None:
            row = next(_iter_rows(cursor), None)
            return None if row is None else row.to_record()

        return self.execute_command(self._command(cmd, parameters), _first)

    def get_records(self, cmd: Command | str, parameters: object = None) -> list[Record]:
        """Return every row as a :class:`Record`; database nulls become ``None``."""

        return self.execute_command(
            self._command(cmd, parameters),
            lambda cursor: [row.to_record() for row in _iter_rows(cursor)],
        )


def _iter_rows(cursor: Any) -> Iterator[Row]:
    """Yield the cursor's rows one at a time; nothing when it produced no result set."""

    if cursor.description is None:
        return
    names = [column[0] for column in cursor.description]
    while True:
        values = cursor.fetchone()
        if values is None:
            return
        yield Row(names, values)
