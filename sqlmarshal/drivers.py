"""Driver capability interface and the native DB-API drivers.

A driver knows how to open a connection for a connection string, how to start
and finish a transaction on it, and which of its errors are transient. Every
connection a driver hands out runs in autocommit mode; explicit transactions are
opened with the dialect's ``BEGIN`` statement so that statements issued outside
a transaction are committed as they complete.
"""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from sqlalchemy.engine import make_url

from .config import PostgresTLSConfig
from .dialects import POSTGRESQL, SQLITE, SQLSERVER, Dialect
from .exceptions import InvalidOperationError, RetryableDatabaseError
from .postgres import create_postgres_connection

if TYPE_CHECKING:
    from .config import DatabaseSettings

__all__ = [
    "Driver",
    "PostgresDriver",
    "SqlServerDriver",
    "SqliteDriver",
    "SupportsCursor",
    "backend_name",
    "native_driver",
    "resolve_driver",
]


class SupportsCursor(Protocol):
    """Minimum surface of a DB-API connection used by the pipeline."""

    def cursor(self) -> Any:  # pragma: no cover - runtime duck typing
        """Return a cursor object."""

    def close(self) -> None:  # pragma: no cover - runtime duck typing
        """Close the connection and release the underlying resources."""


@runtime_checkable
class SupportsCursorClose(Protocol):
    """Protocol for cursor objects that can be closed."""

    def close(self) -> None:  # pragma: no cover - runtime duck typing
        """Close the cursor."""


class Driver:
    """Base driver; subclasses provide :meth:`connect` and failure classification."""

    dialect: Dialect = SQLSERVER

    def connect(self, connection_string: str) -> SupportsCursor:
        raise NotImplementedError

    def close(self, connection: SupportsCursor) -> None:
        connection.close()

    @staticmethod
    def configure(connection: Any) -> None:
        """Switch a connection opened elsewhere (e.g. by a pool) to autocommit."""

    def begin(self, connection: SupportsCursor) -> None:
        self._execute(connection, self.dialect.begin_statement)

    def commit(self, connection: SupportsCursor) -> None:
        self._execute(connection, self.dialect.commit_statement)

    def rollback(self, connection: SupportsCursor) -> None:
        self._execute(connection, self.dialect.rollback_statement)

    def is_transient(self, error: BaseException) -> bool:
        """Return ``True`` when *error* may succeed if the statement is re-run."""

        return isinstance(error, RetryableDatabaseError)

    @staticmethod
    def _execute(connection: SupportsCursor, statement: str) -> None:
        cursor = connection.cursor()
        try:
            cursor.execute(statement)
        finally:
            if isinstance(cursor, SupportsCursorClose):
                cursor.close()


class SqliteDriver(Driver):
    """Driver backed by the standard library :mod:`sqlite3` module."""

    dialect = SQLITE

    # SQLITE_BUSY and SQLITE_LOCKED; extended codes share the low byte.
    BUSY_CODES = frozenset({5, 6})

    def __init__(self, *, timeout: float = 5.0) -> None:
        self.timeout = timeout

    def connect(self, connection_string: str) -> sqlite3.Connection:
        connection = sqlite3.connect(sqlite_database(connection_string), timeout=self.timeout)
        self.configure(connection)
        return connection

    @staticmethod
    def configure(connection: Any) -> None:
        connection.isolation_level = None

    def is_transient(self, error: BaseException) -> bool:
        if super().is_transient(error):
            return True
        if not isinstance(error, sqlite3.OperationalError):
            return False
        code = getattr(error, "sqlite_errorcode", None)
        if code is not None:
            return (code & 0xFF) in self.BUSY_CODES
        message = str(error).lower()
        return "database is locked" in message or "database table is locked" in message


class PostgresDriver(Driver):
    """Driver backed by psycopg 3."""

    dialect = POSTGRESQL

    DEADLOCK_DETECTED = "40P01"
    SERIALIZATION_FAILURE = "40001"

    def __init__(self, *, tls: PostgresTLSConfig | None = None, **connect_kwargs: Any) -> None:
        self.tls = tls
        self.connect_kwargs = connect_kwargs

    def connect(self, connection_string: str) -> Any:
        return create_postgres_connection(connection_string, self.tls, **self.connect_kwargs)

    @staticmethod
    def configure(connection: Any) -> None:
        connection.autocommit = True

    def is_transient(self, error: BaseException) -> bool:
        if super().is_transient(error):
            return True
        sqlstate = getattr(error, "sqlstate", None) or getattr(error, "pgcode", None)
        return sqlstate in (self.DEADLOCK_DETECTED, self.SERIALIZATION_FAILURE)


class SqlServerDriver(Driver):
    """Driver backed by pymssql."""

    dialect = SQLSERVER

    DEADLOCK_ERROR = 1205

    def __init__(self, **connect_kwargs: Any) -> None:
        self.connect_kwargs = connect_kwargs

    def connect(self, connection_string: str) -> Any:
        try:
            import pymssql
        except ImportError as exc:  # pragma: no cover - optional dependency
            msg = "pymssql must be installed to create SQL Server connections"
            raise RuntimeError(msg) from exc

        url = make_url(connection_string)
        options = {
            "server": url.host or "localhost",
            "user": url.username,
            "password": url.password,
            "database": url.database,
            "autocommit": True,
        }
        if url.port is not None:
            options["port"] = str(url.port)
        options.update(self.connect_kwargs)
        return pymssql.connect(**options)

    @staticmethod
    def configure(connection: Any) -> None:
        connection.autocommit(True)

    def is_transient(self, error: BaseException) -> bool:
        if super().is_transient(error):
            return True
        code = getattr(error, "number", None)
        if code is None and error.args:
            code = error.args[0]
        # pymssql wraps the server message as ((number, message),)
        if isinstance(code, tuple) and code:
            code = code[0]
        return code == self.DEADLOCK_ERROR


def sqlite_database(connection_string: str) -> str:
    """Return the database path of a ``sqlite:///path`` URL or a bare path."""

    if "://" not in connection_string:
        return connection_string
    return make_url(connection_string).database or ":memory:"


def backend_name(connection_string: str) -> str:
    """Return the SQLAlchemy backend name of *connection_string*; bare paths are SQLite."""

    if "://" not in connection_string:
        return SQLITE.name
    return make_url(connection_string).get_backend_name()


def native_driver(backend: str, *, tls: PostgresTLSConfig | None = None) -> Driver:
    """Return the native driver for a backend name."""

    if backend == SQLITE.name:
        return SqliteDriver()
    if backend == POSTGRESQL.name:
        return PostgresDriver(tls=tls)
    if backend == SQLSERVER.name:
        return SqlServerDriver()
    raise InvalidOperationError(f"Unsupported database backend '{backend}'")


def resolve_driver(connection_string: str, settings: DatabaseSettings | None = None) -> Driver:
    """Pick the driver for *connection_string* according to *settings*."""

    tls = settings.postgres_tls if settings is not None else None
    if settings is not None and settings.use_pool:
        from .engine import SqlAlchemyDriver

        return SqlAlchemyDriver.for_url(connection_string, pool=settings.pool, tls=tls)
    return native_driver(backend_name(connection_string), tls=tls)
